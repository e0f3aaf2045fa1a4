import pytest

np = pytest.importorskip("numpy")
pytest.importorskip("cv2")
pytest.importorskip("deepface")

from mentalboost import vision
from mentalboost.errors import DeviceError
from mentalboost.models import EmotionSample


def analysis(dominant, scores):
    return [{"dominant_emotion": dominant, "emotion": scores, "region": {"x": 0, "y": 0, "w": 48, "h": 48}}]


def test_dominant_emotion_with_rounded_confidence(monkeypatch):
    calls = []

    def analyze(image, **kwargs):
        calls.append(kwargs)
        return analysis("sad", {"sad": 72.6, "neutral": 20.1, "happy": 7.3})

    monkeypatch.setattr(vision.DeepFace, "analyze", analyze)

    sample = vision.DeepFaceDetector().detect(np.zeros((48, 48, 3), dtype=np.uint8))

    assert sample == EmotionSample(label="sad", confidence=73)
    assert calls[0]["actions"] == ["emotion"]
    assert calls[0]["enforce_detection"] is False


def test_no_face_analysis_gives_no_sample(monkeypatch):
    monkeypatch.setattr(vision.DeepFace, "analyze", lambda image, **kwargs: [{"region": {}}])

    assert vision.DeepFaceDetector().detect(np.zeros((48, 48, 3), dtype=np.uint8)) is None


def test_undecodable_frame(monkeypatch):
    def analyze(image, **kwargs):
        raise AssertionError("analyze should not run on an undecodable frame")

    monkeypatch.setattr(vision.DeepFace, "analyze", analyze)

    assert vision.decode_frame(b"not an image") is None
    assert vision.DeepFaceDetector().detect(b"not an image") is None


class FakeCapture:
    def __init__(self, device, opened=True, frames=()):
        self.device = device
        self.opened = opened
        self.frames = list(frames)
        self.released = False

    def isOpened(self):
        return self.opened

    def open(self, device):
        self.opened = True
        self.released = False
        return True

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.opened = False
        self.released = True


def test_camera_that_will_not_open(monkeypatch):
    monkeypatch.setattr(vision.cv2, "VideoCapture", lambda device: FakeCapture(device, opened=False))

    with pytest.raises(DeviceError):
        vision.OpenCVCamera(1)


def test_camera_reopens_after_release(monkeypatch):
    frame = np.ones((4, 4, 3), dtype=np.uint8)
    monkeypatch.setattr(vision.cv2, "VideoCapture", lambda device: FakeCapture(device, frames=[frame]))

    camera = vision.OpenCVCamera(0)
    camera.release()
    assert camera.capture.released

    assert camera.read() is frame
    assert camera.read() is None
