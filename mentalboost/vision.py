from typing import Optional, Union

import cv2
import numpy as np
from deepface import DeepFace

from mentalboost.emotion import Camera, EmotionDetector
from mentalboost.errors import DeviceError
from mentalboost.logging_config import get_logger
from mentalboost.models import EmotionSample

logger = get_logger(__name__)


def decode_frame(frame: Union[bytes, np.ndarray]) -> Optional[np.ndarray]:
    if isinstance(frame, np.ndarray):
        return frame
    file_bytes = np.frombuffer(frame, np.uint8)
    return cv2.imdecode(file_bytes, cv2.IMREAD_COLOR)


class DeepFaceDetector(EmotionDetector):
    def __init__(self, detector_backend: str = "opencv"):
        self.detector_backend = detector_backend

    def detect(self, frame) -> Optional[EmotionSample]:
        image = decode_frame(frame)
        if image is None:
            logger.debug("Frame could not be decoded")
            return None

        analysis = DeepFace.analyze(image, actions=["emotion"], enforce_detection=False,
                                    detector_backend=self.detector_backend, silent=True)
        if not analysis or not isinstance(analysis, list) or "dominant_emotion" not in analysis[0]:
            return None

        dominant_emotion = analysis[0]["dominant_emotion"]
        # deepface reports scores as percentages already
        confidence = analysis[0]["emotion"][dominant_emotion]
        return EmotionSample(label=dominant_emotion, confidence=int(round(float(confidence))))


class OpenCVCamera(Camera):
    def __init__(self, device: int = 0):
        self.device = device
        self.capture = cv2.VideoCapture(device)
        if not self.capture.isOpened():
            raise DeviceError(f"camera {device} is not available")

    def read(self) -> Optional[np.ndarray]:
        # the device is released whenever the camera is toggled off
        if not self.capture.isOpened() and not self.capture.open(self.device):
            return None
        ok, frame = self.capture.read()
        if not ok:
            return None
        return frame

    def release(self) -> None:
        self.capture.release()
