import threading
from typing import Any, Optional

from mentalboost.models import EmotionSample

EMOTION_ICONS = {
    "happy": "😊",
    "sad": "😢",
    "angry": "😠",
    "surprised": "😮",
    "fearful": "😨",
    "neutral": "😐",
}

UNKNOWN_ICON = "❓"


def emotion_icon(label: Optional[str]) -> Optional[str]:
    if label is None:
        return None
    return EMOTION_ICONS.get(label.lower(), UNKNOWN_ICON)


class EmotionDetector:
    # this method should be overriden in the implementation
    def detect(self, frame: Any) -> Optional[EmotionSample]:
        raise NotImplementedError


class NullDetector(EmotionDetector):
    """Used when no detection backend is configured; never reports an emotion."""

    def detect(self, frame: Any) -> Optional[EmotionSample]:
        return None


class Camera:
    def read(self) -> Any:
        raise NotImplementedError

    def release(self) -> None:
        pass


class FrameBuffer(Camera):
    """
    Holds the most recent frame uploaded by the client. Each upload replaces
    the previous one, so detection always runs on the freshest picture.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame = None

    def push(self, frame: bytes) -> None:
        with self._lock:
            self._frame = frame

    def read(self) -> Optional[bytes]:
        with self._lock:
            return self._frame

    def release(self) -> None:
        with self._lock:
            self._frame = None
