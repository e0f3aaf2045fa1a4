from typing import Callable, Optional

from mentalboost.logging_config import get_logger

logger = get_logger(__name__)

TranscriptCallback = Callable[[str], None]


class SpeechTranscriber:
    def __init__(self):
        self.callback: Optional[TranscriptCallback] = None
        self.listening = False

    def start(self, callback: TranscriptCallback) -> None:
        self.callback = callback
        self.listening = True

    def stop(self) -> None:
        self.listening = False

    def reset(self) -> None:
        pass


class PushTranscriber(SpeechTranscriber):
    """
    Transcription done by the client (for example the browser speech API).
    Interim text is pushed in and forwarded only while listening.
    """

    def __init__(self):
        super().__init__()
        self.transcript = ""

    def push(self, text: str) -> bool:
        if not self.listening or self.callback is None:
            logger.debug("Dropping interim transcript, not listening")
            return False
        self.transcript = text
        self.callback(text)
        return True

    def reset(self) -> None:
        self.transcript = ""
