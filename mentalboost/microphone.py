import asyncio

import speech_recognition as sr

from mentalboost.errors import DeviceError
from mentalboost.logging_config import get_logger
from mentalboost.speech import SpeechTranscriber, TranscriptCallback

logger = get_logger(__name__)


class MicrophoneTranscriber(SpeechTranscriber):
    """Continuous listening on a local microphone using the Google recognizer."""

    def __init__(self, language: str = "en-US", phrase_time_limit: int = 30):
        super().__init__()
        self.language = language
        self.phrase_time_limit = phrase_time_limit
        self.recognizer = sr.Recognizer()
        self.transcript = ""
        self._stop_listening = None
        self._loop = None
        try:
            self.microphone = sr.Microphone()
        except (OSError, AttributeError) as e:
            raise DeviceError(f"microphone is not available: {e}") from e

    def start(self, callback: TranscriptCallback) -> None:
        if self.listening:
            return
        self._loop = asyncio.get_running_loop()

        try:
            with self.microphone as source:
                self.recognizer.adjust_for_ambient_noise(source, duration=1)
            self._stop_listening = self.recognizer.listen_in_background(
                self.microphone, self._on_audio, phrase_time_limit=self.phrase_time_limit
            )
        except OSError as e:
            raise DeviceError(f"microphone could not be opened: {e}") from e
        super().start(callback)

    def _on_audio(self, recognizer: sr.Recognizer, audio: sr.AudioData) -> None:
        # runs on the listener thread
        try:
            text = recognizer.recognize_google(audio, language=self.language)
        except sr.UnknownValueError:
            return
        except sr.RequestError as e:
            logger.error(f"Speech recognition request failed: {e}")
            return

        self.transcript = f"{self.transcript} {text}".strip()
        if self.listening and self.callback is not None:
            self._loop.call_soon_threadsafe(self.callback, self.transcript)

    def stop(self) -> None:
        super().stop()
        if self._stop_listening is not None:
            self._stop_listening(wait_for_stop=False)
            self._stop_listening = None

    def reset(self) -> None:
        self.transcript = ""
