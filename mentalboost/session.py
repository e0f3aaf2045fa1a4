import asyncio
import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

import statsd

from mentalboost.assistant import HISTORY_WINDOW, ResponseGenerator
from mentalboost.emotion import Camera, EmotionDetector, FrameBuffer, NullDetector, emotion_icon
from mentalboost.errors import DeviceError, RequestError, SessionNotFound, StoreError
from mentalboost.logging_config import get_logger
from mentalboost.models import ASSISTANT, USER, EmotionSample, Message, SessionRecord
from mentalboost.speech import PushTranscriber, SpeechTranscriber
from mentalboost.store import SessionStore

logger = get_logger(__name__)

GREETING = "Hello! I'm your AI therapy assistant. How are you feeling today?"


def get_time_millis():
    return round(time.time() * 1000)


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    ENDED = "ended"


class SessionLoop:
    """
    One therapy session: a transcript driven by typed or spoken messages,
    with the latest detected emotion attached to every reply request.

    Replies and saves are best-effort. A failed reply leaves the user message
    without an answer, a failed save is logged and the next exchange tries
    again with the full transcript.
    """

    def __init__(
        self,
        generator: ResponseGenerator,
        store: SessionStore,
        metrics: statsd.StatsClient,
        user_id: str,
        detector: Optional[EmotionDetector] = None,
        camera: Optional[Camera] = None,
        transcriber: Optional[SpeechTranscriber] = None,
        session_id: Optional[str] = None,
        detection_interval: float = 0.5,
        camera_enabled: bool = True,
        microphone_enabled: bool = True,
        communication_style: Optional[str] = None,
    ):
        self.id = session_id or str(uuid.uuid4())
        self.user_id = user_id
        self.generator = generator
        self.store = store
        self.metrics = metrics
        self.detector = detector or NullDetector()
        self.camera = camera or FrameBuffer()
        self.transcriber = transcriber or PushTranscriber()
        self.detection_interval = detection_interval
        self.camera_enabled = camera_enabled
        self.microphone_enabled = microphone_enabled
        self.communication_style = communication_style

        self.state = SessionState.IDLE
        self.transcript: List[Message] = []
        self.input_buffer = ""
        self.emotion: Optional[EmotionSample] = None
        self.emotions: List[str] = []
        self.start_time: Optional[datetime] = None
        self.last_activity = get_time_millis()

        self._sequence = 0
        self._latest_applied = 0
        self._persisted = False
        self._detection_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def start(self) -> None:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"session {self.id} was already started")

        self.state = SessionState.ACTIVE
        self.start_time = datetime.now()
        self.last_activity = get_time_millis()
        self.transcript = [Message(sender=ASSISTANT, text=GREETING)]
        self.metrics.incr("start_session")

        if self.microphone_enabled:
            self._start_listening()
        if self.camera_enabled:
            self._start_detection()
        logger.info(f"Started session {self.id} for user {self.user_id}")

    def _start_listening(self) -> None:
        try:
            self.transcriber.start(self._on_transcript)
        except DeviceError as e:
            logger.warning(f"Continuing session {self.id} without microphone: {e}")
            self.microphone_enabled = False

    def _on_transcript(self, text: str) -> None:
        if self.active:
            self.input_buffer = text

    def _start_detection(self) -> None:
        if self._detection_task is None or self._detection_task.done():
            self._detection_task = asyncio.get_running_loop().create_task(self._detect_loop())

    def _stop_detection(self) -> None:
        if self._detection_task is not None:
            self._detection_task.cancel()
            self._detection_task = None

    async def _detect_loop(self) -> None:
        while self.active and self.camera_enabled:
            await self.detect_once()
            await asyncio.sleep(self.detection_interval)

    def _read_and_detect(self) -> Optional[EmotionSample]:
        # runs on a worker thread, device reads block
        frame = self.camera.read()
        if frame is None:
            return None
        return self.detector.detect(frame)

    async def detect_once(self) -> Optional[EmotionSample]:
        try:
            sample = await asyncio.to_thread(self._read_and_detect)
        except Exception as e:
            logger.warning(f"Emotion detection failed in session {self.id}: {e}")
            return None

        if sample is None or not self.active:
            return None

        # no smoothing, the latest frame always wins
        self.emotion = sample
        if sample.label not in self.emotions:
            self.emotions.append(sample.label)
        return sample

    def send(self, text: str) -> Optional[asyncio.Task]:
        """
        Append the user message right away and request a reply in the background.

        Returns the reply task, or None when nothing was sent.
        """
        if not text or not text.strip():
            return None
        if not self.active:
            logger.warning(f"Ignoring message for session {self.id} in state {self.state.value}")
            return None

        history = [message.render() for message in self.transcript[-HISTORY_WINDOW:]]
        self.transcript.append(Message(sender=USER, text=text))
        self.input_buffer = ""
        self.transcriber.reset()
        self.last_activity = get_time_millis()

        self._sequence += 1
        emotion = self.emotion.label if self.emotion else None
        task = asyncio.get_running_loop().create_task(self._reply(self._sequence, text, emotion, history))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _reply(self, sequence: int, text: str, emotion: Optional[str], history: List[str]) -> Optional[Message]:
        try:
            reply = await asyncio.to_thread(self.generator.generate, text, emotion, history, self.communication_style)
        except RequestError as e:
            logger.error(f"Error generating response in session {self.id}: {e}")
            return None
        except Exception as e:
            self.metrics.incr("errors.generate_response")
            logger.exception(f"Unexpected error generating response in session {self.id}: {e}")
            return None

        if not self.active:
            logger.info(f"Dropping reply {sequence} for session {self.id}, session is no longer active")
            return None
        if sequence <= self._latest_applied:
            logger.info(f"Dropping stale reply {sequence} for session {self.id}, reply {self._latest_applied} already applied")
            return None

        self._latest_applied = sequence
        message = Message(sender=ASSISTANT, text=reply)
        self.transcript.append(message)
        self.last_activity = get_time_millis()

        self.persist()
        return message

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            id=self.id,
            user_id=self.user_id,
            start_time=self.start_time,
            end_time=None,
            summary=None,
            emotions=list(self.emotions),
            transcript=[message.render() for message in self.transcript],
        )

    def persist(self) -> bool:
        try:
            self.store.save(self.to_record())
        except StoreError as e:
            self.metrics.incr("errors.save_session")
            logger.error(f"Error saving session {self.id}: {e}")
            return False

        self._persisted = True
        return True

    def set_camera(self, enabled: bool) -> None:
        if enabled == self.camera_enabled:
            return
        self.camera_enabled = enabled

        if enabled:
            if self.active:
                self._start_detection()
        else:
            self._stop_detection()
            self.camera.release()

    def set_microphone(self, enabled: bool) -> None:
        if enabled == self.microphone_enabled:
            return
        self.microphone_enabled = enabled

        if not self.active:
            return
        if enabled:
            self._start_listening()
        else:
            self.transcriber.stop()

    async def _summarize(self, lines: List[str]) -> Optional[str]:
        if not any(line.startswith(f"{USER}: ") for line in lines):
            return None
        try:
            return await asyncio.to_thread(self.generator.summarize, lines)
        except RequestError as e:
            logger.warning(f"Could not summarize session {self.id}: {e}")
            return None

    async def end(self, confirmed: bool) -> bool:
        if not confirmed or not self.active:
            return False

        record = self.to_record()
        self.state = SessionState.ENDED
        self._stop_detection()
        self.transcriber.stop()
        self.camera.release()

        if self._persisted:
            record.end_time = datetime.now()
            record.summary = await self._summarize(record.transcript)
            try:
                self.store.update(record)
            except StoreError as e:
                self.metrics.incr("errors.save_session")
                logger.error(f"Error finalizing session {self.id}: {e}")

        self.transcript = []
        self.input_buffer = ""
        self.emotion = None
        self.emotions = []
        self.metrics.incr("end_session")
        logger.info(f"Ended session {self.id}")
        return True

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "state": self.state.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "transcript": [message.render() for message in self.transcript],
            "emotion": self.emotion.label if self.emotion else None,
            "confidence": self.emotion.confidence if self.emotion else 0,
            "icon": emotion_icon(self.emotion.label) if self.emotion else None,
            "emotions": list(self.emotions),
            "input": self.input_buffer,
            "camera": self.camera_enabled,
            "microphone": self.microphone_enabled,
            "listening": self.transcriber.listening,
        }


class SessionManager:
    """Keeps the running session loops of this process, keyed by session id."""

    def __init__(
        self,
        generator: ResponseGenerator,
        store: SessionStore,
        metrics: statsd.StatsClient,
        detector: Optional[EmotionDetector] = None,
        camera_factory: Callable[[], Camera] = FrameBuffer,
        transcriber_factory: Callable[[], SpeechTranscriber] = PushTranscriber,
        detection_interval: float = 0.5,
    ):
        self.generator = generator
        self.store = store
        self.metrics = metrics
        self.detector = detector
        self.camera_factory = camera_factory
        self.transcriber_factory = transcriber_factory
        self.detection_interval = detection_interval
        self.sessions: Dict[str, SessionLoop] = {}

    def create(self, user_id: str, camera: bool = True, microphone: bool = True,
               communication_style: Optional[str] = None) -> SessionLoop:
        session_camera = FrameBuffer()
        if camera:
            try:
                session_camera = self.camera_factory()
            except DeviceError as e:
                logger.warning(f"Starting session without camera: {e}")
                camera = False

        session_transcriber = PushTranscriber()
        if microphone:
            try:
                session_transcriber = self.transcriber_factory()
            except DeviceError as e:
                logger.warning(f"Starting session without microphone: {e}")
                microphone = False

        loop = SessionLoop(
            generator=self.generator,
            store=self.store,
            metrics=self.metrics,
            user_id=user_id,
            detector=self.detector,
            camera=session_camera,
            transcriber=session_transcriber,
            detection_interval=self.detection_interval,
            camera_enabled=camera,
            microphone_enabled=microphone,
            communication_style=communication_style,
        )
        loop.start()
        self.sessions[loop.id] = loop
        return loop

    def get(self, session_id: str) -> SessionLoop:
        loop = self.sessions.get(session_id)
        if loop is None:
            raise SessionNotFound(session_id)
        return loop

    async def end(self, session_id: str, confirmed: bool) -> bool:
        loop = self.get(session_id)
        ended = await loop.end(confirmed)
        if ended:
            self.sessions.pop(session_id, None)
        return ended

    async def end_stale_sessions(self, max_idle_minutes: float) -> List[str]:
        now = get_time_millis()
        minute = 1000 * 60
        ended = []

        for session_id, loop in list(self.sessions.items()):
            if loop.state is SessionState.ENDED:
                # ended directly on the loop, nothing left to close
                self.sessions.pop(session_id, None)
                continue
            time_diff = (now - loop.last_activity) / minute
            if time_diff < max_idle_minutes:
                continue
            try:
                if await self.end(session_id, confirmed=True):
                    ended.append(session_id)
            except SessionNotFound:
                continue

        # records left open by a previous process have no loop to end them
        for record in self.store.list_active():
            if record.id in self.sessions:
                continue
            record.end_time = datetime.now()
            try:
                self.store.update(record)
            except StoreError as e:
                logger.error(f"Error closing stale session {record.id}: {e}")
                continue
            ended.append(record.id)

        if ended:
            logger.info(f"Closed {len(ended)} stale sessions")
        return ended
