import threading
from datetime import datetime

import pytest
import statsd
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from mentalboost.assistant import ResponseGenerator
from mentalboost.emotion import EmotionDetector
from mentalboost.errors import RequestError
from mentalboost.models import SessionRecord
from mentalboost.store import ProfileStore, SessionStore


class CannedGenerator(ResponseGenerator):
    def __init__(self, metrics, reply="That sounds really hard. What do you think is behind it?"):
        super().__init__(metrics=metrics, model="canned")
        self.reply = reply
        self.requests = []

    def get_completion(self, messages):
        self.requests.append(messages)
        return self.reply


class FailingGenerator(ResponseGenerator):
    def __init__(self, metrics):
        super().__init__(metrics=metrics, model="failing")

    def get_completion(self, messages):
        raise RequestError("service unavailable")


class GatedGenerator(ResponseGenerator):
    """Holds every reply until the test releases the message it answers."""

    def __init__(self, metrics):
        super().__init__(metrics=metrics, model="gated")
        self.gates = {}
        self.lock = threading.Lock()

    def _gate(self, text):
        with self.lock:
            return self.gates.setdefault(text, threading.Event())

    def release(self, text):
        self._gate(text).set()

    def get_completion(self, messages):
        text = messages[-1]["content"].rsplit("User: ", 1)[-1]
        self._gate(text).wait(timeout=5)
        return f"reply to {text}"


class ScriptedDetector(EmotionDetector):
    def __init__(self, samples):
        self.samples = list(samples)
        self.frames = []

    def detect(self, frame):
        self.frames.append(frame)
        if not self.samples:
            return None
        return self.samples.pop(0)


@pytest.fixture
def metrics():
    return statsd.StatsClient(host="localhost", port=8125, prefix="test")


@pytest.fixture
def engine():
    return create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)


@pytest.fixture
def session_store(engine):
    return SessionStore(engine)


@pytest.fixture
def profile_store(engine):
    return ProfileStore(engine)


@pytest.fixture
def sample_records():
    return [
        SessionRecord(id="1", user_id="u1", start_time=datetime(2023, 6, 10, 14, 30), emotions=["happy", "neutral"],
                      summary="Discussed work-related stress and practiced relaxation techniques."),
        SessionRecord(id="2", user_id="u1", start_time=datetime(2023, 6, 5, 10, 15), emotions=["anxious", "sad", "neutral"],
                      summary="Explored feelings of anxiety about upcoming presentation."),
        SessionRecord(id="3", user_id="u1", start_time=datetime(2023, 5, 28, 16, 0), emotions=["frustrated", "angry", "neutral"],
                      summary="Addressed conflict with family member."),
        SessionRecord(id="4", user_id="u1", start_time=datetime(2023, 5, 20, 11, 30), emotions=["sad", "anxious", "hopeful"],
                      summary="Discussed feelings of loneliness and isolation."),
        SessionRecord(id="5", user_id="u1", start_time=datetime(2023, 5, 15, 9, 0), emotions=["happy", "excited"],
                      summary="Celebrated progress in personal development goals."),
    ]
