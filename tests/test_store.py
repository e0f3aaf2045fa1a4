from datetime import datetime

import pytest
from sqlmodel import SQLModel

from mentalboost.errors import StoreError
from mentalboost.models import SessionRecord, User


def make_record(session_id, user_id="u1", start_time=datetime(2024, 1, 1, 10, 0), transcript=None):
    return SessionRecord(
        id=session_id,
        user_id=user_id,
        start_time=start_time,
        emotions=["neutral"],
        transcript=transcript or ["assistant: hello"],
    )


def test_save_creates_once_then_updates(session_store):
    session_store.save(make_record("s1"))
    session_store.save(make_record("s1", transcript=["assistant: hello", "user: hi", "assistant: how are you?"]))

    records = session_store.query("u1")
    assert len(records) == 1
    assert records[0].transcript == ["assistant: hello", "user: hi", "assistant: how are you?"]
    assert records[0].end_time is None


def test_query_is_newest_first_and_per_user(session_store):
    session_store.insert(make_record("old", start_time=datetime(2024, 1, 1)))
    session_store.insert(make_record("new", start_time=datetime(2024, 3, 1)))
    session_store.insert(make_record("other", user_id="u2"))

    assert [record.id for record in session_store.query("u1")] == ["new", "old"]
    assert [record.id for record in session_store.query("u2")] == ["other"]
    assert session_store.query("nobody") == []


def test_list_active_skips_finished_sessions(session_store):
    session_store.insert(make_record("running"))
    finished = make_record("finished")
    finished.end_time = datetime(2024, 1, 1, 11, 0)
    session_store.insert(finished)

    assert [record.id for record in session_store.list_active()] == ["running"]


def test_update_of_unknown_session_fails(session_store):
    with pytest.raises(StoreError):
        session_store.update(make_record("missing"))


def test_database_errors_become_store_errors(engine, session_store):
    SQLModel.metadata.drop_all(engine)

    with pytest.raises(StoreError):
        session_store.insert(make_record("s1"))
    with pytest.raises(StoreError):
        session_store.query("u1")


def test_profile_defaults_from_user_then_saves(profile_store):
    user = User(id="u1", name="Jane Doe", email="jane@example.com")

    profile = profile_store.get(user)
    assert profile.full_name == "Jane Doe"
    assert profile.communication_style == "direct"

    profile.therapy_goals = "Sleep better"
    profile.communication_style = "supportive"
    profile_store.save(profile)

    stored = profile_store.get(user)
    assert stored.therapy_goals == "Sleep better"
    assert stored.communication_style == "supportive"
