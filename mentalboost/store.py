from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from mentalboost.errors import StoreError
from mentalboost.logging_config import get_logger
from mentalboost.models import Profile, SessionRecord, User

logger = get_logger(__name__)


class SessionStore:
    def __init__(self, engine):
        self.engine = engine
        # create all tables
        SQLModel.metadata.create_all(self.engine)

    def insert(self, record: SessionRecord) -> SessionRecord:
        try:
            with Session(self.engine) as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return record
        except SQLAlchemyError as e:
            raise StoreError(f"could not insert session {record.id}: {e}") from e

    def update(self, record: SessionRecord) -> SessionRecord:
        try:
            with Session(self.engine) as session:
                stored = session.get(SessionRecord, record.id)
                if stored is None:
                    raise StoreError(f"session {record.id} does not exist")

                stored.end_time = record.end_time
                stored.summary = record.summary
                # JSON columns are replaced wholesale so the change is tracked
                stored.emotions = list(record.emotions)
                stored.transcript = list(record.transcript)

                session.add(stored)
                session.commit()
                session.refresh(stored)
                return stored
        except SQLAlchemyError as e:
            raise StoreError(f"could not update session {record.id}: {e}") from e

    def save(self, record: SessionRecord) -> SessionRecord:
        """Insert the record the first time its id is seen, update it afterwards."""
        if self.get(record.id) is None:
            logger.debug(f"Creating session record {record.id}")
            return self.insert(record)
        return self.update(record)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        try:
            with Session(self.engine) as session:
                return session.get(SessionRecord, session_id)
        except SQLAlchemyError as e:
            raise StoreError(f"could not load session {session_id}: {e}") from e

    def query(self, user_id: str) -> List[SessionRecord]:
        try:
            with Session(self.engine) as session:
                return session.exec(
                    select(SessionRecord).where(SessionRecord.user_id == user_id).order_by(SessionRecord.start_time.desc())
                ).all()
        except SQLAlchemyError as e:
            raise StoreError(f"could not query sessions for {user_id}: {e}") from e

    def list_active(self) -> List[SessionRecord]:
        try:
            with Session(self.engine) as session:
                return session.exec(select(SessionRecord).where(SessionRecord.end_time == None)).all()  # noqa: E711
        except SQLAlchemyError as e:
            raise StoreError(f"could not list running sessions: {e}") from e


class ProfileStore:
    def __init__(self, engine):
        self.engine = engine
        SQLModel.metadata.create_all(self.engine)

    def get(self, user: User) -> Profile:
        try:
            with Session(self.engine) as session:
                profile = session.get(Profile, user.id)
        except SQLAlchemyError as e:
            raise StoreError(f"could not load profile for {user.id}: {e}") from e

        if profile is None:
            # nothing saved yet, start from what the identity knows
            profile = Profile(
                user_id=user.id,
                full_name=user.name,
                email=user.email,
                profile_picture=user.profile_picture,
            )
        return profile

    def save(self, profile: Profile) -> Profile:
        try:
            with Session(self.engine) as session:
                profile = session.merge(profile)
                session.commit()
                session.refresh(profile)
                return profile
        except SQLAlchemyError as e:
            raise StoreError(f"could not save profile for {profile.user_id}: {e}") from e
