from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

USER = "user"
ASSISTANT = "assistant"

COMMUNICATION_STYLES = ("direct", "supportive", "analytical", "empathetic")


@dataclass
class User:
    id: str
    name: str
    email: str
    profile_picture: Optional[str] = None

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            profile_picture=data.get("profile_picture"),
        )


@dataclass(frozen=True)
class Message:
    sender: str # user | assistant
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def render(self) -> str:
        return f"{self.sender}: {self.text}"


@dataclass(frozen=True)
class EmotionSample:
    label: str
    confidence: int # percent, 0-100


class SessionRecord(SQLModel, table=True):
    __tablename__ = "therapy_sessions"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    start_time: datetime
    end_time: Optional[datetime] = Field(default=None)
    summary: Optional[str] = Field(default=None)
    emotions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    transcript: List[str] = Field(default_factory=list, sa_column=Column(JSON))


class Profile(SQLModel, table=True):
    user_id: str = Field(primary_key=True)
    full_name: str = ""
    email: str = ""
    dob: str = ""
    gender: str = ""
    phone: str = ""
    emergency_contact_name: str = ""
    emergency_contact_relationship: str = ""
    emergency_contact_phone: str = ""
    medical_history: str = ""
    therapy_goals: str = ""
    communication_style: str = "direct"
    profile_picture: Optional[str] = Field(default=None)
