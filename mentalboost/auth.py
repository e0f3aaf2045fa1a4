"""
Mock authentication. Any non-empty credentials are accepted after an
artificial delay; the signed in user is mirrored to a local identity file
so it survives a restart.
"""

import asyncio
import json
import os
import uuid
from enum import Enum
from typing import Optional

from mentalboost.errors import AuthError
from mentalboost.logging_config import get_logger
from mentalboost.models import User

logger = get_logger(__name__)

IDENTITY_KEY = "user"

DEMO_NAME = "Jane Doe"
DEMO_PICTURE = "https://images.pexels.com/photos/774909/pexels-photo-774909.jpeg?auto=compress&cs=tinysrgb&w=150"


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


def user_id_for(email: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"mailto:{email.strip().lower()}"))


class LocalIdentityStore:
    """A small JSON key-value file, the process-side stand-in for browser local storage."""

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: dict) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class AuthService:
    def __init__(self, identity_store: LocalIdentityStore, delay: float = 1.0):
        self.identity_store = identity_store
        self.delay = delay
        self.user: Optional[User] = None
        self.state = AuthState.ANONYMOUS

    def _settle(self) -> None:
        self.state = AuthState.AUTHENTICATED if self.user else AuthState.ANONYMOUS

    def _sign_in(self, user: User) -> User:
        self.user = user
        self.identity_store.set(IDENTITY_KEY, json.dumps(user.to_dict()))
        logger.info(f"Signed in {user.email}")
        return user

    async def restore(self) -> Optional[User]:
        self.state = AuthState.LOADING
        try:
            await asyncio.sleep(self.delay)
            stored_user = self.identity_store.get(IDENTITY_KEY)
            if stored_user:
                self.user = User.from_dict(json.loads(stored_user))
        except (ValueError, KeyError, TypeError, OSError) as e:
            logger.error(f"Error checking user session: {e}")
        finally:
            self._settle()
        return self.user

    async def login(self, email: str, password: str) -> User:
        self.state = AuthState.LOADING
        try:
            await asyncio.sleep(self.delay)
            if not email or not password:
                raise AuthError("Invalid credentials")
            return self._sign_in(User(
                id=user_id_for(email),
                name=DEMO_NAME,
                email=email,
                profile_picture=DEMO_PICTURE,
            ))
        except AuthError as e:
            logger.warning(f"Login error: {e}")
            raise
        finally:
            self._settle()

    async def register(self, name: str, email: str, password: str) -> User:
        self.state = AuthState.LOADING
        try:
            await asyncio.sleep(self.delay)
            if not name or not email or not password:
                raise AuthError("Missing required fields")
            return self._sign_in(User(
                id=user_id_for(email),
                name=name,
                email=email,
                profile_picture=DEMO_PICTURE,
            ))
        except AuthError as e:
            logger.warning(f"Registration error: {e}")
            raise
        finally:
            self._settle()

    def logout(self) -> None:
        self.user = None
        self.identity_store.delete(IDENTITY_KEY)
        self._settle()

    def update_identity(self, name: str, email: str, profile_picture: Optional[str]) -> Optional[User]:
        if self.user is None:
            return None
        self.user = User(
            id=self.user.id,
            name=name or self.user.name,
            email=email or self.user.email,
            profile_picture=profile_picture,
        )
        self.identity_store.set(IDENTITY_KEY, json.dumps(self.user.to_dict()))
        return self.user
