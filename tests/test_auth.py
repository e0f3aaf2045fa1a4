import asyncio
import json

import pytest

from mentalboost.auth import IDENTITY_KEY, AuthService, AuthState, LocalIdentityStore, user_id_for
from mentalboost.errors import AuthError


@pytest.fixture
def identity_store(tmp_path):
    return LocalIdentityStore(str(tmp_path / "identity" / "identity.json"))


@pytest.fixture
def auth(identity_store):
    return AuthService(identity_store, delay=0)


@pytest.mark.parametrize("email,password", [("", "secret"), ("jane@example.com", ""), ("", "")])
def test_login_rejects_missing_credentials(auth, identity_store, email, password):
    with pytest.raises(AuthError):
        asyncio.run(auth.login(email, password))

    assert auth.user is None
    assert auth.state is AuthState.ANONYMOUS
    assert identity_store.get(IDENTITY_KEY) is None


def test_login_persists_identity_across_restart(auth, identity_store):
    user = asyncio.run(auth.login("jane@example.com", "anything"))

    assert auth.state is AuthState.AUTHENTICATED
    assert user.email == "jane@example.com"
    assert user.id == user_id_for("Jane@Example.com ")

    restarted = AuthService(identity_store, delay=0)
    assert restarted.state is AuthState.ANONYMOUS
    restored = asyncio.run(restarted.restore())
    assert restored == user
    assert restarted.state is AuthState.AUTHENTICATED


def test_login_waits_for_the_artificial_delay(identity_store):
    auth = AuthService(identity_store, delay=0.05)

    async def scenario():
        task = asyncio.create_task(auth.login("jane@example.com", "pw"))
        await asyncio.sleep(0)
        assert auth.state is AuthState.LOADING
        assert auth.user is None
        await task

    asyncio.run(scenario())
    assert auth.state is AuthState.AUTHENTICATED


def test_register_requires_every_field(auth):
    with pytest.raises(AuthError):
        asyncio.run(auth.register("", "sam@example.com", "pw"))

    user = asyncio.run(auth.register("Sam", "sam@example.com", "pw"))
    assert user.name == "Sam"
    assert auth.user == user


def test_logout_clears_stored_identity(auth, identity_store):
    asyncio.run(auth.login("jane@example.com", "pw"))
    auth.logout()

    assert auth.user is None
    assert auth.state is AuthState.ANONYMOUS
    assert identity_store.get(IDENTITY_KEY) is None
    assert asyncio.run(AuthService(identity_store, delay=0).restore()) is None


def test_restore_ignores_unreadable_identity(identity_store):
    identity_store.set(IDENTITY_KEY, "{not json")
    auth = AuthService(identity_store, delay=0)

    assert asyncio.run(auth.restore()) is None
    assert auth.state is AuthState.ANONYMOUS


def test_update_identity_is_mirrored(auth, identity_store):
    asyncio.run(auth.login("jane@example.com", "pw"))
    auth.update_identity("Jane Smith", "jane.smith@example.com", None)

    stored = json.loads(identity_store.get(IDENTITY_KEY))
    assert stored["name"] == "Jane Smith"
    assert stored["email"] == "jane.smith@example.com"
    assert stored["id"] == user_id_for("jane@example.com")
