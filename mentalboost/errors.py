class AuthError(Exception):
    """Raised when the login or registration form is incomplete."""
    pass


class RequestError(Exception):
    """Raised when the response generator could not produce a reply."""
    pass


class StoreError(Exception):
    """Raised when a session or profile could not be persisted or read."""
    pass


class DeviceError(Exception):
    """Raised when a camera or microphone is unavailable."""
    pass


class SessionNotFound(Exception):
    def __init__(self, session_id: str):
        super().__init__(f"no session with id {session_id}")
        self.session_id = session_id
