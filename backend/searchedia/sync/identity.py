"""Identity provider interface and an in-process, token-backed provider."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

from jose import JWTError, jwt

from searchedia.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: str | None = None


class AuthEventType(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class AuthEvent:
    type: AuthEventType
    session: AuthSession | None = None

    @classmethod
    def signed_in(cls, session: AuthSession) -> "AuthEvent":
        return cls(AuthEventType.SIGNED_IN, session)

    @classmethod
    def signed_out(cls) -> "AuthEvent":
        return cls(AuthEventType.SIGNED_OUT)


AuthListener = Callable[[AuthEvent], None]


class IdentityProvider(Protocol):
    """What the reconciliation engine needs from authentication."""

    def get_current_session(self) -> AuthSession | None: ...

    def subscribe(self, listener: AuthListener) -> Callable[[], None]: ...

    async def sign_out(self) -> None: ...


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be verified."""

    pass


def create_access_token(user_id: str, email: str | None = None, expires_minutes: int = 60) -> str:
    """Create a signed JWT access token."""
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Decode and validate a JWT. Returns the payload or raises."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("sub") is None:
            raise JWTError("Missing subject")
        return payload
    except JWTError as exc:
        raise InvalidTokenError("Invalid or expired token") from exc


class TokenIdentityProvider:
    """Holds the current session and broadcasts sign-in/sign-out events."""

    def __init__(self) -> None:
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []

    def get_current_session(self) -> AuthSession | None:
        return self._session

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def sign_in(self, session: AuthSession) -> AuthSession:
        self._session = session
        logger.info("Signed in as %s", session.user_id)
        self._emit(AuthEvent.signed_in(session))
        return session

    def sign_in_with_token(self, token: str) -> AuthSession:
        payload = verify_token(token)
        return self.sign_in(AuthSession(user_id=payload["sub"], email=payload.get("email")))

    async def sign_out(self) -> None:
        if self._session is None:
            return
        logger.info("Signed out %s", self._session.user_id)
        self._session = None
        self._emit(AuthEvent.signed_out())
