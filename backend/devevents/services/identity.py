"""Identity gate — resolves the caller from the request's session credential.

The identity comes only from transport-level credentials: the session
cookie or an ``Authorization: Bearer`` header. Body and form fields are
never consulted. The result is memoized on ``request.state`` so every
collaborator in one request shares a single decode.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Depends, Request

from devevents.config import settings
from devevents.errors import UnauthorizedError

logger = logging.getLogger(__name__)

_UNRESOLVED = object()


@dataclass(frozen=True)
class Identity:
    """Server-verified caller."""

    id: str
    email: str
    name: str = ""
    image: Optional[str] = None


class JWTSessionProvider:
    """Reads and issues HS256 session tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_seconds: int = 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds

    def issue(self, identity: Identity) -> str:
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": identity.id,
            "email": identity.email,
            "name": identity.name,
            "image": identity.image,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.ttl_seconds)).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def read(self, token: Optional[str]) -> Optional[Identity]:
        """Return the identity in a valid token, or None."""
        if not token:
            return None
        try:
            data = jwt.decode(
                token, self.secret, algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as e:
            logger.info("Rejected session token: %s", e)
            return None

        user_id = data.get("sub")
        if not user_id:
            return None
        return Identity(
            id=str(user_id),
            email=data.get("email") or "",
            name=data.get("name") or "",
            image=data.get("image"),
        )


session_provider = JWTSessionProvider(
    secret=settings.SESSION_SECRET,
    algorithm=settings.SESSION_ALGORITHM,
    ttl_seconds=settings.SESSION_TTL_SECONDS,
)


def get_session_provider() -> JWTSessionProvider:
    return session_provider


def _session_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def current_identity(request: Request, provider: JWTSessionProvider) -> Optional[Identity]:
    """Resolve the caller once per request; None when unauthenticated."""
    cached = getattr(request.state, "identity", _UNRESOLVED)
    if cached is not _UNRESOLVED:
        return cached
    identity = provider.read(_session_token(request))
    request.state.identity = identity
    return identity


def get_current_identity(
    request: Request,
    provider: JWTSessionProvider = Depends(get_session_provider),
) -> Optional[Identity]:
    """FastAPI dependency — the caller's identity or None."""
    return current_identity(request, provider)


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise UnauthorizedError()
    return identity
