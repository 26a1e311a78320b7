"""
Identity verification for bearer tokens.

The coordinator only needs ``verify(token) -> Identity``. The default
implementation checks HS256 JWTs carrying ``userId`` and ``email`` claims,
the tokens issued by the account service.

Features:
- Expired, malformed and badly signed tokens fail with Unauthenticated
- Tokens missing the identity claims are rejected
- ``issue_token`` for local tooling and tests
- Bearer credential extraction shared by the REST and WebSocket layers
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError

from meetroom.core.errors import AppError, ErrorKind
from meetroom.core.logging import get_logger
from meetroom.models.models import Identity

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


class IdentityVerifier(ABC):
    """Opaque ``verify(token) -> Identity``; raises AppError(Unauthenticated)."""

    @abstractmethod
    async def verify(self, token: Optional[str]) -> Identity: ...


class JwtIdentityVerifier(IdentityVerifier):
    def __init__(self, secret: str, algorithm: str = "HS256", expires_in_seconds: int = 7 * 24 * 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in_seconds = expires_in_seconds

    def issue_token(self, user_id: str, email: str, expires_in_seconds: Optional[int] = None) -> str:
        """Sign a token for ``user_id``. A negative lifetime yields an already expired token."""
        lifetime = self.expires_in_seconds if expires_in_seconds is None else expires_in_seconds
        now = datetime.now(timezone.utc)
        claims = {
            "userId": user_id,
            "email": email,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=lifetime)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    async def verify(self, token: Optional[str]) -> Identity:
        if not token:
            raise AppError(ErrorKind.UNAUTHENTICATED, "No token provided")

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise AppError(ErrorKind.UNAUTHENTICATED, "Token expired")
        except JWTError as e:
            logger.debug(f"Token rejected: {e}")
            raise AppError(ErrorKind.UNAUTHENTICATED, "Invalid token")

        user_id = claims.get("userId")
        email = claims.get("email")
        if not isinstance(user_id, str) or not user_id or not isinstance(email, str):
            raise AppError(ErrorKind.UNAUTHENTICATED, "Invalid token")

        return Identity(user_id=user_id, email=email)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None
