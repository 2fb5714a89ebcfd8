"""Password hashing, bearer token issue/verify, and the request auth gate.

Tokens are HS256 JWTs whose only identity claim is ``sub`` (the customer id),
for registration and login alike. The gate only proves who the caller is; it
does not check that the caller owns the resource named in the URL.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import get_settings
from errors import InvalidTokenError, UnauthorizedError

logger = logging.getLogger(__name__)


class PasswordHasher:
    def __init__(self, rounds: int = 10):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            return False
        return self._context.verify(plain_password, hashed_password)


class TokenService:
    """Signs and checks bearer tokens with a single in-memory key."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", ttl: timedelta = timedelta(days=3)):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.ttl = ttl

    def issue(self, subject: str, ttl: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(subject),
            "iat": now,
            "exp": now + (ttl if ttl is not None else self.ttl),
        }
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise UnauthorizedError()
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError as e:
            logger.info(f"Token rejected: {e}")
            raise InvalidTokenError()
        if not claims.get("sub"):
            raise InvalidTokenError()
        return claims


@lru_cache
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=get_settings().bcrypt_rounds)


@lru_cache
def get_token_service() -> TokenService:
    settings = get_settings()
    return TokenService(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(days=settings.token_ttl_days),
    )


@dataclass(frozen=True)
class Identity:
    customer_id: str
    claims: Dict[str, Any]


def require_identity(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """Dependency guarding protected routes. Expects ``Authorization: Bearer <token>``."""
    if not authorization:
        raise UnauthorizedError()
    parts = authorization.split()
    if len(parts) < 2:
        raise InvalidTokenError()
    claims = tokens.verify(parts[1])
    identity = Identity(customer_id=claims["sub"], claims=claims)
    request.state.customer_id = identity.customer_id
    return identity
