"""
Password hashing, JWT issuing/validation and the FastAPI auth dependencies.

A token that fails validation does not fail the request: the caller is simply
treated as anonymous. Routes that need an identity depend on `require_principal`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config

logger = logging.getLogger(__name__)

# HS256 requires a key at least as long as its digest
MIN_SECRET_BYTES = 32


# --- Passwords ---
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        logger.warning("Stored password hash could not be parsed")
        return False


# --- Tokens ---
@dataclass(frozen=True)
class TokenClaims:
    subject: str
    user_id: Optional[int]
    role: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    algorithm = "HS256"

    def __init__(self, secret: str, expiration: timedelta):
        if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(f"JWT secret must be at least {MIN_SECRET_BYTES} bytes long")
        self._secret = secret
        self.expiration = expiration

    def issue(self, user_id: Optional[int], username: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": username,
            "userId": user_id,
            "role": role,
            "iat": now,
            "exp": now + self.expiration,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def decode(self, token: str) -> TokenClaims:
        """Raises jwt.InvalidTokenError on a bad signature, expiry or malformed token."""
        payload = jwt.decode(
            token,
            self._secret,
            algorithms=[self.algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
        return TokenClaims(
            subject=payload["sub"],
            user_id=payload.get("userId"),
            role=payload.get("role") or "USER",
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def validate(self, token: str) -> Optional[TokenClaims]:
        try:
            return self.decode(token)
        except jwt.InvalidTokenError as e:
            logger.warning(f"JWT token rejected: {e}")
            return None


@lru_cache()
def get_token_service() -> TokenService:
    return TokenService(config.JWT_SECRET, timedelta(milliseconds=config.JWT_EXPIRATION_MS))


# --- Dependencies ---
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[TokenClaims]:
    if credentials is None:
        return None
    return tokens.validate(credentials.credentials)


async def require_principal(principal: Optional[TokenClaims] = Depends(get_current_principal)) -> TokenClaims:
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal
