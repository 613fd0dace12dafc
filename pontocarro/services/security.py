import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
from jose import JWTError, jwt

from pontocarro.core.config import Settings


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class InvalidTokenError(Exception):
    pass


def hash_password(password: str, rounds: int = 12) -> str:
    # bcrypt only looks at the first 72 bytes
    password_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    hashed_bytes = hashed_password.encode("utf-8")
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        return False


def generate_reset_token() -> str:
    # Opaque random token, unrelated to the JWT secrets
    return secrets.token_hex(20)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token_with_expiry(minutes: int) -> Tuple[str, str, datetime]:
    token = generate_reset_token()
    token_hash = hash_token(token)
    expires_at = datetime.utcnow() + timedelta(minutes=minutes)
    return token, token_hash, expires_at


class TokenService:
    """Issues and verifies the access/refresh JWT pair."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _create_token(self, user_id: int, token_type: str, expires_delta: timedelta, secret_key: str) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": str(user_id),
            "type": token_type,
            # jti keeps two tokens issued in the same second distinct
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + expires_delta,
        }
        return jwt.encode(to_encode, secret_key, algorithm=self.settings.JWT_ALGORITHM)

    def create_access_token(self, user_id: int) -> str:
        return self._create_token(
            user_id,
            ACCESS_TOKEN_TYPE,
            timedelta(minutes=self.settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
            self.settings.JWT_SECRET_KEY,
        )

    def create_refresh_token(self, user_id: int) -> str:
        return self._create_token(
            user_id,
            REFRESH_TOKEN_TYPE,
            timedelta(days=self.settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
            self.settings.JWT_REFRESH_SECRET_KEY,
        )

    def _decode(self, token: str, secret_key: str, token_type: str) -> int:
        try:
            payload = jwt.decode(token, secret_key, algorithms=[self.settings.JWT_ALGORITHM])
        except JWTError as exc:
            raise InvalidTokenError(str(exc)) from exc

        if payload.get("type") != token_type:
            raise InvalidTokenError("wrong token type")

        user_id_raw: Optional[str] = payload.get("sub")
        try:
            return int(user_id_raw)
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError("invalid subject") from exc

    def decode_access_token(self, token: str) -> int:
        return self._decode(token, self.settings.JWT_SECRET_KEY, ACCESS_TOKEN_TYPE)

    def decode_refresh_token(self, token: str) -> int:
        return self._decode(token, self.settings.JWT_REFRESH_SECRET_KEY, REFRESH_TOKEN_TYPE)
