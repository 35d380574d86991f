"""
Session issuer and password hashing.

Tokens are stateless HS256 JWTs carrying only the user id (``sub``) and
their issue/expiry times; there is no server-side session store, so a
token stays valid until it expires even after the client "logs out".
"""
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from quickblog.config import settings
from quickblog.exceptions import InvalidToken
from quickblog.models import MAX_ID

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("ascii"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def issue_token(user_id: int, expires_in: timedelta | None = None) -> str:
    """Return a signed token bound to *user_id*."""
    now = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(days=settings.JWT_EXPIRE_DAYS)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> int:
    """
    Return the user id encoded in *token*.

    Raises InvalidToken when the signature does not match, the token has
    expired, or the payload is malformed.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.debug("Rejected expired token: %s", exc)
        raise InvalidToken("Not authorized, token expired.") from exc
    except jwt.PyJWTError as exc:
        logger.debug("Rejected token: %s", exc)
        raise InvalidToken() from exc

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise InvalidToken() from exc
    if not 1 <= user_id <= MAX_ID:
        raise InvalidToken()
    return user_id
