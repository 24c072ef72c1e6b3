from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from taskmanager.utils.validation import BCRYPT_MAX_BYTES

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class ConfigurationError(RuntimeError):
    """Raised when the server is missing settings it cannot run without."""


class TokenError(Exception):
    message = "Invalid token"


class TokenExpiredError(TokenError):
    message = "Token expired"


def hash_password(password: str):
    """Hash a password after validating bcrypt's 72-byte limit.

    Raises ValueError if the UTF-8 encoding of the password exceeds 72 bytes.
    """
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError("password too long: must be at most 72 bytes when UTF-8 encoded")
    return pwd_context.hash(password)


def verify_password(plain, hashed):
    """Verify a plaintext password against a hash.

    If verification raises a ValueError (for example plain >72 bytes), return False
    to allow the caller to respond with an authentication failure instead of an error.
    """
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def _signing_secret() -> str:
    # read at call-time so runtime overrides of taskmanager.config take effect
    import taskmanager.config as _cfg
    if not _cfg.JWT_SECRET:
        raise ConfigurationError("JWT_SECRET is not defined in environment variables")
    return _cfg.JWT_SECRET


def create_token(user) -> str:
    """Sign a time-bound token carrying the user's id, email and role."""
    import taskmanager.config as _cfg
    secret = _signing_secret()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=_cfg.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),  # JWT uses Unix timestamps
    }
    return jwt.encode(payload, secret, algorithm=_cfg.ALGORITHM)


def decode_token(token: str) -> dict:
    """Verify signature and expiry and return the claims.

    Raises TokenExpiredError for an expired token and TokenError for anything
    else wrong with it, including a missing subject.
    """
    import taskmanager.config as _cfg
    secret = _signing_secret()
    try:
        # jwt.decode validates exp automatically
        payload = jwt.decode(token, secret, algorithms=[_cfg.ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenExpiredError() from e
    except JWTError as e:
        raise TokenError() from e
    if not payload.get("sub"):
        raise TokenError()
    return payload
