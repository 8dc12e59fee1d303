import hashlib
import hmac
import secrets
import uuid

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from propcare.core.config import get_settings

ph = PasswordHasher(time_cost=3, memory_cost=64 * 1024, parallelism=2)
settings = get_settings()
TOKEN_HMAC_SECRET = settings.refresh_token_hmac_secret.encode("utf-8")


def generate_invite_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def new_opaque_id() -> str:
    return str(uuid.uuid4())


def hash_token(raw_token: str) -> str:
    return hmac.new(
        TOKEN_HMAC_SECRET, raw_token.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def hash_password(plain: str) -> str:
    return ph.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return ph.verify(hashed, plain)
    except (VerificationError, InvalidHashError):
        return False
