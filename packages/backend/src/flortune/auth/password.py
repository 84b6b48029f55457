"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (rounds=12) takes ~100ms per hash on modern hardware.

verify_password never raises: a malformed or missing hash is simply a
failed verification. A missing hash still costs one bcrypt comparison
(against a throwaway hash), so response time doesn't reveal whether an
account has a password, or exists at all.
"""

from functools import lru_cache
from typing import Optional

import bcrypt

DEFAULT_ROUNDS = 12


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password with bcrypt.

    Learn: bcrypt includes a random salt automatically and produces
    hashes starting with "$2b$". Passwords are truncated to 72 bytes
    (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


@lru_cache(maxsize=1)
def _dummy_hash() -> bytes:
    return bcrypt.hashpw(b"flortune-dummy", bcrypt.gensalt(rounds=DEFAULT_ROUNDS))


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify a password against its bcrypt hash.

    bcrypt.checkpw compares in constant time.
    """
    pw_bytes = password.encode("utf-8")[:72]
    if not password_hash:
        bcrypt.checkpw(pw_bytes, _dummy_hash())
        return False
    try:
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False
