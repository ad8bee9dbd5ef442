"""Password hashing with scrypt and a legacy-record migration path.

Stored hashes come in two shapes:

- ``SaltedHash``: ``"<salt_hex>:<key_hex>"``, a 64-byte scrypt key derived with
  a random 16-byte salt. Every hash written by this module has this shape.
- ``LegacyHash``: records created before salted hashing existed, stored as the
  base64 encoding of the password. They still verify so existing users can log
  in, and ``needs_rehash`` tells the caller to replace them on the next
  successful login.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Union

import structlog

logger = structlog.get_logger(__name__)

SALT_BYTES = 16
KEY_LENGTH = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_MAXMEM = 64 * 1024 * 1024


@dataclass(frozen=True)
class LegacyHash:
    """Unsalted base64 encoding of the password."""

    encoded: str


@dataclass(frozen=True)
class SaltedHash:
    """Hex salt and hex scrypt key."""

    salt: str
    key: str

    def __str__(self) -> str:
        return f"{self.salt}:{self.key}"


StoredHash = Union[LegacyHash, SaltedHash]


def _derive_key(secret: bytes, salt: str) -> bytes:
    # The hex salt text itself is the scrypt salt input.
    return hashlib.scrypt(
        secret,
        salt=salt.encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        maxmem=SCRYPT_MAXMEM,
        dklen=KEY_LENGTH,
    )


def parse_stored_hash(stored: str) -> StoredHash:
    """Classify a stored password hash.

    Args:
        stored: Value of the account's password column

    Returns:
        SaltedHash when the value contains a colon (split on the first one),
        LegacyHash otherwise
    """
    if ":" in stored:
        salt, key = stored.split(":", 1)
        return SaltedHash(salt=salt, key=key)
    return LegacyHash(encoded=stored)


def hash_password(password: str) -> str:
    """Hash a password with a fresh random salt.

    Args:
        password: Plain-text password to hash

    Returns:
        ``salt_hex:key_hex`` string (lowercase hex)

    Raises:
        UnicodeEncodeError: If the password is not encodable as UTF-8;
            validate_password rejects such passwords first
    """
    salt = secrets.token_hex(SALT_BYTES)
    key = _derive_key(password.encode("utf-8"), salt)
    return str(SaltedHash(salt=salt, key=key.hex()))


def verify_password(password: str, stored: str) -> bool:
    """Verify a password against a stored hash in constant time.

    Never raises: a malformed stored value, or a password that cannot be
    encoded as UTF-8 (e.g. one holding a lone surrogate), simply fails
    verification.

    Args:
        password: Plain-text password to check
        stored: Stored hash (salted or legacy)

    Returns:
        True if the password matches, False otherwise
    """
    if not isinstance(password, str) or not isinstance(stored, str) or not stored:
        return False

    try:
        secret = password.encode("utf-8")
    except UnicodeEncodeError:
        return False

    parsed = parse_stored_hash(stored)

    if isinstance(parsed, LegacyHash):
        try:
            expected_legacy = parsed.encoded.encode("utf-8")
        except UnicodeEncodeError:
            return False
        return hmac.compare_digest(base64.b64encode(secret), expected_legacy)

    if not parsed.salt or not parsed.key:
        return False

    try:
        expected = bytes.fromhex(parsed.key)
        derived = _derive_key(secret, parsed.salt)
    except (ValueError, TypeError, MemoryError, binascii.Error) as e:
        logger.warning("password_hash_malformed", error=str(e))
        return False

    return hmac.compare_digest(derived, expected)


def needs_rehash(stored: str) -> bool:
    """Return True when a stored hash should be replaced by a salted one."""
    return isinstance(stored, str) and isinstance(parse_stored_hash(stored), LegacyHash)
