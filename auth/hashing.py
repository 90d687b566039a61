"""
auth/hashing.py -- Pluggable password hashing strategies.

Every strategy offers hash() and verify(); none offers an inverse. The
strategy is chosen once from Settings.hasher and passed explicitly to the
components that need it -- there is no module-level "current hasher".

  native  -- Argon2id via argon2-cffi with the library's tuned parameters.
             Memory-hard and adaptive; the right default for new installs.
  bcrypt  -- bcrypt with an explicit cost factor (default 8) and a freshly
             generated 22-character alphanumeric salt per call. Salt and cost
             are embedded in the encoded value, so verify() is
             self-describing.
  sha256  -- unsalted SHA-256 hex digest. Deterministic and INSECURE. Exists
             only to verify hashes created by older deployments so they can
             be migrated; never the default.

bcrypt only looks at the first 72 bytes of a password and bcrypt>=5 rejects
longer input with ValueError. BcryptHasher truncates the UTF-8 encoding to 72
bytes in both hash() and verify(), so every password round-trips and only the
first 72 bytes count.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from abc import ABC, abstractmethod

import bcrypt

from auth.errors import HasherUnavailableError

_DUMMY_PASSWORD = "gatehouse_timing_dummy"


class HashingStrategy(ABC):
    """One-way hash + verify contract shared by all strategies."""

    name: str = ""

    @abstractmethod
    def hash(self, plaintext: str) -> str:
        """Return the encoded one-way hash of plaintext."""

    @abstractmethod
    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return True iff plaintext hashes to hashed. Never raises on bad input."""

    _dummy_hash: str | None = None

    def dummy_hash(self) -> str:
        """Return a hash of a throwaway password, computed once per strategy instance.

        Verifying against it costs the same as a real password check, which is
        what unknown-login paths need to keep response times uniform.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(_DUMMY_PASSWORD)
        return self._dummy_hash


# ---------------------------------------------------------------------------
# native (Argon2id)
# ---------------------------------------------------------------------------


class NativeHasher(HashingStrategy):
    """Argon2id with automatically chosen parameters.

    argon2-cffi is imported at construction time so a runtime without the
    compiled primitive fails loudly at startup rather than on the first login.
    """

    name = "native"

    def __init__(self) -> None:
        try:
            from argon2 import PasswordHasher
            from argon2.exceptions import InvalidHashError, VerificationError
        except ImportError as exc:
            raise HasherUnavailableError(
                "The argon2 module is not available in this environment. "
                "Install argon2-cffi or configure a different hasher (GATEHOUSE_HASHER=bcrypt)."
            ) from exc
        self._hasher = PasswordHasher()
        self._verify_errors = (VerificationError, InvalidHashError)

    def hash(self, plaintext: str) -> str:
        return self._hasher.hash(plaintext)

    def verify(self, plaintext: str, hashed: str) -> bool:
        try:
            return self._hasher.verify(hashed, plaintext)
        except self._verify_errors:
            return False

    def needs_rehash(self, hashed: str) -> bool:
        """True when hashed was produced with weaker parameters than the current defaults."""
        try:
            return self._hasher.check_needs_rehash(hashed)
        except self._verify_errors:
            return True


# ---------------------------------------------------------------------------
# bcrypt (explicit salt)
# ---------------------------------------------------------------------------

_SALT_ALPHABET = string.digits + string.ascii_letters

# bcrypt's radix-64 packs 16 salt bytes into 22 characters, so the last
# character only carries 2 bits. These are the alphanumerics whose low 4 bits
# are zero in bcrypt's alphabet; any other choice would be normalised away
# and the stored salt would no longer match the generated one.
_SALT_LAST_CHAR_ALPHABET = "Oeu"

_BCRYPT_MAX_BYTES = 72


def _bcrypt_bytes(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class BcryptHasher(HashingStrategy):
    """bcrypt with a caller-configurable cost factor and explicit salt."""

    name = "bcrypt"

    def __init__(self, strength: int = 8, salt_length: int = 22) -> None:
        if not 4 <= strength <= 31:
            raise ValueError(f"bcrypt strength must be between 4 and 31, got {strength}")
        if salt_length != 22:
            raise ValueError("bcrypt requires a 22-character salt")
        self.strength = strength
        self.salt_length = salt_length

    def create_salt(self) -> str:
        """Return a fresh 22-character alphanumeric salt from the OS CSPRNG."""
        head = "".join(secrets.choice(_SALT_ALPHABET) for _ in range(self.salt_length - 1))
        return head + secrets.choice(_SALT_LAST_CHAR_ALPHABET)

    def hash(self, plaintext: str) -> str:
        setting = f"$2b${self.strength:02d}${self.create_salt()}"
        return bcrypt.hashpw(_bcrypt_bytes(plaintext), setting.encode("ascii")).decode("ascii")

    def verify(self, plaintext: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(_bcrypt_bytes(plaintext), hashed.encode("ascii"))
        except (ValueError, TypeError, UnicodeEncodeError):
            return False


# ---------------------------------------------------------------------------
# sha256 (legacy)
# ---------------------------------------------------------------------------


class Sha256Hasher(HashingStrategy):
    """Unsalted SHA-256. Deterministic, insecure, migration only."""

    name = "sha256"

    def hash(self, plaintext: str) -> str:
        return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()

    def verify(self, plaintext: str, hashed: str) -> bool:
        if not isinstance(hashed, str):
            return False
        return hmac.compare_digest(self.hash(plaintext), hashed)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

_STRATEGIES: dict[str, type[HashingStrategy]] = {
    "native": NativeHasher,
    "bcrypt": BcryptHasher,
    "sha256": Sha256Hasher,
}


def make_hasher(name: str) -> HashingStrategy:
    """Instantiate the strategy configured as name ("native", "bcrypt", "sha256")."""
    try:
        strategy = _STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Invalid hasher {name!r}; choose one of {sorted(_STRATEGIES)}") from None
    return strategy()
