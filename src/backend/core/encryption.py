"""
Field-level encryption for voter credentials.

Voter secrets and emails are stored with AES-256-GCM. Equality checks
(secret login, email uniqueness, the credential registered on the ledger)
use a keyed PBKDF2 hash of the normalized value, so the plaintext never
has to be decrypted to compare it.
"""

import base64
import hashlib
import secrets
from functools import lru_cache
from typing import Optional

import structlog
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import settings
from core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


class FieldEncryptionError(Exception):
    """Raised when field encryption/decryption fails."""

    pass


class FieldEncryption:
    """
    AES-256-GCM field encryption plus keyed search hashes.

    Uses a 256-bit key from either:
    - FIELD_ENCRYPTION_KEY (required in production/staging)
    - A generated key (development/test only, not persistent)
    """

    # Prefix to identify encrypted data
    ENCRYPTED_PREFIX = "enc:v1:"
    HASH_ITERATIONS = 10000

    def __init__(self, encryption_key: Optional[bytes] = None):
        configured = encryption_key or self._load_key()
        self._hash_key = configured or settings.SECRET_KEY.encode("utf-8")
        self._key = configured or self._ephemeral_key()
        self._aesgcm = AESGCM(self._key)

    def _load_key(self) -> Optional[bytes]:
        key_str = settings.FIELD_ENCRYPTION_KEY
        if not key_str:
            return None
        try:
            key = base64.b64decode(key_str)
        except ValueError as e:
            raise ConfigurationError("FIELD_ENCRYPTION_KEY is not valid base64") from e
        if len(key) != 32:
            logger.error("invalid_encryption_key_length", expected=32, actual=len(key))
            raise ConfigurationError("FIELD_ENCRYPTION_KEY must decode to 32 bytes")
        return key

    def _ephemeral_key(self) -> bytes:
        if settings.APP_ENV in ("production", "staging"):
            logger.error("encryption_key_required_in_production", app_env=settings.APP_ENV)
            raise ConfigurationError("FIELD_ENCRYPTION_KEY must be set in production/staging")
        logger.warning(
            "field_encryption_ephemeral_key",
            app_env=settings.APP_ENV,
            message="Encrypted voter fields will not survive a restart",
        )
        return secrets.token_bytes(32)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Returns:
            Encrypted string with prefix (enc:v1:base64data)
        """
        if not plaintext:
            return plaintext

        try:
            nonce = secrets.token_bytes(12)
            ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
            encrypted_data = base64.b64encode(nonce + ciphertext).decode("ascii")
            return f"{self.ENCRYPTED_PREFIX}{encrypted_data}"
        except Exception as e:
            logger.error("encryption_failed", error=type(e).__name__)
            raise FieldEncryptionError(f"Failed to encrypt field: {e}") from e

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an enc:v1: value. Values without the prefix are returned as-is."""
        if not ciphertext or not ciphertext.startswith(self.ENCRYPTED_PREFIX):
            return ciphertext

        try:
            encrypted_data = base64.b64decode(ciphertext[len(self.ENCRYPTED_PREFIX) :])
            nonce = encrypted_data[:12]
            plaintext = self._aesgcm.decrypt(nonce, encrypted_data[12:], None)
            return plaintext.decode("utf-8")
        except Exception as e:
            logger.error("decryption_failed", error=type(e).__name__)
            raise FieldEncryptionError(f"Failed to decrypt field: {e}") from e

    def compute_search_hash(self, normalized: str) -> str:
        """
        Deterministic keyed hash of an already-normalized value.

        Returns:
            Hex-encoded PBKDF2-HMAC-SHA256 digest
        """
        if not normalized:
            return ""
        hash_value = hashlib.pbkdf2_hmac(
            "sha256",
            normalized.encode("utf-8"),
            self._hash_key,
            iterations=self.HASH_ITERATIONS,
        )
        return hash_value.hex()

    def is_encrypted(self, value: str) -> bool:
        """Check if a value is already encrypted."""
        return value.startswith(self.ENCRYPTED_PREFIX) if value else False


@lru_cache()
def get_field_encryption() -> FieldEncryption:
    """Get the singleton FieldEncryption instance."""
    return FieldEncryption()


def generate_encryption_key() -> str:
    """
    Generate a new base64-encoded 256-bit encryption key.

    Use this to generate a new key for FIELD_ENCRYPTION_KEY.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def normalize_secret(secret: str) -> str:
    return secret.strip().upper()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def encrypt_field(value: str) -> str:
    """Encrypt a voter field value."""
    return get_field_encryption().encrypt(value)


def decrypt_field(value: str) -> str:
    """Decrypt a voter field value."""
    return get_field_encryption().decrypt(value)


def hash_secret(secret: str) -> str:
    """Keyed hash of a voter secret; also the credential registered on the ledger."""
    return get_field_encryption().compute_search_hash(normalize_secret(secret))


def hash_email(email: str) -> str:
    """Keyed hash of an email, used for per-election uniqueness."""
    return get_field_encryption().compute_search_hash(normalize_email(email))


def hash_token(token: str) -> str:
    """Unkeyed SHA-256 of a one-time verification token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
