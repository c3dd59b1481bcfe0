"""
Credential encryption, session token and redaction utilities.
"""
import hashlib
import hmac
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from jose import jwt, JWTError

from attendance_sync.core.config import settings


class CredentialDecryptionError(Exception):
    """Raised when a stored provider credential cannot be decrypted."""
    pass


def _encryption_key(key_hex: Optional[str] = None) -> bytes:
    key_hex = key_hex or settings.ENCRYPTION_KEY
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as e:
        raise CredentialDecryptionError("ENCRYPTION_KEY is not valid hex") from e
    if len(key) != 32:
        raise CredentialDecryptionError("ENCRYPTION_KEY must be 32 bytes")
    return key


def encrypt_credential(plaintext: str, key_hex: Optional[str] = None) -> Tuple[str, str]:
    """
    Encrypt a provider token with AES-256-GCM.

    Returns:
        (iv_hex, content) where content is ``"{auth_tag_hex}:{ciphertext_hex}"``
    """
    iv = os.urandom(16)
    sealed = AESGCM(_encryption_key(key_hex)).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-16], sealed[-16:]
    return iv.hex(), f"{tag.hex()}:{ciphertext.hex()}"


def decrypt_credential(iv_hex: str, content: str, key_hex: Optional[str] = None) -> str:
    """Decrypt a value produced by ``encrypt_credential``."""
    if not iv_hex or not content:
        raise CredentialDecryptionError("Missing credential")
    try:
        tag_hex, ciphertext_hex = content.split(":", 1)
        iv = bytes.fromhex(iv_hex)
        sealed = bytes.fromhex(ciphertext_hex) + bytes.fromhex(tag_hex)
        token = AESGCM(_encryption_key(key_hex)).decrypt(iv, sealed, None).decode("utf-8")
    except (ValueError, InvalidTag) as e:
        raise CredentialDecryptionError("Decryption failed") from e

    if not token:
        raise CredentialDecryptionError("Decrypted credential is empty")
    return token


def verify_cron_secret(provided: str) -> bool:
    """Constant-time comparison against the configured cron secret."""
    expected = settings.CRON_SECRET
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def create_session_token(auth_id: str, expires_delta_seconds: int = 3600) -> str:
    """Issue a session token; only used by tests and local tooling."""
    payload = {
        "sub": auth_id,
        "type": "session",
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_delta_seconds),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_session_token(token: str) -> Optional[str]:
    """Return the auth id carried by a valid session token, or None."""
    if not token or not settings.JWT_SECRET_KEY:
        return None
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "session":
        return None
    return payload.get("sub") or None


def redact(kind: str, value: str) -> str:
    """12-character HMAC-SHA256 digest of a sensitive value, safe to log."""
    digest = hmac.new(
        settings.REDACTION_SALT.encode("utf-8"),
        f"{kind}:{value}".encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()[:12]
