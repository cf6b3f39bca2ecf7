"""Symmetric encryption for Threads tokens at rest and for OAuth state."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

_STATE_PREFIX = "tg:"


def _fernet(secret_key: str) -> Fernet:
    """Derive a Fernet instance from the application secret using SHA-256."""
    digest = hashlib.sha256(secret_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_value(plaintext: str, secret_key: str) -> str:
    """Encrypt a string and return the ciphertext as a URL-safe string."""
    return _fernet(secret_key).encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str, secret_key: str) -> str:
    """Decrypt a ciphertext string. Raises ValueError on failure."""
    try:
        return _fernet(secret_key).decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise ValueError("Failed to decrypt credential data") from exc


def sign_state(telegram_id: int, secret_key: str) -> str:
    """Build the opaque OAuth ``state`` that round-trips a Telegram user id."""
    return encrypt_value(f"{_STATE_PREFIX}{telegram_id}", secret_key)


def verify_state(state: str, secret_key: str, ttl_seconds: int) -> int:
    """Recover the Telegram user id from a ``state`` made by :func:`sign_state`.

    Raises:
        ValueError: if the state is forged, corrupted or older than ``ttl_seconds``.
    """
    try:
        payload = _fernet(secret_key).decrypt(state.encode(), ttl=ttl_seconds).decode()
    except (InvalidToken, UnicodeError) as exc:
        raise ValueError("Invalid or expired OAuth state") from exc
    if not payload.startswith(_STATE_PREFIX):
        raise ValueError("Invalid or expired OAuth state")
    raw_id = payload.removeprefix(_STATE_PREFIX)
    try:
        return int(raw_id)
    except ValueError:
        raise ValueError("Invalid or expired OAuth state") from None
