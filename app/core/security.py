"""Security utilities: API key hashing, webhook signatures and token encryption"""

import hashlib
import hmac
import os
import secrets
from typing import Optional
from uuid import uuid4

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from app.core.config import settings

IV_LENGTH = 16
SIGNATURE_PREFIX = "sha256="


# --- API Key Hashing (HMAC-SHA256) ---
def hash_api_key(api_key: str) -> str:
    """
    Hash an API key using HMAC-SHA256 keyed by SECRET_KEY (plain SHA-256 if unset).
    Args:
        api_key: The plain text API key to hash
    Returns:
        str: The hex digest of the hashed API key
    """
    secret = settings.SECRET_KEY
    if secret:
        return hmac.new(secret.encode(), api_key.encode(), hashlib.sha256).hexdigest()
    return hashlib.sha256(api_key.encode()).hexdigest()


def verify_api_key(plain_api_key: str, hashed_api_key: str) -> bool:
    """
    Verify a plain API key against its stored hash in constant time.
    Args:
        plain_api_key: The plain text API key
        hashed_api_key: The hash from database
    Returns:
        bool: True if API key is valid, False otherwise
    """
    return hmac.compare_digest(hash_api_key(plain_api_key), hashed_api_key)


def generate_business_token() -> str:
    """
    Generate a secure random business token.
    Returns:
        str: A secure random token (32 bytes hex encoded)
    """
    return secrets.token_hex(32)


def generate_callback_token() -> str:
    """Per-run secret handed to the worker in its job descriptor."""
    return secrets.token_urlsafe(32)


def generate_id() -> str:
    """String UUID used as primary key for installations, repositories, projects and runs."""
    return str(uuid4())


# --- Webhook signatures ---
def compute_webhook_signature(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature GitHub sends for ``body``."""
    digest = hmac.new(secret.encode("utf-8"), msg=body, digestmod=hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Check an ``X-Hub-Signature-256`` header against the raw request body.

    Returns False for a missing or malformed header or an empty secret.
    """
    if not secret or not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    expected = compute_webhook_signature(body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


# --- Token encryption at rest (AES-256-CBC, iv_hex:ciphertext_hex) ---
def _encryption_key(key_hex: Optional[str]) -> bytes:
    key_hex = key_hex if key_hex is not None else settings.TOKEN_ENCRYPTION_KEY
    if not key_hex:
        raise ValueError("TOKEN_ENCRYPTION_KEY not set")
    key = bytes.fromhex(key_hex)
    if len(key) != 32:
        raise ValueError("TOKEN_ENCRYPTION_KEY must be 32 bytes hex encoded")
    return key


def encrypt_token(token: str, key_hex: Optional[str] = None) -> str:
    """
    Encrypt a token with a random IV.
    Args:
        token: Plain text token
        key_hex: Hex encoded key, defaults to settings.TOKEN_ENCRYPTION_KEY
    Returns:
        str: ``iv_hex:ciphertext_hex``
    """
    key = _encryption_key(key_hex)
    iv = os.urandom(IV_LENGTH)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(token.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt_token(encrypted_token: str, key_hex: Optional[str] = None) -> str:
    """Inverse of :func:`encrypt_token`. Raises ValueError on malformed input."""
    key = _encryption_key(key_hex)
    iv_hex, sep, ciphertext_hex = encrypted_token.partition(":")
    if not sep:
        raise ValueError("Encrypted token must be formatted as iv:ciphertext")
    iv = bytes.fromhex(iv_hex)
    ciphertext = bytes.fromhex(ciphertext_hex)

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
