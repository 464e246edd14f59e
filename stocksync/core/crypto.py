"""
AES-256-GCM encryption for store credentials kept at rest.

Tokens are ``hex(iv):hex(auth_tag):hex(ciphertext)`` with a 16-byte IV and a key
derived as SHA-256 of the configured ENCRYPTION_KEY.
"""

import hashlib
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from stocksync.core.config import get_settings
from stocksync.core.exceptions import CredentialError

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16


def _derive_key(secret_key: Optional[str]) -> bytes:
    secret = secret_key if secret_key is not None else get_settings().ENCRYPTION_KEY
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(text: str, secret_key: Optional[str] = None) -> str:
    key = _derive_key(secret_key)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return f"{iv.hex()}:{auth_tag.hex()}:{ciphertext.hex()}"


def decrypt(token: str, secret_key: Optional[str] = None) -> str:
    """
    Decrypt a token produced by ``encrypt``.

    Raises:
        CredentialError: If the token is malformed or fails authentication
    """
    parts = (token or "").split(":")
    if len(parts) != 3:
        raise CredentialError("Invalid encrypted text format")

    try:
        iv = bytes.fromhex(parts[0])
        auth_tag = bytes.fromhex(parts[1])
        ciphertext = bytes.fromhex(parts[2])
    except ValueError:
        raise CredentialError("Invalid encrypted text format")

    key = _derive_key(secret_key)
    try:
        plain = AESGCM(key).decrypt(iv, ciphertext + auth_tag, None)
    except (InvalidTag, ValueError):
        raise CredentialError("Credential decryption failed")

    return plain.decode("utf-8")
