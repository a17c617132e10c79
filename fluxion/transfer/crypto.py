"""
Payload Encryption

Design Decision: Cipher and Framing
===================================

Options Considered:
1. AES-256-GCM - Authenticated, but the browser peers of the web frontend
   use CBC and we keep wire compatibility
2. AES-256-CBC + PKCS7, IV prepended, base64 text
3. ChaCha20-Poly1305 - Not available in every browser crypto API

Decision: AES-256-CBC with PKCS7 padding
- Payload = base64(IV || ciphertext), one string for the whole file
- Key = 32 random bytes, shown to the operator as 64 lowercase hex chars
  and shared out of band (never sent over relay or channel)
- A wrong key almost always breaks the padding; the receiver also checks
  the plaintext length against the declared size, which catches the rest
"""

import base64
import binascii
import os
import re
import secrets
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import DecryptionError, InvalidKeyError

KEY_SIZE = 32          # 256-bit key
KEY_HEX_LENGTH = KEY_SIZE * 2
IV_SIZE = 16           # 128-bit IV (one AES block)
BLOCK_BITS = 128

_KEY_RE = re.compile(r'^[0-9a-fA-F]{64}$')


def generate_key() -> str:
    """Generate a fresh 256-bit key as 64 lowercase hex characters."""
    return secrets.token_bytes(KEY_SIZE).hex()


def validate_key(key: str) -> bytes:
    """
    Check key format and return the raw key bytes.

    Raises:
        InvalidKeyError: unless the key is exactly 64 hex characters
    """
    if not isinstance(key, str) or not _KEY_RE.match(key):
        raise InvalidKeyError("Invalid key format: expected 64 hex characters")
    return bytes.fromhex(key)


def encrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    """AES-256-CBC encrypt with PKCS7 padding."""
    padder = padding.PKCS7(BLOCK_BITS).padder()
    padded = padder.update(data) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    """
    AES-256-CBC decrypt and strip PKCS7 padding.

    Raises:
        DecryptionError: on bad length or bad padding
    """
    if not data or len(data) % IV_SIZE:
        raise DecryptionError("Ciphertext is not a whole number of blocks")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(data) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError("Invalid padding") from e


def encrypt_payload(key_hex: str, data: bytes, iv: Optional[bytes] = None) -> str:
    """
    Encrypt a whole file into its text payload.

    Returns:
        base64(IV || ciphertext)
    """
    key = validate_key(key_hex)
    iv = iv if iv is not None else os.urandom(IV_SIZE)
    if len(iv) != IV_SIZE:
        raise ValueError(f"IV must be {IV_SIZE} bytes")

    ciphertext = encrypt(key, iv, data)
    return base64.b64encode(iv + ciphertext).decode('ascii')


def decrypt_payload(key_hex: str, payload: str,
                    expected_size: Optional[int] = None) -> bytes:
    """
    Decrypt a text payload produced by encrypt_payload().

    Args:
        key_hex: 64-hex-character key
        payload: base64(IV || ciphertext)
        expected_size: Declared plaintext size; a mismatch counts as failure

    Raises:
        InvalidKeyError: bad key format
        DecryptionError: wrong key or corrupted payload
    """
    key = validate_key(key_hex)

    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Payload is not valid base64: {e}") from e

    if len(raw) < IV_SIZE * 2:
        raise DecryptionError("Payload too short")

    iv, ciphertext = raw[:IV_SIZE], raw[IV_SIZE:]
    plaintext = decrypt(key, iv, ciphertext)

    if expected_size is not None and len(plaintext) != expected_size:
        raise DecryptionError(
            f"Decrypted size {len(plaintext)} does not match declared size {expected_size}"
        )

    return plaintext
