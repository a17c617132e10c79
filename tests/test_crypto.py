"""Tests for payload encryption."""

import base64

import pytest

from fluxion.errors import DecryptionError, InvalidKeyError
from fluxion.transfer.crypto import (
    IV_SIZE,
    KEY_HEX_LENGTH,
    decrypt_payload,
    encrypt_payload,
    generate_key,
    validate_key,
)


class TestKeys:
    """Key generation and validation."""

    def test_generated_key_is_64_lowercase_hex(self):
        key = generate_key()

        assert len(key) == KEY_HEX_LENGTH
        assert key == key.lower()
        assert len(validate_key(key)) == 32

    def test_keys_are_random(self):
        assert generate_key() != generate_key()

    def test_uppercase_hex_is_accepted(self):
        key = generate_key().upper()

        assert validate_key(key) == bytes.fromhex(key)

    @pytest.mark.parametrize('key', ['', 'abc', 'g' * 64, 'a' * 63, 'a' * 65, None])
    def test_invalid_keys_are_rejected(self, key):
        with pytest.raises(InvalidKeyError, match="Invalid key format"):
            validate_key(key)


class TestPayload:
    """base64(IV || ciphertext) framing."""

    def test_round_trip(self, key):
        data = b'Hello, peer!\n' * 100

        payload = encrypt_payload(key, data)

        assert decrypt_payload(key, payload, expected_size=len(data)) == data

    def test_empty_file_still_produces_one_block(self, key):
        payload = encrypt_payload(key, b'')

        raw = base64.b64decode(payload)
        assert len(raw) == IV_SIZE + 16
        assert decrypt_payload(key, payload, expected_size=0) == b''

    def test_iv_is_prepended(self, key):
        iv = bytes(range(IV_SIZE))

        payload = encrypt_payload(key, b'data', iv=iv)

        assert base64.b64decode(payload)[:IV_SIZE] == iv

    def test_fresh_iv_per_encryption(self, key):
        assert encrypt_payload(key, b'same') != encrypt_payload(key, b'same')

    def test_wrong_key_fails(self, key):
        data = b'0123456789'
        payload = encrypt_payload(key, data)

        with pytest.raises(DecryptionError):
            decrypt_payload(generate_key(), payload, expected_size=len(data))

    def test_size_mismatch_fails(self, key):
        payload = encrypt_payload(key, b'0123456789')

        with pytest.raises(DecryptionError, match="declared size"):
            decrypt_payload(key, payload, expected_size=11)

    def test_corrupted_base64_fails(self, key):
        with pytest.raises(DecryptionError):
            decrypt_payload(key, '%%%not-base64%%%')

    def test_truncated_payload_fails(self, key):
        payload = encrypt_payload(key, b'0123456789')
        truncated = base64.b64encode(base64.b64decode(payload)[:IV_SIZE]).decode()

        with pytest.raises(DecryptionError):
            decrypt_payload(key, truncated)
