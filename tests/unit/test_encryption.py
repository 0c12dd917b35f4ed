"""Tests for telegit/utils/encryption.py - AES-256-GCM token encryption."""

import base64

import pytest

from telegit.exceptions import EncryptionError
from telegit.utils.encryption import IV_LENGTH, TAG_LENGTH, TokenCipher


@pytest.fixture
def cipher():
    return TokenCipher(TokenCipher.generate_key())


class TestTokenCipher:
    """Tests for TokenCipher."""

    def test_generate_key_is_64_hex_chars(self):
        """Generated keys should be 32 random bytes in hex."""
        key = TokenCipher.generate_key()

        assert len(key) == 64
        assert bytes.fromhex(key)
        assert TokenCipher.generate_key() != key

    def test_round_trip(self, cipher):
        """Decrypting an encrypted token should give the token back."""
        assert cipher.decrypt(cipher.encrypt("ghp_abc123")) == "ghp_abc123"

    def test_output_format(self, cipher):
        """Output should be base64 IV, tag and ciphertext joined by colons."""
        iv, tag, ciphertext = cipher.encrypt("ghp_abc123").split(":")

        assert len(base64.b64decode(iv)) == IV_LENGTH
        assert len(base64.b64decode(tag)) == TAG_LENGTH
        assert len(base64.b64decode(ciphertext)) == len("ghp_abc123")

    def test_fresh_iv_per_encryption(self, cipher):
        """Encrypting the same value twice should give different outputs."""
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_key_whitespace_is_ignored(self):
        """Surrounding whitespace in the key should be stripped."""
        key = TokenCipher.generate_key()
        encrypted = TokenCipher(key).encrypt("token")

        assert TokenCipher(f"  {key}\n").decrypt(encrypted) == "token"

    @pytest.mark.parametrize("part", [0, 1, 2], ids=["iv", "tag", "ciphertext"])
    def test_tampered_part(self, cipher, part):
        """Flipping one byte of any part should fail authentication."""
        parts = cipher.encrypt("ghp_abc123").split(":")
        raw = bytearray(base64.b64decode(parts[part]))
        raw[len(raw) // 2] ^= 0x01
        parts[part] = base64.b64encode(bytes(raw)).decode()

        with pytest.raises(EncryptionError, match="tampered"):
            cipher.decrypt(":".join(parts))

    def test_wrong_key(self, cipher):
        """A different key should not decrypt the value."""
        encrypted = cipher.encrypt("ghp_abc123")

        with pytest.raises(EncryptionError):
            TokenCipher(TokenCipher.generate_key()).decrypt(encrypted)

    @pytest.mark.parametrize("value", ["no-colons", "a:b", "!!:??:**"])
    def test_malformed_input(self, cipher, value):
        """Malformed values should raise EncryptionError."""
        with pytest.raises(EncryptionError, match="Invalid encrypted data format"):
            cipher.decrypt(value)

    @pytest.mark.parametrize("key", ["not-hex", "abcd", "00" * 31])
    def test_invalid_key(self, key):
        """Keys must be 64 hex characters."""
        with pytest.raises(EncryptionError):
            TokenCipher(key)
