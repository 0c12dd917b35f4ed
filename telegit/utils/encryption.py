"""AES-256-GCM encryption for per-group GitHub tokens.

Security Model:
- A single 256-bit key, supplied as 64 hex characters (``ENCRYPTION_KEY``)
- Each value gets a fresh random 96-bit IV
- The 128-bit GCM tag authenticates the ciphertext, so any modification
  of IV, tag or ciphertext makes decryption fail
- Stored format: ``base64(iv):base64(tag):base64(ciphertext)``
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from telegit.exceptions import EncryptionError

KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16


class TokenCipher:
    """Encrypt and decrypt short secrets with AES-256-GCM.

    Example:
        >>> cipher = TokenCipher(TokenCipher.generate_key())
        >>> stored = cipher.encrypt("ghp_abc123")
        >>> cipher.decrypt(stored)
        'ghp_abc123'
    """

    def __init__(self, hex_key: str) -> None:
        """Initialize the cipher.

        Args:
            hex_key: 64 hexadecimal characters. Surrounding whitespace is ignored.

        Raises:
            EncryptionError: If the key is not valid hex of the right length
        """
        try:
            key = bytes.fromhex(hex_key.strip())
        except ValueError as e:
            raise EncryptionError("Encryption key must be a hexadecimal string") from e
        if len(key) != KEY_LENGTH:
            raise EncryptionError(
                f"Encryption key must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters), got {len(key)} bytes"
            )
        self._aesgcm = AESGCM(key)

    @staticmethod
    def generate_key() -> str:
        """Return a new random key as 64 hex characters."""
        return os.urandom(KEY_LENGTH).hex()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` into the ``iv:tag:ciphertext`` format."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(base64.b64encode(part).decode("ascii") for part in (iv, tag, ciphertext))

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the value is malformed or fails authentication
        """
        parts = encrypted.split(":")
        if len(parts) != 3:
            raise EncryptionError("Invalid encrypted data format: expected iv:tag:ciphertext")

        try:
            iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError("Invalid encrypted data format: parts must be base64") from e

        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise EncryptionError("Invalid encrypted data format: bad IV or tag length")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise EncryptionError("Decryption failed: data may have been tampered with") from e
        return plaintext.decode("utf-8")
