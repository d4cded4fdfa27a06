"""
Symmetric encryption for gateway secrets stored at rest.

AES-256-CBC with a random IV per value, stored as ``<iv hex>:<ciphertext hex>``.
The key is process wide and comes from ``ENCRYPTION_KEY`` (64 hex chars).
"""

import logging
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from errors import ConfigurationError, SecretDecryptionError

logger = logging.getLogger(__name__)

KEY_BYTES = 32
IV_BYTES = 16


class SecretBox:
    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ConfigurationError("ENCRYPTION_KEY must be 32 bytes (64 hex characters)")
        self._key = key

    @classmethod
    def from_hex(cls, hex_key: Optional[str]) -> "SecretBox":
        if not hex_key:
            # Values encrypted with an ephemeral key cannot be read after a restart
            logger.warning("ENCRYPTION_KEY is not set; using a random key for this process")
            return cls(os.urandom(KEY_BYTES))
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as exc:
            raise ConfigurationError("ENCRYPTION_KEY must be hex encoded") from exc
        return cls(key)

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        if not plaintext:
            return None
        iv = os.urandom(IV_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """Plaintext for ``ciphertext``; None when nothing is stored.

        Raises SecretDecryptionError when a value is present but cannot be
        read back (corrupted value or a changed key).
        """
        if not ciphertext:
            return None
        try:
            iv_hex, data_hex = ciphertext.split(":")
            iv, data = bytes.fromhex(iv_hex), bytes.fromhex(data_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(data) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except ValueError as exc:
            # UnicodeDecodeError is a ValueError too
            raise SecretDecryptionError(
                "Payment configuration error: Unable to decrypt payment gateway keys. "
                "Please re-enter your keys in store settings."
            ) from exc
        if not plaintext:
            raise SecretDecryptionError("Payment configuration error: decryption returned an empty secret")
        return plaintext
