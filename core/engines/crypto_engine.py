"""Symmetric cryptography for receipt payloads.

Each receipt is encrypted under its own random 256-bit Data Encryption Key
(DEK) with AES-256-GCM. The DEK is never stored in the clear; see
`engines.key_wrapper` for how it is protected.

Payload layout:
    nonce (12 bytes) || ciphertext || GCM tag (16 bytes)

There is no length prefix; GCM's own framing is relied upon.
"""

import os
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from engines.errors import (
    AuthenticationFailure,
    CipherInitError,
    KeyGenerationError,
    ShortCiphertextError,
)

logger = logging.getLogger("receipt_vault.crypto")

KEY_SIZE = 32    # AES-256
NONCE_SIZE = 12  # NIST recommended nonce size
TAG_SIZE = 16


class SymmetricKeyGenerator:
    """Produces fresh per-file AES-256 keys."""

    def __init__(self, key_size: int = KEY_SIZE):
        self.key_size = key_size

    def generate(self) -> bytes:
        """Returns `key_size` cryptographically random bytes.

        Raises:
            KeyGenerationError: If the OS random source fails or returns
                fewer bytes than requested.
        """
        try:
            key = os.urandom(self.key_size)
        except (OSError, NotImplementedError) as e:
            logger.error(f"Random source failure: {e}")
            raise KeyGenerationError("Symmetric key generation failed.") from e

        if len(key) != self.key_size:
            logger.error(f"Random source returned {len(key)} of {self.key_size} bytes")
            raise KeyGenerationError("Symmetric key generation failed.")

        return key


class PayloadCipher:
    """AES-256-GCM encryption of opaque file bytes."""

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        """Encrypts `plaintext` under `key` with a fresh random nonce.

        Args:
            plaintext (bytes): Raw file content. May be empty.
            key (bytes): A 32-byte DEK.

        Returns:
            bytes: `nonce || ciphertext || tag`.

        Raises:
            CipherInitError: If the key is not exactly 32 bytes.
        """
        aes = self._cipher(key)
        nonce = os.urandom(NONCE_SIZE)
        return nonce + aes.encrypt(nonce, plaintext, None)

    def decrypt(self, payload: bytes, key: bytes) -> bytes:
        """Splits off the nonce and performs authenticated decryption.

        Args:
            payload (bytes): A buffer produced by `encrypt`.
            key (bytes): The 32-byte DEK used to encrypt it.

        Returns:
            bytes: The original plaintext.

        Raises:
            CipherInitError: If the key is not exactly 32 bytes.
            ShortCiphertextError: If the payload cannot even hold a nonce.
            AuthenticationFailure: If the tag does not verify. The same error
                is raised for a wrong key and for tampered data.
        """
        aes = self._cipher(key)

        if len(payload) < NONCE_SIZE:
            logger.warning(f"Payload too short ({len(payload)} bytes)")
            raise ShortCiphertextError("Receipt payload is truncated.")

        nonce, ciphertext = payload[:NONCE_SIZE], payload[NONCE_SIZE:]
        try:
            return aes.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            logger.warning("Decryption failed: Invalid Tag (Wrong Key or Corrupted Data)")
            raise AuthenticationFailure("Receipt payload failed integrity check.") from e

    @staticmethod
    def _cipher(key: bytes) -> AESGCM:
        if len(key) != KEY_SIZE:
            # Never include the key itself in the message.
            raise CipherInitError(f"Key length must be {KEY_SIZE} bytes (got {len(key)})")
        return AESGCM(key)


def encrypted_length(plaintext_length: int) -> int:
    """Size of the payload `PayloadCipher.encrypt` produces for a given input."""
    return NONCE_SIZE + plaintext_length + TAG_SIZE
