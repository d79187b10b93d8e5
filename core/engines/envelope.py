"""Receipt envelope encryption.

Ties the engines together into the two operations the API uses:

    seal(plaintext) -> ReceiptEnvelope   (upload path)
    open(envelope)  -> plaintext         (retrieval path)

A `ReceiptEnvelope` is the pair (payload, wrapped_key). The payload is
`nonce || ciphertext || tag`; the wrapped key is the RSA ciphertext of the
per-file DEK. Both are stored as-is next to the loan id.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from engines.crypto_engine import PayloadCipher, SymmetricKeyGenerator
from engines.errors import ReceiptUnreadableError
from engines.key_store import KeyPair
from engines.key_wrapper import KeyWrapper

logger = logging.getLogger("receipt_vault.envelope")


@dataclass(frozen=True)
class ReceiptEnvelope:
    """The sealed form of one receipt."""

    payload: bytes
    wrapped_key: bytes

    def to_record(self) -> Dict[str, bytes]:
        """Fields to store in the payments collection."""
        return {"receipt": self.payload, "wrapped_key": self.wrapped_key}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ReceiptEnvelope":
        """Rebuilds an envelope from a stored payment document.

        Raises:
            ReceiptUnreadableError: If either field is missing.
        """
        try:
            return cls(payload=bytes(record["receipt"]), wrapped_key=bytes(record["wrapped_key"]))
        except (KeyError, TypeError) as e:
            raise ReceiptUnreadableError("Stored receipt record is incomplete.") from e


class ReceiptEnvelopeService:
    """Seals and opens receipts with the process key pair.

    The key pair is injected rather than looked up globally, so tests can
    use throwaway pairs. `seal` only touches the public key and `open` only
    the private key.
    """

    def __init__(
        self,
        key_pair: KeyPair,
        wrapper: Optional[KeyWrapper] = None,
        cipher: Optional[PayloadCipher] = None,
        key_generator: Optional[SymmetricKeyGenerator] = None,
    ):
        self._key_pair = key_pair
        self.wrapper = wrapper or KeyWrapper()
        self.cipher = cipher or PayloadCipher()
        self.key_generator = key_generator or SymmetricKeyGenerator()

    def seal(self, plaintext: bytes) -> ReceiptEnvelope:
        """Encrypts a receipt under a fresh DEK and wraps the DEK.

        Any engine error propagates unchanged; no partial envelope is
        returned.
        """
        dek = self.key_generator.generate()
        try:
            payload = self.cipher.encrypt(plaintext, dek)
            wrapped_key = self.wrapper.wrap(dek, self._key_pair.public_key)
        finally:
            # Best effort in Python
            del dek

        logger.debug(f"Sealed receipt ({len(plaintext)} -> {len(payload)} bytes)")
        return ReceiptEnvelope(payload=payload, wrapped_key=wrapped_key)

    def open(self, envelope: ReceiptEnvelope) -> bytes:
        """Unwraps the DEK and decrypts the receipt.

        Raises:
            UnwrapError: If the wrapped key cannot be recovered.
            ShortCiphertextError, AuthenticationFailure: If the payload is
                truncated or fails authentication.
        """
        dek = self.wrapper.unwrap(envelope.wrapped_key, self._key_pair.private_key)
        try:
            plaintext = self.cipher.decrypt(envelope.payload, dek)
        finally:
            del dek

        logger.debug(f"Opened receipt ({len(plaintext)} bytes)")
        return plaintext
