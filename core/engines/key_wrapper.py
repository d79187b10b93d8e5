"""RSA wrapping of per-file data keys.

The DEK produced by `SymmetricKeyGenerator` is encrypted under the service's
RSA public key and stored next to the payload. Only the matching private key
can recover it.

Two paddings are supported:
    - "oaep": OAEP with MGF1/SHA-256 (default for new records).
    - "pkcs1v15": PKCS#1 v1.5, the scheme used by the legacy loan service.
"""

import logging
from typing import Literal

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from engines.crypto_engine import KEY_SIZE
from engines.errors import UnwrapError, WrapError

logger = logging.getLogger("receipt_vault.wrap")

WrapPadding = Literal["oaep", "pkcs1v15"]

PKCS1V15_OVERHEAD = 11


class KeyWrapper:
    """Encrypts and decrypts DEKs with an RSA key pair.

    With "oaep", unwrapping under the wrong private key always raises
    `UnwrapError`. With "pkcs1v15", OpenSSL's implicit rejection may hand
    back a synthetic message instead of failing. When that message happens
    to be 32 bytes it passes `unwrap`, and the wrong key only surfaces as
    `AuthenticationFailure` from the payload cipher. The guarantee in that
    mode is that wrong plaintext is never returned.
    """

    def __init__(self, padding_scheme: WrapPadding = "oaep"):
        if padding_scheme not in ("oaep", "pkcs1v15"):
            raise ValueError(f"Unsupported wrap padding: {padding_scheme}")
        self.padding_scheme = padding_scheme

    def _padding(self) -> padding.AsymmetricPadding:
        if self.padding_scheme == "pkcs1v15":
            return padding.PKCS1v15()
        return padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        )

    def max_payload(self, modulus_bytes: int) -> int:
        """Largest message the configured padding accepts for a modulus size."""
        if self.padding_scheme == "pkcs1v15":
            return modulus_bytes - PKCS1V15_OVERHEAD
        digest_size = hashes.SHA256.digest_size
        return modulus_bytes - 2 * digest_size - 2

    def wrap(self, key: bytes, public_key: RSAPublicKey) -> bytes:
        """Encrypts `key` under `public_key`.

        Returns:
            bytes: RSA ciphertext, exactly one modulus long.

        Raises:
            WrapError: If the key exceeds the padding's payload limit or the
                RSA operation fails.
        """
        modulus_bytes = (public_key.key_size + 7) // 8
        limit = self.max_payload(modulus_bytes)
        if len(key) > limit:
            raise WrapError(
                f"Key of {len(key)} bytes exceeds {self.padding_scheme} limit of {limit} bytes"
            )

        try:
            return public_key.encrypt(key, self._padding())
        except ValueError as e:
            logger.error(f"Key wrap failed: {e}")
            raise WrapError("Receipt key could not be wrapped.") from e

    def unwrap(self, wrapped: bytes, private_key: RSAPrivateKey) -> bytes:
        """Recovers a 32-byte DEK from its RSA ciphertext.

        A wrong private key and a corrupted ciphertext raise the same error.

        Raises:
            UnwrapError: On length mismatch, padding failure, or a recovered
                key that is not exactly 32 bytes.
        """
        modulus_bytes = (private_key.key_size + 7) // 8
        if len(wrapped) != modulus_bytes:
            logger.warning(f"Wrapped key is {len(wrapped)} bytes, expected {modulus_bytes}")
            raise UnwrapError("Receipt key is unrecoverable.")

        try:
            key = private_key.decrypt(wrapped, self._padding())
        except ValueError as e:
            logger.warning("Key unwrap failed")
            raise UnwrapError("Receipt key is unrecoverable.") from e

        if len(key) != KEY_SIZE:
            logger.warning("Key unwrap produced a key of unexpected length")
            raise UnwrapError("Receipt key is unrecoverable.")

        return key
