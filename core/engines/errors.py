"""Exception taxonomy for the receipt envelope engines.

Every failure raised by the engines derives from `ReceiptVaultError` so the
API layer can map whole groups to HTTP responses:

    - `KeyMaterialError`: the RSA key pair could not be generated, loaded or
      written. Fatal at startup.
    - `ReceiptUnreadableError`: the stored payload is truncated or fails
      authentication. Both causes are surfaced identically.
    - `ReceiptKeyError`: the per-file key could not be wrapped or unwrapped.

Messages never carry key bytes or plaintext.
"""


class ReceiptVaultError(Exception):
    """Base exception for all receipt vault errors."""


# --- Key material ---
class KeyMaterialError(ReceiptVaultError):
    """Key pair or symmetric key could not be produced or read."""


class KeyGenerationError(KeyMaterialError):
    """Random source failure or key generation failure."""


class KeyLoadError(KeyMaterialError):
    """Key file unreadable, malformed, mislabelled, or not RSA."""


class KeyPersistError(KeyMaterialError):
    """Key files could not be written."""


# --- Payload cipher ---
class CipherInitError(ReceiptVaultError):
    """Symmetric key has the wrong length. Indicates a programming error."""


class ReceiptUnreadableError(ReceiptVaultError):
    """Stored receipt payload cannot be decrypted."""


class ShortCiphertextError(ReceiptUnreadableError):
    """Payload is shorter than the nonce."""


class AuthenticationFailure(ReceiptUnreadableError):
    """GCM tag did not verify (wrong key or corrupted data)."""


# --- Key wrapping ---
class ReceiptKeyError(ReceiptVaultError):
    """Per-file key could not be wrapped or recovered."""


class WrapError(ReceiptKeyError):
    """Symmetric key could not be encrypted under the public key."""


class UnwrapError(ReceiptKeyError):
    """Wrapped key could not be decrypted with the private key."""
