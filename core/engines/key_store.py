"""RSA key pair management for the receipt vault.

The service holds a single 2048-bit RSA key pair for its whole lifetime. The
public half wraps per-file data keys on upload; the private half unwraps them
on retrieval. Keys are stored as PEM:

    - private key: "RSA PRIVATE KEY" block, PKCS#1 body, unencrypted.
    - public key:  "PUBLIC KEY" block, SubjectPublicKeyInfo body.

How the pair is obtained at startup is a single configuration decision
(`KEY_LIFECYCLE`), see `KeyStore.load_or_create`.
"""

import os
import re
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from engines.errors import KeyGenerationError, KeyLoadError, KeyPersistError

logger = logging.getLogger("receipt_vault.keys")

KEY_BITS = 2048
PUBLIC_EXPONENT = 65537

PRIVATE_PEM_LABEL = "RSA PRIVATE KEY"
PUBLIC_PEM_LABEL = "PUBLIC KEY"

KeyLifecycle = Literal["load", "load_or_generate"]
PathLike = Union[str, os.PathLike]

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n(.*?)-----END \1-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class KeyPair:
    """The process-held RSA key pair. Read-only after construction."""

    private_key: RSAPrivateKey
    public_key: RSAPublicKey

    @property
    def modulus_bytes(self) -> int:
        return (self.public_key.key_size + 7) // 8

    def __repr__(self) -> str:
        return f"KeyPair(rsa-{self.public_key.key_size})"


def _single_pem_block(data: bytes, label: str, path: PathLike) -> bytes:
    """Returns the only PEM block in `data`, which must carry `label`."""
    blocks = list(_PEM_BLOCK.finditer(data))
    begin_markers = data.count(b"-----BEGIN ")

    if not blocks:
        raise KeyLoadError(f"No PEM block found in {path}")
    if len(blocks) != 1 or begin_markers != 1:
        raise KeyLoadError(f"Expected exactly one PEM block in {path}")

    block = blocks[0]
    found = block.group(1).decode("ascii")
    if found != label:
        raise KeyLoadError(f"PEM block in {path} is '{found}', expected '{label}'")

    return block.group(0)


def _read_key_file(path: PathLike) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise KeyLoadError(f"Cannot read key file {path}: {e.strerror}") from e


class KeyStore:
    """Generates, persists and loads the service's RSA key pair."""

    def __init__(self, key_bits: int = KEY_BITS):
        self.key_bits = key_bits

    def generate(self) -> KeyPair:
        """Generates a fresh RSA key pair.

        Raises:
            KeyGenerationError: If the backend cannot produce a key.
        """
        try:
            private_key = rsa.generate_private_key(
                public_exponent=PUBLIC_EXPONENT,
                key_size=self.key_bits,
            )
        except Exception as e:
            logger.critical(f"⛔ RSA key generation failed: {e}")
            raise KeyGenerationError("RSA key pair generation failed.") from e

        logger.info(f"🔑 Generated RSA-{self.key_bits} key pair")
        return KeyPair(private_key=private_key, public_key=private_key.public_key())

    def persist(self, key_pair: KeyPair, private_path: PathLike, public_path: PathLike) -> None:
        """Writes the key pair to two PEM files.

        Both files are first written to temporaries in their target
        directories and only moved into place once both are complete. If the
        second move fails, the first target is restored to its previous
        content (or removed if it did not exist), so an I/O failure never
        leaves a new half next to an old half.

        Raises:
            KeyPersistError: On any I/O failure.
        """
        private_pem = key_pair.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = key_pair.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

        staged = []
        replaced = []
        try:
            for target, content, mode in (
                (Path(private_path), private_pem, 0o600),
                (Path(public_path), public_pem, 0o644),
            ):
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
                staged.append((tmp_name, target))
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_name, mode)

            for tmp_name, target in staged:
                previous = target.read_bytes() if target.exists() else None
                os.replace(tmp_name, target)
                replaced.append((target, previous))
        except OSError as e:
            for tmp_name, _ in staged:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
            self._restore(replaced)
            logger.critical(f"⛔ Failed to persist key pair: {e}")
            raise KeyPersistError(f"Cannot write key files: {e.strerror}") from e

        logger.info(f"💾 Key pair written ({private_path}, {public_path})")

    @staticmethod
    def _restore(replaced) -> None:
        """Puts back files overwritten by a persist that failed halfway."""
        for target, previous in replaced:
            try:
                if previous is None:
                    target.unlink()
                else:
                    target.write_bytes(previous)
            except OSError as e:
                logger.critical(f"⛔ Could not restore {target} after failed persist: {e}")

    def load_public_key(self, path: PathLike) -> RSAPublicKey:
        """Loads an RSA public key from a "PUBLIC KEY" PEM file.

        Raises:
            KeyLoadError: If the file is unreadable, does not hold exactly one
                "PUBLIC KEY" block, cannot be parsed, or is not RSA.
        """
        block = _single_pem_block(_read_key_file(path), PUBLIC_PEM_LABEL, path)
        try:
            key = serialization.load_pem_public_key(block)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyLoadError(f"Cannot parse public key in {path}") from e

        if not isinstance(key, RSAPublicKey):
            raise KeyLoadError(f"Key in {path} is not an RSA public key")
        return key

    def load_private_key(self, path: PathLike) -> RSAPrivateKey:
        """Loads an RSA private key from an "RSA PRIVATE KEY" PEM file.

        Raises:
            KeyLoadError: Under the same conditions as `load_public_key`.
        """
        block = _single_pem_block(_read_key_file(path), PRIVATE_PEM_LABEL, path)
        try:
            key = serialization.load_pem_private_key(block, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyLoadError(f"Cannot parse private key in {path}") from e

        if not isinstance(key, RSAPrivateKey):
            raise KeyLoadError(f"Key in {path} is not an RSA private key")
        return key

    def load_key_pair(self, private_path: PathLike, public_path: PathLike) -> KeyPair:
        """Loads both halves and checks that they belong together."""
        private_key = self.load_private_key(private_path)
        public_key = self.load_public_key(public_path)

        if private_key.public_key().public_numbers() != public_key.public_numbers():
            raise KeyLoadError(f"{public_path} does not match {private_path}")

        logger.info(f"🔑 Loaded RSA-{public_key.key_size} key pair from disk")
        return KeyPair(private_key=private_key, public_key=public_key)

    def load_or_create(
        self,
        private_path: PathLike,
        public_path: PathLike,
        lifecycle: KeyLifecycle = "load_or_generate",
    ) -> KeyPair:
        """Obtains the service key pair according to `lifecycle`.

        - "load": the key files must exist; never generates.
        - "load_or_generate": loads existing files, or generates and persists
          a new pair when neither file exists. A lone half is refused rather
          than overwritten, since it may still protect stored receipts.

        Raises:
            KeyLoadError: Missing or mismatched files.
            KeyGenerationError, KeyPersistError: While creating a new pair.
        """
        private_exists = Path(private_path).exists()
        public_exists = Path(public_path).exists()

        if private_exists and public_exists:
            return self.load_key_pair(private_path, public_path)

        if lifecycle == "load":
            raise KeyLoadError(
                f"Key files missing ({private_path}, {public_path}) and KEY_LIFECYCLE is 'load'"
            )

        if private_exists or public_exists:
            raise KeyLoadError(
                f"Only one half of the key pair exists ({private_path}, {public_path}); refusing to overwrite"
            )

        logger.warning("⚠️ No key pair on disk. Generating a new one.")
        key_pair = self.generate()
        self.persist(key_pair, private_path, public_path)
        return key_pair
