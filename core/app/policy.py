"""Receipt handling policy.

Operational limits for receipt uploads are loaded from an external YAML file
(`receipt_vault.yaml` by default, see `Settings.POLICY_PATH`). Missing or
invalid files fall back to safe defaults.

Typical Usage:
    from app.policy import policy
    if size > policy.max_receipt_size_bytes:
        ...
"""

import yaml
import os
import logging

from app.config import settings

logger = logging.getLogger("receipt_vault.policy")


class ReceiptPolicy:
    """A wrapper around the YAML policy file enforcing default behaviors."""

    def __init__(self, config_path: str = settings.POLICY_PATH):
        """Initializes the policy.

        Args:
            config_path (str): Path to the policy file.
        """
        self.config_path = config_path
        self._config = {}
        self.reload()

    def reload(self):
        """Loads or reloads the policy from disk.

        If the file is missing or invalid, the defaults from
        `_default_config()` are used and a warning is logged.
        """
        if not os.path.exists(self.config_path):
            logger.warning(f"⚠️ Policy file not found at {self.config_path}. Using Defaults.")
            self._config = self._default_config()
            return

        try:
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.critical(f"❌ Failed to load receipt policy: {e}")
            self._config = self._default_config()
            return

        if not isinstance(loaded, dict):
            logger.critical(f"❌ Policy file {self.config_path} is not a mapping. Using Defaults.")
            self._config = self._default_config()
            return

        self._config = loaded
        logger.info(f"✅ Receipt Policy loaded from {self.config_path}")

    def _default_config(self):
        """Returns the hardcoded defaults (50 MB cap, 'payments' collection)."""
        return {
            "receipts": {
                "max_size_mb": 50,
                "collection": "payments",
            }
        }

    def _receipts(self) -> dict:
        section = self._config.get("receipts")
        return section if isinstance(section, dict) else {}

    @property
    def max_receipt_size_bytes(self) -> int:
        """Converts the YAML 'max_size_mb' into bytes.

        Values that are not a non-negative integer fall back to 50 MB.
        """
        raw = self._receipts().get("max_size_mb", 50)
        try:
            mb = int(raw)
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Invalid receipts.max_size_mb {raw!r}. Using 50MB.")
            mb = 50
        if mb < 0:
            logger.warning(f"⚠️ Negative receipts.max_size_mb {mb}. Using 50MB.")
            mb = 50
        return mb * 1024 * 1024

    @property
    def receipts_collection(self) -> str:
        """MongoDB collection holding payment records and their receipts."""
        name = self._receipts().get("collection")
        return name if isinstance(name, str) and name else "payments"


policy = ReceiptPolicy()
