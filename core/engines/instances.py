"""Service bootstrap for the receipt vault.

Builds the key pair and the envelope service once at startup. The result is
a `ServiceRegistry` that the application stores on `app.state` and hands to
request handlers through a dependency, instead of module-level globals. This
keeps the key pair read-only shared state and lets tests build registries
with throwaway keys.
"""

import logging
from dataclasses import dataclass

from app.config import Settings, settings
from engines.envelope import ReceiptEnvelopeService
from engines.key_store import KeyPair, KeyStore
from engines.key_wrapper import KeyWrapper

logger = logging.getLogger("receipt_vault.services")


@dataclass(frozen=True)
class ServiceRegistry:
    """Long-lived services shared by all requests."""

    key_pair: KeyPair
    envelope: ReceiptEnvelopeService


def build_registry(key_pair: KeyPair, wrap_padding: str = "oaep") -> ServiceRegistry:
    """Wires an envelope service around an existing key pair."""
    envelope = ReceiptEnvelopeService(key_pair, wrapper=KeyWrapper(wrap_padding))
    return ServiceRegistry(key_pair=key_pair, envelope=envelope)


def initialize_services(config: Settings = settings) -> ServiceRegistry:
    """Obtains the key pair per `KEY_LIFECYCLE` and builds the services.

    Raises:
        KeyMaterialError: If the key pair cannot be loaded or created. The
            application must not start serving in that case.
    """
    try:
        logger.info("⚡ Initializing Receipt Vault services...")

        key_pair = KeyStore().load_or_create(
            config.PRIVATE_KEY_PATH,
            config.PUBLIC_KEY_PATH,
            lifecycle=config.KEY_LIFECYCLE,
        )
        registry = build_registry(key_pair, config.WRAP_PADDING)

        logger.info(f"✅ Envelope Engine: Ready ({key_pair!r}, wrap={config.WRAP_PADDING})")
        return registry

    except Exception as e:
        logger.critical(f"❌ Failed to initialize services: {e}")
        raise
