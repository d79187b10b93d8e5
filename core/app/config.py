"""Configuration management for the Receipt Vault service.

This module defines the Pydantic settings used throughout the application.
It handles environment variable loading and validation.
"""

from pathlib import Path
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings loaded from environment variables.

    Attributes:
        PROJECT_NAME (str): The name of the application.
        MONGO_URI (SecretStr): The full connection string for MongoDB.
        MONGO_DB_NAME (str): The specific database name to use.
        PRIVATE_KEY_PATH (Path): PEM file holding the RSA private key.
        PUBLIC_KEY_PATH (Path): PEM file holding the RSA public key.
        KEY_LIFECYCLE (str): How the key pair is obtained at startup.
            "load" requires existing key files; "load_or_generate" creates
            and persists a pair only when neither file exists.
        WRAP_PADDING (str): RSA padding used to wrap data keys, "oaep" or
            "pkcs1v15" (legacy records).
        POLICY_PATH (str): Location of the YAML receipt policy.
    """
    PROJECT_NAME: str = "Receipt Vault"

    # Infrastructure
    MONGO_URI: SecretStr = SecretStr("mongodb://localhost:27017")
    MONGO_DB_NAME: str = "loan_db"

    # Key pair
    PRIVATE_KEY_PATH: Path = Path("keys/private_key.pem")
    PUBLIC_KEY_PATH: Path = Path("keys/public_key.pem")
    KEY_LIFECYCLE: Literal["load", "load_or_generate"] = "load_or_generate"
    WRAP_PADDING: Literal["oaep", "pkcs1v15"] = "oaep"

    # Policy
    POLICY_PATH: str = "receipt_vault.yaml"

    # This allows loading from a .env file automatically
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )


settings = Settings()
