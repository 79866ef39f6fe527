"""
Custody Configuration: Master key loading and validated settings.

Reads settings from environment variables:
    ENCRYPTION_MASTER_KEY = <hex-encoded 32-byte key (64 hex chars)>
    STELLAR_NETWORK = TESTNET | MAINNET
    VAULT_CIPHER_BACKEND = aesgcm | chacha20

Security Note:
    Never log key material. Only log lengths and network names.
"""
import os
import secrets
import logging

from pydantic import BaseModel, Field, field_validator
from stellar_sdk import Network

from .exceptions import InvalidKeyLength

logger = logging.getLogger("stellar_custody.vault")

MASTER_KEY_ENV = "ENCRYPTION_MASTER_KEY"
MASTER_KEY_LENGTH = 32

CIPHER_BACKENDS = ("aesgcm", "chacha20")

_NETWORK_ALIASES = {
    "TESTNET": "TESTNET",
    "PUBLIC": "PUBLIC",
    "MAINNET": "PUBLIC",
}

_NETWORK_PASSPHRASES = {
    "TESTNET": Network.TESTNET_NETWORK_PASSPHRASE,
    "PUBLIC": Network.PUBLIC_NETWORK_PASSPHRASE,
}


def load_master_key(value: str | None = None) -> bytes:
    """Decode the master key from a hex string or ENCRYPTION_MASTER_KEY.

    Args:
        value: Hex-encoded key. Falls back to the environment when None.

    Returns:
        Raw 32-byte master key.

    Raises:
        InvalidKeyLength: If the key is missing, not hex, or not 32 bytes.
    """
    raw = value if value is not None else os.environ.get(MASTER_KEY_ENV)
    if not raw:
        raise InvalidKeyLength(
            f"{MASTER_KEY_ENV} environment variable is required"
        )
    try:
        key_bytes = bytes.fromhex(raw.strip())
    except ValueError as err:
        raise InvalidKeyLength(
            f"{MASTER_KEY_ENV} must be hex-encoded"
        ) from err
    if len(key_bytes) != MASTER_KEY_LENGTH:
        raise InvalidKeyLength(
            f"{MASTER_KEY_ENV} must be {MASTER_KEY_LENGTH} bytes "
            f"({MASTER_KEY_LENGTH * 2} hex characters), got {len(key_bytes)}"
        )
    return key_bytes


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return it as hex.

    This is a utility for operators to generate new keys.
    """
    return secrets.token_hex(MASTER_KEY_LENGTH)


def resolve_network(name: str) -> str:
    """Normalize a network name (MAINNET is an alias of PUBLIC)."""
    network = _NETWORK_ALIASES.get(name.strip().upper())
    if network is None:
        raise ValueError(f"Unsupported Stellar network: {name}")
    return network


class CustodyConfig(BaseModel):
    """Validated custody configuration."""

    master_key: bytes = Field(repr=False)
    network: str = Field(default="TESTNET")
    cipher_backend: str = Field(default="aesgcm")

    model_config = {"frozen": True}

    @field_validator("master_key")
    @classmethod
    def validate_master_key(cls, v: bytes) -> bytes:
        """Reject master keys that are not exactly 32 bytes."""
        if len(v) != MASTER_KEY_LENGTH:
            raise InvalidKeyLength(
                f"master key must be {MASTER_KEY_LENGTH} bytes, got {len(v)}"
            )
        return v

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        return resolve_network(v)

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @property
    def network_passphrase(self) -> str:
        return _NETWORK_PASSPHRASES[self.network]

    @classmethod
    def from_env(cls) -> "CustodyConfig":
        """Create CustodyConfig by loading values from environment.

        Raises:
            InvalidKeyLength: If ENCRYPTION_MASTER_KEY is missing or malformed.
        """
        config = cls(
            master_key=load_master_key(),
            network=os.environ.get("STELLAR_NETWORK", "TESTNET"),
            cipher_backend=os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm"),
        )
        logger.debug(
            "Custody config loaded: network=%s cipher=%s",
            config.network, config.cipher_backend,
        )
        return config
