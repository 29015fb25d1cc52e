"""
Configuration Management Module

Spammer settings as a dataclass, loaded from YAML. The funder key is never
written by ConfigManager; use keystore.FunderKeyStore to keep it encrypted
at rest.
"""

import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict, field

import yaml

from payload import encode_payload
from utils import logger, ConfigError


GWEI = 1_000_000_000

# Fields that never leave the process
SECRET_FIELDS = ("private_key",)

INT_FIELDS = (
    "min_txs", "max_txs", "gas_limit", "max_fee_per_gas_gwei",
    "max_priority_fee_per_gas_gwei", "max_fee_per_blob_gas_gwei", "rpc_retries", "workers",
)
FLOAT_FIELDS = ("period_seconds", "receipt_timeout")


@dataclass
class SpammerConfig:
    """Spammer configuration settings."""

    # Network
    rpcs: List[str] = field(default_factory=list)

    # Funder key (hex) or path to an encrypted key file
    private_key: Optional[str] = None
    key_file: Optional[str] = None

    # Per-tick send count, inclusive range
    min_txs: int = 3
    max_txs: int = 3
    period_seconds: float = 12.0  # one slot

    # Transaction settings
    payload: str = "spam"
    gas_limit: int = 21_000
    max_fee_per_gas_gwei: int = 10
    max_priority_fee_per_gas_gwei: int = 1
    max_fee_per_blob_gas_gwei: int = 10

    # Operation
    receipt_timeout: float = 120.0
    rpc_retries: int = 3
    workers: Optional[int] = None  # defaults to max_txs
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (excluding sensitive data)."""
        data = asdict(self)
        for name in SECRET_FIELDS:
            data.pop(name, None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpammerConfig":
        """Create SpammerConfig from dictionary."""
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if isinstance(valid_fields.get("rpcs"), str):
            valid_fields["rpcs"] = split_rpcs(valid_fields["rpcs"])

        # YAML hands back whatever the user typed
        for name in INT_FIELDS + FLOAT_FIELDS:
            value = valid_fields.get(name)
            if value is None:
                continue
            kind = int if name in INT_FIELDS else float
            if isinstance(value, bool) or (kind is int and isinstance(value, float)):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
            try:
                valid_fields[name] = kind(value)
            except (TypeError, ValueError):
                raise ConfigError(f"{name} must be a number, got {value!r}")

        if valid_fields.get("payload") is not None:
            valid_fields["payload"] = str(valid_fields["payload"])
        return cls(**valid_fields)

    def merge_overrides(self, overrides: Dict[str, Any]) -> "SpammerConfig":
        """Return a copy with every non-None override applied."""
        data = asdict(self)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return SpammerConfig.from_dict(data)

    @property
    def worker_count(self) -> int:
        return self.workers or self.max_txs

    def validate(self):
        """
        Check the configuration for consistency.

        Runs before any network activity; every problem is a ConfigError.
        """
        if not self.rpcs:
            raise ConfigError("At least one RPC endpoint is required")
        if self.min_txs < 0 or self.max_txs < 0:
            raise ConfigError("min and max must be non-negative")
        if self.max_txs < self.min_txs or self.max_txs == 0:
            raise ConfigError(
                f"inconsistent min & max (min={self.min_txs}, max={self.max_txs})"
            )
        if self.period_seconds <= 0:
            raise ConfigError("period_seconds must be positive")
        if self.workers is not None and self.workers < 1:
            raise ConfigError("workers must be at least 1")
        if self.rpc_retries < 1:
            raise ConfigError("rpc_retries must be at least 1")
        if not self.private_key and not self.key_file:
            raise ConfigError("A funder key or key file is required")
        try:
            encode_payload(self.payload.encode())
        except ValueError as e:
            raise ConfigError(f"payload too large: {e}")


def split_rpcs(value: str) -> List[str]:
    """Split a comma separated endpoint list."""
    return [url.strip() for url in value.split(",") if url.strip()]


def decode_private_key(text: str) -> bytes:
    """
    Decode a hex encoded 32 byte private key.

    Accepts an optional 0x prefix and surrounding whitespace.

    Raises:
        ConfigError: If the key is not 64 hex characters
    """
    if not text:
        raise ConfigError("Private key is empty")

    key_clean = text.strip()
    if key_clean.lower().startswith("0x"):
        key_clean = key_clean[2:]

    if len(key_clean) != 64:
        raise ConfigError("while hex decoding private key: expected 64 hex characters")
    try:
        return bytes.fromhex(key_clean)
    except ValueError:
        raise ConfigError("while hex decoding private key: invalid hex")


class ConfigManager:
    """Manages the YAML configuration file."""

    def __init__(self, config_path: Path = Path("./spammer.yaml")):
        self.config_path = Path(config_path)

    def load_config(self) -> SpammerConfig:
        """Load configuration from file."""
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {self.config_path}")

        config = SpammerConfig.from_dict(data)
        logger.info(f"Configuration loaded from {self.config_path}")
        return config

    def write_template(self, overwrite: bool = False):
        """Write the default configuration template."""
        if self.config_path.exists() and not overwrite:
            raise ConfigError(f"Refusing to overwrite {self.config_path}")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            f.write(DEFAULT_CONFIG + "\n")
        os.chmod(self.config_path, 0o600)

        logger.info(f"Configuration template written to {self.config_path}")


# Default configuration template
DEFAULT_CONFIG = """
# Blob Spammer Configuration

rpcs:
  - http://127.0.0.1:8545

# Encrypted funder key (see `spammer_cli.py import-key`)
key_file: ./funder_key.enc

# Transactions per tick, inclusive range
min_txs: 3
max_txs: 3
period_seconds: 12

# Transaction Parameters
payload: spam
gas_limit: 21000
max_fee_per_gas_gwei: 10
max_priority_fee_per_gas_gwei: 1
max_fee_per_blob_gas_gwei: 10

# Operation Settings
receipt_timeout: 120
rpc_retries: 3
log_level: INFO
log_file: ./spammer.log
""".strip()
