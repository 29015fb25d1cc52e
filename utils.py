"""
Utility Module

Logging, exceptions and formatting helpers shared by the spammer modules.

Logging goes through a named stdlib logger wrapped in SecureLogger, so a
funder key pasted into an error message never reaches the console or the
log file. Handlers are attached by setup_logging(), which the CLI calls once.
"""

import os
import re
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "blob_spammer"

# Global console for Rich output
console = Console()


class SpammerError(Exception):
    """Base exception for the spammer."""
    pass


class ConfigError(SpammerError):
    """Inconsistent configuration or malformed key material."""
    pass


class KeyStoreError(SpammerError):
    """Encrypted key file could not be read or decrypted."""
    pass


class FundingError(SpammerError):
    """The funding phase could not complete."""
    pass


class TransactionError(SpammerError):
    """A submitted transaction was not accepted by the ledger."""
    pass


class SecureLogger:
    """
    Logger that sanitizes sensitive data from log messages.

    Private keys are 32 bytes, so any 64-hex run (with or without 0x) is
    redacted. Transaction hashes share that shape, so log them through
    format_tx_hash() to keep them readable.
    """

    SENSITIVE_PATTERNS = [
        (r'\b(0x)?[a-fA-F0-9]{64}\b', '[KEY_REDACTED]'),
        (r'password["\']?\s*[:=]\s*\S+', 'password=[REDACTED]'),
    ]

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _sanitize(self, msg) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)

        sanitized = msg
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def debug(self, msg, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> SecureLogger:
    """
    Setup logging with Rich console output and an optional log file.

    Returns the shared SecureLogger.
    """
    base = logging.getLogger(LOGGER_NAME)
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level: {log_level}")
    base.setLevel(level)

    # Remove existing handlers
    for handler in list(base.handlers):
        base.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(level)
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    base.addHandler(rich_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        base.addHandler(file_handler)

    return logger


logger = SecureLogger(logging.getLogger(LOGGER_NAME))


# Formatting utilities

def format_wei(wei_amount: int, decimals: int = 18) -> str:
    """Format wei amount to human-readable ether string."""
    if wei_amount == 0:
        return "0"

    value = wei_amount / (10 ** decimals)

    if value < 0.0001:
        return f"{value:.8f}"
    elif value < 1:
        return f"{value:.6f}"
    elif value < 1000:
        return f"{value:.4f}"
    else:
        return f"{value:,.2f}"


def format_address(address: str, length: int = 6) -> str:
    """Format Ethereum address with ellipsis."""
    if len(address) <= length * 2 + 2:
        return address
    return f"{address[:length + 2]}...{address[-length:]}"


def format_tx_hash(tx_hash: str, length: int = 8) -> str:
    """Format transaction hash with ellipsis."""
    if len(tx_hash) <= length * 2:
        return tx_hash
    return f"{tx_hash[:length]}...{tx_hash[-length:]}"


def to_hex(value) -> str:
    """Render a hash returned by web3 (HexBytes or str) with a 0x prefix."""
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    text = bytes(value).hex()
    return "0x" + text

