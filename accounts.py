"""
Account Pool
============
The funder identity and the ephemeral accounts it pays for.

Ephemeral accounts live only in memory: they are generated at startup,
funded once and never refilled or persisted. Their nonces are not cached;
the dispatcher asks the network for a fresh one before every send.
"""

from typing import Iterator, List

from eth_account import Account
from eth_account.signers.local import LocalAccount

from utils import logger, ConfigError, format_address


class FunderAccount:
    """
    The externally supplied account that funds the pool.

    Holds the authoritative local nonce for the funding phase, where
    transfers are submitted back to back before any of them is mined.
    """

    def __init__(self, account: LocalAccount, nonce: int = 0):
        self.account = account
        self.nonce = nonce

    @classmethod
    def from_key(cls, private_key: bytes) -> "FunderAccount":
        try:
            return cls(Account.from_key(private_key))
        except ValueError as e:
            raise ConfigError(f"while parsing private key: {e}") from e

    @property
    def address(self) -> str:
        return self.account.address

    def take_nonce(self) -> int:
        """Return the current nonce and advance the counter by one."""
        nonce = self.nonce
        self.nonce += 1
        return nonce


class AccountPool:
    """Fixed list of ephemeral signing identities, indexed 0..N-1."""

    def __init__(self, accounts: List[LocalAccount]):
        self._accounts = list(accounts)

    @classmethod
    def generate(cls, count: int) -> "AccountPool":
        """Create count independent random accounts."""
        accounts = [Account.create() for _ in range(count)]
        for index, account in enumerate(accounts):
            logger.debug(f"Created account {index}: {format_address(account.address)}")
        return cls(accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[LocalAccount]:
        return iter(self._accounts)

    def __getitem__(self, index: int) -> LocalAccount:
        return self._accounts[index]

    @property
    def addresses(self) -> List[str]:
        return [account.address for account in self._accounts]
