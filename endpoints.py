"""
Endpoint Pool
=============
One web3 handle per configured RPC endpoint.

The pool is built once at startup and only read afterwards, so any number
of in-flight sends may share it without locking.
"""

import random
from typing import Iterator, List, Sequence

import requests
from web3 import Web3
from web3.exceptions import TimeExhausted
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from utils import logger, ConfigError, TransactionError, format_tx_hash, to_hex


# Connection level failures worth retrying during startup queries
TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)


class PendingTransaction:
    """A submitted transaction whose acceptance has not been observed yet."""

    def __init__(self, endpoint: "Endpoint", tx_hash):
        self.endpoint = endpoint
        self.tx_hash = to_hex(tx_hash)

    def __repr__(self) -> str:
        return f"PendingTransaction({format_tx_hash(self.tx_hash)} via {self.endpoint.url})"

    def wait(self, timeout: float = 120.0):
        """
        Block until the transaction is mined.

        Returns:
            The transaction receipt

        Raises:
            TransactionError: Timed out, or the receipt reports failure
        """
        try:
            receipt = self.endpoint.web3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=timeout
            )
        except TimeExhausted:
            raise TransactionError(
                f"{format_tx_hash(self.tx_hash)} not mined within {timeout:.0f}s"
            )

        if receipt['status'] != 1:
            raise TransactionError(f"{format_tx_hash(self.tx_hash)} failed on chain")
        return receipt


class Endpoint:
    """
    Handle to one JSON-RPC destination.

    Calls made with retrying=True go through tenacity and are retried on
    connection errors; everything else fails on the first error.
    """

    def __init__(self, url: str, web3=None, retries: int = 3, request_timeout: float = 30.0):
        self.url = url
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(url, request_kwargs={"timeout": request_timeout})
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )

    def __repr__(self) -> str:
        return f"Endpoint({self.url})"

    def _log_retry(self, retry_state):
        logger.warning(
            f"RPC call to {self.url} failed (attempt {retry_state.attempt_number}): "
            f"{retry_state.outcome.exception()}; retrying"
        )

    def _call(self, retrying: bool, fn, *args):
        if retrying:
            return self._retrying(fn, *args)
        return fn(*args)

    def get_balance(self, address: str, retrying: bool = False) -> int:
        return int(self._call(retrying, self.web3.eth.get_balance, address))

    def get_nonce(self, address: str, retrying: bool = False) -> int:
        """Current transaction count of address (its next nonce)."""
        return int(self._call(retrying, self.web3.eth.get_transaction_count, address))

    def get_chain_id(self, retrying: bool = False) -> int:
        return int(self._call(retrying, lambda: self.web3.eth.chain_id))

    def submit(self, signed) -> PendingTransaction:
        """Send a signed transaction envelope without waiting for it."""
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return PendingTransaction(self, tx_hash)


class EndpointPool:
    """Ordered, fixed-size collection of endpoints."""

    def __init__(self, endpoints: Sequence[Endpoint]):
        if not endpoints:
            raise ConfigError("Endpoint pool needs at least one endpoint")
        self._endpoints = tuple(endpoints)

    @classmethod
    def from_urls(cls, urls: List[str], retries: int = 3) -> "EndpointPool":
        return cls([Endpoint(url, retries=retries) for url in urls])

    def __len__(self) -> int:
        return len(self._endpoints)

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(self._endpoints)

    def primary(self) -> Endpoint:
        """Endpoint used for the funding phase."""
        return self._endpoints[0]

    def choose(self, rng: random.Random) -> Endpoint:
        """Pick one endpoint uniformly at random."""
        return rng.choice(self._endpoints)
