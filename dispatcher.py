"""
Transaction Dispatcher
======================
Turns one send attempt into one submitted blob transaction.

An attempt is planned (endpoint picked) by the scheduler thread so that a
seeded random source gives reproducible choices, then executed on a worker.
Every failure is reported and contained in the attempt's SendResult; no
exception leaves send().
"""

import random
from typing import Optional
from dataclasses import dataclass

from eth_account.signers.local import LocalAccount

from accounts import AccountPool
from endpoints import Endpoint, EndpointPool
from payload import encode_payload
from transactions import FeeParams, build_blob_transaction, sign
from utils import logger, format_address, format_tx_hash


STAGE_NONCE = "nonce"
STAGE_SIGN = "sign"
STAGE_SUBMIT = "submit"


@dataclass
class SendAttempt:
    """One planned send: which account, through which endpoint."""
    index: int
    account: LocalAccount
    endpoint: Endpoint


@dataclass
class SendResult:
    """Result of a single send attempt."""
    success: bool
    index: int
    address: str
    endpoint: str
    nonce: Optional[int] = None
    tx_hash: Optional[str] = None
    stage: Optional[str] = None  # where it failed
    error: Optional[str] = None


class TransactionDispatcher:
    """Builds, signs and submits payload-carrying self-transactions."""

    def __init__(
        self,
        endpoints: EndpointPool,
        accounts: AccountPool,
        chain_id: int,
        fees: FeeParams,
        payload: bytes = b"spam",
        rng: Optional[random.Random] = None
    ):
        self.endpoints = endpoints
        self.accounts = accounts
        self.chain_id = chain_id
        self.fees = fees
        self.rng = rng or random.Random()
        # Identical for every send
        self.blobs = encode_payload(payload)

    def plan(self, index: int) -> SendAttempt:
        """Address account `index` through a randomly chosen endpoint."""
        return SendAttempt(
            index=index,
            account=self.accounts[index],
            endpoint=self.endpoints.choose(self.rng),
        )

    def _failed(self, attempt: SendAttempt, stage: str, error: Exception,
                nonce: Optional[int] = None) -> SendResult:
        return SendResult(
            success=False,
            index=attempt.index,
            address=attempt.account.address,
            endpoint=attempt.endpoint.url,
            nonce=nonce,
            stage=stage,
            error=str(error),
        )

    def send(self, attempt: SendAttempt) -> SendResult:
        """Execute one attempt. Never raises."""
        account = attempt.account
        endpoint = attempt.endpoint

        try:
            nonce = endpoint.get_nonce(account.address)
        except Exception as e:
            logger.error(f"Error getting nonce for {format_address(account.address)} from {endpoint.url}: {e}")
            return self._failed(attempt, STAGE_NONCE, e)

        try:
            tx = build_blob_transaction(account.address, nonce, self.chain_id, self.fees)
            signed = sign(account, tx, blobs=self.blobs)
        except Exception as e:
            logger.error(f"Error signing tx for {format_address(account.address)}: {e}")
            return self._failed(attempt, STAGE_SIGN, e, nonce)

        try:
            pending = endpoint.submit(signed)
        except Exception as e:
            logger.error(f"Error sending tx from {format_address(account.address)} via {endpoint.url}: {e}")
            return self._failed(attempt, STAGE_SUBMIT, e, nonce)

        logger.debug(
            f"Sent {format_tx_hash(pending.tx_hash)} from {format_address(account.address)} "
            f"nonce {nonce} via {endpoint.url}"
        )
        return SendResult(
            success=True,
            index=attempt.index,
            address=account.address,
            endpoint=endpoint.url,
            nonce=nonce,
            tx_hash=pending.tx_hash,
        )
