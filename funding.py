"""
Funding Coordinator
===================
One-shot distribution of the funder balance across the ephemeral accounts.

The funder's balance is split into len(accounts) + 1 equal shares; one share
goes to each account and one (plus the floor-division remainder) stays with
the funder. Transfers are pipelined on successive local nonces and only then
awaited together. Any transfer that is not accepted aborts startup.
"""

from typing import List
from dataclasses import dataclass, field

from accounts import AccountPool, FunderAccount
from endpoints import Endpoint, PendingTransaction
from transactions import FeeParams, build_transfer, sign
from utils import logger, FundingError, format_address, format_tx_hash, format_wei


@dataclass
class FundingReport:
    """Outcome of a completed funding phase."""
    chain_id: int
    funder_address: str
    balance: int
    share: int
    start_nonce: int
    end_nonce: int
    tx_hashes: List[str] = field(default_factory=list)


def compute_share(balance: int, account_count: int) -> int:
    """Per-account amount; one extra share is held back for the funder."""
    return balance // (account_count + 1)


class FundingCoordinator:
    """Funds every ephemeral account from the funder through one endpoint."""

    def __init__(self, endpoint: Endpoint, fees: FeeParams, receipt_timeout: float = 120.0):
        self.endpoint = endpoint
        self.fees = fees
        self.receipt_timeout = receipt_timeout

    def _query_funder(self, funder: FunderAccount):
        try:
            balance = self.endpoint.get_balance(funder.address, retrying=True)
            nonce = self.endpoint.get_nonce(funder.address, retrying=True)
            chain_id = self.endpoint.get_chain_id(retrying=True)
        except Exception as e:
            raise FundingError(f"Could not read funder state from {self.endpoint.url}: {e}") from e
        return balance, nonce, chain_id

    def fund(self, funder: FunderAccount, accounts: AccountPool) -> FundingReport:
        """
        Fund all accounts and wait until every transfer is accepted.

        Raises:
            FundingError: A startup query, a submission or an acceptance failed
        """
        balance, nonce, chain_id = self._query_funder(funder)
        funder.nonce = nonce

        logger.info(
            f"running on chain {chain_id} with addr {funder.address} "
            f"on nonce {nonce} and {balance}wei"
        )

        share = compute_share(balance, len(accounts))
        pending: List[PendingTransaction] = []

        for index, account in enumerate(accounts):
            logger.info(
                f"funding {share}wei ({format_wei(share)} ETH) to "
                f"{format_address(account.address)} [{index + 1}/{len(accounts)}]"
            )
            tx = build_transfer(
                sender=funder.address,
                recipient=account.address,
                value=share,
                nonce=funder.take_nonce(),
                chain_id=chain_id,
                fees=self.fees,
            )
            try:
                pending.append(self.endpoint.submit(sign(funder.account, tx)))
            except Exception as e:
                raise FundingError(
                    f"Failed to submit funding transfer to {format_address(account.address)}: {e}"
                ) from e

        failures = []
        for index, tx in enumerate(pending):
            try:
                tx.wait(self.receipt_timeout)
            except Exception as e:
                logger.error(f"Funding transfer {index} ({format_tx_hash(tx.tx_hash)}) failed: {e}")
                failures.append(index)

        if failures:
            raise FundingError(
                f"{len(failures)}/{len(pending)} funding transfers were not accepted "
                f"(accounts {failures})"
            )

        logger.info("done funding")
        return FundingReport(
            chain_id=chain_id,
            funder_address=funder.address,
            balance=balance,
            share=share,
            start_nonce=nonce,
            end_nonce=funder.nonce,
            tx_hashes=[tx.tx_hash for tx in pending],
        )
