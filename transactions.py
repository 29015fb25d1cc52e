"""
Transaction construction and signing.

Intents are plain dicts in the shape eth_account expects; they are built
fresh for every send and handed straight to signing.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass

from eth_account.signers.local import LocalAccount

from config import GWEI, SpammerConfig


TRANSFER_TX_TYPE = 2
BLOB_TX_TYPE = 3


@dataclass(frozen=True)
class FeeParams:
    """Fixed gas and fee settings used for every transaction."""
    gas_limit: int = 21_000
    max_fee_per_gas: int = 10 * GWEI
    max_priority_fee_per_gas: int = GWEI
    max_fee_per_blob_gas: int = 10 * GWEI

    @classmethod
    def from_config(cls, config: SpammerConfig) -> "FeeParams":
        return cls(
            gas_limit=config.gas_limit,
            max_fee_per_gas=config.max_fee_per_gas_gwei * GWEI,
            max_priority_fee_per_gas=config.max_priority_fee_per_gas_gwei * GWEI,
            max_fee_per_blob_gas=config.max_fee_per_blob_gas_gwei * GWEI,
        )


def build_transfer(
    sender: str,
    recipient: str,
    value: int,
    nonce: int,
    chain_id: int,
    fees: FeeParams
) -> Dict[str, Any]:
    """Plain EIP-1559 value transfer."""
    return {
        'type': TRANSFER_TX_TYPE,
        'chainId': chain_id,
        'from': sender,
        'to': recipient,
        'value': value,
        'nonce': nonce,
        'gas': fees.gas_limit,
        'maxFeePerGas': fees.max_fee_per_gas,
        'maxPriorityFeePerGas': fees.max_priority_fee_per_gas,
    }


def build_blob_transaction(
    sender: str,
    nonce: int,
    chain_id: int,
    fees: FeeParams
) -> Dict[str, Any]:
    """
    Zero value self-transfer that exists to carry blobs.

    The blob versioned hashes are filled in by eth_account at signing time.
    """
    return {
        'type': BLOB_TX_TYPE,
        'chainId': chain_id,
        'from': sender,
        'to': sender,
        'value': 0,
        'nonce': nonce,
        'gas': fees.gas_limit,
        'maxFeePerGas': fees.max_fee_per_gas,
        'maxPriorityFeePerGas': fees.max_priority_fee_per_gas,
        'maxFeePerBlobGas': fees.max_fee_per_blob_gas,
    }


def sign(account: LocalAccount, tx: Dict[str, Any], blobs: Optional[List[bytes]] = None):
    """Sign an intent; blob transactions get their sidecar attached."""
    if blobs:
        return account.sign_transaction(tx, blobs=blobs)
    return account.sign_transaction(tx)
