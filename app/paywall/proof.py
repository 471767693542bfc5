"""
Signed payment proofs.

A transaction hash is public on-chain, so it cannot unlock anything alone.
The X-Payment-Proof header carries the hash and X-Payment-Signature carries an
EIP-191 personal_sign signature over proof_message(...), made by the wallet
that holds the entitlement.
"""
from __future__ import annotations

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

logger = logging.getLogger(__name__)


def proof_message(transaction_hash: str, asset_id: str, unlock_layer_id: str | None) -> str:
    """The exact text the buyer signs. The hash is lowercased; a base asset is layer '-'."""
    return (
        "Unlock paid content\n"
        f"transactionHash: {transaction_hash.strip().lower()}\n"
        f"assetId: {asset_id}\n"
        f"unlockLayerId: {unlock_layer_id or '-'}"
    )


def recover_signer(
    transaction_hash: str,
    asset_id: str,
    unlock_layer_id: str | None,
    signature: str,
) -> str | None:
    """Lowercased address that signed the proof message, or None for a malformed signature."""
    signable = encode_defunct(text=proof_message(transaction_hash, asset_id, unlock_layer_id))
    try:
        signer = Account.recover_message(signable, signature=signature.strip())
    except Exception as e:
        # Bad hex, wrong length, invalid v/r/s: the proof is simply not valid
        logger.info(
            "payment_proof_bad_signature",
            extra={"tx_hash": transaction_hash, "asset_id": asset_id, "error": type(e).__name__},
        )
        return None
    return signer.lower()
