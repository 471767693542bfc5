"""
Decision only: decide_access(ctx, tokens, ledger) -> AccessDecision.
No HTTP, no challenge issuing. Tiers are not cumulative: a credential unlocks
the exact {asset, layer} it names and nothing else.
"""
from __future__ import annotations

import logging
from typing import Protocol

from app.paywall.models import AccessContext, AccessDecision
from app.paywall.proof import recover_signer
from app.services.tokens.service import AccessClaims

logger = logging.getLogger(__name__)


class TokenValidator(Protocol):
    def validate_token(self, token: str, expected: AccessClaims) -> bool: ...


class EntitlementLookup(Protocol):
    def entitlement_holder(self, transaction_hash: str, asset_id: str, unlock_layer_id: str | None) -> str | None: ...


def _proof_holds(ctx: AccessContext, ledger: EntitlementLookup) -> bool:
    # A bare hash is public; only the holder's signature over it counts
    if not ctx.payment_signature:
        return False
    holder = ledger.entitlement_holder(ctx.payment_proof, ctx.asset_id, ctx.unlock_layer_id)
    if holder is None:
        return False
    signer = recover_signer(ctx.payment_proof, ctx.asset_id, ctx.unlock_layer_id, ctx.payment_signature)
    return signer is not None and signer == holder.lower()


def decide_access(
    ctx: AccessContext,
    tokens: TokenValidator,
    ledger: EntitlementLookup,
) -> AccessDecision:
    """
    UNLOCKED when:
    - the bearer token validates for exactly ctx's scope, or
    - the payment proof names a committed payment whose entitlement is exactly
      ctx's scope, and the proof is signed by that entitlement's holder.

    Otherwise LOCKED; token_rejected marks a presented token that failed, so the
    gate can answer invalid_token instead of a plain payment demand.
    """
    scope = AccessClaims(ctx.asset_id, ctx.unlock_layer_id)

    token_rejected = False
    if ctx.bearer_token:
        if tokens.validate_token(ctx.bearer_token, scope):
            return AccessDecision(state="UNLOCKED", via="token")
        token_rejected = True

    if ctx.payment_proof:
        if _proof_holds(ctx, ledger):
            return AccessDecision(state="UNLOCKED", via="proof")
        logger.info(
            "payment_proof_rejected",
            extra={
                "tx_hash": ctx.payment_proof,
                "asset_id": ctx.asset_id,
                "unlock_layer_id": ctx.unlock_layer_id,
                "reason": "unsigned" if not ctx.payment_signature else "not_verified",
            },
        )

    return AccessDecision(state="LOCKED", token_rejected=token_rejected)
