"""
ResourceGate: the HTTP-facing decision point for one asset or unlock layer.
decide_access decides; delivery builds the body; the gate wires in I/O
(catalog reads, challenge issuing).
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.paywall.access import TokenValidator, decide_access
from app.paywall.audit import record_lock, record_unlock
from app.paywall.delivery import invalid_token_body, payment_required_body, unlocked_payload
from app.paywall.models import AccessContext, GateResponse
from app.services.catalog.service import CatalogService
from app.services.challenges.service import ChallengeService, ChallengeTerms
from app.services.ledger.service import EntitlementLedger

logger = logging.getLogger(__name__)


def bearer_token(authorization: str | None) -> str | None:
    """Token from an `Authorization: Bearer <token>` header; other schemes are ignored."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class ResourceGate:
    def __init__(self, db: Session, tokens: TokenValidator, terms: ChallengeTerms) -> None:
        self.catalog = CatalogService(db)
        self.challenges = ChallengeService(db, terms)
        self.ledger = EntitlementLedger(db)
        self.tokens = tokens

    def handle(
        self,
        asset_id: str,
        unlock_layer_id: str | None = None,
        authorization: str | None = None,
        payment_proof: str | None = None,
        payment_signature: str | None = None,
    ) -> GateResponse:
        asset = self.catalog.require_asset(asset_id)
        layer = None
        if unlock_layer_id is not None:
            layer = self.catalog.get_layer(asset_id, unlock_layer_id)
            if layer is None:
                raise NotFoundError(
                    f"Unlock layer {unlock_layer_id} not found for asset {asset_id}",
                    code="unlock_layer_not_found",
                )

        ctx = AccessContext(
            asset_id=asset_id,
            unlock_layer_id=unlock_layer_id,
            bearer_token=bearer_token(authorization),
            payment_proof=(payment_proof or "").strip().lower() or None,
            payment_signature=(payment_signature or "").strip() or None,
        )
        decision = decide_access(ctx, self.tokens, self.ledger)

        if decision.unlocked:
            record_unlock(
                asset_id,
                unlock_layer_id,
                decision.via,
                tx_hash=ctx.payment_proof if decision.via == "proof" else None,
            )
            return GateResponse(status_code=200, body=unlocked_payload(asset, layer))

        # Fresh challenge for exactly the requested scope
        challenge = self.challenges.issue_challenge(asset_id, unlock_layer_id)
        layers = self.catalog.list_layers(asset_id)
        record_lock(asset_id, unlock_layer_id, token_rejected=decision.token_rejected)
        if decision.token_rejected:
            return GateResponse(status_code=401, body=invalid_token_body(challenge, asset, layers))
        return GateResponse(status_code=402, body=payment_required_body(challenge, asset, layers))
