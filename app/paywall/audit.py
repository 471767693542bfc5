"""
Unlock audit: record_unlock is called by the gate every time it serves a paid scope.
"""
from __future__ import annotations

import logging

from app.paywall.models import UnlockVia
from app.utils.metrics import gate_decisions_total

logger = logging.getLogger(__name__)


def record_unlock(
    asset_id: str,
    unlock_layer_id: str | None,
    via: UnlockVia,
    *,
    tx_hash: str | None = None,
) -> None:
    """Log a served resource for analytics."""
    gate_decisions_total.labels(state="UNLOCKED").inc()
    logger.info(
        "paywall_unlock",
        extra={
            "asset_id": asset_id,
            "unlock_layer_id": unlock_layer_id,
            "reason": via,
            "tx_hash": tx_hash,
        },
    )


def record_lock(asset_id: str, unlock_layer_id: str | None, *, token_rejected: bool) -> None:
    gate_decisions_total.labels(state="LOCKED").inc()
    logger.info(
        "paywall_locked",
        extra={
            "asset_id": asset_id,
            "unlock_layer_id": unlock_layer_id,
            "reason": "invalid_token" if token_rejected else "payment_required",
        },
    )
