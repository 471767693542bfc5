"""
Paywall config: typed wrapper over app.core.config for the gate.
"""
from __future__ import annotations

from app.core.config import settings

PAYMENT_PROOF_HEADER = "X-Payment-Proof"
PAYMENT_SIGNATURE_HEADER = "X-Payment-Signature"


def get_challenge_ttl_seconds() -> int:
    return settings.challenge_ttl_seconds


def get_access_token_ttl_seconds() -> int:
    return settings.access_token_ttl_seconds


def get_payment_description(title: str) -> str:
    return f"Payment required to access {title}"
