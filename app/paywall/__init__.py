"""
Resource gate (internal library).
Decision (access) and execution (delivery) are separate; the contract is AccessContext.
"""
from app.paywall.access import decide_access
from app.paywall.audit import record_lock, record_unlock
from app.paywall.delivery import challenge_payload, payment_required_body, unlocked_payload
from app.paywall.gate import ResourceGate, bearer_token
from app.paywall.models import AccessContext, AccessDecision, GateResponse
from app.paywall.proof import proof_message, recover_signer

__all__ = [
    "AccessContext",
    "AccessDecision",
    "GateResponse",
    "ResourceGate",
    "bearer_token",
    "challenge_payload",
    "decide_access",
    "payment_required_body",
    "proof_message",
    "record_lock",
    "record_unlock",
    "recover_signer",
    "unlocked_payload",
]
