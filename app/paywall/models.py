"""
Gate DTOs: AccessContext (input of decide_access), AccessDecision, GateResponse.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


# ----- Input of decide_access: one contract instead of growing signatures -----


class AccessContext(BaseModel):
    """Requested scope plus whatever credentials the request carried."""

    asset_id: str
    unlock_layer_id: str | None = None
    bearer_token: str | None = None
    payment_proof: str | None = None      # transaction hash from X-Payment-Proof
    payment_signature: str | None = None  # holder signature from X-Payment-Signature

    model_config = {"frozen": True}


AccessState = Literal["LOCKED", "UNLOCKED"]
UnlockVia = Literal["token", "proof"]


class AccessDecision(BaseModel):
    """Result of decide_access for exactly one {asset, layer} scope."""

    state: AccessState
    via: UnlockVia | None = Field(None, description="Credential that unlocked the scope")
    token_rejected: bool = Field(
        False,
        description="A bearer token was presented and did not validate for this scope",
    )

    model_config = {"frozen": True}

    @property
    def unlocked(self) -> bool:
        return self.state == "UNLOCKED"


class GateResponse(BaseModel):
    """HTTP-ready outcome of ResourceGate.handle."""

    status_code: int
    body: dict[str, Any]

    model_config = {"frozen": True}
