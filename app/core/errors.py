"""
Error taxonomy for the payment protocol.
Every error carries a machine code (the `error` field of the response body)
and an HTTP status; app.main maps them to JSON responses.
"""
from __future__ import annotations

from typing import Any


class PaywallError(Exception):
    status_code = 400
    code = "bad_request"

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code

    def to_body(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(PaywallError):
    """Missing or malformed request fields."""

    status_code = 400
    code = "bad_request"


class ChallengeExpiredError(PaywallError):
    status_code = 400
    code = "challenge_expired"

    def __init__(self, expires_at: int) -> None:
        super().__init__(f"Payment challenge expired at {expires_at}")
        self.expires_at = expires_at

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["expiresAt"] = self.expires_at
        return body


class NotFoundError(PaywallError):
    """Unknown asset or unlock layer (code: asset_not_found / unlock_layer_not_found)."""

    status_code = 404
    code = "asset_not_found"


class InvalidTokenError(PaywallError):
    status_code = 401
    code = "invalid_token"


class VerificationFailure(PaywallError):
    """
    The referenced transaction does not satisfy the challenge.

    `reason` is the verifier-level cause (tx_not_found, tx_failed, no_credit,
    no_transfer_to_recipient, amount_mismatch, bad_decimals, tx_reused,
    platform_tx_reused); `code` is what the client sees.
    """

    status_code = 400

    REASON_TO_CODE = {
        "tx_not_found": "invalid_tx",
        "tx_failed": "invalid_tx",
        "no_credit": "no_credit",
        "no_transfer_to_recipient": "no_transfer_found",
        "amount_mismatch": "bad_amount",
        "bad_decimals": "bad_decimals",
        "platform_tx_reused": "invalid_tx",
        "tx_reused": "invalid_tx",
    }

    def __init__(
        self,
        reason: str,
        message: str,
        *,
        tx_hash: str | None = None,
        received: int | None = None,
        required: int | None = None,
        explorer_url: str | None = None,
    ) -> None:
        super().__init__(message, code=self.REASON_TO_CODE.get(reason, "invalid_tx"))
        self.reason = reason
        self.tx_hash = tx_hash
        self.received = received
        self.required = required
        self.explorer_url = explorer_url

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["reason"] = self.reason
        # Amounts as strings: uint256 values overflow JS numbers
        if self.received is not None:
            body["received"] = str(self.received)
        if self.required is not None:
            body["required"] = str(self.required)
        if self.explorer_url:
            body["explorerUrl"] = self.explorer_url
        return body


class InfrastructureError(PaywallError):
    """Chain RPC or database unavailable. Retryable; never a verdict on the transaction."""

    status_code = 500
    code = "server_error"
