"""
Payment protocol routes: issue a challenge, verify an on-chain payment.
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_payment_service
from app.paywall.delivery import challenge_payload
from app.schemas.payments import ChallengeIn, LicenseOut, VerifyIn, VerifyOut
from app.services.payments.service import PaymentService


router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.post("/challenge")
def create_challenge(body: ChallengeIn, service: PaymentService = Depends(get_payment_service)) -> dict:
    issued = service.create_challenge(body.asset_id, body.unlock_layer_id)
    return challenge_payload(issued)


@router.post("/verify", response_model=VerifyOut)
def verify_payment(body: VerifyIn, service: PaymentService = Depends(get_payment_service)) -> VerifyOut:
    outcome = service.verify_payment(
        transaction_hash=body.transaction_hash,
        payment_request_token=body.payment_request_token,
        asset_id=body.asset_id,
        unlock_layer_id=body.unlock_layer_id,
        platform_transaction_hash=body.platform_transaction_hash,
        challenge_expires_at=body.challenge.expires_at if body.challenge else None,
    )
    entitlement = outcome.entry.entitlement
    return VerifyOut(
        access_token=outcome.access_token,
        transaction_hash=outcome.entry.payment.transaction_hash,
        asset_id=outcome.claims.asset_id,
        unlock_layer_id=outcome.claims.unlock_layer_id,
        license=LicenseOut(
            license_type=entitlement.license_type,
            external_license_id=entitlement.external_license_id,
            license_token_id=entitlement.license_token_id,
        ),
        replayed=outcome.replayed,
    )
