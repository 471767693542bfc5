import re

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_ledger
from app.core.errors import ValidationError
from app.schemas.payments import UserLicenseOut, UserLicensesOut
from app.services.ledger.service import EntitlementLedger
from app.utils.dates import to_unix


router = APIRouter(prefix="/api/user", tags=["user"])

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@router.get("/licenses", response_model=UserLicensesOut)
def list_licenses(
    wallet: str = Query(...),
    limit: int = Query(100, ge=1, le=500),
    ledger: EntitlementLedger = Depends(get_ledger),
) -> UserLicensesOut:
    if not ADDRESS_RE.match(wallet):
        raise ValidationError("wallet must be a 0x-prefixed 20-byte hex address")
    rows = ledger.list_for_holder(wallet, limit=limit)
    return UserLicensesOut(
        wallet=wallet.lower(),
        licenses=[
            UserLicenseOut(
                transaction_hash=entitlement.transaction_hash,
                asset_id=entitlement.asset_id,
                unlock_layer_id=entitlement.unlock_layer_id,
                license_type=entitlement.license_type,
                external_license_id=entitlement.external_license_id,
                license_token_id=entitlement.license_token_id,
                amount_paid=str(payment.amount_paid),
                purchased_at=to_unix(entitlement.created_at),
            )
            for entitlement, payment in rows
        ],
    )
