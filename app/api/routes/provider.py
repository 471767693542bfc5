from fastapi import APIRouter, Depends, Query

from app.api.deps import get_ledger
from app.api.routes.user import ADDRESS_RE
from app.core.config import settings
from app.core.errors import ValidationError
from app.schemas.payments import (
    EarningsOut,
    ProviderStatsOut,
    ProviderTransactionOut,
    ProviderTransactionsOut,
    TransactionAssetOut,
    TransactionLicenseOut,
)
from app.services.ledger.service import EntitlementLedger
from app.utils.currency import format_token_amount
from app.utils.dates import to_unix


router = APIRouter(prefix="/api/provider", tags=["provider"])


def _require_address(address: str) -> str:
    if not ADDRESS_RE.match(address):
        raise ValidationError("address must be a 0x-prefixed 20-byte hex address")
    return address.lower()


@router.get("/{address}/earnings", response_model=EarningsOut)
def get_earnings(address: str, ledger: EntitlementLedger = Depends(get_ledger)) -> EarningsOut:
    """Verified earnings of a recipient wallet, in token minor units."""
    address = _require_address(address)
    summary = ledger.earnings_for_recipient(address)
    return EarningsOut(
        address=address,
        total_payments=summary["total_payments"],
        gross_amount=str(summary["gross_amount"]),
        creator_amount=str(summary["creator_amount"]),
        platform_fees=str(summary["platform_fees"]),
        unique_assets_sold=summary["unique_assets_sold"],
        token_symbol=settings.token_symbol,
        decimals=settings.token_decimals,
        formatted_creator_amount=format_token_amount(
            summary["creator_amount"], settings.token_decimals, settings.token_symbol
        ),
    )


@router.get("/{address}/transactions", response_model=ProviderTransactionsOut)
def list_transactions(
    address: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: EntitlementLedger = Depends(get_ledger),
) -> ProviderTransactionsOut:
    """Payments received by the wallet, newest first."""
    address = _require_address(address)
    rows, total = ledger.list_for_recipient(address, limit=limit, offset=offset)
    transactions = []
    for payment, entitlement, asset in rows:
        transactions.append(
            ProviderTransactionOut(
                id=payment.id,
                transaction_hash=payment.transaction_hash,
                platform_transaction_hash=payment.platform_transaction_hash,
                unlock_layer_id=payment.unlock_layer_id,
                amount_paid=str(payment.amount_paid),
                creator_amount=str(payment.creator_amount),
                formatted_amount=format_token_amount(
                    payment.amount_paid, settings.token_decimals, settings.token_symbol
                ),
                block_number=payment.block_number,
                verified_at=to_unix(payment.verified_at),
                asset=TransactionAssetOut(
                    id=payment.asset_id,
                    title=asset.title if asset is not None else None,
                    thumbnail_url=asset.thumbnail_url if asset is not None else None,
                ),
                buyer=payment.payer_address,
                license=(
                    TransactionLicenseOut(
                        type=entitlement.license_type,
                        license_id=entitlement.external_license_id,
                    )
                    if entitlement is not None
                    else None
                ),
            )
        )
    return ProviderTransactionsOut(
        address=address, transactions=transactions, total=total, limit=limit, offset=offset
    )


@router.get("/{address}/stats", response_model=ProviderStatsOut)
def get_stats(address: str, ledger: EntitlementLedger = Depends(get_ledger)) -> ProviderStatsOut:
    address = _require_address(address)
    stats = ledger.stats_for_recipient(address)
    return ProviderStatsOut(
        address=address,
        total_assets=stats["total_assets"],
        total_sales=stats["total_sales"],
        total_revenue=str(stats["total_revenue"]),
        licenses_minted=stats["licenses_minted"],
        token_symbol=settings.token_symbol,
        decimals=settings.token_decimals,
    )
