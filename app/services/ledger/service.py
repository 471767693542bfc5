"""
EntitlementLedger: durable record of verified payments and the entitlements they grant.

Guarantees:
- At most one VerifiedPayment per transaction_hash (unique index + INSERT ... ON CONFLICT DO NOTHING)
- Hashes are stored lowercased; every lookup normalizes its argument the same way
- A platform fee transaction is credited at most once (unique index, conflict -> platform_tx_reused)
- A losing concurrent writer re-reads the winner's row and returns it (created=False)
- Payment + entitlement commit together or not at all
- License minting is a side effect: its failure is stored in side_effect_errors, the payment still commits
"""
import logging
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import VerificationFailure
from app.db.upsert import insert_or_ignore
from app.models.asset import Asset
from app.models.entitlement import Entitlement
from app.models.verified_payment import VerifiedPayment
from app.services.licensing.client import LicenseGrant, LicenseMinter
from app.utils.dates import utcnow
from app.utils.metrics import license_mint_failures_total, payments_verified_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentAmounts:
    amount_paid: int
    creator_amount: int
    platform_fee: int
    fee_bps: int = 0
    platform_wallet: str | None = None


@dataclass
class LedgerEntry:
    payment: VerifiedPayment
    entitlement: Entitlement
    created: bool = False
    side_effect_errors: list[dict] = field(default_factory=list)


def license_type_for(unlock_type: str | None) -> str:
    return "commercial" if unlock_type == "commercial" else "personal"


def normalize_tx_hash(transaction_hash: str) -> str:
    # Nodes accept any hex case; the ledger keys on one spelling
    return transaction_hash.strip().lower()


class EntitlementLedger:
    def __init__(self, db: Session, licensing: LicenseMinter | None = None) -> None:
        self.db = db
        self.licensing = licensing

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _entitlement_for(self, transaction_hash: str) -> Entitlement | None:
        return (
            self.db.query(Entitlement)
            .filter(Entitlement.transaction_hash == normalize_tx_hash(transaction_hash))
            .one_or_none()
        )

    def find_by_transaction(self, transaction_hash: str) -> LedgerEntry | None:
        transaction_hash = normalize_tx_hash(transaction_hash)
        payment = (
            self.db.query(VerifiedPayment)
            .filter(VerifiedPayment.transaction_hash == transaction_hash)
            .one_or_none()
        )
        if payment is None:
            return None
        entitlement = self._entitlement_for(transaction_hash)
        if entitlement is None:
            # Both rows share one transaction; a payment without entitlement means a broken store
            raise RuntimeError(f"payment {payment.id} has no entitlement")
        return LedgerEntry(payment=payment, entitlement=entitlement, created=False)

    def entitlement_holder(self, transaction_hash: str, asset_id: str, unlock_layer_id: str | None) -> str | None:
        """
        Holder address of the entitlement bought by transaction_hash, if it names
        exactly this asset and layer (tiers are not cumulative). None otherwise.
        """
        query = self.db.query(Entitlement.holder_address).filter(
            Entitlement.transaction_hash == normalize_tx_hash(transaction_hash),
            Entitlement.asset_id == asset_id,
        )
        if unlock_layer_id is None:
            query = query.filter(Entitlement.unlock_layer_id.is_(None))
        else:
            query = query.filter(Entitlement.unlock_layer_id == unlock_layer_id)
        row = query.first()
        return row[0] if row is not None else None

    def has_entitlement(self, transaction_hash: str, asset_id: str, unlock_layer_id: str | None) -> bool:
        return self.entitlement_holder(transaction_hash, asset_id, unlock_layer_id) is not None

    def is_platform_tx_used(self, transaction_hash: str) -> bool:
        """True if the hash was already credited as the platform fee of some payment."""
        return (
            self.db.query(VerifiedPayment.id)
            .filter(VerifiedPayment.platform_transaction_hash == normalize_tx_hash(transaction_hash))
            .first()
            is not None
        )

    def is_transaction_credited(self, transaction_hash: str) -> bool:
        """True if the hash was credited in either role: main transfer or platform fee."""
        transaction_hash = normalize_tx_hash(transaction_hash)
        return (
            self.db.query(VerifiedPayment.id)
            .filter(
                or_(
                    VerifiedPayment.transaction_hash == transaction_hash,
                    VerifiedPayment.platform_transaction_hash == transaction_hash,
                )
            )
            .first()
            is not None
        )

    def list_for_holder(self, holder_address: str, limit: int = 100) -> list[tuple[Entitlement, VerifiedPayment]]:
        return (
            self.db.query(Entitlement, VerifiedPayment)
            .join(VerifiedPayment, VerifiedPayment.id == Entitlement.payment_id)
            .filter(Entitlement.holder_address == holder_address.lower())
            .order_by(Entitlement.created_at.desc())
            .limit(limit)
            .all()
        )

    def earnings_for_recipient(self, recipient_address: str) -> dict:
        row = (
            self.db.query(
                func.count(VerifiedPayment.id),
                func.coalesce(func.sum(VerifiedPayment.amount_paid), 0),
                func.coalesce(func.sum(VerifiedPayment.creator_amount), 0),
                func.coalesce(func.sum(VerifiedPayment.platform_fee), 0),
                func.count(func.distinct(VerifiedPayment.asset_id)),
            )
            .filter(VerifiedPayment.recipient_address == recipient_address.lower())
            .one()
        )
        total_payments, gross, creator, fees, assets = row
        return {
            "total_payments": int(total_payments),
            "gross_amount": int(gross),
            "creator_amount": int(creator),
            "platform_fees": int(fees),
            "unique_assets_sold": int(assets),
        }

    def list_for_recipient(
        self, recipient_address: str, limit: int = 50, offset: int = 0
    ) -> tuple[list[tuple[VerifiedPayment, Entitlement | None, Asset | None]], int]:
        """Payments received by a wallet, newest first, with buyer entitlement and asset. Returns (page, total)."""
        address = recipient_address.lower()
        base = self.db.query(VerifiedPayment).filter(VerifiedPayment.recipient_address == address)
        total = base.count()
        rows = (
            self.db.query(VerifiedPayment, Entitlement, Asset)
            .outerjoin(Entitlement, Entitlement.payment_id == VerifiedPayment.id)
            .outerjoin(Asset, Asset.id == VerifiedPayment.asset_id)
            .filter(VerifiedPayment.recipient_address == address)
            .order_by(VerifiedPayment.verified_at.desc(), VerifiedPayment.id)
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [tuple(row) for row in rows], total

    def stats_for_recipient(self, recipient_address: str) -> dict:
        address = recipient_address.lower()
        total_assets = (
            self.db.query(func.count(Asset.id))
            .filter(func.lower(Asset.creator_address) == address)
            .scalar()
        )
        sales, revenue = (
            self.db.query(
                func.count(VerifiedPayment.id),
                func.coalesce(func.sum(VerifiedPayment.creator_amount), 0),
            )
            .filter(VerifiedPayment.recipient_address == address)
            .one()
        )
        licenses_minted = (
            self.db.query(func.count(Entitlement.id))
            .join(VerifiedPayment, VerifiedPayment.id == Entitlement.payment_id)
            .filter(
                VerifiedPayment.recipient_address == address,
                Entitlement.external_license_id.isnot(None),
            )
            .scalar()
        )
        return {
            "total_assets": int(total_assets or 0),
            "total_sales": int(sales),
            "total_revenue": int(revenue),
            "licenses_minted": int(licenses_minted or 0),
        }

    # ------------------------------------------------------------------
    # Commit (atomic)
    # ------------------------------------------------------------------

    def record_payment(
        self,
        transaction_hash: str,
        asset_id: str,
        payer: str,
        recipient: str,
        amounts: PaymentAmounts,
        unlock_layer_id: str | None = None,
        *,
        unlock_type: str | None = None,
        license_scope_id: str | None = None,
        block_number: int | None = None,
        platform_transaction_hash: str | None = None,
        payment_request_token: str | None = None,
    ) -> LedgerEntry:
        """
        Insert the payment, mint a license, insert the entitlement, commit.
        Idempotent by transaction_hash: a second call returns the first call's rows.
        Raises VerificationFailure(platform_tx_reused) when the platform fee
        transaction is already credited to another payment.
        """
        transaction_hash = normalize_tx_hash(transaction_hash)
        if platform_transaction_hash is not None:
            platform_transaction_hash = normalize_tx_hash(platform_transaction_hash)
        try:
            inserted = insert_or_ignore(
                self.db,
                VerifiedPayment.__table__,
                {
                    "id": str(uuid4()),
                    "transaction_hash": transaction_hash,
                    "platform_transaction_hash": platform_transaction_hash,
                    "payer_address": payer.lower(),
                    "recipient_address": recipient.lower(),
                    "asset_id": asset_id,
                    "unlock_layer_id": unlock_layer_id,
                    "amount_paid": amounts.amount_paid,
                    "creator_amount": amounts.creator_amount,
                    "platform_fee": amounts.platform_fee,
                    "platform_fee_bps": amounts.fee_bps,
                    "platform_wallet_address": amounts.platform_wallet,
                    "block_number": block_number,
                    "payment_request_token": payment_request_token,
                    "side_effect_errors": [],
                    "verified_at": utcnow(),
                },
                conflict_columns=["transaction_hash"],
            )
            payment = (
                self.db.query(VerifiedPayment)
                .filter(VerifiedPayment.transaction_hash == transaction_hash)
                .one()
            )

            if not inserted:
                # Lost the race: the winner's transaction is committed, converge on it
                entitlement = self._entitlement_for(transaction_hash)
                self.db.commit()
                logger.warning("payment_duplicate", extra={"tx_hash": transaction_hash})
                if entitlement is None:
                    raise RuntimeError(f"payment {payment.id} has no entitlement")
                return LedgerEntry(payment=payment, entitlement=entitlement, created=False)

            license_type = license_type_for(unlock_type)
            grant, errors = self._mint_license(
                transaction_hash, license_scope_id, payer.lower(), license_type, unlock_layer_id, unlock_type
            )

            entitlement = Entitlement(
                payment_id=payment.id,
                transaction_hash=transaction_hash,
                holder_address=payer.lower(),
                asset_id=asset_id,
                unlock_layer_id=unlock_layer_id,
                license_type=license_type,
                external_license_id=grant.license_id if grant else None,
                license_token_id=grant.token_id if grant else None,
            )
            self.db.add(entitlement)
            if errors:
                payment.side_effect_errors = errors
            self.db.commit()
        except IntegrityError as e:
            # transaction_hash conflicts are absorbed by the upsert; only the fee hash index is left
            self.db.rollback()
            logger.warning(
                "platform_tx_conflict",
                extra={"tx_hash": transaction_hash, "platform_tx_hash": platform_transaction_hash},
            )
            raise VerificationFailure(
                "platform_tx_reused",
                "Platform fee transaction already credited to another payment",
                tx_hash=platform_transaction_hash,
            ) from e
        except Exception:
            self.db.rollback()
            raise

        payments_verified_total.labels(scope="layer" if unlock_layer_id else "asset").inc()
        logger.info(
            "payment_recorded",
            extra={
                "tx_hash": transaction_hash,
                "payment_id": payment.id,
                "asset_id": asset_id,
                "unlock_layer_id": unlock_layer_id,
                "payer": payer.lower(),
                "amount": amounts.amount_paid,
                "license_type": license_type,
            },
        )
        return LedgerEntry(payment=payment, entitlement=entitlement, created=True, side_effect_errors=errors)

    def _mint_license(
        self,
        transaction_hash: str,
        scope_id: str | None,
        licensee: str,
        license_type: str,
        unlock_layer_id: str | None,
        unlock_type: str | None,
    ) -> tuple[LicenseGrant | None, list[dict]]:
        # Personal license for the base asset, commercial for a commercial layer, nothing otherwise
        if self.licensing is None or not scope_id:
            return None, []
        if unlock_layer_id is not None and unlock_type != "commercial":
            return None, []
        try:
            return self.licensing.mint_license(scope_id, licensee, license_type), []
        except Exception as e:
            license_mint_failures_total.inc()
            logger.exception(
                "license_mint_failed",
                extra={"tx_hash": transaction_hash, "license_type": license_type},
            )
            return None, [
                {
                    "step": "mint_license",
                    "license_type": license_type,
                    "error": f"{type(e).__name__}: {e}",
                    "at": utcnow().isoformat(),
                }
            ]
