"""
ChallengeService: issues time-boxed payment challenges for assets and unlock layers.

Responsibilities:
- Price/recipient resolution through the catalog
- Platform fee split (floor(amount * bps / 10000))
- Idempotent persistence: the challenge id is a digest of its content, the
  insert is insert-or-ignore and the stored row is returned
- Lookup by payment request token, discard on successful verification, purge of expired rows
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session
from web3 import Web3

from app.core.errors import ValidationError
from app.db.upsert import insert_or_ignore
from app.models.payment_challenge import PaymentChallenge
from app.services.catalog.service import CatalogService, PriceQuote
from app.utils.currency import split_platform_fee
from app.utils.dates import as_utc, to_unix, utcnow
from app.utils.metrics import challenges_issued_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeTerms:
    """Process-wide payment parameters (token, network, fee policy, ttl)."""

    token_address: str
    token_symbol: str
    decimals: int
    network: str
    fee_bps: int
    platform_wallet: str
    ttl_seconds: int = 300


@dataclass(frozen=True)
class IssuedChallenge:
    payment_id: str
    asset_id: str
    unlock_layer_id: str | None
    unlock_layer_index: int | None
    amount: int
    creator_amount: int
    platform_fee: int
    fee_bps: int
    platform_wallet: str
    token_address: str
    token_symbol: str
    decimals: int
    recipient: str
    network: str
    payment_request_token: str
    created_at: int
    expires_at: int


def challenge_id(
    asset_id: str,
    unlock_layer_id: str | None,
    amount: int,
    token_address: str,
    recipient: str,
    network: str,
    expires_at: int,
) -> str:
    """keccak-256 over the challenge content; same content -> same id."""
    content = "|".join(
        [
            asset_id,
            unlock_layer_id or "",
            str(amount),
            token_address.lower(),
            recipient.lower(),
            network,
            str(expires_at),
        ]
    )
    return "0x" + bytes(Web3.keccak(text=content)).hex()


class ChallengeService:
    def __init__(
        self,
        db: Session,
        terms: ChallengeTerms,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.terms = terms
        self.catalog = CatalogService(db)
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_challenge(
        self,
        asset_id: str,
        unlock_layer_id: str | None = None,
        expires_in: int | None = None,
    ) -> IssuedChallenge:
        quote = self.catalog.resolve_price(asset_id, unlock_layer_id)
        return self.issue_for_quote(quote, expires_in=expires_in)

    def issue_for_quote(self, quote: PriceQuote, expires_in: int | None = None) -> IssuedChallenge:
        if quote.amount <= 0:
            raise ValidationError(f"Asset {quote.asset.id} has no positive price")
        ttl = self.terms.ttl_seconds if expires_in is None else expires_in
        if ttl <= 0:
            raise ValidationError("Challenge lifetime must be positive")

        # Whole seconds: expiresAt travels as a unix timestamp
        now = self._clock().replace(microsecond=0)
        expires_at = now + timedelta(seconds=ttl)
        creator_amount, fee = split_platform_fee(quote.amount, self.terms.fee_bps)
        layer_id = quote.layer.id if quote.layer is not None else None

        payment_id = challenge_id(
            quote.asset.id,
            layer_id,
            quote.amount,
            self.terms.token_address,
            quote.recipient,
            self.terms.network,
            to_unix(expires_at),
        )
        inserted = insert_or_ignore(
            self.db,
            PaymentChallenge.__table__,
            {
                "id": payment_id,
                "asset_id": quote.asset.id,
                "unlock_layer_id": layer_id,
                "amount": quote.amount,
                "creator_amount": creator_amount,
                "platform_fee": fee,
                "token_address": self.terms.token_address,
                "recipient": quote.recipient,
                "network": self.terms.network,
                "decimals": self.terms.decimals,
                "payment_request_token": secrets.token_hex(16),
                "expires_at": expires_at,
                "created_at": now,
            },
            conflict_columns=["id"],
        )
        self.db.commit()

        # A re-issue within the same second returns the stored token, not a fresh one
        row = self.db.query(PaymentChallenge).filter(PaymentChallenge.id == payment_id).one()
        challenges_issued_total.labels(scope="layer" if layer_id else "asset").inc()
        logger.info(
            "challenge_issued" if inserted else "challenge_reissued",
            extra={
                "payment_id": payment_id,
                "asset_id": quote.asset.id,
                "unlock_layer_id": layer_id,
                "amount": quote.amount,
            },
        )
        return self._to_issued(row, quote)

    def _to_issued(self, row: PaymentChallenge, quote: PriceQuote) -> IssuedChallenge:
        return IssuedChallenge(
            payment_id=row.id,
            asset_id=row.asset_id,
            unlock_layer_id=row.unlock_layer_id,
            unlock_layer_index=quote.layer.layer_index if quote.layer is not None else None,
            amount=int(row.amount),
            creator_amount=int(row.creator_amount),
            platform_fee=int(row.platform_fee),
            fee_bps=self.terms.fee_bps,
            platform_wallet=self.terms.platform_wallet,
            token_address=row.token_address,
            token_symbol=self.terms.token_symbol,
            decimals=row.decimals,
            recipient=row.recipient,
            network=row.network,
            payment_request_token=row.payment_request_token,
            created_at=to_unix(row.created_at),
            expires_at=to_unix(row.expires_at),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_by_request_token(self, payment_request_token: str) -> PaymentChallenge | None:
        return (
            self.db.query(PaymentChallenge)
            .filter(PaymentChallenge.payment_request_token == payment_request_token)
            .one_or_none()
        )

    def is_expired(self, challenge: PaymentChallenge) -> bool:
        return as_utc(challenge.expires_at) < self._clock()

    def discard(self, challenge: PaymentChallenge) -> None:
        """Drop a challenge once its payment is committed. Caller commits."""
        self.db.delete(challenge)

    def purge_expired(self) -> int:
        deleted = (
            self.db.query(PaymentChallenge)
            .filter(PaymentChallenge.expires_at < self._clock())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info("expired_challenges_purged", extra={"amount": deleted})
        return deleted
