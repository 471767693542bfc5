"""
PaymentService: the verify flow of the pay-per-resource protocol.

Order of checks in verify_payment:
1. Request shape (transaction hash format); hashes are lowercased from here on
2. Challenge expiry from the request: expired wins over everything else
3. Idempotency pre-check: a committed transaction_hash returns its stored claims, no chain reads
4. Stored challenge (by payment request token): expiry and scope must match
5. Catalog price, fee split, on-chain verification with caller-side polling
6. Ledger commit (upsert-on-conflict), challenge discard, token issue
"""
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from app.core.errors import ChallengeExpiredError, ValidationError, VerificationFailure
from app.services.catalog.service import CatalogService
from app.services.chain.verifier import TransferVerifier, verify_with_retry
from app.services.challenges.service import ChallengeService, ChallengeTerms, IssuedChallenge
from app.services.ledger.service import EntitlementLedger, LedgerEntry, PaymentAmounts, normalize_tx_hash
from app.services.licensing.client import LicenseMinter
from app.services.tokens.service import AccessClaims, AccessTokenService
from app.utils.currency import split_platform_fee
from app.utils.dates import to_unix, utcnow
from app.utils.metrics import payment_replays_total, verify_duration_seconds

logger = logging.getLogger(__name__)

TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class VerifyOutcome:
    access_token: str
    entry: LedgerEntry
    claims: AccessClaims
    replayed: bool


class PaymentService:
    def __init__(
        self,
        db: Session,
        verifier: TransferVerifier,
        tokens: AccessTokenService,
        terms: ChallengeTerms,
        licensing: LicenseMinter | None = None,
        *,
        retry_attempts: int = 5,
        retry_backoff_seconds: float = 1.0,
        check_decimals: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.verifier = verifier
        self.tokens = tokens
        self.terms = terms
        self.catalog = CatalogService(db)
        self.challenges = ChallengeService(db, terms, clock=clock)
        self.ledger = EntitlementLedger(db, licensing)
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.check_decimals = check_decimals
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Challenge
    # ------------------------------------------------------------------

    def create_challenge(self, asset_id: str, unlock_layer_id: str | None = None) -> IssuedChallenge:
        return self.challenges.issue_challenge(asset_id, unlock_layer_id)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_payment(
        self,
        transaction_hash: str,
        payment_request_token: str,
        asset_id: str,
        unlock_layer_id: str | None = None,
        platform_transaction_hash: str | None = None,
        challenge_expires_at: int | None = None,
    ) -> VerifyOutcome:
        if not TX_HASH_RE.match(transaction_hash or ""):
            raise ValidationError("transactionHash must be a 0x-prefixed 32-byte hex string")
        transaction_hash = normalize_tx_hash(transaction_hash)
        if platform_transaction_hash is not None:
            if not TX_HASH_RE.match(platform_transaction_hash):
                raise ValidationError("platformTransactionHash must be a 0x-prefixed 32-byte hex string")
            platform_transaction_hash = normalize_tx_hash(platform_transaction_hash)
            if platform_transaction_hash == transaction_hash:
                raise ValidationError("platformTransactionHash must differ from transactionHash")
        if not payment_request_token or not asset_id:
            raise ValidationError("paymentRequestToken and assetId are required")

        now = to_unix(self._clock())
        if challenge_expires_at is not None and challenge_expires_at < now:
            raise ChallengeExpiredError(challenge_expires_at)

        existing = self.ledger.find_by_transaction(transaction_hash)
        if existing is not None:
            return self._replay(existing, asset_id, unlock_layer_id)
        if self.ledger.is_platform_tx_used(transaction_hash):
            raise VerificationFailure(
                "tx_reused",
                "Transaction already credited as the platform fee of another payment",
                tx_hash=transaction_hash,
                explorer_url=self.verifier.explorer_url(transaction_hash),
            )

        with verify_duration_seconds.time():
            return self._verify_new(
                transaction_hash,
                payment_request_token,
                asset_id,
                unlock_layer_id,
                platform_transaction_hash,
            )

    def _replay(self, entry: LedgerEntry, asset_id: str, unlock_layer_id: str | None) -> VerifyOutcome:
        claims = AccessClaims(entry.entitlement.asset_id, entry.entitlement.unlock_layer_id)
        if claims != AccessClaims(asset_id, unlock_layer_id):
            logger.warning(
                "payment_replay_scope_mismatch",
                extra={
                    "tx_hash": entry.payment.transaction_hash,
                    "asset_id": asset_id,
                    "unlock_layer_id": unlock_layer_id,
                },
            )
        payment_replays_total.inc()
        logger.info("payment_already_processed", extra={"tx_hash": entry.payment.transaction_hash})
        return VerifyOutcome(
            access_token=self.tokens.issue_token(claims),
            entry=entry,
            claims=claims,
            replayed=True,
        )

    def _verify_new(
        self,
        transaction_hash: str,
        payment_request_token: str,
        asset_id: str,
        unlock_layer_id: str | None,
        platform_transaction_hash: str | None,
    ) -> VerifyOutcome:
        quote = self.catalog.resolve_price(asset_id, unlock_layer_id)
        amount, recipient = quote.amount, quote.recipient

        challenge = self.challenges.get_by_request_token(payment_request_token)
        if challenge is not None:
            if challenge.asset_id != asset_id or challenge.unlock_layer_id != unlock_layer_id:
                raise ValidationError("paymentRequestToken was issued for a different resource")
            if self.challenges.is_expired(challenge):
                raise ChallengeExpiredError(to_unix(challenge.expires_at))
            # Honour the quoted terms, not a price changed since
            amount, recipient = int(challenge.amount), challenge.recipient

        creator_amount, fee = split_platform_fee(amount, self.terms.fee_bps)
        expected_decimals = self.terms.decimals if self.check_decimals else None

        if platform_transaction_hash is not None:
            # Split payment: creator share to the recipient, fee to the platform wallet
            if not self.terms.platform_wallet:
                raise ValidationError("Platform fee transfers are not accepted: no platform wallet configured")
            # Pre-check only; the unique index on the fee hash settles races at commit
            if self.ledger.is_transaction_credited(platform_transaction_hash):
                raise VerificationFailure(
                    "platform_tx_reused",
                    "Platform fee transaction already credited to another payment",
                    tx_hash=platform_transaction_hash,
                    explorer_url=self.verifier.explorer_url(platform_transaction_hash),
                )
            main = self._verify(transaction_hash, recipient, creator_amount, expected_decimals)
            paid = main.amount
            if fee > 0:
                fee_transfer = self._verify(
                    platform_transaction_hash, self.terms.platform_wallet, fee, expected_decimals
                )
                paid += fee_transfer.amount
        else:
            main = self._verify(transaction_hash, recipient, amount, expected_decimals)
            paid = main.amount

        entry = self.ledger.record_payment(
            transaction_hash,
            asset_id,
            main.payer,
            recipient,
            PaymentAmounts(
                amount_paid=paid,
                creator_amount=creator_amount,
                platform_fee=fee,
                fee_bps=self.terms.fee_bps,
                platform_wallet=self.terms.platform_wallet or None,
            ),
            unlock_layer_id,
            unlock_type=quote.layer.unlock_type if quote.layer is not None else None,
            license_scope_id=quote.asset.license_scope_id,
            block_number=main.block_number,
            platform_transaction_hash=platform_transaction_hash,
            payment_request_token=payment_request_token,
        )

        if challenge is not None and entry.created:
            self.challenges.discard(challenge)
            self.db.commit()

        claims = AccessClaims(entry.entitlement.asset_id, entry.entitlement.unlock_layer_id)
        logger.info(
            "payment_verified",
            extra={
                "tx_hash": transaction_hash,
                "asset_id": asset_id,
                "unlock_layer_id": unlock_layer_id,
                "payer": main.payer,
                "amount": paid,
            },
        )
        return VerifyOutcome(
            access_token=self.tokens.issue_token(claims),
            entry=entry,
            claims=claims,
            replayed=not entry.created,
        )

    def _verify(self, tx_hash: str, recipient: str, amount: int, expected_decimals: int | None):
        return verify_with_retry(
            self.verifier,
            tx_hash,
            attempts=self.retry_attempts,
            backoff_seconds=self.retry_backoff_seconds,
            sleep=self._sleep,
            expected_recipient=recipient,
            expected_amount=amount,
            token_address=self.terms.token_address,
            expected_decimals=expected_decimals,
        )
