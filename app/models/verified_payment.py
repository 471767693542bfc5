"""
VerifiedPayment: one row per on-chain transaction that satisfied a challenge.
transaction_hash and platform_transaction_hash are unique: they are the guards against
double-crediting. Both are stored lowercased.
Rows are never updated after commit.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class VerifiedPayment(Base):
    __tablename__ = "verified_payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    transaction_hash = Column(String(66), unique=True, nullable=False)
    platform_transaction_hash = Column(String(66), nullable=True, unique=True)  # NULLs do not collide
    payer_address = Column(String(42), nullable=False, index=True)       # lowercased
    recipient_address = Column(String(42), nullable=False, index=True)  # lowercased
    asset_id = Column(String, nullable=False, index=True)
    unlock_layer_id = Column(String, nullable=True)
    amount_paid = Column(BigInteger, nullable=False)
    creator_amount = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False)
    platform_fee_bps = Column(Integer, nullable=False, default=0)
    platform_wallet_address = Column(String(42), nullable=True)
    block_number = Column(BigInteger, nullable=True)
    payment_request_token = Column(String(64), nullable=True)
    # Failures of non-critical side effects (license minting), kept for audit
    side_effect_errors = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    verified_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
