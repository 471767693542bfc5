"""
Entitlement: durable license of a holder to exactly one {asset, unlock layer} scope.
Created in the same transaction as its VerifiedPayment; never revoked.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String

from app.db.base import Base


class Entitlement(Base):
    __tablename__ = "entitlements"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    payment_id = Column(String, ForeignKey("verified_payments.id"), nullable=False)
    transaction_hash = Column(String(66), unique=True, nullable=False)
    holder_address = Column(String(42), nullable=False, index=True)   # lowercased
    asset_id = Column(String, nullable=False, index=True)
    unlock_layer_id = Column(String, nullable=True)
    license_type = Column(String(50), nullable=False)                 # personal / commercial
    external_license_id = Column(String(255), nullable=True)          # None if mint skipped/failed
    license_token_id = Column(String(255), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
