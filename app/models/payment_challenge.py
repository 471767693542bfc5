"""
PaymentChallenge: issued payment requirement for an asset or unlock layer.
id is the keccak-256 digest of the challenge content, so re-issuing identical
parameters hits the primary key and is ignored.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer, String

from app.db.base import Base


class PaymentChallenge(Base):
    __tablename__ = "payment_challenges"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_challenge_amount_positive"),
        CheckConstraint("expires_at > created_at", name="ck_challenge_expiry_after_issue"),
    )

    id = Column(String(66), primary_key=True)                   # 0x + keccak256 hex
    asset_id = Column(String, nullable=False, index=True)
    unlock_layer_id = Column(String, nullable=True)
    amount = Column(BigInteger, nullable=False)
    creator_amount = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False)
    token_address = Column(String(42), nullable=False)
    recipient = Column(String(42), nullable=False)
    network = Column(String(50), nullable=False)
    decimals = Column(Integer, nullable=False)
    payment_request_token = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
