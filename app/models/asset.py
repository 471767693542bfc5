"""
Asset catalog: assets and their independently priced unlock layers.
Rows are written by the upload pipeline; this service only reads them.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from app.db.base import Base

UNLOCK_TYPES = ("preview", "hd", "full", "commercial")


class Asset(Base):
    __tablename__ = "assets"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(BigInteger, nullable=False)                 # minor units of the payment token
    currency = Column(String(10), nullable=False, default="USDC")
    recipient_address = Column(String(42), nullable=False)
    creator_address = Column(String(42), nullable=False, index=True)
    content_url = Column(Text, nullable=True)                  # full-quality original
    content_cid = Column(String(255), nullable=True)
    thumbnail_url = Column(Text, nullable=True)                # public preview
    file_type = Column(String(100), nullable=True)
    license_scope_id = Column(String(255), nullable=True)      # IP id at the licensing service
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class UnlockLayer(Base):
    __tablename__ = "unlock_layers"
    __table_args__ = (UniqueConstraint("asset_id", "layer_index", name="uq_unlock_layer_index"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    asset_id = Column(String, ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
    layer_index = Column(Integer, nullable=False)              # 0 = preview ... 3 = commercial
    name = Column(String(100), nullable=False)
    price = Column(BigInteger, nullable=False)
    unlock_type = Column(String(50), nullable=False)           # preview / hd / full / commercial
    recipient_address = Column(String(42), nullable=True)      # None = asset recipient
    content_url = Column(Text, nullable=True)
    content_cid = Column(String(255), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
