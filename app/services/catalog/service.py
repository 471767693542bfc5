"""
CatalogService: read access to assets and unlock layers, and price resolution.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.asset import Asset, UnlockLayer


@dataclass(frozen=True)
class PriceQuote:
    asset: Asset
    layer: UnlockLayer | None
    amount: int
    recipient: str


class CatalogService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_asset(self, asset_id: str) -> Asset | None:
        return self.db.query(Asset).filter(Asset.id == asset_id).one_or_none()

    def get_layer(self, asset_id: str, layer_id: str) -> UnlockLayer | None:
        """Layer lookup scoped to its asset: a layer of another asset is not found."""
        return (
            self.db.query(UnlockLayer)
            .filter(UnlockLayer.id == layer_id, UnlockLayer.asset_id == asset_id)
            .one_or_none()
        )

    def list_layers(self, asset_id: str) -> list[UnlockLayer]:
        return (
            self.db.query(UnlockLayer)
            .filter(UnlockLayer.asset_id == asset_id)
            .order_by(UnlockLayer.layer_index)
            .all()
        )

    def require_asset(self, asset_id: str) -> Asset:
        asset = self.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found", code="asset_not_found")
        return asset

    def resolve_price(self, asset_id: str, unlock_layer_id: str | None = None) -> PriceQuote:
        """Per-layer price/recipient when a layer is named, else the asset's base price."""
        asset = self.require_asset(asset_id)
        if unlock_layer_id is None:
            return PriceQuote(asset=asset, layer=None, amount=int(asset.price), recipient=asset.recipient_address)

        layer = self.get_layer(asset_id, unlock_layer_id)
        if layer is None:
            raise NotFoundError(
                f"Unlock layer {unlock_layer_id} not found for asset {asset_id}",
                code="unlock_layer_not_found",
            )
        return PriceQuote(
            asset=asset,
            layer=layer,
            amount=int(layer.price),
            recipient=layer.recipient_address or asset.recipient_address,
        )
