"""
Gated asset routes. 200 with the unlocked scope, 402 with a challenge, 401 for a bad token.
"""
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_resource_gate
from app.db.session import get_db
from app.paywall.config import PAYMENT_PROOF_HEADER, PAYMENT_SIGNATURE_HEADER
from app.paywall.delivery import layer_summary
from app.paywall.gate import ResourceGate
from app.services.catalog.service import CatalogService


router = APIRouter(prefix="/api/asset", tags=["asset"])


def _respond(status_code: int, body: dict) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@router.get("/{asset_id}")
def get_asset(
    asset_id: str,
    authorization: str | None = Header(None),
    payment_proof: str | None = Header(None, alias=PAYMENT_PROOF_HEADER),
    payment_signature: str | None = Header(None, alias=PAYMENT_SIGNATURE_HEADER),
    gate: ResourceGate = Depends(get_resource_gate),
) -> JSONResponse:
    result = gate.handle(
        asset_id,
        None,
        authorization=authorization,
        payment_proof=payment_proof,
        payment_signature=payment_signature,
    )
    return _respond(result.status_code, result.body)


@router.get("/{asset_id}/layers")
def list_layers(asset_id: str, db: Session = Depends(get_db)) -> dict:
    """Public layer list: prices and unlock types, never content."""
    catalog = CatalogService(db)
    asset = catalog.require_asset(asset_id)
    return {
        "assetId": asset.id,
        "basePrice": str(asset.price),
        "layers": [layer_summary(layer) for layer in catalog.list_layers(asset_id)],
    }


@router.get("/{asset_id}/layers/{layer_id}")
def get_layer(
    asset_id: str,
    layer_id: str,
    authorization: str | None = Header(None),
    payment_proof: str | None = Header(None, alias=PAYMENT_PROOF_HEADER),
    payment_signature: str | None = Header(None, alias=PAYMENT_SIGNATURE_HEADER),
    gate: ResourceGate = Depends(get_resource_gate),
) -> JSONResponse:
    result = gate.handle(
        asset_id,
        layer_id,
        authorization=authorization,
        payment_proof=payment_proof,
        payment_signature=payment_signature,
    )
    return _respond(result.status_code, result.body)
