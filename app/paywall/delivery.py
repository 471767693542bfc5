"""
Execution: response bodies for a gate decision.
Unlocked payloads carry the authorised scope only; locked bodies carry a
challenge and public preview metadata.
"""
from __future__ import annotations

from typing import Any

from app.models.asset import Asset, UnlockLayer
from app.paywall.config import get_payment_description
from app.services.challenges.service import IssuedChallenge
from app.utils.currency import fee_percentage


def challenge_payload(challenge: IssuedChallenge, *, include_request_token: bool = True) -> dict[str, Any]:
    """Challenge as the client sees it. Amounts are decimal strings (uint256)."""
    body: dict[str, Any] = {
        "paymentId": challenge.payment_id,
        "token": challenge.token_address,
        "tokenSymbol": challenge.token_symbol,
        "amount": str(challenge.amount),
        "recipient": challenge.recipient,
        "chain": challenge.network,
        "expiresAt": challenge.expires_at,
        "assetId": challenge.asset_id,
        "unlockLayerId": challenge.unlock_layer_id,
        "unlockLayerIndex": challenge.unlock_layer_index,
        "decimals": challenge.decimals,
        "platformFee": {
            "percentage": fee_percentage(challenge.fee_bps),
            "amount": str(challenge.platform_fee),
            "walletAddress": challenge.platform_wallet or None,
        },
        "creatorAmount": str(challenge.creator_amount),
    }
    if include_request_token:
        body["paymentRequestToken"] = challenge.payment_request_token
    return body


def layer_summary(layer: UnlockLayer) -> dict[str, Any]:
    return {
        "id": layer.id,
        "layerIndex": layer.layer_index,
        "name": layer.name,
        "price": str(layer.price),
        "unlockType": layer.unlock_type,
    }


def preview_metadata(asset: Asset, layers: list[UnlockLayer]) -> dict[str, Any]:
    """Public fields shown next to a payment demand."""
    return {
        "title": asset.title,
        "description": asset.description,
        "thumbnailUrl": asset.thumbnail_url,
        "fileType": asset.file_type,
        "unlockLayers": [layer_summary(layer) for layer in layers],
    }


def payment_required_body(
    challenge: IssuedChallenge,
    asset: Asset,
    layers: list[UnlockLayer],
) -> dict[str, Any]:
    return {
        "error": "Payment Required",
        "code": "402",
        "challenge": challenge_payload(challenge, include_request_token=False),
        "paymentRequestToken": challenge.payment_request_token,
        "description": get_payment_description(asset.title),
        "metadata": preview_metadata(asset, layers),
    }


def invalid_token_body(
    challenge: IssuedChallenge,
    asset: Asset,
    layers: list[UnlockLayer],
) -> dict[str, Any]:
    body = payment_required_body(challenge, asset, layers)
    body["error"] = "invalid_token"
    body["code"] = "401"
    body["message"] = "Access token is invalid, expired, or issued for another resource"
    return body


def unlocked_payload(asset: Asset, layer: UnlockLayer | None) -> dict[str, Any]:
    """Content of exactly the authorised scope: a layer never falls back to the asset original."""
    if layer is None:
        return {
            "assetId": asset.id,
            "unlockLayerId": None,
            "title": asset.title,
            "description": asset.description,
            "fileType": asset.file_type,
            "creatorAddress": asset.creator_address,
            "thumbnailUrl": asset.thumbnail_url,
            "contentUrl": asset.content_url,
            "contentCid": asset.content_cid,
        }
    return {
        "assetId": asset.id,
        "unlockLayerId": layer.id,
        "layerIndex": layer.layer_index,
        "name": layer.name,
        "unlockType": layer.unlock_type,
        "title": asset.title,
        "contentUrl": layer.content_url,
        "contentCid": layer.content_cid,
    }
