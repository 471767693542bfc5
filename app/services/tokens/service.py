"""
AccessTokenService: scoped bearer tokens (HS256 JWT) derived from entitlements.

A token names exactly one {assetId, unlockLayerId} scope. Validation checks
the signature and expiry AND that the scope equals the requested resource,
so a genuine token for asset A is useless against asset B.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import jwt


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessClaims:
    asset_id: str
    unlock_layer_id: str | None = None

    def to_payload(self) -> dict:
        payload = {"assetId": self.asset_id}
        if self.unlock_layer_id is not None:
            payload["unlockLayerId"] = self.unlock_layer_id
        return payload


class AccessTokenService:
    def __init__(self, secret: str, algorithm: str = "HS256", default_ttl: int = 3600) -> None:
        if not secret:
            raise RuntimeError("JWT secret not configured - cannot sign tokens")
        self._secret = secret
        self._algorithm = algorithm
        self.default_ttl = default_ttl

    def issue_token(self, claims: AccessClaims, ttl: int | None = None) -> str:
        now = int(time.time())
        body = {**claims.to_payload(), "iat": now, "exp": now + (ttl if ttl is not None else self.default_ttl)}
        return jwt.encode(body, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> AccessClaims | None:
        """Claims of a correctly signed, unexpired token; None otherwise."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.PyJWTError as e:
            logger.info("access_token_rejected", extra={"reason": type(e).__name__})
            return None
        asset_id = payload.get("assetId")
        if not isinstance(asset_id, str) or not asset_id:
            return None
        layer_id = payload.get("unlockLayerId")
        return AccessClaims(asset_id=asset_id, unlock_layer_id=layer_id if isinstance(layer_id, str) else None)

    def validate_token(self, token: str, expected: AccessClaims) -> bool:
        claims = self.decode(token)
        return claims is not None and claims == expected
