"""Tests for ResourceGate against a real catalog and ledger (in-memory SQLite)."""
import pytest

from app.core.errors import NotFoundError
from app.models.payment_challenge import PaymentChallenge
from app.paywall.gate import ResourceGate, bearer_token
from app.services.ledger.service import EntitlementLedger, PaymentAmounts
from app.services.tokens.service import AccessClaims
from conftest import BUYER, RECIPIENT, STRANGER, make_tx_hash, sign_proof


@pytest.fixture
def gate(db, catalog, tokens, terms):
    return ResourceGate(db, tokens, terms)


def _bearer(tokens, asset_id, layer_id=None):
    return "Bearer " + tokens.issue_token(AccessClaims(asset_id, layer_id))


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer  abc ") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


class TestLocked:
    def test_payment_required_body(self, gate, db):
        result = gate.handle("asset-1")
        assert result.status_code == 402
        body = result.body
        assert body["error"] == "Payment Required"
        assert body["code"] == "402"
        assert body["challenge"]["amount"] == "10000"
        assert body["challenge"]["recipient"] == RECIPIENT
        assert body["challenge"]["assetId"] == "asset-1"
        assert "paymentRequestToken" not in body["challenge"]
        assert body["paymentRequestToken"]
        assert body["metadata"]["title"] == "Sunset over the bay"
        assert body["metadata"]["thumbnailUrl"] == "https://cdn.test/asset-1/thumb.png"
        assert [layer["id"] for layer in body["metadata"]["unlockLayers"]] == ["layer-hd", "layer-commercial"]
        assert "contentUrl" not in body["metadata"]
        assert db.query(PaymentChallenge).count() == 1

    def test_layer_challenge_priced_for_layer(self, gate):
        result = gate.handle("asset-1", "layer-hd")
        assert result.status_code == 402
        assert result.body["challenge"]["amount"] == "20000"
        assert result.body["challenge"]["unlockLayerId"] == "layer-hd"

    def test_token_for_other_asset_is_invalid_token(self, gate, tokens):
        result = gate.handle("asset-2", authorization=_bearer(tokens, "asset-1"))
        assert result.status_code == 401
        assert result.body["error"] == "invalid_token"
        # A fresh challenge comes with the rejection
        assert result.body["challenge"]["assetId"] == "asset-2"
        assert result.body["paymentRequestToken"]

    def test_hd_token_does_not_open_commercial_layer(self, gate, tokens):
        result = gate.handle("asset-1", "layer-commercial", authorization=_bearer(tokens, "asset-1", "layer-hd"))
        assert result.status_code == 401

    def test_hd_token_does_not_open_base_asset(self, gate, tokens):
        result = gate.handle("asset-1", authorization=_bearer(tokens, "asset-1", "layer-hd"))
        assert result.status_code == 401

    def test_unknown_asset(self, gate):
        with pytest.raises(NotFoundError):
            gate.handle("missing")

    def test_unknown_layer(self, gate):
        with pytest.raises(NotFoundError) as exc_info:
            gate.handle("asset-2", "layer-hd")
        assert exc_info.value.code == "unlock_layer_not_found"


class TestUnlocked:
    def test_token_serves_base_asset(self, gate, tokens):
        result = gate.handle("asset-1", authorization=_bearer(tokens, "asset-1"))
        assert result.status_code == 200
        assert result.body["contentUrl"] == "https://cdn.test/asset-1/original.png"
        assert result.body["unlockLayerId"] is None

    def test_token_serves_exact_layer_only(self, gate, tokens):
        result = gate.handle("asset-1", "layer-hd", authorization=_bearer(tokens, "asset-1", "layer-hd"))
        assert result.status_code == 200
        assert result.body["contentUrl"] == "https://cdn.test/asset-1/hd.png"
        assert result.body["unlockType"] == "hd"

    def test_payment_proof_signed_by_holder(self, gate, db):
        tx = _record_hd_purchase(db)
        signature = sign_proof(BUYER, tx, "asset-1", "layer-hd")
        result = gate.handle("asset-1", "layer-hd", payment_proof=tx, payment_signature=signature)
        assert result.status_code == 200
        assert result.body["contentUrl"] == "https://cdn.test/asset-1/hd.png"

    def test_signed_proof_is_tier_exact(self, gate, db):
        tx = _record_hd_purchase(db)
        for layer_id in ("layer-commercial", None):
            signature = sign_proof(BUYER, tx, "asset-1", layer_id)
            result = gate.handle("asset-1", layer_id, payment_proof=tx, payment_signature=signature)
            assert result.status_code == 402


class TestPublicTransactionHash:
    def test_hash_alone_does_not_unlock(self, gate, db):
        tx = _record_hd_purchase(db)
        result = gate.handle("asset-1", "layer-hd", payment_proof=tx)
        assert result.status_code == 402
        assert "contentUrl" not in result.body

    def test_hash_signed_by_stranger_does_not_unlock(self, gate, db):
        tx = _record_hd_purchase(db)
        signature = sign_proof(STRANGER, tx, "asset-1", "layer-hd")
        result = gate.handle("asset-1", "layer-hd", payment_proof=tx, payment_signature=signature)
        assert result.status_code == 402


def _record_hd_purchase(db) -> str:
    tx = make_tx_hash()
    EntitlementLedger(db).record_payment(
        tx, "asset-1", BUYER.address, RECIPIENT,
        PaymentAmounts(amount_paid=20_000, creator_amount=19_000, platform_fee=1_000),
        "layer-hd",
        unlock_type="hd",
    )
    return tx
