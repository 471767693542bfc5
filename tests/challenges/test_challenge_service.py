"""Tests for ChallengeService: pricing, fee split, idempotent persistence, lifecycle."""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import NotFoundError, ValidationError
from app.models.payment_challenge import PaymentChallenge
from app.services.challenges.service import ChallengeService, challenge_id
from conftest import LAYER_RECIPIENT, PLATFORM_WALLET, RECIPIENT, TOKEN

NOW = datetime(2026, 1, 1, 12, 0, 0, 500_000, tzinfo=timezone.utc)


def _service(db, terms, now=NOW):
    return ChallengeService(db, terms, clock=lambda: now)


class TestIssueChallenge:
    def test_base_asset_terms(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1")
        assert issued.amount == 10_000
        assert issued.recipient == RECIPIENT
        assert issued.token_address == TOKEN
        assert issued.network == "base-sepolia"
        assert issued.decimals == 6
        assert issued.unlock_layer_id is None
        assert issued.payment_id.startswith("0x") and len(issued.payment_id) == 66
        assert len(issued.payment_request_token) == 32

    def test_amount_positive_and_expiry_after_issue(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1")
        assert issued.amount > 0
        assert issued.expires_at > issued.created_at
        assert issued.expires_at - issued.created_at == 300

    def test_fee_split_floors(self, db, catalog, terms):
        catalog["asset"].price = 10_019
        db.commit()
        issued = _service(db, terms).issue_challenge("asset-1")
        # 10019 * 500 / 10000 = 500.95
        assert issued.platform_fee == 500
        assert issued.creator_amount == 9_519
        assert issued.platform_wallet == PLATFORM_WALLET
        assert issued.fee_bps == 500

    def test_layer_price_and_recipient(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1", "layer-commercial")
        assert issued.amount == 50_000
        assert issued.recipient == LAYER_RECIPIENT
        assert issued.unlock_layer_id == "layer-commercial"
        assert issued.unlock_layer_index == 3

    def test_layer_without_recipient_uses_asset_recipient(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1", "layer-hd")
        assert issued.amount == 20_000
        assert issued.recipient == RECIPIENT

    def test_custom_lifetime(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1", expires_in=60)
        assert issued.expires_at - issued.created_at == 60

    def test_non_positive_lifetime_rejected(self, db, catalog, terms):
        with pytest.raises(ValidationError):
            _service(db, terms).issue_challenge("asset-1", expires_in=0)

    def test_unknown_asset(self, db, catalog, terms):
        with pytest.raises(NotFoundError) as exc_info:
            _service(db, terms).issue_challenge("missing")
        assert exc_info.value.code == "asset_not_found"
        assert exc_info.value.status_code == 404

    def test_layer_of_another_asset_is_not_found(self, db, catalog, terms):
        with pytest.raises(NotFoundError) as exc_info:
            _service(db, terms).issue_challenge("asset-2", "layer-hd")
        assert exc_info.value.code == "unlock_layer_not_found"

    def test_zero_price_refused(self, db, catalog, terms):
        catalog["other"].price = 0
        db.commit()
        with pytest.raises(ValidationError) as exc_info:
            _service(db, terms).issue_challenge("asset-2")
        assert exc_info.value.code == "bad_request"
        assert db.query(PaymentChallenge).count() == 0

    def test_reissue_is_idempotent(self, db, catalog, terms):
        service = _service(db, terms)
        first = service.issue_challenge("asset-1")
        second = service.issue_challenge("asset-1")
        assert first.payment_id == second.payment_id
        assert first.payment_request_token == second.payment_request_token
        assert db.query(PaymentChallenge).count() == 1

    def test_id_is_content_digest(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1")
        expected = challenge_id(
            "asset-1", None, 10_000, TOKEN, RECIPIENT, "base-sepolia", issued.expires_at
        )
        assert issued.payment_id == expected
        assert challenge_id("asset-1", None, 10_001, TOKEN, RECIPIENT, "base-sepolia", issued.expires_at) != expected


class TestLifecycle:
    def test_lookup_and_discard(self, db, catalog, terms):
        service = _service(db, terms)
        issued = service.issue_challenge("asset-1")
        row = service.get_by_request_token(issued.payment_request_token)
        assert row is not None and row.id == issued.payment_id
        service.discard(row)
        db.commit()
        assert service.get_by_request_token(issued.payment_request_token) is None

    def test_is_expired(self, db, catalog, terms):
        issued = _service(db, terms).issue_challenge("asset-1")
        row = _service(db, terms).get_by_request_token(issued.payment_request_token)
        assert not _service(db, terms).is_expired(row)
        assert _service(db, terms, NOW + timedelta(seconds=301)).is_expired(row)

    def test_purge_expired(self, db, catalog, terms):
        _service(db, terms).issue_challenge("asset-1")
        _service(db, terms, NOW + timedelta(seconds=600)).issue_challenge("asset-1", "layer-hd")
        deleted = _service(db, terms, NOW + timedelta(seconds=400)).purge_expired()
        assert deleted == 1
        assert db.query(PaymentChallenge).count() == 1
