"""Tests for TransferVerifier: receipt decoding, tolerance, failure reasons, caller-side polling."""
from unittest.mock import MagicMock

import pytest

from app.core.errors import VerificationFailure
from app.services.chain.verifier import (
    TransferVerifier,
    decode_transfers,
    verify_with_retry,
    within_tolerance,
)
from conftest import PAYER, RECIPIENT, TOKEN, FakeChain, make_tx_hash


def _verify(verifier, tx_hash, amount=10_000, **kwargs):
    return verifier.verify_transfer(tx_hash, RECIPIENT, amount, TOKEN, **kwargs)


class TestTolerance:
    def test_exact_amount(self):
        assert within_tolerance(10_000, 10_000)

    def test_one_unit_over_on_10000(self):
        assert within_tolerance(10_001, 10_000)
        assert within_tolerance(9_999, 10_000)

    def test_outside_tolerance(self):
        assert not within_tolerance(9_989, 10_000)
        assert not within_tolerance(10_002, 10_000)

    def test_small_amounts_need_exact_match(self):
        # 9999 // 10000 == 0
        assert within_tolerance(9_999, 9_999)
        assert not within_tolerance(9_998, 9_999)


class TestDecodeTransfers:
    def test_ignores_other_token_logs(self):
        chain = FakeChain()
        tx = make_tx_hash()
        chain.add_transfer(tx, PAYER, RECIPIENT, 5, token="0x" + "1" * 40)
        chain.add_transfer(tx, PAYER, RECIPIENT, 10_000)
        transfers = list(decode_transfers(chain.receipts[tx], TOKEN))
        assert len(transfers) == 1
        assert transfers[0].value == 10_000
        assert transfers[0].sender == PAYER
        assert transfers[0].recipient == RECIPIENT

    def test_ignores_non_transfer_topics(self):
        chain = FakeChain()
        tx = make_tx_hash()
        chain.add_transfer(tx, PAYER, RECIPIENT, 10_000)
        chain.receipts[tx]["logs"][0]["topics"][0] = "0x" + "9" * 64
        assert list(decode_transfers(chain.receipts[tx], TOKEN)) == []

    def test_accepts_bytes_topics(self):
        chain = FakeChain()
        tx = make_tx_hash()
        chain.add_transfer(tx, PAYER, RECIPIENT, 42)
        log = chain.receipts[tx]["logs"][0]
        log["topics"] = [bytes.fromhex(t[2:]) for t in log["topics"]]
        log["data"] = bytes.fromhex(log["data"][2:])
        (transfer,) = decode_transfers(chain.receipts[tx], TOKEN.upper().replace("0X", "0x"))
        assert transfer.value == 42
        assert transfer.recipient == RECIPIENT


class TestVerifyTransfer:
    def test_exact_transfer_accepted(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 10_000, block_number=777)
        result = _verify(verifier, tx)
        assert result.payer == PAYER
        assert result.amount == 10_000
        assert result.block_number == 777

    def test_recipient_match_is_case_insensitive(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 10_000)
        result = verifier.verify_transfer(tx, RECIPIENT.upper().replace("0X", "0x"), 10_000, TOKEN)
        assert result.recipient == RECIPIENT

    def test_short_payment_rejected_with_amounts(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 9_989)
        with pytest.raises(VerificationFailure) as exc_info:
            _verify(verifier, tx)
        err = exc_info.value
        assert err.code == "bad_amount"
        assert err.reason == "amount_mismatch"
        assert err.received == 9_989
        assert err.required == 10_000
        body = err.to_body()
        assert body["received"] == "9989"
        assert body["required"] == "10000"
        assert body["explorerUrl"] == f"https://explorer.test/tx/{tx}"

    def test_missing_receipt(self, verifier):
        with pytest.raises(VerificationFailure) as exc_info:
            _verify(verifier, make_tx_hash())
        assert exc_info.value.reason == "tx_not_found"
        assert exc_info.value.code == "invalid_tx"

    def test_reverted_transaction(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 10_000, status=0)
        with pytest.raises(VerificationFailure) as exc_info:
            _verify(verifier, tx)
        assert exc_info.value.reason == "tx_failed"
        assert exc_info.value.code == "invalid_tx"

    def test_no_token_transfer(self, chain, verifier):
        tx = chain.add_empty(make_tx_hash())
        with pytest.raises(VerificationFailure) as exc_info:
            _verify(verifier, tx)
        assert exc_info.value.code == "no_credit"

    def test_transfer_to_someone_else(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, "0x" + "d" * 40, 10_000)
        with pytest.raises(VerificationFailure) as exc_info:
            _verify(verifier, tx)
        assert exc_info.value.code == "no_transfer_found"

    def test_first_transfer_to_recipient_wins(self, chain, verifier):
        tx = make_tx_hash()
        chain.add_transfer(tx, PAYER, "0x" + "d" * 40, 1)
        chain.add_transfer(tx, PAYER, RECIPIENT, 10_000)
        chain.add_transfer(tx, PAYER, RECIPIENT, 1)
        assert _verify(verifier, tx).amount == 10_000

    def test_decimals_checked_when_requested(self, chain):
        chain.decimals = 18
        verifier = TransferVerifier(chain)
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 10_000)
        with pytest.raises(VerificationFailure) as exc_info:
            _verify(verifier, tx, expected_decimals=6)
        assert exc_info.value.code == "bad_decimals"
        assert "explorerUrl" not in exc_info.value.to_body()
        # Not requested -> not checked
        assert _verify(verifier, tx).amount == 10_000

    def test_self_payment_accepted(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), RECIPIENT, RECIPIENT, 10_000)
        assert _verify(verifier, tx).payer == RECIPIENT


class TestVerifyWithRetry:
    def test_polls_until_receipt_visible(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 10_000)
        chain.hide_for(tx, 2)
        sleep = MagicMock()
        result = verify_with_retry(
            verifier, tx, sleep=sleep,
            expected_recipient=RECIPIENT, expected_amount=10_000, token_address=TOKEN,
        )
        assert result.amount == 10_000
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self, chain, verifier):
        sleep = MagicMock()
        with pytest.raises(VerificationFailure) as exc_info:
            verify_with_retry(
                verifier, make_tx_hash(), attempts=5, backoff_seconds=1.0, sleep=sleep,
                expected_recipient=RECIPIENT, expected_amount=10_000, token_address=TOKEN,
            )
        assert exc_info.value.reason == "tx_not_found"
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert chain.receipt_calls == 5

    def test_other_failures_not_retried(self, chain, verifier):
        tx = chain.add_transfer(make_tx_hash(), PAYER, RECIPIENT, 9_989)
        sleep = MagicMock()
        with pytest.raises(VerificationFailure) as exc_info:
            verify_with_retry(
                verifier, tx, sleep=sleep,
                expected_recipient=RECIPIENT, expected_amount=10_000, token_address=TOKEN,
            )
        assert exc_info.value.code == "bad_amount"
        sleep.assert_not_called()
        assert chain.receipt_calls == 1
