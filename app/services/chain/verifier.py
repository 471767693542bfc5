"""
Transfer verification: does an on-chain ERC-20 transfer satisfy a payment challenge?

verify_transfer is a single read of the chain. Callers that run right after a
client claims to have paid use verify_with_retry, which polls while the
receipt is not yet available.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Protocol

from web3 import Web3

from app.core.errors import VerificationFailure
from app.utils.metrics import verification_failures_total


logger = logging.getLogger(__name__)

TRANSFER_TOPIC = "0x" + bytes(Web3.keccak(text="Transfer(address,address,uint256)")).hex()

# 1 / 10000 = 0.01% slack for integer rounding in upstream fee arithmetic
TOLERANCE_DIVISOR = 10_000


class ChainReader(Protocol):
    def get_receipt(self, tx_hash: str) -> Mapping[str, Any] | None: ...

    def get_transaction(self, tx_hash: str) -> Mapping[str, Any] | None: ...

    def token_decimals(self, token_address: str) -> int: ...


@dataclass(frozen=True)
class DecodedTransfer:
    sender: str
    recipient: str
    value: int


@dataclass(frozen=True)
class TransferResult:
    payer: str
    recipient: str
    amount: int
    block_number: int | None


def _hex(value: Any) -> str:
    """Normalize HexBytes / bytes / str to lowercase 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def _topic_address(topic: Any) -> str:
    # Indexed address = last 20 bytes of the 32-byte topic
    return "0x" + _hex(topic)[-40:]


def within_tolerance(value: int, expected: int) -> bool:
    return abs(value - expected) <= expected // TOLERANCE_DIVISOR


def decode_transfers(receipt: Mapping[str, Any], token_address: str) -> Iterator[DecodedTransfer]:
    """Yield every Transfer event emitted by token_address, in log order."""
    token = token_address.lower()
    for log_entry in receipt.get("logs") or []:
        if str(log_entry.get("address", "")).lower() != token:
            continue
        topics = log_entry.get("topics") or []
        if len(topics) != 3 or _hex(topics[0]) != TRANSFER_TOPIC:
            continue
        data = _hex(log_entry.get("data", b""))[2:]
        if not data:
            continue
        yield DecodedTransfer(
            sender=_topic_address(topics[1]),
            recipient=_topic_address(topics[2]),
            value=int(data[:64], 16),
        )


class TransferVerifier:
    def __init__(self, chain: ChainReader, explorer_base_url: str = "") -> None:
        self.chain = chain
        self.explorer_base_url = explorer_base_url.rstrip("/")

    def explorer_url(self, tx_hash: str) -> str | None:
        if not self.explorer_base_url:
            return None
        return f"{self.explorer_base_url}/tx/{tx_hash}"

    def _fail(self, reason: str, message: str, tx_hash: str, **amounts: int) -> VerificationFailure:
        verification_failures_total.labels(reason=reason).inc()
        logger.info(
            "transfer_verification_failed",
            extra={"tx_hash": tx_hash, "reason": reason, **amounts},
        )
        return VerificationFailure(
            reason,
            message,
            tx_hash=tx_hash,
            explorer_url=self.explorer_url(tx_hash),
            **amounts,
        )

    def verify_transfer(
        self,
        tx_hash: str,
        expected_recipient: str,
        expected_amount: int,
        token_address: str,
        expected_decimals: int | None = None,
    ) -> TransferResult:
        """
        Confirm tx_hash carries a transfer of expected_amount (within 0.01%)
        of token_address to expected_recipient.

        Raises VerificationFailure with the failing reason; chain I/O errors
        propagate as InfrastructureError from the chain client.
        """
        receipt = self.chain.get_receipt(tx_hash)
        if receipt is None or self.chain.get_transaction(tx_hash) is None:
            raise self._fail("tx_not_found", "Transaction not found", tx_hash)
        if int(receipt.get("status", 0)) != 1:
            raise self._fail("tx_failed", "Transaction failed", tx_hash)

        transfers = list(decode_transfers(receipt, token_address))
        if not transfers:
            raise self._fail("no_credit", "Transaction carries no transfer of the payment token", tx_hash)

        recipient = expected_recipient.lower()
        match = next((t for t in transfers if t.recipient == recipient), None)
        if match is None:
            raise self._fail("no_transfer_to_recipient", "No transfer found to expected recipient", tx_hash)

        if not within_tolerance(match.value, expected_amount):
            raise self._fail(
                "amount_mismatch",
                f"Amount mismatch: expected {expected_amount}, got {match.value}",
                tx_hash,
                received=match.value,
                required=expected_amount,
            )

        if expected_decimals is not None:
            decimals = self.chain.token_decimals(token_address)
            if decimals != expected_decimals:
                raise self._fail(
                    "bad_decimals",
                    f"Token decimals mismatch: expected {expected_decimals}, got {decimals}",
                    tx_hash,
                    received=decimals,
                    required=expected_decimals,
                )

        if match.sender == recipient:
            # Allowed; see DESIGN.md (self-payment)
            logger.warning("self_payment_accepted", extra={"tx_hash": tx_hash, "payer": match.sender})

        block_number = receipt.get("blockNumber")
        return TransferResult(
            payer=match.sender,
            recipient=match.recipient,
            amount=match.value,
            block_number=int(block_number) if block_number is not None else None,
        )


def verify_with_retry(
    verifier: TransferVerifier,
    tx_hash: str,
    *,
    attempts: int = 5,
    backoff_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    **expected: Any,
) -> TransferResult:
    """
    Poll for a not-yet-confirmed transaction: after failed attempt N sleep
    N * backoff (1s, 2s, 3s, 4s, 5s for five attempts), then surface tx_not_found.
    Only tx_not_found is retried; every other failure and every infrastructure
    error is raised at once.
    """
    not_found = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            return verifier.verify_transfer(tx_hash, **expected)
        except VerificationFailure as e:
            if e.reason != "tx_not_found":
                raise
            not_found = e
            logger.info("transfer_not_yet_visible", extra={"tx_hash": tx_hash, "attempt": attempt})
            sleep(backoff_seconds * attempt)
    raise not_found
