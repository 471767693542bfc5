"""
Shared fixtures: required env vars, in-memory SQLite, a seeded catalog,
and fakes for the chain provider and the licensing service.
"""
import os

# Settings() runs at import time and has required fields
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CHAIN_RPC_URL", "http://localhost:8545")
os.environ.setdefault("TOKEN_ADDRESS", "0x036cbd53842c5426634e7929541ec2318f3dcf7e")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-0123456789abcdef")
os.environ.setdefault("PLATFORM_WALLET_ADDRESS", "0x" + "f" * 40)
os.environ.setdefault("EXPLORER_BASE_URL", "https://explorer.test")

from itertools import count

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models.asset import Asset, UnlockLayer
from app.models import entitlement, payment_challenge, verified_payment  # noqa: F401
from app.paywall.proof import proof_message
from app.services.chain.verifier import TRANSFER_TOPIC, TransferVerifier
from app.services.challenges.service import ChallengeTerms
from app.services.licensing.client import LicenseGrant, LicensingError
from app.services.tokens.service import AccessTokenService

TOKEN = os.environ["TOKEN_ADDRESS"]
PLATFORM_WALLET = os.environ["PLATFORM_WALLET_ADDRESS"]
RECIPIENT = "0x" + "a" * 40
LAYER_RECIPIENT = "0x" + "c" * 40
PAYER = "0x" + "b" * 40

# Wallets with known keys, for signed payment proofs
BUYER = Account.from_key("0x" + "4c" * 32)
STRANGER = Account.from_key("0x" + "5d" * 32)

_tx_counter = count(1)


def make_tx_hash() -> str:
    return "0x" + format(next(_tx_counter), "064x")


def sign_proof(account, tx_hash: str, asset_id: str, unlock_layer_id: str | None = None) -> str:
    message = encode_defunct(text=proof_message(tx_hash, asset_id, unlock_layer_id))
    return "0x" + bytes(account.sign_message(message).signature).hex()


def _topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


class FakeChain:
    """In-memory chain: receipts keyed by tx hash, ERC-20 Transfer logs only."""

    def __init__(self, decimals: int = 6) -> None:
        self.receipts: dict[str, dict] = {}
        self.transactions: dict[str, dict] = {}
        self.decimals = decimals
        self.hidden_reads: dict[str, int] = {}
        self.receipt_calls = 0

    def add_transfer(
        self,
        tx_hash: str,
        sender: str,
        recipient: str,
        value: int,
        *,
        status: int = 1,
        token: str = TOKEN,
        block_number: int = 100,
    ) -> str:
        log = {
            "address": token,
            "topics": [TRANSFER_TOPIC, _topic(sender), _topic(recipient)],
            "data": "0x" + format(value, "064x"),
        }
        receipt = self.receipts.setdefault(
            tx_hash, {"status": status, "blockNumber": block_number, "logs": []}
        )
        receipt["logs"].append(log)
        self.transactions[tx_hash] = {"hash": tx_hash, "from": sender}
        return tx_hash

    def add_empty(self, tx_hash: str, *, status: int = 1) -> str:
        self.receipts[tx_hash] = {"status": status, "blockNumber": 100, "logs": []}
        self.transactions[tx_hash] = {"hash": tx_hash}
        return tx_hash

    def hide_for(self, tx_hash: str, reads: int) -> None:
        """Report the receipt as missing for the next `reads` lookups."""
        self.hidden_reads[tx_hash] = reads

    def get_receipt(self, tx_hash: str):
        self.receipt_calls += 1
        if self.hidden_reads.get(tx_hash, 0) > 0:
            self.hidden_reads[tx_hash] -= 1
            return None
        return self.receipts.get(tx_hash)

    def get_transaction(self, tx_hash: str):
        return self.transactions.get(tx_hash)

    def token_decimals(self, token_address: str) -> int:
        return self.decimals


class FakeLicensing:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str, str]] = []

    def mint_license(self, scope_id: str, licensee: str, license_type: str) -> LicenseGrant:
        self.calls.append((scope_id, licensee, license_type))
        if self.fail:
            raise LicensingError("licensing service unavailable")
        return LicenseGrant(token_id=str(len(self.calls)), license_id=f"lic-{len(self.calls)}")


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    """One asset (base price 10000) with an hd layer and a commercial layer paid to its own wallet."""
    asset = Asset(
        id="asset-1",
        title="Sunset over the bay",
        description="Original photograph",
        price=10_000,
        currency="USDC",
        recipient_address=RECIPIENT,
        creator_address=RECIPIENT,
        content_url="https://cdn.test/asset-1/original.png",
        content_cid="bafy-original",
        thumbnail_url="https://cdn.test/asset-1/thumb.png",
        file_type="image/png",
        license_scope_id="ip-1",
    )
    other = Asset(
        id="asset-2",
        title="Night city",
        price=20_000,
        currency="USDC",
        recipient_address=RECIPIENT,
        creator_address=RECIPIENT,
        content_url="https://cdn.test/asset-2/original.png",
    )
    hd = UnlockLayer(
        id="layer-hd",
        asset_id="asset-1",
        layer_index=1,
        name="HD",
        price=20_000,
        unlock_type="hd",
        content_url="https://cdn.test/asset-1/hd.png",
    )
    commercial = UnlockLayer(
        id="layer-commercial",
        asset_id="asset-1",
        layer_index=3,
        name="Commercial",
        price=50_000,
        unlock_type="commercial",
        recipient_address=LAYER_RECIPIENT,
        content_url="https://cdn.test/asset-1/commercial.zip",
    )
    db.add_all([asset, other, hd, commercial])
    db.commit()
    return {"asset": asset, "other": other, "hd": hd, "commercial": commercial}


@pytest.fixture
def terms():
    return ChallengeTerms(
        token_address=TOKEN,
        token_symbol="USDC",
        decimals=6,
        network="base-sepolia",
        fee_bps=500,
        platform_wallet=PLATFORM_WALLET,
        ttl_seconds=300,
    )


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def verifier(chain):
    return TransferVerifier(chain, "https://explorer.test")


@pytest.fixture
def licensing():
    return FakeLicensing()


@pytest.fixture
def tokens():
    return AccessTokenService("test-secret-key-0123456789abcdef", default_ttl=10 * 365 * 24 * 3600)
