"""
FastAPI dependencies: process-wide collaborators (built once, lazily) and
per-request services bound to the request's DB session.
Tests swap any of these through app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.paywall.config import get_access_token_ttl_seconds, get_challenge_ttl_seconds
from app.paywall.gate import ResourceGate
from app.services.chain.client import ChainClient
from app.services.chain.verifier import TransferVerifier
from app.services.challenges.service import ChallengeTerms
from app.services.circuit_breaker import get_circuit_breaker
from app.services.ledger.service import EntitlementLedger
from app.services.licensing.client import HttpLicensingClient, LicenseMinter
from app.services.payments.service import PaymentService
from app.services.tokens.service import AccessTokenService


@lru_cache
def get_chain_client() -> ChainClient:
    return ChainClient.from_url(
        settings.chain_rpc_url,
        settings.chain_network,
        timeout=settings.chain_rpc_timeout,
        breaker=get_circuit_breaker("chain_rpc"),
    )


@lru_cache
def get_token_service() -> AccessTokenService:
    return AccessTokenService(
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        default_ttl=get_access_token_ttl_seconds(),
    )


@lru_cache
def get_licensing_client() -> LicenseMinter | None:
    if not settings.licensing_api_url:
        return None
    return HttpLicensingClient(
        settings.licensing_api_url,
        api_key=settings.licensing_api_key,
        timeout=settings.licensing_timeout,
    )


@lru_cache
def get_challenge_terms() -> ChallengeTerms:
    return ChallengeTerms(
        token_address=settings.token_address,
        token_symbol=settings.token_symbol,
        decimals=settings.token_decimals,
        network=settings.chain_network,
        fee_bps=settings.platform_fee_bps,
        platform_wallet=settings.platform_wallet_address,
        ttl_seconds=get_challenge_ttl_seconds(),
    )


def get_verifier(chain: ChainClient = Depends(get_chain_client)) -> TransferVerifier:
    return TransferVerifier(chain, settings.explorer_base_url)


def get_payment_service(
    db: Session = Depends(get_db),
    verifier: TransferVerifier = Depends(get_verifier),
    tokens: AccessTokenService = Depends(get_token_service),
    terms: ChallengeTerms = Depends(get_challenge_terms),
    licensing: LicenseMinter | None = Depends(get_licensing_client),
) -> PaymentService:
    return PaymentService(
        db,
        verifier,
        tokens,
        terms,
        licensing,
        retry_attempts=settings.verify_max_attempts,
        retry_backoff_seconds=settings.verify_backoff_seconds,
        check_decimals=settings.verify_token_decimals,
    )


def get_resource_gate(
    db: Session = Depends(get_db),
    tokens: AccessTokenService = Depends(get_token_service),
    terms: ChallengeTerms = Depends(get_challenge_terms),
) -> ResourceGate:
    return ResourceGate(db, tokens, terms)


def get_ledger(db: Session = Depends(get_db)) -> EntitlementLedger:
    return EntitlementLedger(db)
