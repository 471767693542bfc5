"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
import re

from pydantic import field_validator
from pydantic_settings import BaseSettings

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Secrets and chain endpoints have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma-separated origins. Empty = default list in app.main.
    cors_origins: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    db_pool_size: int = 10
    db_max_overflow: int = 10  # pool_size + max_overflow = hard cap on connections
    db_connect_timeout: int = 5

    # ===========================================
    # REDIS (circuit breaker state)
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"

    # ===========================================
    # CHAIN (EVM RPC + payment token)
    # ===========================================
    chain_rpc_url: str  # Required, no default
    chain_network: str = "base-sepolia"
    chain_rpc_timeout: float = 10.0
    token_address: str  # Required, no default (USDC contract)
    token_symbol: str = "USDC"
    token_decimals: int = 6
    # Also compare on-chain decimals() against token_decimals before accepting a payment
    verify_token_decimals: bool = False
    explorer_base_url: str = "https://sepolia.basescan.org"

    # ===========================================
    # PAYMENT PROTOCOL
    # ===========================================
    challenge_ttl_seconds: int = 300  # 5 minutes
    platform_fee_bps: int = 500  # 5.00%
    platform_wallet_address: str = ""
    # Caller-side receipt polling: attempt N sleeps N * backoff seconds
    verify_max_attempts: int = 5
    verify_backoff_seconds: float = 1.0

    # ===========================================
    # ACCESS TOKENS (JWT)
    # ===========================================
    jwt_secret_key: str  # Required, no default
    jwt_algorithm: str = "HS256"
    # Paid licenses are permanent: ~10 years
    access_token_ttl_seconds: int = 10 * 365 * 24 * 3600

    # ===========================================
    # LICENSING SERVICE (optional)
    # ===========================================
    licensing_api_url: str = ""  # Empty = licenses are recorded without minting
    licensing_api_key: str = ""
    licensing_timeout: float = 15.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("token_address")
    @classmethod
    def validate_token_address(cls, v: str) -> str:
        if not _ADDRESS_RE.match(v):
            raise ValueError("token_address must be a 0x-prefixed 20-byte hex address")
        return v

    @field_validator("platform_wallet_address")
    @classmethod
    def validate_platform_wallet(cls, v: str) -> str:
        if v and not _ADDRESS_RE.match(v):
            raise ValueError("platform_wallet_address must be a 0x-prefixed 20-byte hex address")
        return v

    @field_validator("platform_fee_bps")
    @classmethod
    def validate_fee_bps(cls, v: int) -> int:
        if not 0 <= v < 10_000:
            raise ValueError("platform_fee_bps must be in [0, 10000)")
        return v

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure token signing secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("jwt_secret_key must be at least 16 characters")
        if v in ("change-me-in-production", "changeme", "secret", "password"):
            raise ValueError("jwt_secret_key is too weak, please change it")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
