from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CamelModel(BaseModel):
    # Wire format is camelCase; python side keeps snake_case
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChallengeIn(CamelModel):
    asset_id: str = Field(..., alias="assetId", min_length=1)
    unlock_layer_id: str | None = Field(None, alias="unlockLayerId")


class ChallengeEcho(CamelModel):
    """The challenge the client received, echoed back on verify."""

    expires_at: int | None = Field(None, alias="expiresAt")
    payment_id: str | None = Field(None, alias="paymentId")


class VerifyIn(CamelModel):
    transaction_hash: str = Field(..., alias="transactionHash", min_length=1)
    platform_transaction_hash: str | None = Field(None, alias="platformTransactionHash")
    payment_request_token: str = Field(..., alias="paymentRequestToken", min_length=1)
    asset_id: str = Field(..., alias="assetId", min_length=1)
    unlock_layer_id: str | None = Field(None, alias="unlockLayerId")
    challenge: ChallengeEcho | None = None

    @field_validator("transaction_hash", "platform_transaction_hash")
    @classmethod
    def normalize_hash(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @field_validator("unlock_layer_id", mode="before")
    @classmethod
    def empty_layer_is_base(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LicenseOut(CamelModel):
    license_type: str = Field(..., serialization_alias="licenseType")
    external_license_id: str | None = Field(None, serialization_alias="licenseId")
    license_token_id: str | None = Field(None, serialization_alias="tokenId")


class VerifyOut(CamelModel):
    access_token: str = Field(..., serialization_alias="accessToken")
    transaction_hash: str = Field(..., serialization_alias="transactionHash")
    asset_id: str = Field(..., serialization_alias="assetId")
    unlock_layer_id: str | None = Field(None, serialization_alias="unlockLayerId")
    license: LicenseOut | None = None
    replayed: bool = False


class UserLicenseOut(CamelModel):
    transaction_hash: str = Field(..., serialization_alias="transactionHash")
    asset_id: str = Field(..., serialization_alias="assetId")
    unlock_layer_id: str | None = Field(None, serialization_alias="unlockLayerId")
    license_type: str = Field(..., serialization_alias="licenseType")
    external_license_id: str | None = Field(None, serialization_alias="licenseId")
    license_token_id: str | None = Field(None, serialization_alias="tokenId")
    amount_paid: str = Field(..., serialization_alias="amountPaid")
    purchased_at: int = Field(..., serialization_alias="purchasedAt")


class UserLicensesOut(CamelModel):
    wallet: str
    licenses: list[UserLicenseOut]


class EarningsOut(CamelModel):
    address: str
    total_payments: int = Field(..., serialization_alias="totalPayments")
    gross_amount: str = Field(..., serialization_alias="grossAmount")
    creator_amount: str = Field(..., serialization_alias="creatorAmount")
    platform_fees: str = Field(..., serialization_alias="platformFees")
    unique_assets_sold: int = Field(..., serialization_alias="uniqueAssetsSold")
    token_symbol: str = Field(..., serialization_alias="tokenSymbol")
    decimals: int
    formatted_creator_amount: str = Field(..., serialization_alias="formattedCreatorAmount")


class TransactionAssetOut(CamelModel):
    id: str
    title: str | None = None
    thumbnail_url: str | None = Field(None, serialization_alias="thumbnailUrl")


class TransactionLicenseOut(CamelModel):
    type: str | None = None
    license_id: str | None = Field(None, serialization_alias="licenseId")


class ProviderTransactionOut(CamelModel):
    id: str
    transaction_hash: str = Field(..., serialization_alias="transactionHash")
    platform_transaction_hash: str | None = Field(None, serialization_alias="platformTransactionHash")
    unlock_layer_id: str | None = Field(None, serialization_alias="unlockLayerId")
    amount_paid: str = Field(..., serialization_alias="amountPaid")
    creator_amount: str = Field(..., serialization_alias="creatorAmount")
    formatted_amount: str = Field(..., serialization_alias="formattedAmount")
    block_number: int | None = Field(None, serialization_alias="blockNumber")
    verified_at: int = Field(..., serialization_alias="verifiedAt")
    asset: TransactionAssetOut
    buyer: str
    license: TransactionLicenseOut | None = None


class ProviderTransactionsOut(CamelModel):
    address: str
    transactions: list[ProviderTransactionOut]
    total: int
    limit: int
    offset: int


class ProviderStatsOut(CamelModel):
    address: str
    total_assets: int = Field(..., serialization_alias="totalAssets")
    total_sales: int = Field(..., serialization_alias="totalSales")
    total_revenue: str = Field(..., serialization_alias="totalRevenue")
    licenses_minted: int = Field(..., serialization_alias="licensesMinted")
    token_symbol: str = Field(..., serialization_alias="tokenSymbol")
    decimals: int
