"""Token amount helpers: platform fee split and display formatting of minor units."""
from decimal import Decimal


def split_platform_fee(amount: int, fee_bps: int) -> tuple[int, int]:
    """Return (creator_amount, platform_fee); fee is floor(amount * bps / 10000)."""
    fee = amount * fee_bps // 10_000
    return amount - fee, fee


def fee_percentage(fee_bps: int) -> str:
    """500 -> "5.00"."""
    return f"{Decimal(fee_bps) / Decimal(100):.2f}"


def format_token_amount(amount: int, decimals: int, symbol: str) -> str:
    """10000 minor units of a 6-decimal token -> "0.01 USDC"."""
    value = Decimal(amount).scaleb(-decimals)
    text = format(value.normalize(), "f") if value else "0"
    return f"{text} {symbol}"
