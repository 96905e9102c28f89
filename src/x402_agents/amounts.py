from decimal import Decimal, InvalidOperation
from typing import Union

USDC_DECIMALS = 6
NATIVE_DECIMALS = 18


def parse_units(amount: Union[str, int, float, Decimal], decimals: int = USDC_DECIMALS) -> int:
    """Convert a human amount into the asset's smallest unit.

    Args:
        amount: Amount such as "0.05", "$0.05", 1 or Decimal("0.05")
        decimals: Number of decimals of the asset

    Returns:
        Amount in atomic units

    Raises:
        ValueError: If the amount is not a number or has more precision
            than the asset supports
    """
    if isinstance(amount, str):
        amount = amount.strip().lstrip("$")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount} cannot be represented with {decimals} decimals"
        )
    return int(scaled)


def format_units(value: Union[int, str], decimals: int = USDC_DECIMALS) -> str:
    """Render an atomic amount in human units, e.g. 50000 -> "0.05"."""
    scaled = Decimal(int(value)).scaleb(-decimals)
    text = format(scaled.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def to_decimal(value: Union[int, str], decimals: int = USDC_DECIMALS) -> Decimal:
    return Decimal(int(value)).scaleb(-decimals)
