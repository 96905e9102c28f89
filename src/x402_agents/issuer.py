from decimal import Decimal
from typing import Optional, Union

from x402_agents.amounts import USDC_DECIMALS, format_units, parse_units
from x402_agents.types import SCHEME_ERC20, PaymentRequiredResponse, PaymentRequirement

PAYMENT_REQUIRED_STATUS = 402


class RequirementIssuer:
    """Builds the 402 challenge for a priced resource.

    The price is converted to atomic units once; every challenge gets a
    fresh, immutable :class:`PaymentRequirement`.

    Args:
        price: Human amount, e.g. "0.05" or "$0.05"
        pay_to: Address receiving the payment
        asset: Token contract the payment is denominated in
        chain_id: Network the payment must settle on
        decimals: Decimals of ``asset``
        symbol: Asset symbol used in the challenge message
    """

    def __init__(
        self,
        price: Union[str, int, Decimal],
        pay_to: str,
        asset: Optional[str] = None,
        chain_id: Optional[int] = None,
        decimals: int = USDC_DECIMALS,
        symbol: str = "USDC",
    ):
        amount = parse_units(price, decimals)
        if amount <= 0:
            raise ValueError(f"Price must be greater than zero, got {price}")
        if not pay_to:
            raise ValueError("pay_to address is required")

        self.amount = amount
        self.pay_to = pay_to
        self.asset = asset
        self.chain_id = chain_id
        self.decimals = decimals
        self.symbol = symbol

    @property
    def price(self) -> str:
        return format_units(self.amount, self.decimals)

    def requirement(self) -> PaymentRequirement:
        return PaymentRequirement(
            scheme=SCHEME_ERC20,
            amount=str(self.amount),
            pay_to=self.pay_to,
            asset=self.asset,
            chain_id=self.chain_id,
        )

    def challenge(self) -> PaymentRequiredResponse:
        return PaymentRequiredResponse(
            payment_requirements=[self.requirement()],
            message=f"Payment of {self.price} {self.symbol} required to access this resource",
        )
