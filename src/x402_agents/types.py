from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SCHEME_ERC20 = "erc20"

ReceiptStatus = Literal["pending", "success", "failed"]
HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]


def _validate_atomic_amount(v: Any) -> str:
    if isinstance(v, bool):
        raise ValueError("amount must be an integer encoded as a string")
    if isinstance(v, int):
        v = str(v)
    if not isinstance(v, str):
        raise ValueError("amount must be an integer encoded as a string")
    try:
        value = int(v)
    except ValueError:
        raise ValueError("amount must be an integer encoded as a string")
    if value < 0:
        raise ValueError("amount must not be negative")
    return str(value)


class PaymentRequirement(BaseModel):
    """What a caller must pay to unlock a resource.

    ``amount`` is expressed in the asset's smallest unit.
    """

    scheme: str = SCHEME_ERC20
    amount: str
    pay_to: str = Field(alias="to")
    asset: Optional[str] = Field(None, alias="token")
    chain_id: Optional[int] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )

    @field_validator("amount", mode="before")
    def validate_amount(cls, v):
        v = _validate_atomic_amount(v)
        if int(v) <= 0:
            raise ValueError("amount must be greater than zero")
        return v

    @property
    def atomic_amount(self) -> int:
        return int(self.amount)


# Returned by a server as json alongside a 402 response code
class PaymentRequiredResponse(BaseModel):
    payment_requirements: list[PaymentRequirement]
    message: str

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaymentProof(BaseModel):
    """Caller-supplied claim that a transfer has been made."""

    tx_hash: str = Field(min_length=1)
    amount: str
    pay_to: str = Field(alias="to")
    asset: Optional[str] = Field(None, alias="token")
    payer: Optional[str] = Field(None, alias="from")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("amount", mode="before")
    def validate_amount(cls, v):
        return _validate_atomic_amount(v)


class TokenTransfer(BaseModel):
    """A value movement observed in a transaction.

    ``token`` is the asset contract, or ``None`` for the native currency.
    """

    token: Optional[str] = None
    from_: str = Field(alias="from")
    to: str
    value: int

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )


class TransactionReceipt(BaseModel):
    status: ReceiptStatus
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    # None when the ledger cannot report transfer data
    transfers: Optional[list[TokenTransfer]] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class VerificationReceipt(BaseModel):
    status: Literal["verified"] = "verified"
    tx_hash: str
    amount: str
    timestamp: str

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class AgentRecord(BaseModel):
    id: str
    name: str
    services: list[str]
    address: str
    reputation: int = Field(100, ge=0, le=1000)
    last_seen: datetime

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ServiceInfo(BaseModel):
    """Public description of a paid endpoint offered by a service agent."""

    name: str
    endpoint: str
    price: str
    description: str = ""
    method: HttpMethod = "GET"

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )


class FacilitatorRequest(BaseModel):
    payment_payload: Optional[PaymentProof] = None
    payment_requirements: Optional[PaymentRequirement] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class VerifyResponse(BaseModel):
    valid: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[str] = None
    gas_used: Optional[str] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SettleResponse(BaseModel):
    settled: bool
    transaction_hash: Optional[str] = None
    status: Optional[str] = None
    settlement_time: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaymentStatusResponse(BaseModel):
    transaction_hash: str
    status: ReceiptStatus
    block_number: Optional[str] = None
    gas_used: Optional[str] = None
    timestamp: str

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RegisterAgentRequest(BaseModel):
    name: Optional[str] = None
    services: Optional[list[str]] = None
    address: Optional[str] = None


class ReputationChangeRequest(BaseModel):
    change: int
    reason: Optional[str] = None
