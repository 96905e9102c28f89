import json
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import ValidationError

from x402_agents.amounts import NATIVE_DECIMALS, USDC_DECIMALS, format_units, to_decimal
from x402_agents.config import AppConfig
from x402_agents.confirmation import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    ConfirmationWaiter,
)
from x402_agents.encoding import (
    X_PAYMENT_HEADER,
    build_payment_proof,
    encode_payment_header,
)
from x402_agents.errors import (
    PaymentError,
    PaymentLimitExceeded,
    PaymentSubmissionFailed,
    ServiceRequestFailed,
)
from x402_agents.ledger import Ledger
from x402_agents.types import SCHEME_ERC20, PaymentRequiredResponse, PaymentRequirement

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAYMENT = "1.0"


class OrchestrationState(str, Enum):
    INITIAL = "initial"
    CHALLENGE_RECEIVED = "challenge_received"
    PAYING = "paying"
    CONFIRMING = "confirming"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PaymentAttempt:
    """Progress of one logical service call through the payment flow."""

    url: str
    state: OrchestrationState = OrchestrationState.INITIAL
    history: List[OrchestrationState] = field(
        default_factory=lambda: [OrchestrationState.INITIAL]
    )
    requirement: Optional[PaymentRequirement] = None
    tx_hash: Optional[str] = None
    error: Optional[Exception] = None

    def transition(self, state: OrchestrationState) -> None:
        self.state = state
        self.history.append(state)

    def fail(self, error: Exception) -> None:
        self.error = error
        self.transition(OrchestrationState.FAILED)

    @property
    def paid(self) -> bool:
        return self.tx_hash is not None


@dataclass
class ServiceRequest:
    url: str
    method: Literal["GET", "POST", "PUT", "DELETE"] = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    data: Any = None
    max_payment: Optional[str] = None


def decode_json(content: bytes) -> Any:
    """Response body as JSON when it is JSON, as text otherwise."""
    if not content:
        return None
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return content.decode("utf-8", errors="replace")


class x402Client:
    """Shared logic of the paying side of the protocol.

    Holds the ledger used to pay, the confirmation policy and the default
    spending limit. Transport-specific orchestrators build on top of it.

    Args:
        ledger: Ledger to submit transfers to and poll
        payer_address: Address the proofs name as payer. Defaults to the
            ledger's own address when it has one
        max_payment: Default maximum willingness to pay, in human units
        confirmation_interval: Seconds between receipt polls
        confirmation_attempts: Maximum number of receipt polls
        agent_id: Identifier of this agent
        decimals: Decimals of the payment asset
        default_token: Token :meth:`get_balance` reports on when none is given
    """

    def __init__(
        self,
        ledger: Ledger,
        payer_address: Optional[str] = None,
        max_payment: Union[str, Decimal] = DEFAULT_MAX_PAYMENT,
        confirmation_interval: float = DEFAULT_POLL_INTERVAL,
        confirmation_attempts: int = DEFAULT_MAX_ATTEMPTS,
        agent_id: Optional[str] = None,
        decimals: int = USDC_DECIMALS,
        default_token: Optional[str] = None,
    ):
        self.ledger = ledger
        self.payer_address = payer_address or getattr(ledger, "address", None)
        self.max_payment = str(max_payment)
        self.waiter = ConfirmationWaiter(
            ledger, interval=confirmation_interval, max_attempts=confirmation_attempts
        )
        self.agent_id = agent_id or f"agent-{uuid.uuid4().hex[:12]}"
        self.decimals = decimals
        self.default_token = default_token
        self.last_attempt: Optional[PaymentAttempt] = None

    @classmethod
    def from_config(cls, ledger: Ledger, config: AppConfig, **kwargs: Any):
        """Client using the confirmation policy, payer address and USDC
        contract of ``config``. Explicit keyword arguments win."""
        kwargs.setdefault("confirmation_interval", config.confirmation_interval)
        kwargs.setdefault("confirmation_attempts", config.confirmation_attempts)
        kwargs.setdefault("payer_address", config.agent_address)
        kwargs.setdefault("default_token", config.usdc_contract_address)
        return cls(ledger, **kwargs)

    def get_address(self) -> Optional[str]:
        return self.payer_address

    def get_balance(self, token: Optional[str] = None) -> str:
        """Balance of the payer address in human units.

        Reports on ``token``, falling back to ``default_token`` and then to
        the native currency. The ledger must provide ``get_balance``.
        """
        if not self.payer_address:
            raise PaymentError("No payer address to report a balance for")
        token = token or self.default_token
        balance = self.ledger.get_balance(self.payer_address, token)
        return format_units(balance, self.decimals if token else NATIVE_DECIMALS)

    def _start_attempt(self, url: str) -> PaymentAttempt:
        attempt = PaymentAttempt(url=url)
        self.last_attempt = attempt
        return attempt

    @staticmethod
    def parse_payment_required(body: Any) -> PaymentRequiredResponse:
        try:
            return PaymentRequiredResponse.model_validate(body)
        except ValidationError as e:
            raise PaymentError(f"Invalid payment required response: {e}") from e

    def select_payment_requirement(
        self,
        payment_required: PaymentRequiredResponse,
        max_payment: Optional[str] = None,
    ) -> PaymentRequirement:
        """Pick the requirement to pay and enforce the spending limit.

        Raises:
            PaymentError: If no requirement uses a supported scheme
            PaymentLimitExceeded: If the amount exceeds ``max_payment``
        """
        limit = max_payment if max_payment is not None else self.max_payment
        try:
            maximum = Decimal(str(limit))
        except InvalidOperation:
            raise ValueError(f"Invalid max_payment: {limit!r}")

        for requirement in payment_required.payment_requirements:
            if requirement.scheme != SCHEME_ERC20:
                continue
            required = to_decimal(requirement.amount, self.decimals)
            if required > maximum:
                raise PaymentLimitExceeded(
                    format_units(requirement.amount, self.decimals), str(limit)
                )
            return requirement

        raise PaymentError("No supported payment scheme found")

    def submit_payment(
        self, requirement: PaymentRequirement, attempt: PaymentAttempt
    ) -> str:
        """Submit the one transfer of this call.

        Raises:
            PaymentSubmissionFailed: If the ledger refuses the transfer
        """
        attempt.transition(OrchestrationState.PAYING)
        try:
            tx_hash = self.ledger.submit_transfer(
                requirement.atomic_amount, requirement.pay_to, requirement.asset
            )
        except Exception as e:
            logger.error("Payment failed: %s", e)
            raise PaymentSubmissionFailed("Payment transaction failed") from e
        attempt.tx_hash = tx_hash
        logger.info(
            "Paid %s to %s: %s",
            format_units(requirement.amount, self.decimals),
            requirement.pay_to,
            tx_hash,
        )
        return tx_hash

    def create_payment_headers(
        self, requirement: PaymentRequirement, tx_hash: str
    ) -> Dict[str, str]:
        proof = build_payment_proof(requirement, tx_hash, self.payer_address)
        return {X_PAYMENT_HEADER: encode_payment_header(proof)}

    def finish(self, status_code: int, content: bytes, attempt: PaymentAttempt) -> Any:
        """Turn the final response into the call's result.

        Raises:
            ServiceRequestFailed: For any non-2xx status
        """
        if status_code < 200 or status_code >= 300:
            raise ServiceRequestFailed(
                status_code, content.decode("utf-8", errors="replace") if content else None
            )
        attempt.transition(OrchestrationState.DONE)
        return decode_json(content)
