"""Exception hierarchy for x402 agent payments.

Server-side verification failures carry the HTTP status they map to and a
machine-readable ``code``; the framework integrations turn them into
``{"error": ..., "code": ...}`` bodies. Client-side failures are raised to
the caller of the orchestrator and never swallowed.
"""

from typing import Optional


class X402Error(Exception):
    """Base class for all x402 agent errors."""

    status_code: int = 500

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class ConfigError(X402Error):
    """Raised when the supplied configuration is invalid."""


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------


class PaymentVerificationError(X402Error):
    """Base class for failures while verifying a payment proof."""

    status_code = 400


class MalformedProof(PaymentVerificationError):
    """The x-payment header could not be parsed into a proof."""


class RequirementMismatch(PaymentVerificationError):
    """The proof does not pay what the challenge asked for."""


class UnconfirmedPayment(PaymentVerificationError):
    """The referenced transaction is unknown or not final yet."""


class RejectedPayment(PaymentVerificationError):
    """The referenced transaction failed on the ledger."""


class VerificationUnavailable(PaymentVerificationError):
    """The ledger could not be reached to verify the proof."""

    status_code = 500


# ---------------------------------------------------------------------------
# Client side
# ---------------------------------------------------------------------------


class PaymentError(X402Error):
    """Base class for payment-related errors on the paying side."""


class PaymentLimitExceeded(PaymentError):
    """Raised when the challenge asks for more than the caller will pay."""

    def __init__(self, required: str, maximum: str):
        super().__init__(f"Payment amount {required} exceeds maximum {maximum}")
        self.required = required
        self.maximum = maximum


class PaymentSubmissionFailed(PaymentError):
    """Raised when the ledger refuses the transfer."""


class TransactionReverted(PaymentError):
    """Raised when the submitted transfer failed on the ledger."""

    def __init__(self, tx_hash: str):
        super().__init__(f"Transaction {tx_hash} reverted")
        self.tx_hash = tx_hash


class ConfirmationTimeout(PaymentError):
    """Raised when a transfer did not reach a terminal status in time."""

    def __init__(self, tx_hash: str, attempts: int):
        super().__init__(
            f"Transaction {tx_hash} not confirmed after {attempts} attempts"
        )
        self.tx_hash = tx_hash
        self.attempts = attempts


class ConfirmationCancelled(PaymentError):
    """Raised when local waiting was abandoned. The transfer itself stands."""

    def __init__(self, tx_hash: str):
        super().__init__(f"Stopped waiting for transaction {tx_hash}")
        self.tx_hash = tx_hash


class ServiceRequestFailed(PaymentError):
    """Raised when the service answers with a non-2xx status."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        super().__init__(f"Service request failed: {status_code}")
        self.status_code = status_code
        self.body = body


class ServiceNotFound(X402Error):
    """Raised when no advertised service fits a collaboration task."""

    status_code = 404


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class AgentNotFound(X402Error):
    """Raised when an agent identifier is unknown to the registry."""

    status_code = 404

    def __init__(self, agent_id: str):
        super().__init__("Agent not found")
        self.agent_id = agent_id
