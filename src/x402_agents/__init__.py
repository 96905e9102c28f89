"""x402_agents: pay-per-request HTTP between autonomous agents."""

# Server side
from x402_agents.issuer import RequirementIssuer
from x402_agents.verifier import ProofVerifier
from x402_agents.confirmation import ConfirmationWaiter

# Clients
from x402_agents.clients.base import x402Client, OrchestrationState, PaymentAttempt
from x402_agents.clients.requests import PaymentOrchestrator
from x402_agents.encoding import decode_x_payment_response

# Registry
from x402_agents.registry import AgentRegistry

# Ledger
from x402_agents.ledger import Ledger

# Types
from x402_agents.types import (
    PaymentRequirement,
    PaymentRequiredResponse,
    PaymentProof,
    TransactionReceipt,
    TokenTransfer,
    VerificationReceipt,
    AgentRecord,
    ServiceInfo,
)

# Errors
from x402_agents.errors import (
    X402Error,
    PaymentVerificationError,
    MalformedProof,
    RequirementMismatch,
    UnconfirmedPayment,
    RejectedPayment,
    VerificationUnavailable,
    PaymentError,
    PaymentLimitExceeded,
    PaymentSubmissionFailed,
    TransactionReverted,
    ConfirmationTimeout,
    ConfirmationCancelled,
    ServiceRequestFailed,
    ServiceNotFound,
    AgentNotFound,
    ConfigError,
)

__all__ = [
    # Server side
    "RequirementIssuer",
    "ProofVerifier",
    "ConfirmationWaiter",
    # Clients
    "x402Client",
    "OrchestrationState",
    "PaymentAttempt",
    "PaymentOrchestrator",
    "decode_x_payment_response",
    # Registry
    "AgentRegistry",
    # Ledger
    "Ledger",
    # Types
    "PaymentRequirement",
    "PaymentRequiredResponse",
    "PaymentProof",
    "TransactionReceipt",
    "TokenTransfer",
    "VerificationReceipt",
    "AgentRecord",
    "ServiceInfo",
    # Errors
    "X402Error",
    "PaymentVerificationError",
    "MalformedProof",
    "RequirementMismatch",
    "UnconfirmedPayment",
    "RejectedPayment",
    "VerificationUnavailable",
    "PaymentError",
    "PaymentLimitExceeded",
    "PaymentSubmissionFailed",
    "TransactionReverted",
    "ConfirmationTimeout",
    "ConfirmationCancelled",
    "ServiceRequestFailed",
    "ServiceNotFound",
    "AgentNotFound",
    "ConfigError",
]
