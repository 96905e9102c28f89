from .base import (
    OrchestrationState,
    PaymentAttempt,
    ServiceRequest,
    x402Client,
)
from .httpx import AsyncPaymentOrchestrator
from .requests import PaymentOrchestrator

__all__ = [
    "AsyncPaymentOrchestrator",
    "OrchestrationState",
    "PaymentAttempt",
    "PaymentOrchestrator",
    "ServiceRequest",
    "x402Client",
]
