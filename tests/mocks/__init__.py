"""Mock implementations for testing."""

from .ledger import (
    PAY_TO,
    PAYER,
    USDC,
    MemoryLedger,
    build_proof,
    build_requirement,
    paid_transfer,
)

__all__ = [
    "MemoryLedger",
    "build_proof",
    "build_requirement",
    "paid_transfer",
    "PAY_TO",
    "PAYER",
    "USDC",
]
