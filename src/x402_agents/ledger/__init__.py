"""Boundary to the settlement ledger.

The protocol only needs two operations from the ledger: submitting a
transfer and reading back a transaction receipt. Everything else about
finality is the ledger's business.
"""

from typing import Optional, Protocol, runtime_checkable

from x402_agents.types import TransactionReceipt


@runtime_checkable
class Ledger(Protocol):
    """Narrow view of an external settlement ledger."""

    def submit_transfer(self, amount: int, to: str, token: Optional[str]) -> str:
        """Submit a transfer of ``amount`` atomic units and return its id."""
        ...

    def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Return the receipt for ``tx_hash``, or ``None`` if unknown."""
        ...


__all__ = ["Ledger"]
