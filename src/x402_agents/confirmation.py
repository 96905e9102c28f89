"""Bounded wait for ledger finality.

Bridges an eventually consistent ledger with a synchronous HTTP exchange:
poll the receipt at a fixed interval until it is terminal or the attempt
budget runs out.
"""

import asyncio
import logging
import threading
from typing import Optional

from x402_agents.errors import ConfirmationCancelled, ConfirmationTimeout, TransactionReverted
from x402_agents.ledger import Ledger
from x402_agents.types import TransactionReceipt

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 30


class ConfirmationWaiter:
    """Polls ``ledger`` until a transaction succeeds, fails or times out.

    Ledger errors and not-yet-visible receipts count as "not final" and
    only consume the attempt budget. Cancelling stops local waiting; it
    never touches the submitted transaction.
    """

    def __init__(
        self,
        ledger: Ledger,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.ledger = ledger
        self.interval = interval
        self.max_attempts = max_attempts

    def _poll(self, tx_hash: str, attempt: int) -> Optional[TransactionReceipt]:
        try:
            receipt = self.ledger.get_receipt(tx_hash)
        except Exception as e:
            # Transaction might not be mined yet
            logger.debug("Poll %d for %s failed: %s", attempt, tx_hash, e)
            return None

        if receipt is not None and receipt.status == "failed":
            raise TransactionReverted(tx_hash)
        if receipt is not None and receipt.status == "success":
            return receipt
        logger.debug("Poll %d for %s: not final", attempt, tx_hash)
        return None

    def wait(
        self, tx_hash: str, cancel_event: Optional[threading.Event] = None
    ) -> TransactionReceipt:
        """Block until ``tx_hash`` is final.

        Args:
            tx_hash: Transaction to wait for
            cancel_event: Set it from another thread to stop waiting

        Raises:
            TransactionReverted: If the ledger reports the transaction failed
            ConfirmationTimeout: If no terminal status after ``max_attempts``
            ConfirmationCancelled: If ``cancel_event`` was set
        """
        cancel_event = cancel_event or threading.Event()
        for attempt in range(1, self.max_attempts + 1):
            if cancel_event.is_set():
                raise ConfirmationCancelled(tx_hash)
            receipt = self._poll(tx_hash, attempt)
            if receipt is not None:
                logger.info("Transaction %s confirmed after %d polls", tx_hash, attempt)
                return receipt
            if attempt < self.max_attempts and cancel_event.wait(self.interval):
                raise ConfirmationCancelled(tx_hash)
        raise ConfirmationTimeout(tx_hash, self.max_attempts)

    async def wait_async(self, tx_hash: str) -> TransactionReceipt:
        """Asyncio variant of :meth:`wait`.

        Cancelling the awaiting task stops the wait. Ledger calls run in a
        worker thread so the event loop is never blocked.
        """
        for attempt in range(1, self.max_attempts + 1):
            receipt = await asyncio.to_thread(self._poll, tx_hash, attempt)
            if receipt is not None:
                logger.info("Transaction %s confirmed after %d polls", tx_hash, attempt)
                return receipt
            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval)
        raise ConfirmationTimeout(tx_hash, self.max_attempts)
