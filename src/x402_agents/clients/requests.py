"""Synchronous payment orchestration over ``requests``.

Drives one logical service call through the x402 flow: request, 402
challenge, exactly one ledger transfer, bounded confirmation wait, and a
single retry carrying the proof of payment.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import requests

from ..errors import ServiceRequestFailed
from ..types import AgentRecord
from .base import (
    OrchestrationState,
    ServiceRequest,
    decode_json,
    x402Client,
)

logger = logging.getLogger(__name__)


class PaymentOrchestrator(x402Client):
    """Pays for HTTP resources protected by x402.

    Example:
        ```python
        from x402_agents.clients.requests import PaymentOrchestrator

        orchestrator = PaymentOrchestrator(ledger, max_payment="0.50")
        result = orchestrator.post(
            "http://localhost:3000/api/services/process-data",
            json={"data": "hello"},
        )
        ```

    Args:
        ledger: Ledger to pay on
        session: Optional requests Session to reuse
        timeout: Per-request HTTP timeout in seconds
        **kwargs: Passed to :class:`x402Client`
    """

    def __init__(
        self,
        ledger,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(ledger, **kwargs)
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout

    def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        max_payment: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        """Perform one paid service call and return the decoded response body.

        Raises:
            PaymentLimitExceeded: If the challenge asks for more than ``max_payment``
            PaymentSubmissionFailed: If the transfer could not be submitted
            TransactionReverted: If the transfer failed on the ledger
            ConfirmationTimeout: If the transfer did not confirm in time
            ConfirmationCancelled: If ``cancel_event`` was set while waiting
            ServiceRequestFailed: If the final response is not 2xx
        """
        attempt = self._start_attempt(url)
        request_headers = {"Content-Type": "application/json", **(headers or {})}

        try:
            response = self.session.request(
                method, url, json=json, headers=request_headers, timeout=self.timeout
            )
            if response.status_code != 402:
                return self.finish(response.status_code, response.content, attempt)

            attempt.transition(OrchestrationState.CHALLENGE_RECEIVED)
            payment_required = self.parse_payment_required(decode_json(response.content))
            logger.info("Payment required for %s: %s", url, payment_required.message)

            requirement = self.select_payment_requirement(payment_required, max_payment)
            attempt.requirement = requirement

            tx_hash = self.submit_payment(requirement, attempt)

            attempt.transition(OrchestrationState.CONFIRMING)
            self.waiter.wait(tx_hash, cancel_event)

            attempt.transition(OrchestrationState.RETRYING)
            paid_headers = {
                **request_headers,
                **self.create_payment_headers(requirement, tx_hash),
            }
            paid_response = self.session.request(
                method, url, json=json, headers=paid_headers, timeout=self.timeout
            )
            return self.finish(paid_response.status_code, paid_response.content, attempt)
        except Exception as e:
            attempt.fail(e)
            logger.error("Service request to %s failed: %s", url, e)
            raise

    def get(self, url: str, **kwargs: Any) -> Any:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> Any:
        return self.request("POST", url, **kwargs)

    def make_service_request(self, service_request: ServiceRequest) -> Any:
        return self.request(
            service_request.method,
            service_request.url,
            json=service_request.data,
            headers=service_request.headers,
            max_payment=service_request.max_payment,
        )

    def register_with_directory(
        self, server_url: str, services: list[str], name: Optional[str] = None
    ) -> AgentRecord:
        """Advertise this agent in the agent directory of ``server_url``."""
        response = self.session.post(
            f"{server_url.rstrip('/')}/api/agents/register",
            json={
                "name": name or f"PaymentAgent_{self.agent_id}",
                "services": services,
                "address": self.payer_address,
            },
            timeout=self.timeout,
        )
        if not response.ok:
            raise ServiceRequestFailed(response.status_code, response.text)
        agent = AgentRecord.model_validate(response.json()["agent"])
        logger.info("Agent registered: %s", agent.id)
        return agent

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> PaymentOrchestrator:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
