"""Asynchronous payment orchestration over ``httpx``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ServiceRequestFailed
from ..types import AgentRecord
from .base import OrchestrationState, decode_json, x402Client

logger = logging.getLogger(__name__)


class AsyncPaymentOrchestrator(x402Client):
    """Asyncio counterpart of :class:`~x402_agents.clients.requests.PaymentOrchestrator`.

    Cancelling the task running :meth:`request` while it waits for
    confirmation stops the wait; the submitted transfer is not reversed.
    """

    def __init__(
        self,
        ledger,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(ledger, **kwargs)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        max_payment: Optional[str] = None,
    ) -> Any:
        attempt = self._start_attempt(url)
        request_headers = {"Content-Type": "application/json", **(headers or {})}

        try:
            response = await self.client.request(
                method, url, json=json, headers=request_headers
            )
            if response.status_code != 402:
                return self.finish(response.status_code, response.content, attempt)

            attempt.transition(OrchestrationState.CHALLENGE_RECEIVED)
            payment_required = self.parse_payment_required(decode_json(response.content))
            requirement = self.select_payment_requirement(payment_required, max_payment)
            attempt.requirement = requirement

            tx_hash = await asyncio.to_thread(self.submit_payment, requirement, attempt)

            attempt.transition(OrchestrationState.CONFIRMING)
            await self.waiter.wait_async(tx_hash)

            attempt.transition(OrchestrationState.RETRYING)
            paid_headers = {
                **request_headers,
                **self.create_payment_headers(requirement, tx_hash),
            }
            paid_response = await self.client.request(
                method, url, json=json, headers=paid_headers
            )
            return self.finish(paid_response.status_code, paid_response.content, attempt)
        except BaseException as e:
            attempt.fail(e)
            raise

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.request("POST", url, **kwargs)

    async def register_with_directory(
        self, server_url: str, services: list[str], name: Optional[str] = None
    ) -> AgentRecord:
        response = await self.client.post(
            f"{server_url.rstrip('/')}/api/agents/register",
            json={
                "name": name or f"PaymentAgent_{self.agent_id}",
                "services": services,
                "address": self.payer_address,
            },
        )
        if response.is_error:
            raise ServiceRequestFailed(response.status_code, response.text)
        return AgentRecord.model_validate(response.json()["agent"])

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> AsyncPaymentOrchestrator:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
