"""Agents that sell their own endpoints and buy from other agents."""

import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool

from x402_agents.amounts import USDC_DECIMALS
from x402_agents.clients.base import DEFAULT_MAX_PAYMENT
from x402_agents.clients.requests import PaymentOrchestrator
from x402_agents.config import AppConfig
from x402_agents.errors import ServiceNotFound
from x402_agents.fastapi.middleware import require_payment
from x402_agents.ledger import Ledger
from x402_agents.types import HttpMethod, ServiceInfo
from x402_agents.verifier import ProofVerifier

logger = logging.getLogger(__name__)

ServiceHandler = Callable[[Request], Union[Any, Awaitable[Any]]]


@dataclass
class ServiceDefinition:
    """A paid endpoint: its public description plus the handler serving it."""

    name: str
    endpoint: str
    price: str
    handler: ServiceHandler
    description: str = ""
    method: HttpMethod = "GET"

    def info(self) -> ServiceInfo:
        return ServiceInfo(
            name=self.name,
            endpoint=self.endpoint,
            price=self.price,
            description=self.description,
            method=self.method,
        )


class ServiceAgent:
    """An agent that is both a seller and a buyer.

    Incoming calls to each added service are gated behind a payment to this
    agent's address. Outgoing calls go through a :class:`PaymentOrchestrator`
    paying from the same ledger account.

    Services must be added before the app serves its first request; the
    ASGI middleware stack is frozen after that.

    Args:
        ledger: Ledger to pay on and verify incoming proofs against
        port: Port :meth:`run` listens on
        agent_id: Identifier of this agent
        address: Address receiving payments. Defaults to the ledger's address
        orchestrator: Preconfigured orchestrator for outgoing calls
        asset: Token contract services are priced in
        chain_id: Network payments must settle on
        max_payment: Default spending limit for outgoing calls
    """

    def __init__(
        self,
        ledger: Ledger,
        port: int = 3001,
        agent_id: Optional[str] = None,
        address: Optional[str] = None,
        orchestrator: Optional[PaymentOrchestrator] = None,
        asset: Optional[str] = None,
        chain_id: Optional[int] = None,
        max_payment: str = DEFAULT_MAX_PAYMENT,
        decimals: int = USDC_DECIMALS,
    ):
        self.ledger = ledger
        self.port = port
        self.orchestrator = orchestrator or PaymentOrchestrator(
            ledger,
            payer_address=address,
            agent_id=agent_id,
            max_payment=max_payment,
            decimals=decimals,
        )
        self.address = address or self.orchestrator.get_address()
        if not self.address:
            raise ValueError("ServiceAgent requires an address to receive payments")
        self.agent_id = agent_id or self.orchestrator.agent_id
        self.asset = asset
        self.chain_id = chain_id
        self.max_payment = max_payment
        self.decimals = decimals
        self.verifier = ProofVerifier(ledger, decimals=decimals)

        self.services: Dict[str, ServiceDefinition] = {}
        self.app = FastAPI(title=f"Service Agent {self.agent_id}")
        self._setup_default_routes()

    @classmethod
    def from_config(cls, ledger: Ledger, config: AppConfig, **kwargs: Any) -> "ServiceAgent":
        """Agent charging in the configured USDC contract on the configured
        chain, paying with the configured confirmation policy."""
        orchestrator = PaymentOrchestrator.from_config(
            ledger,
            config,
            agent_id=kwargs.get("agent_id"),
            max_payment=kwargs.get("max_payment", DEFAULT_MAX_PAYMENT),
            decimals=kwargs.get("decimals", USDC_DECIMALS),
        )
        kwargs.setdefault("asset", config.usdc_contract_address)
        kwargs.setdefault("chain_id", config.chain_id)
        return cls(ledger, orchestrator=orchestrator, **kwargs)

    def _setup_default_routes(self) -> None:
        @self.app.get("/health")
        def health():
            return {
                "status": "healthy",
                "agentId": self.agent_id,
                "address": self.address,
                "services": list(self.services),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        @self.app.get("/services")
        def services():
            service_list = self.get_service_list()
            return {
                "agentId": self.agent_id,
                "services": [service.model_dump() for service in service_list],
                "total": len(service_list),
            }

    def add_service(self, service: ServiceDefinition) -> None:
        """Expose ``service`` behind a payment of ``service.price``."""
        if service.name in self.services:
            raise ValueError(f"Service already registered: {service.name}")

        self.app.middleware("http")(
            require_payment(
                service.price,
                self.address,
                path=service.endpoint,
                asset=self.asset,
                chain_id=self.chain_id,
                decimals=self.decimals,
                verifier=self.verifier,
            )
        )

        handler = service.handler

        async def endpoint(request: Request):
            if inspect.iscoroutinefunction(handler):
                return await handler(request)
            return await run_in_threadpool(handler, request)

        self.app.add_api_route(
            service.endpoint, endpoint, methods=[service.method], name=service.name
        )
        self.services[service.name] = service
        logger.info(
            "Service added: %s at %s for %s USDC", service.name, service.endpoint, service.price
        )

    def get_service_list(self) -> List[ServiceInfo]:
        return [service.info() for service in self.services.values()]

    def buy_service(
        self,
        target_url: str,
        endpoint: str,
        data: Any = None,
        max_payment: Optional[str] = None,
    ) -> Any:
        """Call another agent's paid endpoint, paying if challenged.

        POSTs ``data`` when given, otherwise GETs.
        """
        url = f"{target_url.rstrip('/')}{endpoint}"
        method = "POST" if data is not None else "GET"
        return self.orchestrator.request(
            method, url, json=data, max_payment=max_payment or self.max_payment
        )

    def collaborate_with(self, other_agent_url: str, task: str, data: Any = None) -> Any:
        """Buy the first service of another agent that fits ``task``.

        A service fits when its name or description contains ``task``,
        ignoring case.

        Raises:
            ServiceNotFound: If no advertised service fits
        """
        listing = self.orchestrator.get(f"{other_agent_url.rstrip('/')}/services")
        services = [ServiceInfo.model_validate(s) for s in listing["services"]]
        logger.info(
            "Collaborating with agent at %s, available services: %s",
            other_agent_url,
            [s.name for s in services],
        )

        needle = task.lower()
        for service in services:
            if needle in service.name.lower() or needle in service.description.lower():
                return self.buy_service(other_agent_url, service.endpoint, data)

        raise ServiceNotFound(f"No suitable service found for task: {task}")

    def run(self, host: str = "0.0.0.0") -> None:
        logger.info(
            "Service Agent %s running on port %d, address %s, services: %s",
            self.agent_id,
            self.port,
            self.address,
            ", ".join(self.services),
        )
        uvicorn.run(self.app, host=host, port=self.port)
