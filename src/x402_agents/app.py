"""
x402 agent server: payment facilitator plus agent directory.

Serves ``/health``, the facilitator endpoints under ``/api/x402`` and the
agent directory under ``/api/agents``.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from eth_account import Account
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from x402_agents.config import AppConfig, load_config
from x402_agents.errors import ConfigError
from x402_agents.fastapi.routes import create_agents_router, create_facilitator_router
from x402_agents.ledger import Ledger
from x402_agents.ledger.evm import EvmLedger
from x402_agents.registry import AgentRegistry
from x402_agents.verifier import ProofVerifier

logger = logging.getLogger(__name__)


def create_ledger(config: AppConfig) -> EvmLedger:
    """Ledger for ``config``; read-only when no private key is configured.

    Raises:
        ConfigError: If ``AGENT_ADDRESS`` is not the address of ``AGENT_PRIVATE_KEY``
    """
    account = Account.from_key(config.agent_private_key) if config.agent_private_key else None
    if account is not None and config.agent_address not in (None, account.address):
        raise ConfigError(
            f"AGENT_ADDRESS {config.agent_address} does not match the address "
            f"of AGENT_PRIVATE_KEY ({account.address})"
        )
    return EvmLedger.from_rpc_url(config.rpc_url, account, chain_id=config.chain_id)


def create_app(
    config: Optional[AppConfig] = None,
    ledger: Optional[Ledger] = None,
    registry: Optional[AgentRegistry] = None,
) -> FastAPI:
    config = config or load_config()
    ledger = ledger or create_ledger(config)
    registry = registry or AgentRegistry()

    app = FastAPI(
        title="x402 Agents",
        description="Payment facilitator and agent directory for x402 payments",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.ledger = ledger
    app.state.registry = registry

    @app.get("/health")
    def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "network": config.network,
            "chainId": config.chain_id,
        }

    app.include_router(
        create_facilitator_router(ProofVerifier(ledger)), prefix="/api/x402", tags=["x402"]
    )
    app.include_router(create_agents_router(registry), prefix="/api/agents", tags=["agents"])

    logger.info("x402 agent server configured for %s (chain %d)", config.network, config.chain_id)
    return app
