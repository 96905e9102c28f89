"""HTTP surfaces of the hosted server: facilitator and agent directory."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from x402_agents.errors import AgentNotFound, MalformedProof, PaymentVerificationError
from x402_agents.registry import AgentRegistry
from x402_agents.types import (
    FacilitatorRequest,
    PaymentStatusResponse,
    RegisterAgentRequest,
    ReputationChangeRequest,
    SettleResponse,
    VerifyResponse,
)
from x402_agents.verifier import ProofVerifier

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _optional_str(value: Optional[int]) -> Optional[str]:
    return None if value is None else str(value)


def _parse_facilitator_request(body: Any) -> FacilitatorRequest:
    if (
        not isinstance(body, dict)
        or not body.get("paymentPayload")
        or not body.get("paymentRequirements")
    ):
        raise MalformedProof("Missing paymentPayload or paymentRequirements")
    try:
        return FacilitatorRequest.model_validate(body)
    except ValidationError as e:
        raise MalformedProof(f"Invalid facilitator request: {e.error_count()} errors") from e


def create_facilitator_router(verifier: ProofVerifier) -> APIRouter:
    """Facilitator endpoints: verify, settle and payment status."""
    router = APIRouter()

    @router.post("/verify")
    def verify(body: Any = Body(None)):
        try:
            request = _parse_facilitator_request(body)
            receipt = verifier.validate(request.payment_payload, request.payment_requirements)
        except PaymentVerificationError as e:
            if e.status_code >= 500:
                logger.error("Payment verification error: %s", e)
            return JSONResponse(
                content=VerifyResponse(valid=False, error=str(e)).model_dump(
                    by_alias=True, exclude_none=True
                ),
                status_code=e.status_code,
            )

        return VerifyResponse(
            valid=True,
            transaction_hash=request.payment_payload.tx_hash,
            block_number=_optional_str(receipt.block_number),
            gas_used=_optional_str(receipt.gas_used),
            timestamp=_now(),
        ).model_dump(by_alias=True, exclude_none=True)

    @router.post("/settle")
    def settle(body: Any = Body(None)):
        # Payments are pushed by the payer; settling only confirms finality
        try:
            request = _parse_facilitator_request(body)
            verifier.validate(request.payment_payload, request.payment_requirements)
        except PaymentVerificationError as e:
            if e.status_code >= 500:
                logger.error("Payment settlement error: %s", e)
            return JSONResponse(
                content=SettleResponse(settled=False, error=str(e)).model_dump(
                    by_alias=True, exclude_none=True
                ),
                status_code=e.status_code,
            )

        return SettleResponse(
            settled=True,
            transaction_hash=request.payment_payload.tx_hash,
            status="completed",
            settlement_time=_now(),
        ).model_dump(by_alias=True, exclude_none=True)

    @router.get("/payment/{tx_hash}")
    def payment_status(tx_hash: str):
        try:
            receipt = verifier.ledger.get_receipt(tx_hash)
        except Exception as e:
            logger.error("Payment status error for %s: %s", tx_hash, e)
            return JSONResponse(
                content={"error": "Failed to get payment status"}, status_code=500
            )

        if receipt is None:
            return JSONResponse(content={"error": "Transaction not found"}, status_code=404)

        return PaymentStatusResponse(
            transaction_hash=tx_hash,
            status=receipt.status,
            block_number=_optional_str(receipt.block_number),
            gas_used=_optional_str(receipt.gas_used),
            timestamp=_now(),
        ).model_dump(by_alias=True, exclude_none=True)

    return router


def create_agents_router(registry: AgentRegistry) -> APIRouter:
    """Agent directory: registration, lookup, discovery and reputation."""
    router = APIRouter()

    def not_found(e: AgentNotFound) -> JSONResponse:
        return JSONResponse(content={"error": str(e)}, status_code=e.status_code)

    @router.post("/register")
    def register(request: RegisterAgentRequest):
        try:
            agent_id = registry.register(request.name, request.services, request.address)
        except ValueError as e:
            return JSONResponse(content={"error": str(e)}, status_code=400)

        return {
            "success": True,
            "agent": registry.lookup(agent_id).model_dump(by_alias=True, mode="json"),
            "message": "Agent registered successfully",
        }

    @router.get("/")
    def list_agents(service: Optional[str] = None):
        agents = registry.list(service)
        return {
            "agents": [agent.model_dump(by_alias=True, mode="json") for agent in agents],
            "total": len(agents),
        }

    @router.get("/{agent_id}")
    def get_agent(agent_id: str):
        try:
            return registry.lookup(agent_id).model_dump(by_alias=True, mode="json")
        except AgentNotFound as e:
            return not_found(e)

    @router.post("/{agent_id}/heartbeat")
    def heartbeat(agent_id: str):
        try:
            agent = registry.heartbeat(agent_id)
        except AgentNotFound as e:
            return not_found(e)
        return {
            "success": True,
            "message": "Heartbeat updated",
            "lastSeen": agent.model_dump(by_alias=True, mode="json")["lastSeen"],
        }

    @router.post("/{agent_id}/reputation")
    def reputation(agent_id: str, request: ReputationChangeRequest):
        try:
            agent = registry.adjust_reputation(agent_id, request.change, request.reason)
        except AgentNotFound as e:
            return not_found(e)
        return {
            "success": True,
            "agent": agent.model_dump(by_alias=True, mode="json"),
            "reason": request.reason,
            "message": "Reputation updated",
        }

    return router
