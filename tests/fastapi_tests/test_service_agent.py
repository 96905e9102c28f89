from unittest.mock import MagicMock

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from x402_agents.clients.requests import PaymentOrchestrator
from x402_agents.config import AppConfig
from x402_agents.encoding import encode_payment_header
from x402_agents.errors import ServiceNotFound
from x402_agents.service_agent import ServiceAgent, ServiceDefinition

from ..mocks import PAY_TO, PAYER, USDC, MemoryLedger, build_proof, build_requirement, paid_transfer

OTHER_AGENT = "http://localhost:3002"


async def process_data(request: Request):
    body = await request.json()
    return {"processed": body["data"].upper()}


def weather(request: Request):
    return {"weather": "sunny"}


@pytest.fixture
def ledger():
    return MemoryLedger(address=PAY_TO)


@pytest.fixture
def agent(ledger):
    agent = ServiceAgent(ledger, port=3002, agent_id="agent-data")
    agent.add_service(
        ServiceDefinition(
            name="process-data",
            endpoint="/process",
            price="0.05",
            description="Uppercases your data",
            method="POST",
            handler=process_data,
        )
    )
    agent.add_service(
        ServiceDefinition(
            name="weather",
            endpoint="/weather",
            price="0.01",
            handler=weather,
        )
    )
    return agent


@pytest.fixture
def client(agent):
    return TestClient(agent.app)


def test_defaults(ledger):
    agent = ServiceAgent(ledger)
    assert agent.port == 3001
    assert agent.address == PAY_TO
    assert agent.agent_id == agent.orchestrator.agent_id
    assert isinstance(agent.orchestrator, PaymentOrchestrator)


def test_requires_address():
    with pytest.raises(ValueError, match="address"):
        ServiceAgent(MemoryLedger(address=None))


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["agentId"] == "agent-data"
    assert body["address"] == PAY_TO
    assert body["services"] == ["process-data", "weather"]
    assert body["timestamp"]


def test_services(client):
    body = client.get("/services").json()
    assert body["agentId"] == "agent-data"
    assert body["total"] == 2
    assert body["services"][0] == {
        "name": "process-data",
        "endpoint": "/process",
        "price": "0.05",
        "description": "Uppercases your data",
        "method": "POST",
    }
    assert body["services"][1]["method"] == "GET"


def test_service_requires_payment(client):
    response = client.post("/process", json={"data": "hello"})

    assert response.status_code == 402
    requirement = response.json()["paymentRequirements"][0]
    assert requirement["amount"] == "50000"
    assert requirement["to"] == PAY_TO


def test_each_service_has_its_own_price(client):
    response = client.get("/weather")
    assert response.status_code == 402
    assert response.json()["paymentRequirements"][0]["amount"] == "10000"


def test_paid_service_call(client, ledger):
    requirement = build_requirement(amount="50000", pay_to=PAY_TO, asset=None)
    ledger.add_transaction("0xabc", "success", transfers=[paid_transfer(requirement)])
    proof = build_proof(requirement, "0xabc", payer=PAYER)

    response = client.post(
        "/process",
        json={"data": "hello"},
        headers={"x-payment": encode_payment_header(proof)},
    )

    assert response.status_code == 200
    assert response.json() == {"processed": "HELLO"}
    assert "x-payment-response" in response.headers


def test_sync_handler(client, ledger):
    requirement = build_requirement(amount="10000", pay_to=PAY_TO, asset=None)
    ledger.add_transaction("0xdef", "success", transfers=[paid_transfer(requirement)])

    response = client.get(
        "/weather",
        headers={"x-payment": encode_payment_header(build_proof(requirement, "0xdef"))},
    )

    assert response.status_code == 200
    assert response.json() == {"weather": "sunny"}


def test_duplicate_service(agent):
    with pytest.raises(ValueError, match="already registered"):
        agent.add_service(
            ServiceDefinition(name="weather", endpoint="/weather2", price="1", handler=weather)
        )


def test_get_service_list(agent):
    assert [s.name for s in agent.get_service_list()] == ["process-data", "weather"]


@pytest.fixture
def buyer():
    orchestrator = MagicMock(spec=PaymentOrchestrator)
    orchestrator.agent_id = "agent-buyer"
    return ServiceAgent(
        MemoryLedger(), address=PAYER, agent_id="agent-buyer", orchestrator=orchestrator
    )


def test_buy_service_posts_data(buyer):
    buyer.orchestrator.request.return_value = {"processed": "HELLO"}

    result = buyer.buy_service(OTHER_AGENT + "/", "/process", {"data": "hello"})

    assert result == {"processed": "HELLO"}
    buyer.orchestrator.request.assert_called_once_with(
        "POST", "http://localhost:3002/process", json={"data": "hello"}, max_payment="1.0"
    )


def test_buy_service_gets_without_data(buyer):
    buyer.buy_service(OTHER_AGENT, "/weather", max_payment="0.02")
    buyer.orchestrator.request.assert_called_once_with(
        "GET", "http://localhost:3002/weather", json=None, max_payment="0.02"
    )


def test_collaborate_with_picks_matching_service(buyer):
    buyer.orchestrator.get.return_value = {
        "agentId": "agent-data",
        "services": [
            {
                "name": "weather",
                "endpoint": "/weather",
                "price": "0.01",
                "description": "",
                "method": "GET",
            },
            {
                "name": "process-data",
                "endpoint": "/process",
                "price": "0.05",
                "description": "Uppercases your data",
                "method": "POST",
            },
        ],
        "total": 2,
    }
    buyer.orchestrator.request.return_value = {"processed": "HELLO"}

    result = buyer.collaborate_with(OTHER_AGENT, "UPPERCASES", {"data": "hello"})

    assert result == {"processed": "HELLO"}
    buyer.orchestrator.get.assert_called_once_with("http://localhost:3002/services")
    buyer.orchestrator.request.assert_called_once_with(
        "POST", "http://localhost:3002/process", json={"data": "hello"}, max_payment="1.0"
    )


def test_collaborate_with_no_matching_service(buyer):
    buyer.orchestrator.get.return_value = {"services": [], "total": 0}

    with pytest.raises(ServiceNotFound, match="No suitable service found for task: translate"):
        buyer.collaborate_with(OTHER_AGENT, "translate", {"text": "hola"})

    buyer.orchestrator.request.assert_not_called()


def test_from_config(ledger):
    config = AppConfig.from_mapping(
        {"CHAIN_ID": "8453", "X402_CONFIRMATION_ATTEMPTS": "5"}
    )
    agent = ServiceAgent.from_config(ledger, config, agent_id="agent-config")
    agent.add_service(
        ServiceDefinition(name="weather", endpoint="/weather", price="0.01", handler=weather)
    )

    assert agent.agent_id == "agent-config"
    assert agent.orchestrator.waiter.max_attempts == 5
    assert agent.orchestrator.default_token == USDC

    response = TestClient(agent.app).get("/weather")
    assert response.status_code == 402
    requirement = response.json()["paymentRequirements"][0]
    assert requirement["token"] == USDC
    assert requirement["chainId"] == 8453
    assert requirement["to"] == PAY_TO
