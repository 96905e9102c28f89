import json

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from x402_agents.encoding import decode_x_payment_response, encode_payment_header
from x402_agents.fastapi.middleware import require_payment
from x402_agents.verifier import ProofVerifier

from ..mocks import PAY_TO, USDC, MemoryLedger, build_proof, build_requirement, paid_transfer


async def premium_data(request: Request):
    return {"data": "premium", "paidWith": request.state.payment.tx_hash}


async def free_data():
    return {"data": "free"}


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
def requirement():
    return build_requirement(amount="50000", asset=USDC)


@pytest.fixture
def client(ledger):
    app = FastAPI()
    app.get("/api/premium-data")(premium_data)
    app.get("/api/free-data")(free_data)
    app.middleware("http")(
        require_payment(
            price="0.05",
            pay_to_address=PAY_TO,
            ledger=ledger,
            path="/api/premium-data",
            asset=USDC,
            chain_id=84532,
        )
    )
    return TestClient(app)


def payment_header(requirement, tx_hash="0xabc", **overrides):
    return {"x-payment": encode_payment_header(build_proof(requirement, tx_hash, **overrides))}


def test_challenge_without_payment(client, ledger):
    response = client.get("/api/premium-data")

    assert response.status_code == 402
    body = response.json()
    assert body["message"] == "Payment of 0.05 USDC required to access this resource"
    assert body["paymentRequirements"] == [
        {"scheme": "erc20", "amount": "50000", "to": PAY_TO, "token": USDC, "chainId": 84532}
    ]
    assert ledger.receipt_calls == 0


def test_unprotected_path(client, ledger):
    response = client.get("/api/free-data")
    assert response.status_code == 200
    assert response.json() == {"data": "free"}


def test_valid_payment(client, ledger, requirement):
    ledger.add_transaction("0xabc", "success", transfers=[paid_transfer(requirement)])

    response = client.get("/api/premium-data", headers=payment_header(requirement))

    assert response.status_code == 200
    assert response.json() == {"data": "premium", "paidWith": "0xabc"}
    receipt = decode_x_payment_response(response.headers["x-payment-response"])
    assert receipt["status"] == "verified"
    assert receipt["txHash"] == "0xabc"
    assert receipt["amount"] == "0.05"
    assert receipt["timestamp"]


@pytest.mark.parametrize(
    "status,code,error",
    [
        ("pending", "UnconfirmedPayment", "Transaction not confirmed yet"),
        ("failed", "RejectedPayment", "Transaction failed"),
    ],
)
def test_unsuccessful_transaction(client, ledger, requirement, status, code, error):
    ledger.add_transaction("0xabc", status, transfers=[paid_transfer(requirement)])

    response = client.get("/api/premium-data", headers=payment_header(requirement))

    assert response.status_code == 400
    assert response.json() == {"error": error, "code": code}
    assert "x-payment-response" not in response.headers


def test_unknown_transaction(client, requirement):
    response = client.get("/api/premium-data", headers=payment_header(requirement, "0xmissing"))
    assert response.status_code == 400
    assert response.json() == {"error": "Transaction not found", "code": "UnconfirmedPayment"}


def test_malformed_header(client):
    response = client.get("/api/premium-data", headers={"x-payment": "not-json"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid payment header format", "code": "MalformedProof"}


def test_missing_tx_hash(client):
    response = client.get(
        "/api/premium-data", headers={"x-payment": json.dumps({"amount": "50000", "to": PAY_TO})}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Transaction hash required"


def test_underpaying_proof(client, ledger, requirement):
    ledger.add_transaction("0xabc", "success", transfers=[paid_transfer(requirement)])

    response = client.get(
        "/api/premium-data", headers=payment_header(requirement, amount="10000")
    )

    assert response.status_code == 400
    assert response.json()["code"] == "RequirementMismatch"
    assert ledger.receipt_calls == 0


def test_proof_for_foreign_transfer(client, ledger, requirement):
    other = build_requirement(pay_to="0x0000000000000000000000000000000000000001")
    ledger.add_transaction("0xabc", "success", transfers=[paid_transfer(other)])

    response = client.get("/api/premium-data", headers=payment_header(requirement))

    assert response.status_code == 400
    assert response.json() == {
        "error": "Transaction does not contain the required transfer",
        "code": "RequirementMismatch",
    }


def test_ledger_unavailable(client, ledger, requirement):
    ledger.receipt_error = ConnectionError("rpc down")

    response = client.get("/api/premium-data", headers=payment_header(requirement))

    assert response.status_code == 500
    assert response.json() == {
        "error": "Payment verification failed",
        "code": "VerificationUnavailable",
    }


def test_glob_path(ledger):
    app = FastAPI()

    @app.get("/api/services/{name}")
    async def service(name: str):
        return {"service": name}

    app.middleware("http")(
        require_payment("0.01", PAY_TO, ledger=ledger, path="/api/services/*")
    )
    response = TestClient(app).get("/api/services/store-data")

    assert response.status_code == 402
    assert response.json()["paymentRequirements"][0]["amount"] == "10000"


def test_preconfigured_verifier(ledger, requirement):
    ledger.add_transaction("0xabc", "success")
    app = FastAPI()
    app.get("/api/premium-data")(premium_data)
    app.middleware("http")(
        require_payment(
            "0.05",
            PAY_TO,
            path="/api/premium-data",
            asset=USDC,
            chain_id=84532,
            verifier=ProofVerifier(ledger, require_transfer_match=False),
        )
    )

    response = TestClient(app).get("/api/premium-data", headers=payment_header(requirement))
    assert response.status_code == 200


def test_requires_ledger_or_verifier():
    with pytest.raises(ValueError, match="ledger or verifier"):
        require_payment("0.05", PAY_TO)


def test_invalid_price(ledger):
    with pytest.raises(ValueError, match="Invalid price: abc"):
        require_payment("abc", PAY_TO, ledger=ledger)
