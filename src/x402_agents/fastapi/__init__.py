"""
FastAPI integration for x402 agent payments.

Usage:   from x402_agents.fastapi.middleware import require_payment

Example:
    from fastapi import FastAPI
    from x402_agents.fastapi.middleware import require_payment

    app = FastAPI()
    app.middleware("http")(
        require_payment(price="0.01", pay_to_address="0x...", ledger=ledger)
    )

The facilitator and agent directory routers live in
``x402_agents.fastapi.routes``.
"""
