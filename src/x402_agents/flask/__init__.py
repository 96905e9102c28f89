"""
Flask middleware for x402 payment requirements.

Usage:   from x402_agents.flask.middleware import PaymentMiddleware

Example:
    from flask import Flask
    from x402_agents.flask.middleware import PaymentMiddleware

    app = Flask(__name__)
    middleware = PaymentMiddleware(app)
    middleware.add(path="/weather", price="0.001", pay_to_address="0x...", ledger=ledger)
"""
