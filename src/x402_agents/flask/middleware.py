import json
import logging
from typing import Any, Dict, Optional, Union

from flask import Flask, g, request
from werkzeug.http import HTTP_STATUS_CODES

from x402_agents.amounts import USDC_DECIMALS
from x402_agents.encoding import (
    X_PAYMENT_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
    encode_payment_response_header,
)
from x402_agents.errors import PaymentVerificationError
from x402_agents.issuer import RequirementIssuer
from x402_agents.ledger import Ledger
from x402_agents.path import path_is_match
from x402_agents.verifier import ProofVerifier

logger = logging.getLogger(__name__)


def _json_response(start_response, status_code: int, body: Dict[str, Any]):
    payload = json.dumps(body).encode("utf-8")
    start_response(
        f"{status_code} {HTTP_STATUS_CODES.get(status_code, 'Unknown')}",
        [
            ("Content-Type", "application/json"),
            ("Content-Length", str(len(payload))),
        ],
    )
    return [payload]


class PaymentMiddleware:
    """
    Flask middleware for x402 payment requirements.
    Allows multiple registrations with different path patterns and prices.

    Usage:
        middleware = PaymentMiddleware(app)
        middleware.add(path="/weather", price="0.001", pay_to_address="0x...", ledger=ledger)
        middleware.add(path="/premium/*", price="0.05", pay_to_address="0x...", ledger=ledger)
    """

    def __init__(self, app: Flask):
        self.app = app
        self.middleware_configs = []
        self.original_wsgi_app = app.wsgi_app

    def add(
        self,
        price: Union[str, int],
        pay_to_address: str,
        ledger: Optional[Ledger] = None,
        path: Union[str, list[str]] = "*",
        asset: Optional[str] = None,
        chain_id: Optional[int] = None,
        decimals: int = USDC_DECIMALS,
        verifier: Optional[ProofVerifier] = None,
    ):
        """
        Add a payment middleware configuration.

        Args:
            price: Human price, e.g. "0.05"
            pay_to_address: Address to receive payment
            ledger: Ledger used to verify proofs. Ignored when ``verifier`` is given
            path: Path(s) to protect. Defaults to "*".
            asset: Token contract the price is denominated in
            chain_id: Network the payment must settle on
            decimals: Decimals of ``asset``
            verifier: Preconfigured :class:`ProofVerifier`
        """
        if verifier is None:
            if ledger is None:
                raise ValueError("Either ledger or verifier is required")
            verifier = ProofVerifier(ledger, decimals=decimals)

        try:
            issuer = RequirementIssuer(
                price, pay_to_address, asset=asset, chain_id=chain_id, decimals=decimals
            )
        except ValueError as e:
            raise ValueError(f"Invalid price: {price}. Error: {e}")

        self.middleware_configs.append(
            {"path": path, "issuer": issuer, "verifier": verifier}
        )

        # Apply the middleware to the app
        self._apply_middleware()

    def _apply_middleware(self):
        """Apply all middleware configurations to the Flask app."""
        current_wsgi_app = self.original_wsgi_app

        for config in self.middleware_configs:
            current_wsgi_app = self._create_middleware(config, current_wsgi_app)

        self.app.wsgi_app = current_wsgi_app

    def _create_middleware(self, config: Dict[str, Any], next_app):
        """Create a WSGI middleware function for the given configuration."""
        issuer: RequirementIssuer = config["issuer"]
        verifier: ProofVerifier = config["verifier"]

        def middleware(environ, start_response):
            with self.app.request_context(environ):
                # Skip if the path is not the same as the path in the middleware
                if not path_is_match(config["path"], request.path):
                    return next_app(environ, start_response)

                payment_header = request.headers.get(X_PAYMENT_HEADER, "")
                if payment_header == "":
                    return _json_response(
                        start_response, 402, issuer.challenge().model_dump(by_alias=True)
                    )

                try:
                    receipt = verifier.verify(payment_header, issuer.requirement())
                except PaymentVerificationError as e:
                    logger.warning("Rejected payment for %s: %s", request.path, e)
                    return _json_response(start_response, e.status_code, e.to_dict())

                # Store the receipt for the handler
                g.payment = receipt
                environ["x402.payment"] = receipt
                response_header = encode_payment_response_header(receipt)

                def start_response_with_receipt(status, headers, exc_info=None):
                    headers = list(headers) + [(X_PAYMENT_RESPONSE_HEADER, response_header)]
                    return start_response(status, headers, exc_info)

                return next_app(environ, start_response_with_receipt)

        return middleware
