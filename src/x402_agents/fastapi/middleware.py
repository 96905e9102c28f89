import logging
from typing import Callable, Optional, Union

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from x402_agents.amounts import USDC_DECIMALS
from x402_agents.encoding import (
    X_PAYMENT_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
    encode_payment_response_header,
)
from x402_agents.errors import PaymentVerificationError
from x402_agents.issuer import PAYMENT_REQUIRED_STATUS, RequirementIssuer
from x402_agents.ledger import Ledger
from x402_agents.path import path_is_match
from x402_agents.verifier import ProofVerifier

logger = logging.getLogger(__name__)


def require_payment(
    price: Union[str, int],
    pay_to_address: str,
    ledger: Optional[Ledger] = None,
    path: Union[str, list[str]] = "*",
    asset: Optional[str] = None,
    chain_id: Optional[int] = None,
    decimals: int = USDC_DECIMALS,
    verifier: Optional[ProofVerifier] = None,
):
    """Generate a FastAPI middleware that gates an endpoint behind payment.

    Args:
        price: Human price, e.g. "0.05" (USDC by default)
        pay_to_address: Address to receive the payment
        ledger: Ledger used to verify proofs. Ignored when ``verifier`` is given
        path: Path(s) to gate. Defaults to "*" for all paths
        asset: Token contract the price is denominated in
        chain_id: Network the payment must settle on
        decimals: Decimals of ``asset``
        verifier: Preconfigured :class:`ProofVerifier`

    Returns:
        Callable: middleware for ``app.middleware("http")``

    Example:
        ```python
        app.middleware("http")(
            require_payment("0.01", SERVER_ADDRESS, ledger, path="/api/premium-data")
        )
        ```
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

    async def middleware(request: Request, call_next: Callable):
        # Skip if the path is not the same as the path in the middleware
        if not path_is_match(path, request.url.path):
            return await call_next(request)

        payment_header = request.headers.get(X_PAYMENT_HEADER, "")
        if payment_header == "":
            return JSONResponse(
                content=issuer.challenge().model_dump(by_alias=True),
                status_code=PAYMENT_REQUIRED_STATUS,
            )

        try:
            receipt = await run_in_threadpool(
                verifier.verify, payment_header, issuer.requirement()
            )
        except PaymentVerificationError as e:
            logger.warning(
                "Rejected payment from %s: %s",
                request.client.host if request.client else "unknown",
                e,
            )
            return JSONResponse(content=e.to_dict(), status_code=e.status_code)

        request.state.payment = receipt

        response = await call_next(request)
        response.headers[X_PAYMENT_RESPONSE_HEADER] = encode_payment_response_header(receipt)
        return response

    return middleware
