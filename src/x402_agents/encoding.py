"""Codecs for the x402 request and response headers.

Both headers carry plain JSON: ``x-payment`` holds a :class:`PaymentProof`
and ``x-payment-response`` a :class:`VerificationReceipt`.
"""

import json
from typing import Any, Dict

from pydantic import ValidationError

from x402_agents.errors import MalformedProof
from x402_agents.types import PaymentProof, PaymentRequirement, VerificationReceipt

X_PAYMENT_HEADER = "x-payment"
X_PAYMENT_RESPONSE_HEADER = "x-payment-response"


def build_payment_proof(
    requirement: PaymentRequirement, tx_hash: str, payer: str
) -> PaymentProof:
    """Build the proof for a confirmed transfer answering ``requirement``."""
    return PaymentProof(
        tx_hash=tx_hash,
        amount=requirement.amount,
        pay_to=requirement.pay_to,
        asset=requirement.asset,
        payer=payer,
    )


def encode_payment_header(proof: PaymentProof) -> str:
    return proof.model_dump_json(by_alias=True, exclude_none=True)


def decode_payment_header(header: str) -> PaymentProof:
    """Parse an ``x-payment`` header value.

    Raises:
        MalformedProof: If the value is not JSON or lacks required fields
    """
    try:
        data = json.loads(header)
    except (TypeError, ValueError) as e:
        raise MalformedProof("Invalid payment header format") from e
    if not isinstance(data, dict):
        raise MalformedProof("Invalid payment header format")
    if not data.get("txHash"):
        raise MalformedProof("Transaction hash required")
    try:
        return PaymentProof.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedProof(f"Invalid payment header fields: {fields}") from e


def encode_payment_response_header(receipt: VerificationReceipt) -> str:
    return receipt.model_dump_json(by_alias=True)


def decode_x_payment_response(header: str) -> Dict[str, Any]:
    """Decode the x-payment-response header.

    Returns:
        The verification receipt containing status, txHash, amount
        and timestamp
    """
    return json.loads(header)
