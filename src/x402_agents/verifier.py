import logging
from datetime import datetime, timezone
from typing import Optional

from x402_agents.amounts import USDC_DECIMALS, format_units
from x402_agents.encoding import decode_payment_header
from x402_agents.errors import (
    RejectedPayment,
    RequirementMismatch,
    UnconfirmedPayment,
    VerificationUnavailable,
)
from x402_agents.ledger import Ledger
from x402_agents.types import (
    PaymentProof,
    PaymentRequirement,
    TransactionReceipt,
    VerificationReceipt,
)

logger = logging.getLogger(__name__)


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return a.lower() == b.lower()


def match_requirement(proof: PaymentProof, requirement: PaymentRequirement) -> None:
    """Check that ``proof`` claims exactly what ``requirement`` asks for.

    Raises:
        RequirementMismatch: On any amount, payee or asset difference
    """
    if int(proof.amount) != requirement.atomic_amount:
        raise RequirementMismatch(
            f"Payment amount {proof.amount} does not match required {requirement.amount}"
        )
    if not _same_address(proof.pay_to, requirement.pay_to):
        raise RequirementMismatch("Payment recipient does not match")
    if not _same_address(proof.asset, requirement.asset):
        raise RequirementMismatch("Payment asset does not match")


class ProofVerifier:
    """Validates ``x-payment`` proofs against the ledger.

    The verifier never settles anything. It only establishes that value
    has already moved: the referenced transaction must be final and
    successful and, with ``require_transfer_match``, must contain a transfer
    of exactly the required amount of the required asset to the payee.

    Proofs are not consumed: a confirmed transaction hash unlocks the
    resource for anyone presenting it, as many times as it is presented.
    Callers needing single-use payments must track spent hashes themselves.

    Args:
        ledger: Ledger to look receipts up on
        require_transfer_match: Cross-check the claimed fields against the
            transfers reported by the ledger
        decimals: Decimals used to render the verified amount
    """

    def __init__(
        self,
        ledger: Ledger,
        require_transfer_match: bool = True,
        decimals: int = USDC_DECIMALS,
    ):
        self.ledger = ledger
        self.require_transfer_match = require_transfer_match
        self.decimals = decimals

    def verify(self, header: str, requirement: PaymentRequirement) -> VerificationReceipt:
        """Verify a raw ``x-payment`` header value.

        Raises:
            MalformedProof: If the header cannot be parsed
            RequirementMismatch: If the proof does not pay the requirement
            UnconfirmedPayment: If the transaction is unknown or pending
            RejectedPayment: If the transaction failed
            VerificationUnavailable: If the ledger cannot be reached
        """
        proof = decode_payment_header(header)
        return self.verify_proof(proof, requirement)

    def validate(
        self, proof: PaymentProof, requirement: PaymentRequirement
    ) -> TransactionReceipt:
        """Run the field match and ledger checks, returning the ledger receipt."""
        match_requirement(proof, requirement)
        receipt = self.check_receipt(proof.tx_hash)
        if self.require_transfer_match:
            self._match_transfers(proof, requirement, receipt)
        return receipt

    def verify_proof(
        self, proof: PaymentProof, requirement: PaymentRequirement
    ) -> VerificationReceipt:
        self.validate(proof, requirement)
        logger.info("Verified payment %s of %s", proof.tx_hash, proof.amount)
        return VerificationReceipt(
            tx_hash=proof.tx_hash,
            amount=format_units(proof.amount, self.decimals),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def check_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Return the receipt of a successful transaction.

        Raises:
            UnconfirmedPayment: If the transaction is unknown or pending
            RejectedPayment: If the transaction failed
            VerificationUnavailable: If the ledger cannot be reached
        """
        try:
            receipt = self.ledger.get_receipt(tx_hash)
        except Exception as e:
            logger.error("Payment verification error for %s: %s", tx_hash, e)
            raise VerificationUnavailable("Payment verification failed") from e

        if receipt is None:
            raise UnconfirmedPayment("Transaction not found")
        if receipt.status == "pending":
            raise UnconfirmedPayment("Transaction not confirmed yet")
        if receipt.status == "failed":
            raise RejectedPayment("Transaction failed")
        return receipt

    def _match_transfers(
        self,
        proof: PaymentProof,
        requirement: PaymentRequirement,
        receipt: TransactionReceipt,
    ) -> None:
        for transfer in receipt.transfers or []:
            if (
                _same_address(transfer.token, requirement.asset)
                and _same_address(transfer.to, requirement.pay_to)
                and transfer.value == requirement.atomic_amount
            ):
                return
        logger.warning(
            "Transaction %s does not transfer %s to %s",
            proof.tx_hash,
            requirement.amount,
            requirement.pay_to,
        )
        raise RequirementMismatch("Transaction does not contain the required transfer")
