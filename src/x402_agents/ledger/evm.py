"""EVM ledger backed by web3 and a local eth_account signer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import TransactionNotFound

from x402_agents.types import TokenTransfer, TransactionReceipt

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
]

TRANSFER_EVENT_TOPIC = Web3.keccak(text="Transfer(address,address,uint256)")

TX_STATUS_SUCCESS = 1


def _topic_to_address(topic: Any) -> str:
    return to_checksum_address("0x" + bytes(topic).hex()[-40:])


def decode_transfers(logs: list) -> list[TokenTransfer]:
    """Decode ERC-20 ``Transfer`` events from raw receipt logs."""
    transfers = []
    for log in logs:
        topics = log["topics"]
        if len(topics) != 3 or bytes(topics[0]) != bytes(TRANSFER_EVENT_TOPIC):
            continue
        transfers.append(
            TokenTransfer(
                token=to_checksum_address(log["address"]),
                from_=_topic_to_address(topics[1]),
                to=_topic_to_address(topics[2]),
                value=int.from_bytes(bytes(log["data"]), "big"),
            )
        )
    return transfers


class EvmLedger:
    """Ledger implementation for EVM chains.

    Transfers are built and signed locally with ``account`` and broadcast
    through ``w3``. Receipts expose the decoded ERC-20 transfers so that
    verifiers can check what actually moved.

    Example:
        ```python
        from eth_account import Account
        from web3 import Web3

        w3 = Web3(Web3.HTTPProvider("https://sepolia.base.org"))
        ledger = EvmLedger(w3, Account.from_key("0x..."), chain_id=84532)
        tx_hash = ledger.submit_transfer(50000, "0xPayee...", "0xUSDC...")
        ```
    """

    def __init__(
        self,
        w3: Web3,
        account: Optional["LocalAccount"] = None,
        chain_id: Optional[int] = None,
    ) -> None:
        self._w3 = w3
        self._account = account
        self._chain_id = chain_id

    @classmethod
    def from_rpc_url(
        cls,
        rpc_url: str,
        account: Optional["LocalAccount"] = None,
        chain_id: Optional[int] = None,
        timeout: float = 30.0,
    ) -> "EvmLedger":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        return cls(w3, account, chain_id)

    @property
    def address(self) -> Optional[str]:
        return self._account.address if self._account else None

    def submit_transfer(self, amount: int, to: str, token: Optional[str]) -> str:
        """Sign and broadcast a transfer.

        Sends an ERC-20 ``transfer`` when ``token`` is set, a native value
        transfer otherwise.

        Returns:
            Transaction hash (0x-prefixed hex).
        """
        if self._account is None:
            raise ValueError("An account is required to submit transfers")

        params: dict[str, Any] = {
            "from": self._account.address,
            "nonce": self._w3.eth.get_transaction_count(self._account.address),
            "chainId": self._chain_id or self._w3.eth.chain_id,
        }
        recipient = to_checksum_address(to)
        if token:
            contract = self._w3.eth.contract(
                address=to_checksum_address(token), abi=ERC20_ABI
            )
            tx = contract.functions.transfer(recipient, amount).build_transaction(params)
        else:
            params.update({"to": recipient, "value": amount})
            params["gas"] = self._w3.eth.estimate_gas(params)
            params["gasPrice"] = self._w3.eth.gas_price
            tx = params

        signed_tx = self._account.sign_transaction(tx)
        tx_hash = Web3.to_hex(self._w3.eth.send_raw_transaction(signed_tx.raw_transaction))
        logger.info("Submitted transfer of %s to %s: %s", amount, recipient, tx_hash)
        return tx_hash

    def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        if not tx_hash.startswith("0x"):
            tx_hash = "0x" + tx_hash
        try:
            receipt = self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return self._pending_or_none(tx_hash)

        transfers = decode_transfers(receipt["logs"])
        tx = self._w3.eth.get_transaction(tx_hash)
        # contract creations have no recipient
        if tx.get("value") and tx.get("to") is not None:
            transfers.insert(
                0,
                TokenTransfer(
                    token=None,
                    from_=to_checksum_address(tx["from"]),
                    to=to_checksum_address(tx["to"]),
                    value=tx["value"],
                ),
            )

        return TransactionReceipt(
            status="success" if receipt["status"] == TX_STATUS_SUCCESS else "failed",
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            transfers=transfers,
        )

    def _pending_or_none(self, tx_hash: str) -> Optional[TransactionReceipt]:
        try:
            self._w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None
        return TransactionReceipt(status="pending")

    def get_balance(self, address: str, token: Optional[str] = None) -> int:
        """Balance of ``address`` in atomic units of ``token`` (native if unset)."""
        checksum = to_checksum_address(address)
        if token is None:
            return self._w3.eth.get_balance(checksum)
        contract = self._w3.eth.contract(address=to_checksum_address(token), abi=ERC20_ABI)
        return contract.functions.balanceOf(checksum).call()
