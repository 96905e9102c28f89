from unittest.mock import MagicMock

import pytest
from eth_account import Account
from web3.exceptions import TransactionNotFound

from x402_agents.ledger import Ledger
from x402_agents.ledger.evm import TRANSFER_EVENT_TOPIC, EvmLedger, decode_transfers

from .mocks import PAY_TO, PAYER, USDC


def address_topic(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def transfer_log(token=USDC, sender=PAYER, recipient=PAY_TO, value=50000):
    return {
        "address": token.lower(),
        "topics": [TRANSFER_EVENT_TOPIC, address_topic(sender), address_topic(recipient)],
        "data": value.to_bytes(32, "big"),
    }


@pytest.fixture
def account():
    return Account.create()


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.chain_id = 84532
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.estimate_gas.return_value = 21000
    w3.eth.gas_price = 1_000_000_000
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("12" * 32)
    return w3


def test_decode_transfers():
    transfers = decode_transfers([transfer_log()])

    assert len(transfers) == 1
    assert transfers[0].token == USDC
    assert transfers[0].from_ == PAYER
    assert transfers[0].to == PAY_TO
    assert transfers[0].value == 50000


def test_decode_transfers_skips_other_events():
    approval = transfer_log()
    approval["topics"] = [bytes(32)] + approval["topics"][1:]
    indexed_value = transfer_log()
    indexed_value["topics"] = indexed_value["topics"] + [bytes(32)]

    assert decode_transfers([approval, indexed_value]) == []


def test_ledger_satisfies_protocol(w3):
    assert isinstance(EvmLedger(w3), Ledger)


def test_address(w3, account):
    assert EvmLedger(w3).address is None
    assert EvmLedger(w3, account).address == account.address


def test_get_receipt_success(w3):
    w3.eth.get_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 10,
        "gasUsed": 52000,
        "logs": [transfer_log()],
    }
    w3.eth.get_transaction.return_value = {"value": 0, "from": PAYER, "to": USDC}

    receipt = EvmLedger(w3).get_receipt("0xabc")

    assert receipt.status == "success"
    assert receipt.block_number == 10
    assert receipt.gas_used == 52000
    assert [t.value for t in receipt.transfers] == [50000]
    w3.eth.get_transaction_receipt.assert_called_once_with("0xabc")


def test_get_receipt_adds_native_transfer(w3):
    w3.eth.get_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 10,
        "gasUsed": 21000,
        "logs": [],
    }
    w3.eth.get_transaction.return_value = {"value": 1000, "from": PAYER.lower(), "to": PAY_TO}

    receipt = EvmLedger(w3).get_receipt("abc")

    assert receipt.transfers[0].token is None
    assert receipt.transfers[0].from_ == PAYER
    assert receipt.transfers[0].value == 1000
    w3.eth.get_transaction_receipt.assert_called_once_with("0xabc")


def test_get_receipt_contract_creation_has_no_native_transfer(w3):
    w3.eth.get_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 10,
        "gasUsed": 90000,
        "logs": [],
    }
    w3.eth.get_transaction.return_value = {"value": 1000, "from": PAYER, "to": None}

    receipt = EvmLedger(w3).get_receipt("0xabc")

    assert receipt.status == "success"
    assert receipt.transfers == []


def test_get_receipt_failed(w3):
    w3.eth.get_transaction_receipt.return_value = {
        "status": 0,
        "blockNumber": 10,
        "gasUsed": 30000,
        "logs": [],
    }
    w3.eth.get_transaction.return_value = {"value": 0}
    assert EvmLedger(w3).get_receipt("0xabc").status == "failed"


def test_get_receipt_pending(w3):
    w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not mined")
    w3.eth.get_transaction.return_value = {"hash": "0xabc"}

    receipt = EvmLedger(w3).get_receipt("0xabc")

    assert receipt.status == "pending"
    assert receipt.transfers is None


def test_get_receipt_unknown(w3):
    w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("unknown")
    w3.eth.get_transaction.side_effect = TransactionNotFound("unknown")
    assert EvmLedger(w3).get_receipt("0xabc") is None


def test_get_receipt_propagates_rpc_errors(w3):
    w3.eth.get_transaction_receipt.side_effect = ConnectionError("rpc down")
    with pytest.raises(ConnectionError):
        EvmLedger(w3).get_receipt("0xabc")


def test_submit_native_transfer(w3, account):
    ledger = EvmLedger(w3, account, chain_id=84532)

    tx_hash = ledger.submit_transfer(1000, PAY_TO.lower(), None)

    assert tx_hash == "0x" + "12" * 32
    params = w3.eth.estimate_gas.call_args[0][0]
    assert params["to"] == PAY_TO
    assert params["value"] == 1000
    assert params["nonce"] == 7
    assert params["chainId"] == 84532
    w3.eth.send_raw_transaction.assert_called_once()


def test_submit_token_transfer(w3, account):
    contract = w3.eth.contract.return_value
    contract.functions.transfer.return_value.build_transaction.return_value = {
        "to": USDC,
        "value": 0,
        "gas": 60000,
        "gasPrice": 1_000_000_000,
        "nonce": 7,
        "chainId": 84532,
        "data": "0xa9059cbb",
    }
    ledger = EvmLedger(w3, account)

    tx_hash = ledger.submit_transfer(50000, PAY_TO, USDC)

    assert tx_hash == "0x" + "12" * 32
    contract.functions.transfer.assert_called_once_with(PAY_TO, 50000)
    params = contract.functions.transfer.return_value.build_transaction.call_args[0][0]
    assert params["from"] == account.address
    assert params["chainId"] == 84532
    w3.eth.estimate_gas.assert_not_called()


def test_submit_requires_account(w3):
    with pytest.raises(ValueError, match="account is required"):
        EvmLedger(w3).submit_transfer(1, PAY_TO, USDC)
    w3.eth.send_raw_transaction.assert_not_called()


def test_get_balance(w3):
    w3.eth.get_balance.return_value = 5
    contract = w3.eth.contract.return_value
    contract.functions.balanceOf.return_value.call.return_value = 50000

    ledger = EvmLedger(w3)
    assert ledger.get_balance(PAYER) == 5
    assert ledger.get_balance(PAYER, USDC) == 50000
