"""
Tests for the web3-backed chain client.
"""
import logging

import pytest
from hexbytes import HexBytes
from unittest.mock import MagicMock, patch
from web3 import Web3

from bridge_e2e.client import ChainClient, event_topic, to_hex

ADDRESS = "0x" + "ab" * 20


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.chain_id = 1337
    w3.eth.gas_price = 10 ** 9
    w3.eth.block_number = 42
    return w3


@pytest.fixture
def client(w3):
    return ChainClient(w3=w3)


def test_to_hex():
    assert to_hex(b"\x01\x02") == "0x0102"
    assert to_hex("0102") == "0x0102"
    assert to_hex("0xabcd") == "0xabcd"


def test_event_topic():
    assert event_topic("Transfer(address,address,uint256)") == \
        "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def test_requires_url_or_web3():
    with pytest.raises(ValueError, match="rpc_url or w3"):
        ChainClient()


def test_rejects_unknown_scheme():
    with pytest.raises(ValueError, match="http"):
        ChainClient("ftp://localhost:8545")


@patch("bridge_e2e.client.Web3")
def test_builds_http_provider(mock_web3):
    ChainClient("http://localhost:8545", request_timeout=5)
    mock_web3.HTTPProvider.assert_called_once_with("http://localhost:8545", request_kwargs={"timeout": 5})


@patch("bridge_e2e.client.Web3")
def test_warns_on_remote_plain_http(mock_web3, caplog):
    with caplog.at_level(logging.WARNING, logger="bridge_e2e.client"):
        ChainClient("http://evm1.example.com:8545")
    assert "plain http" in caplog.text


def test_chain_id_is_cached(client, w3):
    assert client.chain_id == 1337
    w3.eth.chain_id = 1
    assert client.chain_id == 1337


def test_simple_queries(client, w3):
    w3.eth.get_transaction_count.return_value = 3
    assert client.gas_price() == 10 ** 9
    assert client.latest_block() == 42
    assert client.get_transaction_count(ADDRESS) == 3
    w3.eth.get_transaction_count.assert_called_once_with(Web3.to_checksum_address(ADDRESS), "pending")


def test_contract_checksums_address(client, w3):
    client.contract(ADDRESS, abi=[{"type": "function", "name": "fee"}])
    w3.eth.contract.assert_called_once_with(
        abi=[{"type": "function", "name": "fee"}], address=Web3.to_checksum_address(ADDRESS)
    )


def test_contract_factory_with_bytecode(client, w3):
    client.contract(abi=None, bytecode="0x6080")
    w3.eth.contract.assert_called_once_with(abi=[], bytecode="0x6080")


def test_send_raw_transaction_returns_hex(client, w3):
    w3.eth.send_raw_transaction.return_value = HexBytes("0x" + "12" * 32)
    assert client.send_raw_transaction(b"raw") == "0x" + "12" * 32


def test_fetch_event_logs_filter(client, w3):
    w3.eth.get_logs.return_value = [{"blockNumber": 5}]
    logs = client.fetch_event_logs(ADDRESS, "ProposalExecution(uint8,uint64,bytes32)", 10)
    assert logs == [{"blockNumber": 5}]
    w3.eth.get_logs.assert_called_once_with({
        "address": Web3.to_checksum_address(ADDRESS),
        "topics": [event_topic("ProposalExecution(uint8,uint64,bytes32)")],
        "fromBlock": 10,
        "toBlock": "latest",
    })


def test_fetch_event_logs_with_end_block(client, w3):
    w3.eth.get_logs.return_value = []
    client.fetch_event_logs(ADDRESS, "Deposit()", 1, 9)
    assert w3.eth.get_logs.call_args[0][0]["toBlock"] == 9


def test_wait_for_receipt_converts(client, w3):
    w3.eth.wait_for_transaction_receipt.return_value = {
        "transactionHash": HexBytes("0x" + "aa" * 32),
        "blockNumber": 7,
        "blockHash": HexBytes("0x" + "bb" * 32),
        "status": 1,
        "gasUsed": 21000,
        "from": ADDRESS,
        "to": None,
        "contractAddress": None,
        "logs": [],
    }
    receipt = client.wait_for_receipt(b"\xaa" * 32, timeout=5)
    assert receipt.tx_hash == "0x" + "aa" * 32
    assert receipt.block_hash == "0x" + "bb" * 32
    assert receipt.status == 1
    w3.eth.wait_for_transaction_receipt.assert_called_once_with("0x" + "aa" * 32, timeout=5, poll_latency=0.1)


def test_transaction_by_hash(client, w3):
    w3.eth.get_transaction.return_value = {"gasPrice": 5, "value": 1}
    assert client.transaction_by_hash("0x01") == {"gasPrice": 5, "value": 1}
    w3.eth.get_transaction.assert_called_once_with("0x01")
