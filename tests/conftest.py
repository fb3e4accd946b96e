"""
Pytest fixtures for the bridge e2e tests.

``FakeChain`` is an in-memory stand-in for a chain client: transactions are
really signed by eth-account, then executed against plain dict contract
state, one block per transaction. ``FakeNetwork`` plays the relayer role and
executes every deposit as a proposal on the destination chain.
"""
import copy
import itertools
import json
import threading
import time

import pytest
from eth_abi import encode as abi_encode
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from bridge_e2e._rate_limited_log import reset_rate_limits
from bridge_e2e.client import event_topic, to_hex
from bridge_e2e.config import E2ESettings
from bridge_e2e.contracts import ArtifactStore
from bridge_e2e.finality import PROPOSAL_EXECUTION_EVENT
from bridge_e2e.fixtures import KeyRing
from bridge_e2e.models import TxReceipt, ZERO_ADDRESS
from bridge_e2e.transactor import Transactor

TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"

ARTIFACT_NAMES = [
    "Bridge", "BasicFeeHandler", "ERC20PresetMinterPauser", "ERC721MinterBurnerPauser",
    "ERC20Handler", "ERC721Handler", "GenericHandler", "CentrifugeAsset",
]


@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


def _revert(reason):
    raise ContractLogicError(f"execution reverted: {reason}")


def _word(data, index):
    return int.from_bytes(data[32 * index:32 * (index + 1)], "big")


class FakeCall:
    """Contract function or constructor bound to its arguments"""

    def __init__(self, chain, address, method, args, kind=None):
        self.chain = chain
        self.address = address
        self.method = method
        self.args = args
        self.kind = kind

    def call(self):
        return self.chain.view(self.address, self.method, self.args)

    def estimate_gas(self, params=None):
        return self.chain.estimate(self, params or {})

    def build_transaction(self, params):
        tx = dict(params)
        if self.address:
            tx["to"] = self.address
        tx["data"] = "0x" + self.method.encode().hex()
        self.chain.stage(self, params)
        return tx


class _Functions:
    def __init__(self, chain, address):
        self._chain = chain
        self._address = address

    def __getattr__(self, method):
        return lambda *args: FakeCall(self._chain, self._address, method, args)


class FakeContract:
    def __init__(self, chain, address=None, kind=None):
        self.address = address
        self.functions = _Functions(chain, address)
        self._chain = chain
        self._kind = kind

    def constructor(self, *args):
        return FakeCall(self._chain, None, "constructor", args, kind=self._kind)


class FakeChain:
    """In-memory chain implementing the ChainClient surface used by the harness"""

    def __init__(self, chain_id, network=None):
        self.chain_id = chain_id
        self.network = network
        self.block_number = 0
        self.contracts = {}
        self.logs = []
        self.txs = {}
        self.receipts = {}
        self.nonces = {}
        self.sent = []
        self.reject_sends = False
        self._lock = threading.RLock()
        self._local = threading.local()

    # client surface

    def contract(self, address=None, abi=None, bytecode=None):
        if bytecode:
            return FakeContract(self, kind=bytes.fromhex(bytecode[2:]).decode())
        return FakeContract(self, Web3.to_checksum_address(address))

    def gas_price(self):
        return 10 ** 9

    def get_transaction_count(self, address):
        return self.nonces.get(address, 0)

    def latest_block(self):
        return self.block_number

    def stage(self, call, params):
        self._local.pending = (call, dict(params))

    def send_raw_transaction(self, raw_tx):
        call, params = self._local.pending
        self._local.pending = None
        if self.reject_sends:
            raise ValueError("node rejected transaction")

        sender = params["from"]
        with self._lock:
            expected = self.nonces.get(sender, 0)
            if params["nonce"] != expected:
                raise ValueError(f"nonce too low: got {params['nonce']}, expected {expected}")
            self.nonces[sender] = expected + 1

            tx_hash = to_hex(bytes(Web3.keccak(bytes(raw_tx))))
            snapshot = (copy.deepcopy(self.contracts), list(self.logs))
            status, result = 1, None
            try:
                result = self._apply(call, sender, params.get("value", 0), params["nonce"], relay=True)
            except ContractLogicError:
                self.contracts, self.logs = snapshot
                status = 0

            self.block_number += 1
            self.txs[tx_hash] = {
                "hash": tx_hash,
                "from": sender,
                "to": call.address,
                "gasPrice": params["gasPrice"],
                "gas": params["gas"],
                "value": params.get("value", 0),
                "nonce": params["nonce"],
                "blockNumber": self.block_number,
            }
            self.receipts[tx_hash] = {
                "transactionHash": tx_hash,
                "blockNumber": self.block_number,
                "blockHash": to_hex(self.block_number.to_bytes(32, "big")),
                "status": status,
                "gasUsed": 21000,
                "from": sender,
                "to": call.address,
                "contractAddress": result if call.method == "constructor" and status == 1 else None,
                "logs": [],
            }
            self.sent.append((call, params))
        return tx_hash

    def wait_for_receipt(self, tx_hash, timeout=120, poll_latency=0.1):
        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return TxReceipt.model_validate(receipt)

    def fetch_event_logs(self, address, event_signature, start_block, end_block=None):
        topic = event_topic(event_signature)
        return [
            log for log in self.logs
            if log["address"].lower() == address.lower()
            and log["topics"][0] == topic
            and log["blockNumber"] >= start_block
            and (end_block is None or log["blockNumber"] <= end_block)
        ]

    def transaction_by_hash(self, tx_hash):
        return dict(self.txs[tx_hash])

    # execution

    def estimate(self, call, params):
        sender = params.get("from")
        with self._lock:
            snapshot = (copy.deepcopy(self.contracts), list(self.logs))
            try:
                self._apply(call, sender, params.get("value", 0), self.nonces.get(sender, 0), relay=False)
            finally:
                self.contracts, self.logs = snapshot
        return 100000

    def view(self, address, method, args):
        state = self.contracts.get(address)
        if state is None:
            _revert("no contract at address")
        kind = state["kind"]
        if kind == "Bridge":
            if method == "_domainID":
                return state["domain_id"]
            if method == "_resourceIDToHandlerAddress":
                return state["resources"].get(args[0], ZERO_ADDRESS)
            if method == "_feeHandler":
                return state["fee_handler"] or ZERO_ADDRESS
        elif kind == "BasicFeeHandler" and method == "_fee":
            return state["fee"]
        elif kind == "ERC20PresetMinterPauser":
            if method == "balanceOf":
                return state["balances"].get(args[0], 0)
            if method == "allowance":
                return state["allowances"].get((args[0], args[1]), 0)
            if method == "hasRole":
                return args[1] in state["minters"]
            if method == "decimals":
                return 18
        elif kind == "ERC721MinterBurnerPauser":
            if method == "ownerOf":
                if args[0] not in state["owners"]:
                    _revert("ERC721: invalid token ID")
                return state["owners"][args[0]]
            if method == "tokenURI":
                return state["uris"][args[0]]
            if method == "hasRole":
                return args[1] in state["minters"]
        elif kind == "CentrifugeAsset" and method == "_assetsStored":
            return args[0] in state["stored"]
        elif kind.endswith("Handler") and method == "_bridgeAddress":
            return state["bridge"]
        raise AssertionError(f"Unexpected view {kind}.{method}")

    def _contract_address(self, sender, nonce):
        seed = self.chain_id.to_bytes(8, "big") + bytes.fromhex(sender[2:]) + nonce.to_bytes(8, "big")
        return Web3.to_checksum_address(bytes(Web3.keccak(seed))[-20:])

    def _construct(self, kind, args, sender):
        state = {"kind": kind}
        if kind == "Bridge":
            state.update(domain_id=args[0], admin=sender, mpc=None, fee_handler=None,
                         resources={}, deposit_nonce=0)
        elif kind == "BasicFeeHandler":
            state.update(bridge=args[0], fee=0)
        elif kind == "ERC20PresetMinterPauser":
            state.update(name=args[0], symbol=args[1], balances={}, allowances={}, minters={sender})
        elif kind == "ERC721MinterBurnerPauser":
            state.update(name=args[0], symbol=args[1], owners={}, approvals={}, uris={}, minters={sender})
        elif kind in ("ERC20Handler", "ERC721Handler"):
            state.update(bridge=args[0], tokens={}, burnable=set())
        elif kind == "GenericHandler":
            state.update(bridge=args[0], targets={})
        elif kind == "CentrifugeAsset":
            state.update(stored=set())
        else:
            raise AssertionError(f"Unknown artifact {kind}")
        return state

    def _apply(self, call, sender, value, nonce, relay):
        if call.method == "constructor":
            address = self._contract_address(sender, nonce)
            self.contracts[address] = self._construct(call.kind, call.args, sender)
            return address

        state = self.contracts.get(call.address)
        if state is None:
            _revert("no contract at address")
        method, args = call.method, call.args
        kind = state["kind"]

        if kind == "Bridge":
            return self._bridge(call.address, state, sender, method, args, relay)
        if kind == "BasicFeeHandler" and method == "changeFee":
            state["fee"] = args[0]
            return None
        if kind == "ERC20PresetMinterPauser":
            if method == "mint":
                if sender not in state["minters"]:
                    _revert("ERC20PresetMinterPauser: must have minter role to mint")
                state["balances"][args[0]] = state["balances"].get(args[0], 0) + args[1]
            elif method == "approve":
                state["allowances"][(sender, args[0])] = args[1]
            elif method == "grantRole":
                state["minters"].add(args[1])
            return None
        if kind == "ERC721MinterBurnerPauser":
            if method == "mint":
                if sender not in state["minters"]:
                    _revert("ERC721: must have minter role to mint")
                if args[1] in state["owners"]:
                    _revert("ERC721: token already minted")
                state["owners"][args[1]] = args[0]
                state["uris"][args[1]] = args[2]
            elif method == "approve":
                if state["owners"].get(args[1]) != sender:
                    _revert("ERC721: approve caller is not token owner")
                state["approvals"][args[1]] = args[0]
            elif method == "grantRole":
                state["minters"].add(args[1])
            return None
        if kind == "CentrifugeAsset" and method == "store":
            state["stored"].add(args[0])
            return None
        raise AssertionError(f"Unexpected transaction {kind}.{method}")

    def _bridge(self, address, state, sender, method, args, relay):
        if method == "endKeygen":
            state["mpc"] = args[0]
        elif method == "adminChangeFeeHandler":
            state["fee_handler"] = args[0]
        elif method in ("adminSetResource", "adminSetGenericResource"):
            handler = self.contracts.get(args[0])
            if handler is None or handler["bridge"] != address:
                _revert("handler is not bound to this bridge")
            state["resources"][args[1]] = args[0]
            if method == "adminSetResource":
                handler["tokens"][args[1]] = args[2]
            else:
                handler["targets"][args[1]] = args[2]
        elif method == "adminSetBurnable":
            self.contracts[args[0]]["burnable"].add(args[1])
        elif method == "deposit":
            dest_domain, resource_id, data, _fee_data = args
            if state["mpc"] is None:
                _revert("MPC address not set")
            handler_address = state["resources"].get(resource_id)
            if handler_address is None:
                _revert("resourceID not mapped to handler")
            self._lock_on_source(handler_address, sender, resource_id, data)
            state["deposit_nonce"] += 1
            if relay and self.network is not None:
                self.network.relay(state["domain_id"], dest_domain, state["deposit_nonce"], resource_id, data)
        else:
            raise AssertionError(f"Unexpected transaction Bridge.{method}")
        return None

    def _lock_on_source(self, handler_address, sender, resource_id, data):
        handler = self.contracts[handler_address]
        if handler["kind"] == "ERC20Handler":
            token_address = handler["tokens"][resource_id]
            token = self.contracts[token_address]
            amount = _word(data, 0)
            if token["allowances"].get((sender, handler_address), 0) < amount:
                _revert("ERC20: insufficient allowance")
            if token["balances"].get(sender, 0) < amount:
                _revert("ERC20: burn amount exceeds balance")
            token["allowances"][(sender, handler_address)] -= amount
            token["balances"][sender] -= amount
            if token_address not in handler["burnable"]:
                token["balances"][handler_address] = token["balances"].get(handler_address, 0) + amount
        elif handler["kind"] == "ERC721Handler":
            token_address = handler["tokens"][resource_id]
            token = self.contracts[token_address]
            token_id = _word(data, 0)
            if token["owners"].get(token_id) != sender:
                _revert("ERC721: caller is not token owner")
            if token["approvals"].get(token_id) != handler_address:
                _revert("ERC721: caller is not token owner or approved")
            if token_address in handler["burnable"]:
                del token["owners"][token_id]
            else:
                token["owners"][token_id] = handler_address

    def execute_proposal(self, origin_domain, deposit_nonce, resource_id, data):
        """Relayer side: execute a deposit from another chain on the newest bridge."""
        with self._lock:
            bridges = [a for a, s in self.contracts.items() if s["kind"] == "Bridge"]
            if not bridges:
                return False
            bridge_address = bridges[-1]
            handler = self.contracts[self.contracts[bridge_address]["resources"][resource_id]]
            if handler["kind"] == "ERC20Handler":
                token = self.contracts[handler["tokens"][resource_id]]
                recipient = Web3.to_checksum_address(data[64:64 + _word(data, 1)])
                token["balances"][recipient] = token["balances"].get(recipient, 0) + _word(data, 0)
            elif handler["kind"] == "ERC721Handler":
                token = self.contracts[handler["tokens"][resource_id]]
                length = _word(data, 1)
                recipient = Web3.to_checksum_address(data[64:64 + length])
                token["owners"][_word(data, 0)] = recipient
            else:
                store = self.contracts[handler["targets"][resource_id]]
                store["stored"].add(bytes(data[32:64]))

            self.block_number += 1
            data_hash = bytes(Web3.keccak(bytes(data)))
            self.logs.append({
                "address": bridge_address,
                "topics": [event_topic(PROPOSAL_EXECUTION_EVENT)],
                "data": to_hex(abi_encode(["uint8", "uint64", "bytes32"], [origin_domain, deposit_nonce, data_hash])),
                "blockNumber": self.block_number,
            })
            return True


class FakeNetwork:
    """Two or more fake chains plus an always-on relayer"""

    def __init__(self):
        self.chains = {}
        self.auto_relay = True
        self.pending = []

    def add_chain(self, domain_id, chain_id):
        chain = FakeChain(chain_id, network=self)
        self.chains[domain_id] = chain
        return chain

    def relay(self, origin_domain, dest_domain, deposit_nonce, resource_id, data):
        message = (origin_domain, dest_domain, deposit_nonce, resource_id, bytes(data))
        if self.auto_relay:
            self.deliver(message)
        else:
            self.pending.append(message)

    def deliver(self, message):
        origin_domain, dest_domain, deposit_nonce, resource_id, data = message
        self.chains[dest_domain].execute_proposal(origin_domain, deposit_nonce, resource_id, data)

    def flush(self):
        while self.pending:
            self.deliver(self.pending.pop(0))


@pytest.fixture
def artifacts_dir(tmp_path):
    """Artifact directory whose bytecode is just the contract name"""
    directory = tmp_path / "artifacts"
    for name in ARTIFACT_NAMES:
        path = directory / "contracts" / f"{name}.sol"
        path.mkdir(parents=True)
        with open(path / f"{name}.json", "w") as f:
            json.dump({"contractName": name, "abi": [], "bytecode": "0x" + name.encode().hex()}, f)
    return directory


@pytest.fixture
def artifacts(artifacts_dir):
    return ArtifactStore(artifacts_dir)


@pytest.fixture
def network():
    net = FakeNetwork()
    net.add_chain(1, 1337)
    net.add_chain(2, 1338)
    return net


@pytest.fixture
def chain_a(network):
    return network.chains[1]


@pytest.fixture
def chain_b(network):
    return network.chains[2]


@pytest.fixture
def keyring():
    return KeyRing.dev()


@pytest.fixture
def deployer(keyring):
    return keyring["Alice"]


@pytest.fixture
def transactor_a(chain_a, deployer):
    return Transactor(chain_a, account=deployer)


@pytest.fixture
def test_account():
    """Create a deterministic test account"""
    return Account.from_key(TEST_PRIV_KEY)


@pytest.fixture
def settings(artifacts_dir):
    return E2ESettings(artifacts_dir=str(artifacts_dir), finality_timeout=30, poll_interval=1)


@pytest.fixture
def address_factory():
    """Fresh checksum addresses, never reused within a test"""
    counter = itertools.count(1)
    return lambda: Web3.to_checksum_address(next(counter).to_bytes(20, "big"))
