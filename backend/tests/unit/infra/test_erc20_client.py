# tests/unit/infra/test_erc20_client.py
from __future__ import annotations

import json

import pytest
import responses
from eth_account import Account

from custody.infra.rpc.erc20_client import Erc20RpcClient, RpcError
from custody.infra.rpc.transport import ResilientTransport, RetryPolicy
from tests.factories.wallet import DEV_ADDRESS, DEV_PRIVATE_KEY
from tests.helpers.constants import TOKEN_CONTRACT

URL = "http://node.test/rpc"
RECIPIENT = "0x" + "22" * 20
TX_HASH = "0x" + "ee" * 32


class FakeNode:
    """Answer JSON-RPC calls from a ``method -> result`` table and record them."""

    def __init__(self, results: dict, errors: dict | None = None) -> None:
        self.results = results
        self.errors = errors or {}
        self.calls: list[dict] = []

    def __call__(self, request):
        body = json.loads(request.body)
        self.calls.append(body)
        method = body["method"]
        if method in self.errors:
            payload = {"jsonrpc": "2.0", "id": body["id"], "error": self.errors[method]}
        else:
            payload = {"jsonrpc": "2.0", "id": body["id"], "result": self.results[method]}
        return 200, {"Content-Type": "application/json"}, json.dumps(payload)

    def methods(self) -> list[str]:
        return [c["method"] for c in self.calls]


@pytest.fixture()
def client() -> Erc20RpcClient:
    transport = ResilientTransport(URL, RetryPolicy(), sleep=lambda _: None)
    return Erc20RpcClient(transport, TOKEN_CONTRACT)


def _node(**overrides) -> FakeNode:
    results = {
        "eth_call": "0x" + format(6, "064x"),
        "eth_getTransactionCount": "0x5",
        "eth_gasPrice": "0x3b9aca00",
        "eth_estimateGas": "0xea60",
        "eth_chainId": "0x221",
        "eth_sendRawTransaction": TX_HASH,
    }
    results.update(overrides)
    node = FakeNode(results)
    responses.add_callback(responses.POST, URL, callback=node)
    return node


def test_rejects_invalid_contract_address():
    with pytest.raises(ValueError):
        Erc20RpcClient(ResilientTransport(URL), "0x1234")


@responses.activate
def test_decimals_is_cached(client):
    node = _node()

    assert client.decimals() == 6
    assert client.decimals() == 6
    assert node.methods() == ["eth_call"]
    assert node.calls[0]["params"][0]["data"] == "0x313ce567"


@responses.activate
def test_balance_of_encodes_address(client):
    node = _node(eth_call="0x" + format(1_500_000, "064x"))

    assert client.balance_of(DEV_ADDRESS) == 1_500_000

    data = node.calls[0]["params"][0]["data"]
    assert data.startswith("0x70a08231")
    assert data.endswith(DEV_ADDRESS[2:].lower())
    assert len(data) == 10 + 64


def test_build_signer_derives_address(client):
    assert client.build_signer(DEV_PRIVATE_KEY).address == DEV_ADDRESS


@responses.activate
def test_transfer_signs_locally_and_broadcasts(client):
    node = _node()
    signer = client.build_signer(DEV_PRIVATE_KEY)

    tx_hash = client.transfer(signer, RECIPIENT, 1_500_000)

    assert tx_hash == TX_HASH
    assert node.methods() == [
        "eth_getTransactionCount",
        "eth_gasPrice",
        "eth_estimateGas",
        "eth_chainId",
        "eth_sendRawTransaction",
    ]
    estimate = node.calls[2]["params"][0]
    assert estimate["data"] == (
        "0xa9059cbb" + RECIPIENT[2:].rjust(64, "0") + format(1_500_000, "064x")
    )
    raw = node.calls[-1]["params"][0]
    assert raw.startswith("0x")
    # The broadcast payload recovers to the signer.
    assert Account.recover_transaction(raw) == DEV_ADDRESS


@responses.activate
def test_rpc_error_member_raises(client):
    revert_data = "0xec442f05" + "00" * 32
    node = FakeNode(
        {},
        errors={
            "eth_getTransactionCount": {
                "code": 3,
                "message": "execution reverted",
                "data": revert_data,
            }
        },
    )
    responses.add_callback(responses.POST, URL, callback=node)

    with pytest.raises(RpcError) as excinfo:
        client.transfer(client.build_signer(DEV_PRIVATE_KEY), RECIPIENT, 1)

    assert excinfo.value.code == 3
    assert excinfo.value.revert_reason == "ERC20InvalidReceiver"


@responses.activate
def test_empty_call_result_is_an_error(client):
    _node(eth_call="0x")
    with pytest.raises(RpcError):
        client.balance_of(DEV_ADDRESS)
