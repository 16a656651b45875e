"""ERC-20 token client speaking JSON-RPC through :class:`ResilientTransport`.

Transactions are signed locally with ``eth-account``; the node only sees the
raw signed payload.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import is_hex_address, to_checksum_address

from custody.infra.rpc.transport import ResilientTransport, RetryPolicy
from custody.services._shared.ports.transfer_client import TokenTransferClient

logger = logging.getLogger(__name__)

# Function selectors
DECIMALS_SELECTOR = "0x313ce567"
BALANCE_OF_SELECTOR = "0x70a08231"
TRANSFER_SELECTOR = "0xa9059cbb"

# Custom errors (OpenZeppelin ERC-20, EIP-6093)
REVERT_SELECTORS = {
    "0xec442f05": "ERC20InvalidReceiver",
    "0xfb8f41b2": "ERC20InsufficientAllowance",
    "0xe450d38c": "ERC20InsufficientBalance",
}

# Node round trips made by Erc20RpcClient.transfer: nonce, gas price, gas
# estimate, chain id, raw send.
BROADCAST_RPC_CALLS = 5


def broadcast_budget_seconds(policy: RetryPolicy) -> float:
    """Worst-case duration of :meth:`Erc20RpcClient.transfer` under ``policy``."""
    return BROADCAST_RPC_CALLS * policy.worst_case_seconds()


class RpcError(Exception):
    """
    JSON-RPC ``error`` member returned by the node.

    :param code: JSON-RPC error code.
    :param message: Node-provided message.
    :param data: Optional revert data (hex string).
    """

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data

    @property
    def revert_reason(self) -> str | None:
        """Name of a known custom error encoded in ``data``, if any."""
        if isinstance(self.data, str) and len(self.data) >= 10:
            return REVERT_SELECTORS.get(self.data[:10].lower())
        return None


def _word(value: int) -> str:
    return format(value, "064x")


def _address_word(address: str) -> str:
    return address.lower().removeprefix("0x").rjust(64, "0")


def _to_int(result: Any) -> int:
    if not isinstance(result, str) or result in ("", "0x"):
        raise RpcError(-32000, f"Unexpected empty result: {result!r}")
    return int(result, 16)


class Erc20RpcClient(TokenTransferClient):
    """
    Read balances and broadcast transfers of a single ERC-20 token.

    :param transport: Transport bound to the node endpoint.
    :param contract_address: Token contract address (20-byte hex).
    """

    def __init__(self, transport: ResilientTransport, contract_address: str) -> None:
        if not is_hex_address(contract_address):
            raise ValueError("Token contract address must be a 20-byte hex string")
        self.transport = transport
        self.contract_address = to_checksum_address(contract_address)
        self._ids = itertools.count(1)
        self._decimals: int | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> Erc20RpcClient:
        return cls(ResilientTransport.from_config(config), config["TOKEN_CONTRACT_ADDRESS"])

    # ------------------------------------------------------------------ #
    # JSON-RPC
    # ------------------------------------------------------------------ #

    def call(self, method: str, params: list[Any]) -> Any:
        """Invoke ``method`` and return its ``result``.

        :raises RpcError: When the node answers with an ``error`` member.
        :raises TransportError: When the node cannot be reached.
        """
        body = self.transport.post_json(
            {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        )
        if not isinstance(body, dict):
            raise RpcError(-32700, "Malformed JSON-RPC response")
        error = body.get("error")
        if error:
            raise RpcError(
                int(error.get("code", -32000)), str(error.get("message", "")), error.get("data")
            )
        return body.get("result")

    def _eth_call(self, data: str) -> Any:
        return self.call("eth_call", [{"to": self.contract_address, "data": data}, "latest"])

    # ------------------------------------------------------------------ #
    # TokenTransferClient
    # ------------------------------------------------------------------ #

    def decimals(self) -> int:
        """Return the token decimals (cached after the first read)."""
        if self._decimals is None:
            logger.debug("erc20.decimals.fetch contract=%s", self.contract_address)
            self._decimals = _to_int(self._eth_call(DECIMALS_SELECTOR))
        return self._decimals

    def balance_of(self, address: str) -> int:
        return _to_int(self._eth_call(BALANCE_OF_SELECTOR + _address_word(address)))

    def build_signer(self, private_key: str) -> LocalAccount:
        return Account.from_key(private_key)

    def transfer(self, signer: LocalAccount, to: str, amount: int) -> str:
        """
        Sign and broadcast ``transfer(to, amount)`` from ``signer``.

        Returns the transaction hash reported by the node.
        """
        sender = signer.address
        data = TRANSFER_SELECTOR + _address_word(to) + _word(amount)
        call = {"from": sender, "to": self.contract_address, "data": data}

        nonce = _to_int(self.call("eth_getTransactionCount", [sender, "pending"]))
        gas_price = _to_int(self.call("eth_gasPrice", []))
        gas = _to_int(self.call("eth_estimateGas", [call]))
        chain_id = _to_int(self.call("eth_chainId", []))

        signed = signer.sign_transaction(
            {
                "nonce": nonce,
                "gasPrice": gas_price,
                "gas": gas,
                "to": self.contract_address,
                "value": 0,
                "data": data,
                "chainId": chain_id,
            }
        )
        raw = "0x" + bytes(signed.raw_transaction).hex()
        tx_hash = self.call("eth_sendRawTransaction", [raw])
        logger.info("erc20.transfer.sent from=%s to=%s tx_hash=%s", sender, to, tx_hash)
        return str(tx_hash)
