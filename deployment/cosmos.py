"""
CosmWasm chain client backed by cosmpy.

The rpc_endpoint of a chain config is a cosmpy network url, e.g.
``grpc+https://grpc.osmotest5.osmosis.zone:443`` or
``rest+https://lcd.osmotest5.osmosis.zone``.
"""

import gzip
import json
import re
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Tuple

import grpc
import requests
from cosmpy.aerial.client import LedgerClient, NetworkConfig
from cosmpy.aerial.client.utils import prepare_and_broadcast_basic_transaction
from cosmpy.aerial.exceptions import BroadcastError, QueryTimeoutError
from cosmpy.aerial.tx import Transaction
from cosmpy.aerial.wallet import LocalWallet
from cosmpy.crypto.address import Address
from cosmpy.protos.cosmos.bank.v1beta1.tx_pb2 import MsgSend
from cosmpy.protos.cosmos.base.v1beta1.coin_pb2 import Coin as ProtoCoin
from cosmpy.protos.cosmwasm.wasm.v1.query_pb2 import QuerySmartContractStateRequest
from cosmpy.protos.cosmwasm.wasm.v1.tx_pb2 import (
    MsgExecuteContract,
    MsgInstantiateContract,
    MsgStoreCode,
    MsgUpdateAdmin,
)

from deployment.client import (
    ChainClient,
    ChainRejectionError,
    Coin,
    TransportError,
    TxResult,
)
from deployment.config import ChainConfig

GAS_PRICE_PATTERN = re.compile(r"^(?P<amount>\d+(\.\d+)?)(?P<denom>[a-zA-Z][a-zA-Z0-9/:._-]*)$")

TRANSPORT_STATUS_CODES = (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED)

TRANSPORT_ERRORS = (requests.exceptions.RequestException, QueryTimeoutError)


def parse_gas_price(gas_price: str) -> Tuple[float, str]:
    """Splits a gas price such as ``0.025uosmo`` into (0.025, "uosmo")."""
    match = GAS_PRICE_PATTERN.match(gas_price.strip())
    if not match:
        raise ValueError(f"Invalid gas price '{gas_price}'")
    return float(match.group("amount")), match.group("denom")


def _is_transport_failure(error: grpc.RpcError) -> bool:
    code = error.code() if hasattr(error, "code") else None
    return code in TRANSPORT_STATUS_CODES


@contextmanager
def _chain_errors(msg: Optional[Any] = None) -> Iterator[None]:
    # gas simulation runs before broadcast, so contract errors surface as rpc errors too
    try:
        yield
    except BroadcastError as error:
        raise ChainRejectionError(f"Transaction rejected: {error}", msg=msg) from error
    except grpc.RpcError as error:
        if _is_transport_failure(error):
            raise TransportError(f"Node unreachable: {error}") from error
        raise ChainRejectionError(f"Transaction rejected: {error}", msg=msg) from error
    except TRANSPORT_ERRORS as error:
        raise TransportError(f"Node unreachable: {error}") from error
    except RuntimeError as error:
        raise ChainRejectionError(f"Transaction rejected: {error}", msg=msg) from error


@contextmanager
def _query_errors(query: Any) -> Iterator[None]:
    try:
        yield
    except grpc.RpcError as error:
        if _is_transport_failure(error):
            raise TransportError(f"Node unreachable: {error}") from error
        raise ChainRejectionError(f"Query failed: {error}", msg=query) from error
    except requests.exceptions.RequestException as error:
        raise TransportError(f"Node unreachable: {error}") from error
    except RuntimeError as error:
        raise ChainRejectionError(f"Query failed: {error}", msg=query) from error


def _encode(msg: dict) -> bytes:
    return json.dumps(msg).encode("UTF8")


def _proto_coins(coins: Optional[List[Coin]]) -> List[ProtoCoin]:
    return [ProtoCoin(denom=coin.denom, amount=str(coin.amount)) for coin in coins or []]


class CosmosChainClient(ChainClient):
    def __init__(self, client: LedgerClient, wallet: LocalWallet, chain_id: str):
        self._client = client
        self._wallet = wallet
        self._chain_id = chain_id

    @property
    def address(self) -> str:
        return str(self._wallet.address())

    @property
    def chain_id(self) -> str:
        return self._chain_id

    def _broadcast(self, message, msg: Optional[Any] = None):
        tx = Transaction()
        tx.add_message(message)
        with _chain_errors(msg):
            submitted = prepare_and_broadcast_basic_transaction(self._client, tx, self._wallet)
            submitted.wait_to_complete()
        return submitted.response

    @staticmethod
    def _result(response) -> TxResult:
        return TxResult(
            tx_hash=response.hash,
            height=int(response.height),
            gas_used=int(response.gas_used),
        )

    def upload(self, wasm: bytes) -> int:
        message = MsgStoreCode(sender=self.address, wasm_byte_code=gzip.compress(wasm))
        response = self._broadcast(message)
        return int(response.events["store_code"]["code_id"])

    def instantiate(
        self, code_id: int, msg: dict, label: str, admin: Optional[str] = None
    ) -> str:
        message = MsgInstantiateContract(
            sender=self.address,
            admin=admin or "",
            code_id=code_id,
            label=label,
            msg=_encode(msg),
        )
        response = self._broadcast(message, msg=msg)
        return response.events["instantiate"]["_contract_address"]

    def execute(
        self, contract: str, msg: dict, funds: Optional[List[Coin]] = None
    ) -> TxResult:
        message = MsgExecuteContract(
            sender=self.address,
            contract=contract,
            msg=_encode(msg),
            funds=_proto_coins(funds),
        )
        return self._result(self._broadcast(message, msg=msg))

    def query(self, contract: str, query: dict) -> Any:
        request = QuerySmartContractStateRequest(address=contract, query_data=_encode(query))
        with _query_errors(query):
            response = self._client.wasm.SmartContractState(request)
        return json.loads(response.data)

    def get_balance(self, address: str, denom: str) -> Coin:
        with _chain_errors():
            amount = self._client.query_bank_balance(Address(address), denom=denom)
        return Coin(denom=denom, amount=str(amount))

    def update_admin(self, contract: str, new_admin: str) -> TxResult:
        message = MsgUpdateAdmin(sender=self.address, new_admin=new_admin, contract=contract)
        return self._result(self._broadcast(message, msg={"update_admin": new_admin}))

    def send_tokens(self, recipient: str, coins: List[Coin]) -> TxResult:
        message = MsgSend(
            from_address=self.address, to_address=recipient, amount=_proto_coins(coins)
        )
        return self._result(self._broadcast(message))


def connect(chain: ChainConfig, mnemonic: str) -> CosmosChainClient:
    """Connects to the chain described by the config and signs with the mnemonic's first account."""
    gas_amount, gas_denom = parse_gas_price(chain.gas_price)
    network = NetworkConfig(
        chain_id=chain.chain_id,
        url=chain.rpc_endpoint,
        fee_minimum_gas_price=gas_amount,
        fee_denomination=gas_denom,
        staking_denomination=chain.base_denom,
    )
    wallet = LocalWallet.from_mnemonic(mnemonic, prefix=chain.prefix)
    with _chain_errors():
        client = LedgerClient(network)
    return CosmosChainClient(client=client, wallet=wallet, chain_id=chain.chain_id)
