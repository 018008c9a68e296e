from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional


class Coin(NamedTuple):
    denom: str
    amount: str

    def to_dict(self) -> Dict[str, str]:
        return {"denom": self.denom, "amount": self.amount}

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


class TxResult(NamedTuple):
    tx_hash: str
    height: int = 0
    gas_used: int = 0


class ChainClientError(Exception):
    """Base class for errors raised by a chain client."""


class TransportError(ChainClientError):
    """The node could not be reached or did not answer in time. Safe to re-run."""


class ChainRejectionError(ChainClientError):
    """The chain rejected a transaction. Inspect the cause before re-running."""

    def __init__(self, message: str, msg: Optional[Any] = None):
        super().__init__(message)
        self.msg = msg


class ChainClient(ABC):
    """
    A connected client bound to a single signing account.

    Every method blocks until the transaction is included in a block
    (or the query is answered).
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Address of the signing account."""
        raise NotImplementedError

    @property
    @abstractmethod
    def chain_id(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def upload(self, wasm: bytes) -> int:
        """Stores contract bytecode and returns its code id."""
        raise NotImplementedError

    @abstractmethod
    def instantiate(
        self, code_id: int, msg: dict, label: str, admin: Optional[str] = None
    ) -> str:
        """Instantiates a contract and returns its address."""
        raise NotImplementedError

    @abstractmethod
    def execute(
        self, contract: str, msg: dict, funds: Optional[List[Coin]] = None
    ) -> TxResult:
        raise NotImplementedError

    @abstractmethod
    def query(self, contract: str, query: dict) -> Any:
        raise NotImplementedError

    @abstractmethod
    def get_balance(self, address: str, denom: str) -> Coin:
        raise NotImplementedError

    @abstractmethod
    def update_admin(self, contract: str, new_admin: str) -> TxResult:
        """Changes the chain-level admin allowed to migrate the contract."""
        raise NotImplementedError

    @abstractmethod
    def send_tokens(self, recipient: str, coins: List[Coin]) -> TxResult:
        raise NotImplementedError
