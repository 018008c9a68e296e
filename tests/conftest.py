from collections import OrderedDict, defaultdict
from typing import Any, Dict, List, NamedTuple, Optional

import pytest

from deployment.client import ChainClient, ChainRejectionError, Coin, TxResult
from deployment.config import DeploymentConfig
from deployment.constants import ContractName
from deployment.deployer import Deployer
from deployment.ledger import Ledger

# Common constants
CHAIN_ID = "localosmosis"
LABEL = "test"
BASE_DENOM = "uosmo"
SECOND_DENOM = "uatom"
DEPLOYER = "osmo1deployer0000000000000000000000000000"
MULTISIG = "osmo1multisig0000000000000000000000000000"
PROTOCOL_ADMIN = "osmo1protocoladmin000000000000000000000000"
STARTING_BALANCE = 10**12


class Call(NamedTuple):
    method: str
    sender: str
    key: Optional[str]
    args: Dict[str, Any]


def _first_key(msg: Any) -> Optional[str]:
    if isinstance(msg, dict) and msg:
        return next(iter(msg))
    return None


class SimulatedContract:
    """
    A deployed contract in the mock chain. Understands the owner, ownership
    and price messages the deployment scripts send; accepts anything else.
    """

    def __init__(self, chain: "MockChain", address: str, code_id: int, label: str, msg: dict):
        self.chain = chain
        self.address = address
        self.code_id = code_id
        self.label = label
        self.init_msg = msg
        self.owner = msg.get("owner") or msg.get("minter")
        self.proposed = None
        self.executed: List[dict] = list()

    def execute(self, sender: str, msg: dict, funds: List[Coin]) -> None:
        self.executed.append(msg)
        if "update_owner" in msg:
            self._update_owner(sender, msg["update_owner"])
        elif "update_ownership" in msg:
            self._require_owner(sender, msg)
            self.proposed = msg["update_ownership"]["transfer_ownership"]["new_owner"]
        elif "update_config" in msg and "account_nft" in msg["update_config"].get("updates", {}):
            nft = self.chain.contracts[msg["update_config"]["updates"]["account_nft"]]
            if nft.proposed != self.address:
                raise ChainRejectionError("no ownership proposal for the credit manager", msg=msg)
            nft.owner, nft.proposed = self.address, None

    def _require_owner(self, sender: str, msg: dict) -> None:
        if sender != self.owner:
            raise ChainRejectionError(f"{sender} is not the owner of {self.label}", msg=msg)

    def _update_owner(self, sender: str, update: Any) -> None:
        if update == "accept_proposed":
            if sender != self.proposed:
                raise ChainRejectionError(f"{sender} was not proposed", msg=update)
            self.owner, self.proposed = sender, None
        else:
            self._require_owner(sender, update)
            self.proposed = update["propose_new_owner"]["proposed"]

    def query(self, query: dict) -> Any:
        if "config" in query or "owner" in query:
            return {"owner": self.owner, "proposed_new_owner": self.proposed}
        if "ownership" in query:
            return {"owner": self.owner, "pending_owner": self.proposed, "pending_expiry": None}
        if "price" in query:
            return {"denom": query["price"]["denom"], "price": "1"}
        raise ChainRejectionError(f"{self.label} does not answer {query}", msg=query)


class Failure:
    def __init__(self, method: str, key: Optional[str], error: Exception, times: int):
        self.method = method
        self.key = key
        self.error = error
        self.times = times

    def matches(self, call: Call) -> bool:
        return self.times > 0 and self.method == call.method and self.key in (None, call.key)


class MockChain:
    """In-memory chain shared by every client (signer) created from it."""

    def __init__(self, chain_id: str = CHAIN_ID):
        self.chain_id = chain_id
        self.codes: Dict[int, bytes] = dict()
        self.contracts: "OrderedDict[str, SimulatedContract]" = OrderedDict()
        self.admins: Dict[str, Optional[str]] = dict()
        self.balances = defaultdict(int)
        self.calls: List[Call] = list()
        self.failures: List[Failure] = list()

    def client(self, address: str = DEPLOYER) -> "MockChainClient":
        return MockChainClient(chain=self, address=address)

    def fail_on(self, method: str, key: Optional[str] = None, error: Exception = None, times=1):
        """Makes the next ``times`` matching calls raise ``error`` without side effects."""
        error = error or ChainRejectionError(f"simulated failure of {method} {key or ''}")
        self.failures.append(Failure(method=method, key=key, error=error, times=times))

    def mint(self, address: str, denom: str, amount: int) -> None:
        self.balances[(address, denom)] += amount

    def transfer(self, sender: str, recipient: str, coins: List[Coin]) -> None:
        for coin in coins or []:
            if self.balances[(sender, coin.denom)] < int(coin.amount):
                raise ChainRejectionError(f"insufficient funds: {coin}")
            self.balances[(sender, coin.denom)] -= int(coin.amount)
            self.balances[(recipient, coin.denom)] += int(coin.amount)

    def record(self, method: str, sender: str, key: Optional[str] = None, **args) -> Call:
        call = Call(method=method, sender=sender, key=key, args=args)
        for failure in self.failures:
            if failure.matches(call):
                failure.times -= 1
                raise failure.error
        self.calls.append(call)
        return call

    def calls_of(self, method: str) -> List[Call]:
        return [call for call in self.calls if call.method == method]

    def contract_by_label(self, label: str) -> SimulatedContract:
        for contract in self.contracts.values():
            if contract.label == label:
                return contract
        raise KeyError(label)

    def next_tx(self) -> TxResult:
        return TxResult(tx_hash=f"{len(self.calls):064X}", height=len(self.calls))


class MockChainClient(ChainClient):
    def __init__(self, chain: MockChain, address: str):
        self.chain = chain
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    @property
    def chain_id(self) -> str:
        return self.chain.chain_id

    def upload(self, wasm: bytes) -> int:
        self.chain.record("upload", self.address, key=wasm.decode(), wasm=wasm)
        code_id = len(self.chain.codes) + 1
        self.chain.codes[code_id] = wasm
        return code_id

    def instantiate(self, code_id: int, msg: dict, label: str, admin: Optional[str] = None) -> str:
        self.chain.record(
            "instantiate", self.address, key=label, code_id=code_id, msg=msg, admin=admin
        )
        if code_id not in self.chain.codes:
            raise ChainRejectionError(f"no code with id {code_id}", msg=msg)
        address = f"osmo1contract{len(self.chain.contracts) + 1:028d}"
        self.chain.contracts[address] = SimulatedContract(self.chain, address, code_id, label, msg)
        self.chain.admins[address] = admin
        return address

    def execute(self, contract: str, msg: dict, funds: Optional[List[Coin]] = None) -> TxResult:
        self.chain.record(
            "execute", self.address, key=_first_key(msg), contract=contract, msg=msg, funds=funds
        )
        if contract not in self.chain.contracts:
            raise ChainRejectionError(f"no contract at {contract}", msg=msg)
        self.chain.transfer(self.address, contract, funds)
        self.chain.contracts[contract].execute(self.address, msg, funds or [])
        return self.chain.next_tx()

    def query(self, contract: str, query: dict) -> Any:
        if contract not in self.chain.contracts:
            raise ChainRejectionError(f"no contract at {contract}", msg=query)
        return self.chain.contracts[contract].query(query)

    def get_balance(self, address: str, denom: str) -> Coin:
        return Coin(denom=denom, amount=str(self.chain.balances[(address, denom)]))

    def update_admin(self, contract: str, new_admin: str) -> TxResult:
        self.chain.record("update_admin", self.address, key=contract, new_admin=new_admin)
        if self.chain.admins.get(contract) != self.address:
            raise ChainRejectionError(f"{self.address} is not the admin of {contract}")
        self.chain.admins[contract] = new_admin
        return self.chain.next_tx()

    def send_tokens(self, recipient: str, coins: List[Coin]) -> TxResult:
        self.chain.record("send_tokens", self.address, key=recipient, coins=coins)
        self.chain.transfer(self.address, recipient, coins)
        return self.chain.next_tx()


# Utility functions
def wasm_filename(name: ContractName) -> str:
    return f"mars_{name.value.replace('-', '_')}.wasm"


def build_raw_config(tmp_path, multisig: Optional[str] = None) -> dict:
    wasm_dir = tmp_path / "artifacts"
    wasm_dir.mkdir(exist_ok=True)
    for name in ContractName:
        (wasm_dir / wasm_filename(name)).write_bytes(f"wasm:{name.value}".encode())

    def contract(name: ContractName, init: dict) -> dict:
        return {name.value: {"wasm": wasm_filename(name), "init": init}}

    return {
        "deployment": {"network": "localnet", "chain_id": CHAIN_ID, "label": LABEL},
        "chain": {
            "rpc_endpoint": "grpc+http://localhost:9090",
            "prefix": "osmo",
            "gas_price": "0.025uosmo",
            "base_denom": BASE_DENOM,
        },
        "artifacts": {
            "wasm_dir": str(wasm_dir),
            "ledger_dir": str(tmp_path / "ledgers"),
            "addresses_dir": str(tmp_path / "addresses"),
        },
        "owner": {"multisig": multisig},
        "protocol_addresses": {"protocol_admin": PROTOCOL_ADMIN},
        "constants": {"PREFIX": "osmo", "BASE_DENOM": BASE_DENOM, "SAFETY_TAX_RATE": 0.5},
        "contracts": [
            contract(ContractName.ADDRESS_PROVIDER, {"owner": "$deployer", "prefix": "$PREFIX"}),
            contract(
                ContractName.RED_BANK,
                {"owner": "$deployer", "config": {"address_provider": "$address-provider"}},
            ),
            contract(ContractName.ORACLE, {"owner": "$deployer", "base_denom": "$BASE_DENOM"}),
            contract(
                ContractName.INCENTIVES,
                {"owner": "$deployer", "address_provider": "$address-provider"},
            ),
            contract(
                ContractName.REWARDS_COLLECTOR,
                {
                    "owner": "$deployer",
                    "address_provider": "$address-provider",
                    "safety_tax_rate": "$SAFETY_TAX_RATE",
                },
            ),
            contract(ContractName.SWAPPER, {"owner": "$deployer"}),
            contract(
                ContractName.PARAMS,
                {"owner": "$deployer", "address_provider": "$address-provider"},
            ),
            contract(ContractName.ACCOUNT_NFT, {"minter": "$deployer", "health_contract": "$params"}),
            contract(ContractName.MOCK_VAULT, {"base_token_denom": BASE_DENOM, "oracle": "$oracle"}),
            contract(
                ContractName.CREDIT_MANAGER,
                {
                    "owner": "$deployer",
                    "red_bank": "$red-bank",
                    "oracle": "$oracle",
                    "params": "$params",
                    "swapper": "$swapper",
                },
            ),
        ],
        "assets": [
            {
                "denom": BASE_DENOM,
                "symbol": "OSMO",
                "red_bank": {"reserve_factor": 0.2},
                "params": {"max_loan_to_value": "0.59", "deposit_cap": 2500000000000},
            },
            {
                "denom": SECOND_DENOM,
                "symbol": "ATOM",
                "params": {"max_loan_to_value": "0.68", "deposit_cap": "100000000000"},
            },
        ],
        "oracle_configs": [
            {"denom": BASE_DENOM, "price_source": {"fixed": {"price": "1"}}},
            {"denom": SECOND_DENOM, "price_source": {"geometric_twap": {"pool_id": 1}}},
        ],
        "swap_routes": [
            {
                "denom_in": SECOND_DENOM,
                "denom_out": BASE_DENOM,
                "route": {"osmo": {"swaps": [{"pool_id": 1, "to": BASE_DENOM}]}},
            }
        ],
        "vaults": [
            {
                "addr": "$mock-vault",
                "symbol": "mockVault",
                "config": {
                    "deposit_cap": {"denom": BASE_DENOM, "amount": 100000000000},
                    "max_loan_to_value": 0.63,
                    "whitelisted": True,
                },
            }
        ],
        "credit_lines": [
            {"user": "$credit-manager", "denom": BASE_DENOM, "limit": 1000000000000},
        ],
        "vault_seeds": [
            {"vault": "$mock-vault", "coins": [{"denom": BASE_DENOM, "amount": 1000000}]},
        ],
        "verification": {"enabled": False},
    }


# Fixtures
@pytest.fixture
def chain():
    mock_chain = MockChain()
    mock_chain.mint(DEPLOYER, BASE_DENOM, STARTING_BALANCE)
    return mock_chain


@pytest.fixture
def client(chain):
    return chain.client(DEPLOYER)


@pytest.fixture
def raw_config(tmp_path):
    return build_raw_config(tmp_path)


@pytest.fixture
def config(raw_config):
    return DeploymentConfig.from_dict(raw_config)


@pytest.fixture
def ledger():
    return Ledger(chain_id=CHAIN_ID, label=LABEL)


@pytest.fixture
def deployer(client, config, ledger):
    deployer = Deployer(client=client, config=config, ledger=ledger, autosign=True)
    deployer.set_owner()
    return deployer
