import re
from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from deployment.client import Coin
from deployment.constants import (
    ADDRESSES_DIR,
    DEFAULT_LABEL,
    LEDGERS_DIR,
    PROJECT_DIR,
    SUPPORTED_NETWORKS,
    WASM_DIR,
    ContractName,
)
from deployment.utils import _load_yaml

CONTRACT_WASM_KEY = "wasm"
CONTRACT_INIT_KEY = "init"

# Message fields holding on-chain token amounts. Everything else keeps its YAML type,
# except floats, which become decimal strings.
AMOUNT_FIELDS = frozenset(
    {
        "amount",
        "deposit_cap",
        "limit",
        "new_limit",
        "min_receive",
        "max_borrow",
    }
)

_DIGITS = re.compile(r"^\d+$")


class DeploymentConfigError(ValueError):
    """Raised when a deployment config file is malformed."""


def to_amount(value: Any, field: str = "amount") -> str:
    """Returns ``value`` as a canonical, non-negative decimal integer string."""
    if isinstance(value, bool) or isinstance(value, float):
        raise DeploymentConfigError(
            f"'{field}' must be an integer or a string of digits, got {value!r}"
        )
    if isinstance(value, int):
        if value < 0:
            raise DeploymentConfigError(f"'{field}' must not be negative, got {value}")
        return str(value)
    if isinstance(value, str) and _DIGITS.match(value.strip()):
        return str(int(value.strip()))
    raise DeploymentConfigError(f"'{field}' is not a valid token amount: {value!r}")


def to_decimal(value: Any, field: str = "value") -> str:
    """Returns ``value`` as a plain decimal string (no exponent)."""
    if isinstance(value, bool):
        raise DeploymentConfigError(f"'{field}' must be a decimal, got {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        value = repr(value)
    if not isinstance(value, str):
        raise DeploymentConfigError(f"'{field}' must be a decimal, got {value!r}")
    try:
        decimal = Decimal(value.strip())
    except InvalidOperation:
        raise DeploymentConfigError(f"'{field}' is not a valid decimal: {value!r}")
    if not decimal.is_finite():
        raise DeploymentConfigError(f"'{field}' must be finite, got {value!r}")
    return format(decimal, "f")


def canonicalize(value: Any, field: str = "") -> Any:
    """Recursively canonicalizes amounts and decimals inside a message body."""
    if isinstance(value, dict):
        return OrderedDict((key, canonicalize(item, field=key)) for key, item in value.items())
    if isinstance(value, list):
        return [canonicalize(item, field=field) for item in value]
    if field in AMOUNT_FIELDS and not _is_variable(value):
        return to_amount(value, field=field)
    if isinstance(value, float):
        return to_decimal(value, field=field)
    return value


def _is_variable(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("$")


def _require(section: dict, key: str, where: str) -> Any:
    try:
        value = section[key]
    except (KeyError, TypeError):
        raise DeploymentConfigError(f"'{key}' is not set in '{where}'.")
    if value is None or value == "":
        raise DeploymentConfigError(f"'{key}' is not set in '{where}'.")
    return value


def _section(config: dict, key: str, required: bool = False, default=None):
    value = config.get(key)
    if value is None:
        if required:
            raise DeploymentConfigError(f"Deployment config is missing the '{key}' section.")
        return default
    return value


def _resolve_dir(value: Optional[str], default: Path) -> Path:
    if not value:
        return default
    path = Path(value)
    if not path.is_absolute():
        path = PROJECT_DIR / path
    return path


class ChainConfig(NamedTuple):
    chain_id: str
    rpc_endpoint: str
    prefix: str
    gas_price: str
    base_denom: str


class ContractConfig(NamedTuple):
    name: ContractName
    wasm: str
    init: dict


class AssetConfig(NamedTuple):
    denom: str
    symbol: str
    # red-bank init_asset params; None when the asset is not a red-bank market
    red_bank: Optional[dict] = None
    # params contract asset params
    params: Optional[dict] = None


class OracleConfig(NamedTuple):
    denom: str
    price_source: dict

    @property
    def pyth_feed_id(self) -> Optional[str]:
        pyth = self.price_source.get("pyth")
        if isinstance(pyth, dict):
            return pyth.get("price_feed_id")
        return None


class VaultConfig(NamedTuple):
    addr: str
    symbol: str
    config: dict


class SwapRoute(NamedTuple):
    denom_in: str
    denom_out: str
    route: Any

    @property
    def target(self) -> str:
        return f"{self.denom_in}>{self.denom_out}"


class CreditLine(NamedTuple):
    user: str
    denom: str
    limit: str

    @property
    def target(self) -> str:
        return f"{self.user}/{self.denom}"


class VaultSeed(NamedTuple):
    vault: str
    coins: List[Coin]


class ProtocolAddresses(NamedTuple):
    protocol_admin: Optional[str] = None
    fee_collector: Optional[str] = None
    safety_fund: Optional[str] = None


class VerificationConfig(NamedTuple):
    enabled: bool = False
    credit_manager: bool = True
    red_bank: bool = False
    rewards_swap: bool = False
    base_denom: str = ""
    second_denom: str = ""
    deposit_amount: str = "0"
    lend_amount: str = "0"
    borrow_amount: str = "0"
    # None repays the whole debt
    repay_amount: Optional[str] = None
    reclaim_amount: str = "0"
    withdraw_amount: str = "0"
    swap_amount: str = "0"
    slippage: str = "0.01"
    vault: Optional[str] = None
    vault_deposit_amount: str = "0"


class DeploymentConfig(NamedTuple):
    path: Optional[Path]
    network: str
    label: str
    chain: ChainConfig
    contracts: "OrderedDict[ContractName, ContractConfig]"
    constants: Dict[str, Any]
    multisig: Optional[str]
    protocol_addresses: ProtocolAddresses
    wasm_dir: Path
    ledger_dir: Path
    addresses_dir: Path
    assets: List[AssetConfig]
    oracle_configs: List[OracleConfig]
    vaults: List[VaultConfig]
    swap_routes: List[SwapRoute]
    credit_lines: List[CreditLine]
    vault_seeds: List[VaultSeed]
    pyth_endpoint: Optional[str]
    verification: VerificationConfig

    @property
    def contract_names(self) -> List[ContractName]:
        return list(self.contracts)

    def has_contract(self, name: ContractName) -> bool:
        return ContractName(name) in self.contracts

    @classmethod
    def from_yaml(cls, filepath: Path, label: Optional[str] = None) -> "DeploymentConfig":
        config = _load_yaml(filepath)
        if not isinstance(config, dict):
            raise DeploymentConfigError(f"{filepath} does not contain a YAML mapping.")
        return cls.from_dict(config, path=Path(filepath), label=label)

    @classmethod
    def from_dict(
        cls, config: dict, path: Optional[Path] = None, label: Optional[str] = None
    ) -> "DeploymentConfig":
        deployment = _section(config, "deployment", required=True)
        network = _require(deployment, "network", "deployment")
        if network not in SUPPORTED_NETWORKS:
            raise DeploymentConfigError(
                f"Unsupported network '{network}'; expected one of {SUPPORTED_NETWORKS}."
            )

        chain_section = _section(config, "chain", required=True)
        chain = ChainConfig(
            chain_id=str(_require(deployment, "chain_id", "deployment")),
            rpc_endpoint=_require(chain_section, "rpc_endpoint", "chain"),
            prefix=_require(chain_section, "prefix", "chain"),
            gas_price=str(_require(chain_section, "gas_price", "chain")),
            base_denom=_require(chain_section, "base_denom", "chain"),
        )

        artifacts = _section(config, "artifacts", default={})
        owner = _section(config, "owner", default={})
        pyth = _section(config, "pyth", default={})
        protocol_addresses = _section(config, "protocol_addresses", default={})

        return cls(
            path=path,
            network=network,
            label=label or deployment.get("label") or DEFAULT_LABEL,
            chain=chain,
            contracts=_parse_contracts(_section(config, "contracts", required=True)),
            constants=dict(canonicalize(_section(config, "constants", default={}))),
            multisig=owner.get("multisig") or None,
            protocol_addresses=ProtocolAddresses(
                protocol_admin=protocol_addresses.get("protocol_admin"),
                fee_collector=protocol_addresses.get("fee_collector"),
                safety_fund=protocol_addresses.get("safety_fund"),
            ),
            wasm_dir=_resolve_dir(artifacts.get("wasm_dir"), WASM_DIR),
            ledger_dir=_resolve_dir(artifacts.get("ledger_dir"), LEDGERS_DIR),
            addresses_dir=_resolve_dir(artifacts.get("addresses_dir"), ADDRESSES_DIR),
            assets=[_parse_asset(a) for a in _section(config, "assets", default=[])],
            oracle_configs=[
                _parse_oracle(o) for o in _section(config, "oracle_configs", default=[])
            ],
            vaults=[_parse_vault(v) for v in _section(config, "vaults", default=[])],
            swap_routes=[_parse_route(r) for r in _section(config, "swap_routes", default=[])],
            credit_lines=[
                _parse_credit_line(c) for c in _section(config, "credit_lines", default=[])
            ],
            vault_seeds=[_parse_seed(s) for s in _section(config, "vault_seeds", default=[])],
            pyth_endpoint=pyth.get("endpoint") or None,
            verification=_parse_verification(_section(config, "verification", default={})),
        )


def _parse_contracts(contracts: List[Any]) -> "OrderedDict[ContractName, ContractConfig]":
    if not isinstance(contracts, list):
        raise DeploymentConfigError("'contracts' must be a list.")

    parsed = OrderedDict()
    for contract_info in contracts:
        if isinstance(contract_info, dict) and len(contract_info) == 1:
            raw_name, contract_data = list(contract_info.items())[0]
        else:
            raise DeploymentConfigError("Malformed 'contracts' entry in deployment config.")

        try:
            name = ContractName(raw_name)
        except ValueError:
            raise DeploymentConfigError(f"Unknown contract name '{raw_name}'.")
        if name in parsed:
            raise DeploymentConfigError(f"Contract '{name}' is listed twice.")

        contract_data = contract_data or {}
        parsed[name] = ContractConfig(
            name=name,
            wasm=_require(contract_data, CONTRACT_WASM_KEY, str(name)),
            init=canonicalize(contract_data.get(CONTRACT_INIT_KEY) or {}),
        )
    return parsed


def _parse_asset(asset: dict) -> AssetConfig:
    red_bank = asset.get("red_bank")
    params = asset.get("params")
    return AssetConfig(
        denom=_require(asset, "denom", "assets"),
        symbol=asset.get("symbol", ""),
        red_bank=canonicalize(red_bank) if red_bank is not None else None,
        params=canonicalize(params) if params is not None else None,
    )


def _parse_oracle(oracle: dict) -> OracleConfig:
    return OracleConfig(
        denom=_require(oracle, "denom", "oracle_configs"),
        price_source=canonicalize(_require(oracle, "price_source", "oracle_configs")),
    )


def _parse_vault(vault: dict) -> VaultConfig:
    config = canonicalize(_require(vault, "config", "vaults"))
    addr = _require(vault, "addr", "vaults")
    config["addr"] = addr
    return VaultConfig(addr=addr, symbol=vault.get("symbol", ""), config=config)


def _parse_route(route: dict) -> SwapRoute:
    return SwapRoute(
        denom_in=_require(route, "denom_in", "swap_routes"),
        denom_out=_require(route, "denom_out", "swap_routes"),
        route=canonicalize(_require(route, "route", "swap_routes")),
    )


def _parse_credit_line(credit_line: dict) -> CreditLine:
    return CreditLine(
        user=_require(credit_line, "user", "credit_lines"),
        denom=_require(credit_line, "denom", "credit_lines"),
        limit=to_amount(_require(credit_line, "limit", "credit_lines"), field="limit"),
    )


def _parse_seed(seed: dict) -> VaultSeed:
    coins = [
        Coin(
            denom=_require(coin, "denom", "vault_seeds"),
            amount=to_amount(_require(coin, "amount", "vault_seeds")),
        )
        for coin in _require(seed, "coins", "vault_seeds")
    ]
    return VaultSeed(vault=_require(seed, "vault", "vault_seeds"), coins=coins)


def _parse_verification(verification: dict) -> VerificationConfig:
    if not verification:
        return VerificationConfig()
    amounts = {}
    for field in (
        "deposit_amount",
        "lend_amount",
        "borrow_amount",
        "reclaim_amount",
        "withdraw_amount",
        "swap_amount",
        "vault_deposit_amount",
    ):
        if field in verification:
            amounts[field] = to_amount(verification[field], field=field)
    if verification.get("repay_amount") is not None:
        amounts["repay_amount"] = to_amount(verification["repay_amount"], field="repay_amount")

    return VerificationConfig(
        enabled=bool(verification.get("enabled", False)),
        credit_manager=bool(verification.get("credit_manager", True)),
        red_bank=bool(verification.get("red_bank", False)),
        rewards_swap=bool(verification.get("rewards_swap", False)),
        base_denom=verification.get("base_denom", ""),
        second_denom=verification.get("second_denom", ""),
        slippage=to_decimal(verification.get("slippage", "0.01"), field="slippage"),
        vault=verification.get("vault"),
        **amounts,
    )


def load_config(filepath: Path, label: Optional[str] = None) -> DeploymentConfig:
    """Loads and validates a per-network deployment config."""
    print(f"Loading deployment config {filepath}...")
    return DeploymentConfig.from_yaml(filepath, label=label)
