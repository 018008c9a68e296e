from enum import Enum
from pathlib import Path

#
# Filesystem
#

DEPLOYMENT_DIR = Path(__file__).parent
PROJECT_DIR = DEPLOYMENT_DIR.parent
CONFIGS_DIR = DEPLOYMENT_DIR / "configs"
LEDGERS_DIR = DEPLOYMENT_DIR / "ledgers"
ADDRESSES_DIR = DEPLOYMENT_DIR / "addresses"
WASM_DIR = PROJECT_DIR / "artifacts"

#
# Networks
#

MAINNET = "mainnet"
TESTNET = "testnet"
DEVNET = "devnet"
LOCALNET = "localnet"

SUPPORTED_NETWORKS = [MAINNET, TESTNET, DEVNET, LOCALNET]

DEFAULT_LABEL = "default"

#
# Credentials
#

MNEMONIC_ENVVAR = "MNEMONIC"
NEW_OWNER_MNEMONIC_ENVVAR = "NEW_OWNER_MNEMONIC"

#
# Contracts
#


class ContractName(str, Enum):
    ADDRESS_PROVIDER = "address-provider"
    RED_BANK = "red-bank"
    ORACLE = "oracle"
    INCENTIVES = "incentives"
    REWARDS_COLLECTOR = "rewards-collector"
    SWAPPER = "swapper"
    PARAMS = "params"
    ACCOUNT_NFT = "account-nft"
    MOCK_VAULT = "mock-vault"
    ZAPPER = "zapper"
    CREDIT_MANAGER = "credit-manager"

    def __str__(self) -> str:
        return self.value


# Contracts are instantiated in exactly this order. Anything an init message
# refers to must appear earlier in the list.
DEPLOY_ORDER = [
    # registry
    ContractName.ADDRESS_PROVIDER,
    # registry consumers
    ContractName.RED_BANK,
    ContractName.ORACLE,
    ContractName.INCENTIVES,
    ContractName.REWARDS_COLLECTOR,
    ContractName.SWAPPER,
    ContractName.PARAMS,
    ContractName.ACCOUNT_NFT,
    ContractName.MOCK_VAULT,
    ContractName.ZAPPER,
    # multi-reference contracts
    ContractName.CREDIT_MANAGER,
]

# address-provider address types, keyed by the contract that fills them
ADDRESS_TYPES = {
    ContractName.RED_BANK: "red_bank",
    ContractName.ORACLE: "oracle",
    ContractName.INCENTIVES: "incentives",
    ContractName.REWARDS_COLLECTOR: "rewards_collector",
    ContractName.SWAPPER: "swapper",
    ContractName.PARAMS: "params",
    ContractName.CREDIT_MANAGER: "credit_manager",
}

PROTOCOL_ADMIN_ADDRESS_TYPE = "protocol_admin"
FEE_COLLECTOR_ADDRESS_TYPE = "fee_collector"
SAFETY_FUND_ADDRESS_TYPE = "safety_fund"

# Contracts whose in-contract owner moves to the multisig. The account NFT is
# owned by the credit manager instead; the mock vault and zapper have no owner.
OWNED_CONTRACTS = [
    ContractName.ADDRESS_PROVIDER,
    ContractName.RED_BANK,
    ContractName.ORACLE,
    ContractName.INCENTIVES,
    ContractName.REWARDS_COLLECTOR,
    ContractName.SWAPPER,
    ContractName.PARAMS,
    ContractName.CREDIT_MANAGER,
]

#
# One-time actions
#


class Action(str, Enum):
    ADDRESS_REGISTERED = "address-registered"
    ASSET_INITIALIZED = "asset-initialized"
    ASSET_PARAMS_SET = "asset-params-set"
    PRICE_SOURCE_SET = "price-source-set"
    SWAP_ROUTE_SET = "swap-route-set"
    VAULT_CONFIGURED = "vault-configured"
    VAULT_SEEDED = "vault-seeded"
    CREDIT_LINE_GRANTED = "credit-line-granted"
    MINTER_PROPOSED = "minter-proposed"
    MINTER_ACCEPTED = "minter-accepted"
    OWNERSHIP_PROPOSED = "ownership-proposed"
    OWNERSHIP_ACCEPTED = "ownership-accepted"
    ADMIN_UPDATED = "admin-updated"

    def __str__(self) -> str:
        return self.value


#
# Chain
#

# One whole token in micro-denominations
MICRO_UNIT = 1_000_000

#
# Backoff
#

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BASE_DELAY = 1.0

PYTH_PRICE_FEED_IDS_PATH = "/api/price_feed_ids"
