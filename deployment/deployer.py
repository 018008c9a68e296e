import json
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional, Union

import click

from deployment.client import ChainClient, Coin, TxResult
from deployment.config import DeploymentConfig, DeploymentConfigError
from deployment.confirm import _confirm_resolution, _continue
from deployment.constants import MAINNET, MICRO_UNIT, Action, ContractName
from deployment.ledger import ActionKey, Ledger, LedgerError
from deployment.params import InitParameters, resolve_value
from deployment.utils import read_wasm


class StepStatus(Enum):
    EXECUTED = "executed"
    SKIPPED = "skipped"


class StepResult(NamedTuple):
    """Outcome of a guarded step. Already-done work is a normal SKIPPED result."""

    step: str
    status: StepStatus
    value: Any = None

    @property
    def executed(self) -> bool:
        return self.status is StepStatus.EXECUTED

    @property
    def skipped(self) -> bool:
        return self.status is StepStatus.SKIPPED


class Transactor:
    """
    Represents a signing chain client plus annotated execution of contract messages.
    """

    def __init__(self, client: ChainClient, autosign: bool = False):
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self.client = client
        self._autosign = autosign

    @property
    def address(self) -> str:
        """Returns the transactor address."""
        return self.client.address

    def transact(
        self,
        contract_name: str,
        contract: str,
        msg: dict,
        funds: Optional[List[Coin]] = None,
    ) -> TxResult:
        base_message = f"\nTransacting {contract_name}[{contract[:16]}]"
        pretty_msg = json.dumps(msg, indent=2)
        if funds:
            pretty_funds = ", ".join(str(coin) for coin in funds)
            message = f"{base_message} with funds {pretty_funds}:\n{pretty_msg}"
        else:
            message = f"{base_message}:\n{pretty_msg}"
        print(message)
        if not self._autosign:
            _continue()

        return self.client.execute(contract, msg, funds=funds)


class Deployer(Transactor):
    """
    Step executor: idempotent upload, instantiate and one-time execute
    primitives guarded by the ledger.
    """

    def __init__(
        self,
        client: ChainClient,
        config: DeploymentConfig,
        ledger: Ledger,
        autosign: bool = False,
    ):
        super().__init__(client=client, autosign=autosign)
        if client.chain_id != config.chain.chain_id:
            raise DeploymentConfigError(
                f"chain_id in config ({config.chain.chain_id}) does not match "
                f"chain_id of the connected client ({client.chain_id})."
            )
        if ledger.chain_id != config.chain.chain_id:
            raise LedgerError(
                f"Ledger for {ledger.chain_id} cannot be used to deploy to {config.chain.chain_id}."
            )
        self.config = config
        self.ledger = ledger
        self.init_parameters = InitParameters.from_config(config)
        self._print_deployment_info()

    def _print_deployment_info(self):
        print(
            f"Account: {self.address}",
            f"Config: {self.config.path}",
            f"Network: {self.config.network}",
            f"Chain ID: {self.config.chain.chain_id}",
            f"Label: {self.ledger.label}",
            f"Gas Price: {self.config.chain.gas_price}",
            f"Multisig: {self.config.multisig or 'none'}",
            sep="\n",
        )

    #
    # Preflight
    #

    def assert_deployer_balance(self) -> Coin:
        denom = self.config.chain.base_denom
        balance = self.client.get_balance(self.address, denom)
        click.secho(
            f"{denom} account balance is: {balance.amount} "
            f"({int(balance.amount) / MICRO_UNIT} {self.config.chain.prefix})",
            fg="yellow",
        )
        if int(balance.amount) < MICRO_UNIT and self.config.network != MAINNET:
            click.secho(
                f"not enough {self.config.chain.prefix} tokens to complete action, "
                f"you may need to go to a test faucet to get more tokens.",
                fg="red",
            )
        return balance

    def set_owner(self) -> str:
        """Resolves the authority that should end up owning every contract."""
        self.ledger.owner = self.config.multisig or self.address
        click.secho(f"Owner is set to: {self.ledger.owner}", fg="green")
        return self.ledger.owner

    #
    # Primitives
    #

    def upload(self, name: ContractName, wasm: Optional[bytes] = None) -> StepResult:
        name = ContractName(name)
        step = f"upload:{name}"
        code_id = self.ledger.code_id(name)
        if code_id is not None:
            click.secho(f"Wasm already uploaded :: {name} :: {code_id}", fg="blue")
            return StepResult(step=step, status=StepStatus.SKIPPED, value=code_id)

        if wasm is None:
            wasm = read_wasm(self.config.wasm_dir, self.config.contracts[name].wasm)
        code_id = self.client.upload(wasm)
        self.ledger.set_code_id(name, code_id)
        click.secho(f"{self.config.chain.chain_id} :: {name} : {code_id}", fg="green")
        return StepResult(step=step, status=StepStatus.EXECUTED, value=code_id)

    def instantiate(self, name: ContractName, code_id: int, msg: dict) -> StepResult:
        name = ContractName(name)
        step = f"instantiate:{name}"
        address = self.ledger.address(name)
        if address is not None:
            click.secho(f"Contract already instantiated :: {name} :: {address}", fg="blue")
            return StepResult(step=step, status=StepStatus.SKIPPED, value=address)

        if self.ledger.code_id(name) != code_id:
            raise LedgerError(
                f"Cannot instantiate {name} from code id {code_id}; "
                f"the ledger records {self.ledger.code_id(name)}."
            )
        admin = self.ledger.owner
        if admin is None:
            raise LedgerError(f"Cannot instantiate {name} before the owner is resolved.")

        if not self._autosign:
            _confirm_resolution(msg, str(name), admin)
        address = self.client.instantiate(code_id, msg, label=f"mars-{name}", admin=admin)
        self.ledger.set_address(name, address)
        if admin != self.address:
            # instantiated straight under the final admin; nothing to hand off later
            self.ledger.mark_complete(ActionKey(Action.ADMIN_UPDATED, f"{name}/{admin}"))
        click.secho(
            f"{self.config.chain.chain_id} :: {name} Contract Address : {address}", fg="green"
        )
        return StepResult(step=step, status=StepStatus.EXECUTED, value=address)

    def deploy(self, name: ContractName) -> StepResult:
        """Instantiates ``name`` from its uploaded code with its resolved init message."""
        name = ContractName(name)
        if self.ledger.address(name) is not None:
            return self.instantiate(name, self.ledger.code_id(name), {})
        msg = self.init_parameters.resolve(name, self.ledger, self.address)
        return self.instantiate(name, self.ledger.code_id(name), msg)

    def run_once(self, key: ActionKey, side_effect: Callable[[], Any]) -> StepResult:
        """
        Runs ``side_effect`` unless ``key`` is already recorded as complete.
        The key is recorded only after the side effect returns.
        """
        step = str(key)
        if self.ledger.is_complete(key):
            click.secho(f"Already done :: {step}", fg="blue")
            return StepResult(step=step, status=StepStatus.SKIPPED)

        value = side_effect()
        self.ledger.mark_complete(key)
        click.secho(f"Done :: {step}", fg="green")
        return StepResult(step=step, status=StepStatus.EXECUTED, value=value)

    def execute_once(
        self,
        key: ActionKey,
        name: ContractName,
        msg: dict,
        funds: Optional[List[Coin]] = None,
    ) -> StepResult:
        """Executes ``msg`` on a deployed contract at most once per ledger."""
        contract = self.ledger.require_address(name)
        return self.run_once(
            key, lambda: self.transact(str(name), contract, msg, funds=funds)
        )

    def query(self, name: ContractName, query: dict) -> Any:
        return self.client.query(self.ledger.require_address(name), query)

    def resolve(self, value: Union[str, Any]) -> Any:
        """Resolves ``$variables`` in a configuration value against the ledger."""
        return resolve_value(value, self.config, self.ledger, self.address)
