import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, List, Optional

from deployment.config import DeploymentConfig, DeploymentConfigError
from deployment.constants import DEPLOY_ORDER, ContractName
from deployment.ledger import Ledger


class UnresolvedVariable(LookupError):
    """Raised when a variable refers to something the ledger does not hold yet."""


class VariableContext:
    def __init__(
        self,
        contract_names: List[ContractName],
        contract_name: Optional[ContractName] = None,
        constants: typing.Dict[str, Any] = None,
    ):
        self.contract_names = contract_names or list()
        # None when resolving values outside of an init message
        self.contract_name = contract_name
        self.constants = constants or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, ledger: Ledger, deployer_address: str) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, ledger: Ledger, deployer_address: str) -> Any:
        return deployer_address


class OwnerAccount(Variable):
    OWNER_INDICATOR = "owner"

    @classmethod
    def is_owner(cls, value: str) -> bool:
        """Returns True if the variable refers to the resolved owner."""
        return value == cls.OWNER_INDICATOR

    def resolve(self, ledger: Ledger, deployer_address: str) -> Any:
        if ledger.owner is None:
            raise UnresolvedVariable("$owner is used before the owner has been resolved.")
        return ledger.owner


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise InitParameters.Invalid(
                f"Constant '{constant_name}' not found in deployment file."
            )

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, ledger: Ledger, deployer_address: str) -> Any:
        return self.constant_value


class ContractAddress(Variable):
    def __init__(self, contract_name: str, context: VariableContext):
        try:
            name = ContractName(contract_name)
        except ValueError:
            raise InitParameters.Invalid(f"Contract name {contract_name} not found")
        if name not in context.contract_names:
            raise InitParameters.Invalid(f"Contract {name} is not part of this deployment")

        referrer = context.contract_name
        if referrer is not None and DEPLOY_ORDER.index(name) >= DEPLOY_ORDER.index(referrer):
            raise InitParameters.Invalid(
                f"{referrer} refers to {name}, which is not instantiated before it."
            )
        self.contract_name = name

    def resolve(self, ledger: Ledger, deployer_address: str) -> Any:
        """Resolves a contract address."""
        address = ledger.address(self.contract_name)
        if address is None:
            raise UnresolvedVariable(
                f"${self.contract_name} has no address on {ledger.chain_id} yet."
            )
        return address


def _resolve_param(value: Any, ledger: Ledger, deployer_address: str) -> Any:
    """Resolves a single parameter value, recursing into lists and mappings."""
    if isinstance(value, list):
        return [_resolve_param(v, ledger, deployer_address) for v in value]

    if isinstance(value, dict):
        return OrderedDict(
            (k, _resolve_param(v, ledger, deployer_address)) for k, v in value.items()
        )

    if isinstance(value, Variable):
        return value.resolve(ledger, deployer_address)

    return value  # literally a value


def _variable_from_value(variable: str, context: VariableContext) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif OwnerAccount.is_owner(variable):
        return OwnerAccount()
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractAddress(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if isinstance(value, dict):
        return OrderedDict((k, _process_raw_value(v, variable_context)) for k, v in value.items())

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def resolve_value(
    value: Any, config: DeploymentConfig, ledger: Ledger, deployer_address: str
) -> Any:
    """Resolves ``$variables`` in a value used outside of an init message."""
    context = VariableContext(contract_names=config.contract_names, constants=config.constants)
    processed = _process_raw_value(value, context)
    return _resolve_param(processed, ledger, deployer_address)


class InitParameters:
    """Represents the instantiate messages for a set of contracts."""

    class Invalid(DeploymentConfigError):
        """Raised when the init parameters are invalid"""

    def __init__(self, parameters: "OrderedDict[ContractName, OrderedDict]"):
        self.parameters = parameters

    @classmethod
    def from_config(cls, config: DeploymentConfig) -> "InitParameters":
        """Processes the init message templates of every configured contract."""
        print("Processing contract init parameters...")
        contract_names = config.contract_names
        parameters = OrderedDict()
        for contract_name, contract in config.contracts.items():
            context = VariableContext(
                contract_names=contract_names,
                contract_name=contract_name,
                constants=config.constants,
            )
            parameters[contract_name] = _process_raw_value(contract.init, context)
        return cls(parameters=parameters)

    def resolve(
        self, contract_name: ContractName, ledger: Ledger, deployer_address: str
    ) -> OrderedDict:
        """Resolves the init message for a single contract."""
        try:
            parameters = self.parameters[ContractName(contract_name)]
        except KeyError:
            raise self.Invalid(f"No init parameters configured for {contract_name}")
        return _resolve_param(parameters, ledger, deployer_address)
