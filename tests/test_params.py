import pytest

from deployment.config import DeploymentConfig
from deployment.constants import ContractName
from deployment.ledger import Ledger
from deployment.params import (
    Constant,
    ContractAddress,
    DeployerAccount,
    InitParameters,
    OwnerAccount,
    UnresolvedVariable,
    VariableContext,
    _process_raw_value,
    resolve_value,
)
from tests.conftest import CHAIN_ID, DEPLOYER, LABEL

ADDRESS_PROVIDER = "osmo1addressprovider"


@pytest.fixture
def resolved_ledger():
    ledger = Ledger(chain_id=CHAIN_ID, label=LABEL, owner="osmo1owner")
    ledger.set_code_id(ContractName.ADDRESS_PROVIDER, 1)
    ledger.set_address(ContractName.ADDRESS_PROVIDER, ADDRESS_PROVIDER)
    return ledger


def _with_init(raw_config, name, init):
    for contract in raw_config["contracts"]:
        if name.value in contract:
            contract[name.value]["init"] = init
    return DeploymentConfig.from_dict(raw_config)


def test_variable_kinds():
    context = VariableContext(
        contract_names=[ContractName.ADDRESS_PROVIDER, ContractName.RED_BANK],
        contract_name=ContractName.RED_BANK,
        constants={"BASE_DENOM": "uosmo"},
    )
    assert isinstance(_process_raw_value("$deployer", context), DeployerAccount)
    assert isinstance(_process_raw_value("$owner", context), OwnerAccount)
    assert isinstance(_process_raw_value("$BASE_DENOM", context), Constant)
    assert isinstance(_process_raw_value("$address-provider", context), ContractAddress)


def test_resolve_init_parameters(config, resolved_ledger):
    parameters = InitParameters.from_config(config)
    msg = parameters.resolve(ContractName.RED_BANK, resolved_ledger, DEPLOYER)
    assert msg == {"owner": DEPLOYER, "config": {"address_provider": ADDRESS_PROVIDER}}


def test_constants_are_canonicalized(config, resolved_ledger):
    parameters = InitParameters.from_config(config)
    msg = parameters.resolve(ContractName.REWARDS_COLLECTOR, resolved_ledger, DEPLOYER)
    assert msg["safety_tax_rate"] == "0.5"


def test_nested_lists_are_resolved(raw_config, resolved_ledger):
    config = _with_init(
        raw_config,
        ContractName.ORACLE,
        {"admins": ["$deployer", "$owner"], "sources": [{"provider": "$address-provider"}]},
    )
    msg = InitParameters.from_config(config).resolve(ContractName.ORACLE, resolved_ledger, DEPLOYER)
    assert msg == {
        "admins": [DEPLOYER, "osmo1owner"],
        "sources": [{"provider": ADDRESS_PROVIDER}],
    }


def test_reference_to_later_contract_is_rejected(raw_config):
    config = _with_init(raw_config, ContractName.RED_BANK, {"oracle": "$oracle"})
    with pytest.raises(InitParameters.Invalid, match="not instantiated before"):
        InitParameters.from_config(config)


def test_self_reference_is_rejected(raw_config):
    config = _with_init(raw_config, ContractName.ORACLE, {"self": "$oracle"})
    with pytest.raises(InitParameters.Invalid):
        InitParameters.from_config(config)


def test_reference_to_unknown_contract_is_rejected(raw_config):
    config = _with_init(raw_config, ContractName.CREDIT_MANAGER, {"thing": "$not-a-contract"})
    with pytest.raises(InitParameters.Invalid, match="not found"):
        InitParameters.from_config(config)


def test_reference_to_contract_outside_deployment_is_rejected(raw_config):
    config = _with_init(raw_config, ContractName.CREDIT_MANAGER, {"zapper": "$zapper"})
    with pytest.raises(InitParameters.Invalid, match="not part of this deployment"):
        InitParameters.from_config(config)


def test_missing_constant_is_rejected(raw_config):
    config = _with_init(raw_config, ContractName.ORACLE, {"base_denom": "$MISSING"})
    with pytest.raises(InitParameters.Invalid, match="MISSING"):
        InitParameters.from_config(config)


def test_unresolved_address_is_raised(config):
    empty = Ledger(chain_id=CHAIN_ID, label=LABEL)
    parameters = InitParameters.from_config(config)
    with pytest.raises(UnresolvedVariable):
        parameters.resolve(ContractName.RED_BANK, empty, DEPLOYER)


def test_owner_must_be_resolved(raw_config):
    config = _with_init(raw_config, ContractName.ADDRESS_PROVIDER, {"owner": "$owner"})
    parameters = InitParameters.from_config(config)
    with pytest.raises(UnresolvedVariable):
        parameters.resolve(
            ContractName.ADDRESS_PROVIDER, Ledger(chain_id=CHAIN_ID, label=LABEL), DEPLOYER
        )


def test_resolve_value_outside_init(config, resolved_ledger):
    value = {"user": "$address-provider", "denom": "$BASE_DENOM", "plain": "text"}
    assert resolve_value(value, config, resolved_ledger, DEPLOYER) == {
        "user": ADDRESS_PROVIDER,
        "denom": "uosmo",
        "plain": "text",
    }
