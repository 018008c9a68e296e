import json

import pytest

from deployment.constants import Action, ContractName
from deployment.ledger import ActionKey, Ledger, load_ledger, save_ledger
from deployment.legacy import convert_legacy_storage, ledger_from_legacy_storage
from tests.conftest import CHAIN_ID, LABEL

LEGACY_STORAGE = {
    "owner": "osmo1owner",
    "codeIds": {"addressProvider": 1, "redBank": 2, "oracle": 3, "rewardsCollector": 4},
    "addresses": {"addressProvider": "osmo1ap", "redBank": "osmo1rb"},
    "execute": {
        "address-provider-updated": True,
        "assetsInitialized": ["uosmo", "uatom"],
        "oraclePriceSet": True,
    },
}


def test_ledger_from_legacy_storage():
    ledger = ledger_from_legacy_storage(LEGACY_STORAGE, chain_id=CHAIN_ID, label=LABEL)

    assert ledger.owner == "osmo1owner"
    assert ledger.code_id(ContractName.REWARDS_COLLECTOR) == 4
    assert ledger.address(ContractName.RED_BANK) == "osmo1rb"
    assert ledger.address(ContractName.ORACLE) is None
    assert ledger.is_complete(ActionKey(Action.ADDRESS_REGISTERED, "red_bank"))
    assert ledger.is_complete(ActionKey(Action.ADDRESS_REGISTERED, "protocol_admin"))
    assert not ledger.is_complete(ActionKey(Action.ADDRESS_REGISTERED, "params"))
    assert ledger.is_complete(ActionKey(Action.ASSET_INITIALIZED, "uatom"))
    assert not any(key.startswith("price-source-set") for key in ledger.completed_actions)


def test_kebab_case_names_are_accepted():
    ledger = ledger_from_legacy_storage(
        {"codeIds": {"credit-manager": 9}}, chain_id=CHAIN_ID, label=LABEL
    )
    assert ledger.code_id(ContractName.CREDIT_MANAGER) == 9


def test_unknown_legacy_contract():
    with pytest.raises(ValueError):
        ledger_from_legacy_storage({"codeIds": {"liquidationFilterer": 1}}, CHAIN_ID, LABEL)


def test_convert_legacy_storage(tmp_path):
    legacy_filepath = tmp_path / "storage.json"
    legacy_filepath.write_text(json.dumps(LEGACY_STORAGE))

    filepath = convert_legacy_storage(legacy_filepath, CHAIN_ID, LABEL, ledger_dir=tmp_path)
    assert filepath.name == f"{CHAIN_ID}-{LABEL}.json"
    assert load_ledger(CHAIN_ID, LABEL, ledger_dir=tmp_path).address(ContractName.RED_BANK) == (
        "osmo1rb"
    )


def test_convert_refuses_to_overwrite(tmp_path):
    legacy_filepath = tmp_path / "storage.json"
    legacy_filepath.write_text(json.dumps(LEGACY_STORAGE))
    save_ledger(Ledger(chain_id=CHAIN_ID, label=LABEL), ledger_dir=tmp_path)

    with pytest.raises(FileExistsError):
        convert_legacy_storage(legacy_filepath, CHAIN_ID, LABEL, ledger_dir=tmp_path)


def test_convert_missing_storage(tmp_path):
    with pytest.raises(FileNotFoundError):
        convert_legacy_storage(tmp_path / "missing.json", CHAIN_ID, LABEL, ledger_dir=tmp_path)
