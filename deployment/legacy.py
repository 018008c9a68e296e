import re
from pathlib import Path

import click

from deployment.constants import LEDGERS_DIR, Action, ContractName
from deployment.ledger import ActionKey, ChainId, Label, Ledger, ledger_filepath, save_ledger
from deployment.utils import _load_json

# address types pushed by the legacy "address-provider-updated" step
LEGACY_REGISTERED_ADDRESS_TYPES = [
    "rewards_collector",
    "incentives",
    "oracle",
    "protocol_admin",
    "red_bank",
]


def _contract_name(legacy_name: str) -> ContractName:
    """Maps both ``redBank`` and ``red-bank`` style names to a contract name."""
    return ContractName(re.sub(r"(?<!^)(?=[A-Z])", "-", legacy_name).lower())


def ledger_from_legacy_storage(data: dict, chain_id: ChainId, label: Label) -> Ledger:
    ledger = Ledger(chain_id=chain_id, label=label, owner=data.get("owner"))
    for legacy_name, code_id in (data.get("codeIds") or {}).items():
        ledger.set_code_id(_contract_name(legacy_name), code_id)
    for legacy_name, address in (data.get("addresses") or {}).items():
        ledger.set_address(_contract_name(legacy_name), address)

    execute = data.get("execute") or {}
    if execute.get("address-provider-updated"):
        for address_type in LEGACY_REGISTERED_ADDRESS_TYPES:
            ledger.mark_complete(ActionKey(Action.ADDRESS_REGISTERED, address_type))
    for denom in execute.get("assetsInitialized") or []:
        ledger.mark_complete(ActionKey(Action.ASSET_INITIALIZED, denom))
    if execute.get("oraclePriceSet"):
        click.secho(
            "Legacy storage does not record which price sources were set; "
            "they will be set again on the next run.",
            fg="yellow",
        )
    return ledger


def convert_legacy_storage(
    legacy_filepath: Path,
    chain_id: ChainId,
    label: Label,
    ledger_dir: Path = LEDGERS_DIR,
) -> Path:
    """Converts a legacy deployment storage file into a ledger."""

    if not legacy_filepath.exists():
        raise FileNotFoundError(f"Legacy storage not found at {legacy_filepath}")
    output_filepath = ledger_filepath(chain_id=chain_id, label=label, ledger_dir=ledger_dir)
    if output_filepath.exists():
        raise FileExistsError(f"Refusing to overwrite existing ledger at {output_filepath}")

    ledger = ledger_from_legacy_storage(_load_json(legacy_filepath), chain_id=chain_id, label=label)
    return save_ledger(ledger, ledger_dir=ledger_dir)
