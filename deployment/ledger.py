import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, NamedTuple, Optional, Set, Union

import click

from deployment.constants import LEDGERS_DIR, Action, ContractName

ChainId = str
Label = str
CodeId = int
Address = str

STANDARD_LEDGER_JSON_FORMAT = {"indent": 4, "separators": (",", ": "), "sort_keys": True}


class LedgerError(Exception):
    """Raised when a ledger entry would be set twice or out of order."""


class ActionKey(NamedTuple):
    """Identifies a one-time configuration step: an action type and its target."""

    action: Action
    target: str

    SEPARATOR = ":"

    def __str__(self) -> str:
        return f"{self.action.value}{self.SEPARATOR}{self.target}"

    @classmethod
    def parse(cls, value: str) -> "ActionKey":
        action, separator, target = value.partition(cls.SEPARATOR)
        if not separator or not target:
            raise ValueError(f"Malformed action key '{value}'")
        return cls(action=Action(action), target=target)


class Ledger:
    """
    Record of what has already been deployed and configured for a
    single (chain id, label) pair.
    """

    def __init__(
        self,
        chain_id: ChainId,
        label: Label,
        code_ids: Optional[Dict[ContractName, CodeId]] = None,
        addresses: Optional[Dict[ContractName, Address]] = None,
        completed_actions: Optional[Set[str]] = None,
        owner: Optional[Address] = None,
    ):
        self.chain_id = chain_id
        self.label = label
        self.code_ids = dict(code_ids or {})
        self.addresses = dict(addresses or {})
        self.completed_actions = set(completed_actions or set())
        self.owner = owner

    def __repr__(self) -> str:
        return (
            f"Ledger(chain_id={self.chain_id!r}, label={self.label!r}, "
            f"code_ids={len(self.code_ids)}, addresses={len(self.addresses)}, "
            f"completed_actions={len(self.completed_actions)})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Ledger):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    #
    # Code IDs
    #

    def code_id(self, name: ContractName) -> Optional[CodeId]:
        return self.code_ids.get(ContractName(name))

    def set_code_id(self, name: ContractName, code_id: CodeId) -> None:
        name = ContractName(name)
        if name in self.code_ids:
            raise LedgerError(
                f"Code ID for {name} is already set to {self.code_ids[name]}; "
                f"refusing to overwrite with {code_id}."
            )
        self.code_ids[name] = int(code_id)

    #
    # Addresses
    #

    def address(self, name: ContractName) -> Optional[Address]:
        return self.addresses.get(ContractName(name))

    def require_address(self, name: ContractName) -> Address:
        address = self.address(name)
        if address is None:
            raise LedgerError(f"{name} has not been instantiated on {self.chain_id}.")
        return address

    def set_address(self, name: ContractName, address: Address) -> None:
        name = ContractName(name)
        if name not in self.code_ids:
            raise LedgerError(f"Cannot record an address for {name} before its code is uploaded.")
        if name in self.addresses:
            raise LedgerError(
                f"{name} is already instantiated at {self.addresses[name]}; "
                f"refusing to overwrite with {address}."
            )
        for other_name, other_address in self.addresses.items():
            if other_address == address:
                raise LedgerError(f"Address {address} is already recorded for {other_name}.")
        self.addresses[name] = address

    #
    # Actions
    #

    def is_complete(self, key: Union[ActionKey, str]) -> bool:
        return str(key) in self.completed_actions

    def mark_complete(self, key: Union[ActionKey, str]) -> None:
        self.completed_actions.add(str(key))

    #
    # Serialization
    #

    def to_dict(self) -> dict:
        return {
            "chainId": self.chain_id,
            "label": self.label,
            "codeIds": {name.value: code_id for name, code_id in self.code_ids.items()},
            "addresses": {name.value: address for name, address in self.addresses.items()},
            "completedActions": sorted(self.completed_actions),
            "owner": self.owner,
        }

    @classmethod
    def from_dict(cls, data: dict, chain_id: ChainId, label: Label) -> "Ledger":
        code_ids = {
            ContractName(name): int(code_id) for name, code_id in data.get("codeIds", {}).items()
        }
        addresses = {
            ContractName(name): str(address) for name, address in data.get("addresses", {}).items()
        }
        completed_actions = set()
        for value in data.get("completedActions", []):
            completed_actions.add(str(ActionKey.parse(value)))
        return cls(
            chain_id=chain_id,
            label=label,
            code_ids=code_ids,
            addresses=addresses,
            completed_actions=completed_actions,
            owner=data.get("owner"),
        )


def ledger_filepath(chain_id: ChainId, label: Label, ledger_dir: Path = LEDGERS_DIR) -> Path:
    return Path(ledger_dir) / f"{chain_id}-{label}.json"


def load_ledger(chain_id: ChainId, label: Label, ledger_dir: Path = LEDGERS_DIR) -> Ledger:
    """
    Loads the ledger for (chain_id, label). Never fails: a missing or
    unreadable ledger file yields a fresh, empty ledger.
    """
    filepath = ledger_filepath(chain_id=chain_id, label=label, ledger_dir=ledger_dir)
    if not filepath.exists():
        click.secho(f"No ledger found at {filepath}; starting fresh.", fg="yellow")
        return Ledger(chain_id=chain_id, label=label)

    try:
        with open(filepath, "r") as file:
            data = json.load(file)
        if not isinstance(data, dict):
            raise ValueError("ledger root is not an object")
        ledger = Ledger.from_dict(data, chain_id=chain_id, label=label)
    except (OSError, ValueError, TypeError, AttributeError) as error:
        click.secho(f"Ledger at {filepath} is unreadable ({error}); starting fresh.", fg="red")
        return Ledger(chain_id=chain_id, label=label)

    click.secho(f"Loaded ledger from {filepath}.", fg="yellow")
    return ledger


def save_ledger(ledger: Ledger, ledger_dir: Path = LEDGERS_DIR) -> Path:
    """Writes the full ledger, deterministically serialized, replacing any previous file."""
    filepath = ledger_filepath(chain_id=ledger.chain_id, label=ledger.label, ledger_dir=ledger_dir)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    temp_filepath = filepath.with_suffix(".temp.json")
    with open(temp_filepath, "w") as file:
        json.dump(ledger.to_dict(), file, **STANDARD_LEDGER_JSON_FORMAT)
        file.write("\n")
    os.replace(temp_filepath, filepath)

    click.secho(f"(i) Ledger written to {filepath}", fg="yellow")
    return filepath


@contextmanager
def open_ledger(
    chain_id: ChainId, label: Label, ledger_dir: Path = LEDGERS_DIR
) -> Iterator[Ledger]:
    """Loads the ledger and always persists it on exit, including on error."""
    ledger = load_ledger(chain_id=chain_id, label=label, ledger_dir=ledger_dir)
    try:
        yield ledger
    except BaseException:
        # a failed save must not replace the error already in flight
        try:
            save_ledger(ledger, ledger_dir=ledger_dir)
        except OSError as error:
            click.secho(
                f"Failed to write ledger {ledger.chain_id}-{ledger.label}: {error}", fg="red"
            )
        raise
    save_ledger(ledger, ledger_dir=ledger_dir)
