import json
from collections import OrderedDict
from enum import Enum
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

from deployment.constants import ADDRESSES_DIR
from deployment.ledger import ChainId, Ledger
from deployment.utils import _load_json

STANDARD_REGISTRY_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


class AddressEntry(NamedTuple):
    """A single contract name -> address entry of an addresses file."""

    name: str
    address: str


def addresses_filepath(chain_id: ChainId, addresses_dir: Path = ADDRESSES_DIR) -> Path:
    return Path(addresses_dir) / f"{chain_id}.json"


def read_addresses(filepath: Path) -> List[AddressEntry]:
    data = _load_json(filepath)
    if not isinstance(data, dict):
        raise ValueError(f"{filepath} is not a contract name -> address map.")
    return [AddressEntry(name=name, address=address) for name, address in data.items()]


def write_addresses(entries: List[AddressEntry], filepath: Path, silent: bool = False) -> Path:
    """Writes a contract name -> address map, merging into an existing file when possible."""

    if not entries:
        print("No entries provided.")
        return filepath

    data = OrderedDict((entry.name, entry.address) for entry in sorted(entries))

    filepath.parent.mkdir(parents=True, exist_ok=True)

    if filepath.exists():
        if not silent:
            print(f"Updating existing addresses file at {filepath}.")
        existing_data = _load_json(filepath)

        conflicts = [
            name
            for name, address in data.items()
            if name in existing_data and existing_data[name] != address
        ]
        if conflicts:
            filepath = filepath.with_suffix(".unmerged.json")
            if not silent:
                print(
                    f"Cannot merge conflicting addresses for {', '.join(conflicts)}.\n"
                    f"Writing to {filepath} to avoid overwriting existing data."
                )
        else:
            existing_data.update(data)
            data = OrderedDict(sorted(existing_data.items()))
    elif not silent:
        print(f"Creating new addresses file at {filepath}.")

    with open(filepath, "w") as file:
        json.dump(data, file, **STANDARD_REGISTRY_JSON_FORMAT)
        file.write("\n")

    return filepath


def addresses_from_ledger(ledger: Ledger, addresses_dir: Path = ADDRESSES_DIR) -> Path:
    """Publishes the addresses recorded in a ledger for downstream tooling."""
    entries = [
        AddressEntry(name=name.value, address=address)
        for name, address in ledger.addresses.items()
    ]
    filepath = write_addresses(
        entries=entries, filepath=addresses_filepath(ledger.chain_id, addresses_dir)
    )
    print(f"(i) Addresses written to {filepath}!")
    return filepath


class ConflictResolution(Enum):
    USE_1 = 1
    USE_2 = 2


def _select_conflict_resolution(
    entry_1: AddressEntry, filepath_1: Path, entry_2: AddressEntry, filepath_2: Path
) -> ConflictResolution:
    print(f"\n! Conflict detected for {entry_1.name}:")
    print(f"[1]: {entry_1.name} at {entry_1.address} for {filepath_1}")
    print(f"[2]: {entry_2.name} at {entry_2.address} for {filepath_2}")
    print("[A]: Abort merge")

    valid_str_answers = [
        str(ConflictResolution.USE_1.value),
        str(ConflictResolution.USE_2.value),
        "A",
    ]
    answer = None
    while answer not in valid_str_answers:
        answer = input(f"Merge resolution, {valid_str_answers}? ")

    if answer == "A":
        print("Merge Aborted!")
        exit(-1)
    return ConflictResolution(int(answer))


def merge_addresses(
    filepath_1: Path,
    filepath_2: Path,
    output_filepath: Path,
    deprecated_contracts: Optional[List[str]] = None,
) -> Path:
    """Merges two addresses files, asking which entry wins on a conflict."""
    deprecated_contracts = deprecated_contracts or []

    entries_1: Dict[str, AddressEntry] = OrderedDict(
        (e.name, e) for e in read_addresses(filepath_1) if e.name not in deprecated_contracts
    )
    entries_2: Dict[str, AddressEntry] = OrderedDict(
        (e.name, e) for e in read_addresses(filepath_2) if e.name not in deprecated_contracts
    )

    merged: List[AddressEntry] = list()
    for name in sorted(set(entries_1) | set(entries_2)):
        entry_1, entry_2 = entries_1.get(name), entries_2.get(name)
        if entry_1 and entry_2 and entry_1.address != entry_2.address:
            resolution = _select_conflict_resolution(
                entry_1=entry_1,
                filepath_1=filepath_1,
                entry_2=entry_2,
                filepath_2=filepath_2,
            )
            selected_entry = entry_1 if resolution == ConflictResolution.USE_1 else entry_2
        else:
            selected_entry = entry_1 or entry_2
        merged.append(selected_entry)

    write_addresses(entries=merged, filepath=output_filepath)
    print(f"Merged addresses output to {output_filepath}")
    return output_filepath
