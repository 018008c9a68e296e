import json
from typing import Optional


def _confirm_instantiation(contract_name: str) -> None:
    """Asks the user to confirm the instantiation of a single contract."""
    answer = input(f"Instantiate {contract_name} Y/N? ")
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        exit(-1)


def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        exit(-1)


def _confirm_resolution(resolved_msg: dict, contract_name: str, admin: Optional[str]) -> None:
    """Asks the user to confirm the resolved init message for a single contract."""
    if len(resolved_msg) == 0:
        print(f"\n(i) Empty init message for {contract_name}")
    else:
        print(f"\nInit message for {contract_name}")
        print(json.dumps(resolved_msg, indent=2))
    print(f"Admin: {admin or 'none'}")
    _confirm_instantiation(contract_name)
