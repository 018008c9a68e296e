#!/usr/bin/python3

from pathlib import Path
from typing import List, Optional

import click

from deployment.ledger import ActionKey, Ledger
from deployment.options import ledger_dir_option
from deployment.utils import _load_json


def _get_ledgers(ledger_dir: Path, chain_id: Optional[str] = None) -> List[Ledger]:
    """Load every ledger in the directory, optionally only those of one chain."""
    ledgers = list()
    for filepath in sorted(ledger_dir.glob("*.json")):
        if filepath.name.endswith(".temp.json"):
            continue
        data = _load_json(filepath)
        if chain_id and data.get("chainId") != chain_id:
            continue
        ledgers.append(Ledger.from_dict(data, chain_id=data["chainId"], label=data["label"]))
    return ledgers


def _display_ledger(ledger: Ledger, show_actions: bool) -> None:
    click.secho(f"\n{ledger.chain_id} ({ledger.label})", fg="green")
    click.secho(f"    Owner: {ledger.owner or 'unresolved'}", fg="yellow")
    for index, (name, code_id) in enumerate(sorted(ledger.code_ids.items()), start=1):
        address = ledger.address(name) or "not instantiated"
        click.secho(f"        {index}. {name} (code {code_id}) {address}", fg="cyan")
    if show_actions:
        click.secho("    Completed actions:", fg="yellow")
        for value in sorted(ledger.completed_actions):
            key = ActionKey.parse(value)
            click.secho(f"        {key.action}: {key.target}", fg="cyan")


@click.command(name="list-contracts")
@ledger_dir_option
@click.option("--chain-id", help="Only list ledgers of this chain id", required=False)
@click.option("--actions", "show_actions", help="Also list completed actions", is_flag=True)
def cli(ledger_dir, chain_id, show_actions):
    """List the contracts recorded in deployment ledgers."""
    ledgers = _get_ledgers(ledger_dir=ledger_dir, chain_id=chain_id)
    if not ledgers:
        click.secho("No ledgers found.", fg="red")
        return
    for ledger in ledgers:
        _display_ledger(ledger, show_actions=show_actions)


if __name__ == "__main__":
    cli()
