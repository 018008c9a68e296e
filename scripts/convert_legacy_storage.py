#!/usr/bin/python3
from pathlib import Path

import click

from deployment.constants import DEFAULT_LABEL
from deployment.legacy import convert_legacy_storage
from deployment.options import ledger_dir_option


@click.command()
@click.option(
    "--legacy-storage",
    "-f",
    help="Filepath to a legacy deployment storage file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option("--chain-id", help="Chain the storage file belongs to", required=True)
@click.option("--label", "-l", help="Ledger label", default=DEFAULT_LABEL, show_default=True)
@ledger_dir_option
def cli(legacy_storage, chain_id, label, ledger_dir):
    """Convert a legacy deployment storage file into a ledger."""
    filepath = convert_legacy_storage(
        legacy_filepath=legacy_storage, chain_id=chain_id, label=label, ledger_dir=ledger_dir
    )
    click.secho(f"Ledger written to {filepath}", fg="green")


if __name__ == "__main__":
    cli()
