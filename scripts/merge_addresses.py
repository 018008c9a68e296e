#!/usr/bin/python3
from pathlib import Path

import click

from deployment.registry import merge_addresses


@click.command()
@click.option(
    "--addresses-1",
    help="Filepath to addresses file 1",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option(
    "--addresses-2",
    help="Filepath to addresses file 2",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option(
    "--output",
    "-o",
    help="Filepath of output addresses file",
    type=click.Path(dir_okay=False, exists=False, path_type=Path),
    required=True,
)
@click.option(
    "--deprecated-contract",
    "-d",
    "deprecated_contracts",
    help="Names of any deprecated contracts to exclude from the merge",
    required=False,
    multiple=True,
)
def cli(addresses_1, addresses_2, output, deprecated_contracts):
    """Merge two addresses files into one."""
    merge_addresses(
        filepath_1=addresses_1,
        filepath_2=addresses_2,
        output_filepath=output,
        deprecated_contracts=list(deprecated_contracts),
    )


if __name__ == "__main__":
    cli()
