#!/usr/bin/python3

import click

from deployment.config import load_config
from deployment.constants import MNEMONIC_ENVVAR
from deployment.cosmos import connect
from deployment.options import autosign_option, config_option, label_option, run_tests_option
from deployment.pipeline import TaskRunner
from deployment.utils import get_mnemonic


@click.command()
@config_option
@label_option
@autosign_option
@run_tests_option
def cli(config_filepath, label, autosign, run_tests):
    """
    Deploy, configure and optionally verify the protocol on the network described
    by a deployment config. Safe to re-run: completed steps are skipped.

    python scripts/deploy.py -c deployment/configs/osmosis-testnet.yml
    """
    mnemonic = get_mnemonic(MNEMONIC_ENVVAR)
    config = load_config(config_filepath, label=label)
    client = connect(config.chain, mnemonic)

    runner = TaskRunner(config=config, client=client, autosign=autosign, run_verification=run_tests)
    ledger = runner.run()
    for name, address in ledger.addresses.items():
        click.secho(f"{name}: {address}", fg="cyan")


if __name__ == "__main__":
    cli()
