#!/usr/bin/python3

import click

from deployment.config import load_config
from deployment.constants import MNEMONIC_ENVVAR, NEW_OWNER_MNEMONIC_ENVVAR
from deployment.cosmos import connect
from deployment.deployer import Deployer, Transactor
from deployment.ledger import open_ledger
from deployment.options import autosign_option, config_option, label_option, multisig_option
from deployment.ownership import OwnershipTransfer
from deployment.utils import get_mnemonic


@click.command()
@config_option
@label_option
@multisig_option
@autosign_option
@click.option(
    "--propose-only",
    help="Only propose the new owner; acceptance happens elsewhere (e.g. a multisig UI)",
    is_flag=True,
    default=False,
)
def cli(config_filepath, label, multisig, autosign, propose_only):
    """
    Hand owner and admin of every deployed contract to a new authority.

    The deployer key (MNEMONIC) proposes; unless --propose-only is given the
    new owner key (NEW_OWNER_MNEMONIC) accepts.
    """
    mnemonic = get_mnemonic(MNEMONIC_ENVVAR)
    new_owner_mnemonic = None if propose_only else get_mnemonic(NEW_OWNER_MNEMONIC_ENVVAR)

    config = load_config(config_filepath, label=label)
    target = multisig or config.multisig
    if not target:
        raise click.BadOptionUsage(
            option_name="--multisig",
            message="No target owner: pass --multisig or set owner.multisig in the config.",
        )

    client = connect(config.chain, mnemonic)
    acceptor = None
    if new_owner_mnemonic:
        acceptor = Transactor(client=connect(config.chain, new_owner_mnemonic), autosign=autosign)

    with open_ledger(config.chain.chain_id, config.label, ledger_dir=config.ledger_dir) as ledger:
        deployer = Deployer(client=client, config=config, ledger=ledger, autosign=autosign)
        OwnershipTransfer(deployer=deployer, target=target, acceptor=acceptor).run()


if __name__ == "__main__":
    cli()
