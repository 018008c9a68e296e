from pathlib import Path

import click

from deployment.constants import CONFIGS_DIR, LEDGERS_DIR
from deployment.types import Bech32Address

config_option = click.option(
    "--config",
    "-c",
    "config_filepath",
    help=f"Deployment config file; see {CONFIGS_DIR}",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

label_option = click.option(
    "--label",
    "-l",
    help="Ledger label; defaults to the label in the config file",
    type=str,
    required=False,
)

autosign_option = click.option(
    "--autosign",
    help="Sign every transaction without asking for confirmation",
    is_flag=True,
    default=False,
)

run_tests_option = click.option(
    "--run-tests/--no-run-tests",
    "run_tests",
    help="Run the functional verification after deploying; defaults to the config setting",
    default=None,
)

multisig_option = click.option(
    "--multisig",
    "-m",
    help="Target owner; defaults to the multisig in the config file",
    type=Bech32Address(),
    required=False,
)

ledger_dir_option = click.option(
    "--ledger-dir",
    help="Directory holding ledger files",
    type=click.Path(file_okay=False, path_type=Path),
    default=LEDGERS_DIR,
    show_default=True,
)
