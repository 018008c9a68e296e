import time
from collections import OrderedDict
from typing import Callable, List, Optional

import click

from deployment.client import ChainClient, ChainRejectionError
from deployment.config import DeploymentConfig
from deployment.constants import (
    ADDRESS_TYPES,
    DEPLOY_ORDER,
    FEE_COLLECTOR_ADDRESS_TYPE,
    PROTOCOL_ADMIN_ADDRESS_TYPE,
    SAFETY_FUND_ADDRESS_TYPE,
    Action,
    ContractName,
)
from deployment.deployer import Deployer, StepResult, Transactor
from deployment.ledger import ActionKey, Ledger, open_ledger
from deployment.ownership import OwnershipTransfer, transfer_minter
from deployment.registry import addresses_from_ledger
from deployment.utils import wait_for_pyth_feed
from deployment.verification import verify_deployment


class TaskRunner:
    """
    Runs every deployment phase in dependency order against one
    (chain id, label) ledger. The ledger is written back when the run
    ends, whether or not it succeeded.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        client: ChainClient,
        autosign: bool = False,
        run_verification: Optional[bool] = None,
        acceptor: Optional[Transactor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.client = client
        self.autosign = autosign
        if run_verification is None:
            run_verification = config.verification.enabled
        self.run_verification = run_verification
        self.acceptor = acceptor
        self.sleep = sleep
        self.results: List[StepResult] = list()

    def run(self) -> Ledger:
        with open_ledger(
            chain_id=self.config.chain.chain_id,
            label=self.config.label,
            ledger_dir=self.config.ledger_dir,
        ) as ledger:
            deployer = Deployer(
                client=self.client, config=self.config, ledger=ledger, autosign=self.autosign
            )
            deployer.assert_deployer_balance()
            deployer.set_owner()

            self.upload_contracts(deployer)
            self.instantiate_contracts(deployer)
            addresses_from_ledger(ledger, addresses_dir=self.config.addresses_dir)

            self.update_address_provider(deployer)
            self.set_swap_routes(deployer)
            self.set_price_sources(deployer)
            self.init_assets(deployer)
            self.configure_vaults(deployer)
            self.grant_credit_lines(deployer)
            self.seed_vaults(deployer)
            self.transfer_minter(deployer)

            if self.run_verification:
                self.verify(deployer)

            if self.config.multisig:
                self.transfer_ownership(deployer)

            executed = sum(1 for result in self.results if result.executed)
            click.secho(
                f"\nDeployment complete: {executed} step(s) executed, "
                f"{len(self.results) - executed} already done.",
                fg="green",
            )
        return ledger

    def _record(self, result: StepResult) -> StepResult:
        self.results.append(result)
        return result

    def _deployed(self, name: ContractName, deployer: Deployer) -> bool:
        return deployer.ledger.address(name) is not None

    #
    # Contracts
    #

    def _ordered_contracts(self) -> List[ContractName]:
        return [name for name in DEPLOY_ORDER if self.config.has_contract(name)]

    def upload_contracts(self, deployer: Deployer) -> None:
        click.secho("\nUploading contracts", fg="yellow")
        for name in self._ordered_contracts():
            self._record(deployer.upload(name))

    def instantiate_contracts(self, deployer: Deployer) -> None:
        click.secho("\nInstantiating contracts", fg="yellow")
        for name in self._ordered_contracts():
            self._record(deployer.deploy(name))

    #
    # Configuration
    #

    def update_address_provider(self, deployer: Deployer) -> None:
        if not self._deployed(ContractName.ADDRESS_PROVIDER, deployer):
            return
        click.secho("\nRegistering addresses", fg="yellow")

        registrations = list()
        for name in DEPLOY_ORDER:
            address_type = ADDRESS_TYPES.get(name)
            address = deployer.ledger.address(name)
            if address_type and address:
                registrations.append((address_type, address))

        protocol_addresses = self.config.protocol_addresses
        registrations.append(
            (PROTOCOL_ADMIN_ADDRESS_TYPE, protocol_addresses.protocol_admin or deployer.ledger.owner)
        )
        if protocol_addresses.fee_collector:
            registrations.append((FEE_COLLECTOR_ADDRESS_TYPE, protocol_addresses.fee_collector))
        if protocol_addresses.safety_fund:
            registrations.append((SAFETY_FUND_ADDRESS_TYPE, protocol_addresses.safety_fund))

        for address_type, address in registrations:
            msg = {"set_address": {"address_type": address_type, "address": address}}
            self._record(
                deployer.execute_once(
                    ActionKey(Action.ADDRESS_REGISTERED, address_type),
                    ContractName.ADDRESS_PROVIDER,
                    msg,
                )
            )

    def set_swap_routes(self, deployer: Deployer) -> None:
        if not self.config.swap_routes:
            return
        if self._deployed(ContractName.SWAPPER, deployer):
            target = ContractName.SWAPPER
        else:
            target = ContractName.REWARDS_COLLECTOR
        click.secho(f"\nSetting swap routes on {target}", fg="yellow")
        for route in self.config.swap_routes:
            msg = {
                "set_route": {
                    "denom_in": route.denom_in,
                    "denom_out": route.denom_out,
                    "route": deployer.resolve(route.route),
                }
            }
            self._record(
                deployer.execute_once(ActionKey(Action.SWAP_ROUTE_SET, route.target), target, msg)
            )

    def set_price_sources(self, deployer: Deployer) -> None:
        if not self.config.oracle_configs:
            return
        click.secho("\nSetting price sources", fg="yellow")
        oracle = deployer.ledger.require_address(ContractName.ORACLE)
        for oracle_config in self.config.oracle_configs:
            msg = {
                "set_price_source": {
                    "denom": oracle_config.denom,
                    "price_source": deployer.resolve(oracle_config.price_source),
                }
            }

            def _set_price_source(oracle_config=oracle_config, msg=msg):
                feed_id = oracle_config.pyth_feed_id
                if feed_id and self.config.pyth_endpoint:
                    wait_for_pyth_feed(self.config.pyth_endpoint, feed_id, sleep=self.sleep)
                return deployer.transact(str(ContractName.ORACLE), oracle, msg)

            result = self._record(
                deployer.run_once(
                    ActionKey(Action.PRICE_SOURCE_SET, oracle_config.denom), _set_price_source
                )
            )
            if result.executed:
                self._log_price(deployer, oracle_config.denom)

    def _log_price(self, deployer: Deployer, denom: str) -> None:
        try:
            price = deployer.query(ContractName.ORACLE, {"price": {"denom": denom}})
        except ChainRejectionError as error:
            click.secho(f"No price for {denom} yet: {error}", fg="red")
            return
        click.secho(f"Price of {denom}: {price}", fg="yellow")

    def init_assets(self, deployer: Deployer) -> None:
        if not self.config.assets:
            return
        click.secho("\nInitializing assets", fg="yellow")
        for asset in self.config.assets:
            if asset.red_bank is not None and self._deployed(ContractName.RED_BANK, deployer):
                msg = {"init_asset": {"denom": asset.denom, "params": deployer.resolve(asset.red_bank)}}
                self._record(
                    deployer.execute_once(
                        ActionKey(Action.ASSET_INITIALIZED, asset.denom), ContractName.RED_BANK, msg
                    )
                )
            if asset.params is not None and self._deployed(ContractName.PARAMS, deployer):
                params = OrderedDict(denom=asset.denom)
                params.update(deployer.resolve(asset.params))
                msg = {"update_asset_params": {"add_or_update": {"params": params}}}
                self._record(
                    deployer.execute_once(
                        ActionKey(Action.ASSET_PARAMS_SET, asset.denom), ContractName.PARAMS, msg
                    )
                )

    def configure_vaults(self, deployer: Deployer) -> None:
        if not self.config.vaults:
            return
        click.secho("\nConfiguring vaults", fg="yellow")
        for vault in self.config.vaults:
            config = deployer.resolve(vault.config)
            msg = {"update_vault_config": {"add_or_update": {"config": config}}}
            self._record(
                deployer.execute_once(
                    ActionKey(Action.VAULT_CONFIGURED, config["addr"]), ContractName.PARAMS, msg
                )
            )

    def grant_credit_lines(self, deployer: Deployer) -> None:
        if not self.config.credit_lines:
            return
        click.secho("\nGranting credit lines", fg="yellow")
        for credit_line in self.config.credit_lines:
            user = deployer.resolve(credit_line.user)
            msg = {
                "update_uncollateralized_loan_limit": {
                    "user": user,
                    "denom": credit_line.denom,
                    "new_limit": credit_line.limit,
                }
            }
            self._record(
                deployer.execute_once(
                    ActionKey(Action.CREDIT_LINE_GRANTED, f"{user}/{credit_line.denom}"),
                    ContractName.RED_BANK,
                    msg,
                )
            )

    def seed_vaults(self, deployer: Deployer) -> None:
        if not self.config.vault_seeds:
            return
        click.secho("\nSeeding vaults", fg="yellow")
        for seed in self.config.vault_seeds:
            vault = deployer.resolve(seed.vault)
            self._record(
                deployer.run_once(
                    ActionKey(Action.VAULT_SEEDED, vault),
                    lambda vault=vault, coins=seed.coins: self.client.send_tokens(vault, coins),
                )
            )

    def transfer_minter(self, deployer: Deployer) -> None:
        if not (
            self._deployed(ContractName.ACCOUNT_NFT, deployer)
            and self._deployed(ContractName.CREDIT_MANAGER, deployer)
        ):
            return
        click.secho("\nTransferring account NFT minter", fg="yellow")
        for result in transfer_minter(deployer):
            self._record(result)

    #
    # Hand-off
    #

    def verify(self, deployer: Deployer) -> None:
        vault = self.config.verification.vault
        if vault:
            vault = deployer.resolve(vault)
        else:
            vault = deployer.ledger.address(ContractName.MOCK_VAULT)
        verify_deployment(
            client=self.client,
            ledger=deployer.ledger,
            config=self.config.verification,
            vault=vault,
        )

    def transfer_ownership(self, deployer: Deployer) -> None:
        transfer = OwnershipTransfer(
            deployer=deployer, target=self.config.multisig, acceptor=self.acceptor
        )
        for result in transfer.run():
            self._record(result)
