"""
Two-phase hand-off of contract control.

Every owned contract moves through Deployer-Owned -> Proposed -> Transferred.
The deployer proposes the target authority, the target authority accepts
(when it can sign here), and the contract is queried afterwards to confirm
the state the transition should have produced. The chain-level admin is
handed over separately with an update-admin transaction.
"""

from typing import List, NamedTuple, Optional

import click

from deployment.constants import DEPLOY_ORDER, OWNED_CONTRACTS, Action, ContractName
from deployment.deployer import Deployer, StepResult, Transactor
from deployment.ledger import ActionKey

DEFAULT_OWNER_QUERY = {"config": {}}

OWNER_QUERIES = {
    ContractName.PARAMS: {"owner": {}},
    ContractName.SWAPPER: {"owner": {}},
    ContractName.ACCOUNT_NFT: {"ownership": {}},
}

ACCEPT_OWNERSHIP_MSG = {"update_owner": "accept_proposed"}


class OwnershipTransferFailed(RuntimeError):
    """Raised when a contract does not report the expected owner after a transition."""


class OwnerState(NamedTuple):
    owner: Optional[str]
    proposed: Optional[str]

    @classmethod
    def from_response(cls, response: dict) -> "OwnerState":
        """Reads owner fields from a config, owner or ownership query response."""
        if isinstance(response.get("ownership"), dict):
            response = response["ownership"]
        proposed = None
        for key in ("proposed_new_owner", "proposed", "pending_owner"):
            if response.get(key):
                proposed = response[key]
                break
        return cls(owner=response.get("owner"), proposed=proposed)


def propose_owner_msg(proposed: str) -> dict:
    return {"update_owner": {"propose_new_owner": {"proposed": proposed}}}


def query_owner_state(deployer: Deployer, name: ContractName) -> OwnerState:
    query = OWNER_QUERIES.get(ContractName(name), DEFAULT_OWNER_QUERY)
    return OwnerState.from_response(deployer.query(name, query))


class OwnershipTransfer:
    """Moves owner and admin of every deployed contract to ``target``."""

    def __init__(
        self,
        deployer: Deployer,
        target: str,
        acceptor: Optional[Transactor] = None,
        contracts: Optional[List[ContractName]] = None,
    ):
        if acceptor is not None and acceptor.address != target:
            raise OwnershipTransferFailed(
                f"Acceptor {acceptor.address} cannot accept ownership on behalf of {target}."
            )
        self.deployer = deployer
        self.ledger = deployer.ledger
        self.target = target
        self.acceptor = acceptor
        self.contracts = contracts if contracts is not None else OWNED_CONTRACTS

    def _owned_contracts(self) -> List[ContractName]:
        return [
            name
            for name in DEPLOY_ORDER
            if name in self.contracts and self.ledger.address(name) is not None
        ]

    def _deployed_contracts(self) -> List[ContractName]:
        return [name for name in DEPLOY_ORDER if self.ledger.address(name) is not None]

    def run(self) -> List[StepResult]:
        click.secho(f"\nTransferring ownership to {self.target}", fg="yellow")
        results = list()
        for name in self._owned_contracts():
            results.extend(self.transfer(name))
        for name in self._deployed_contracts():
            results.append(self.update_admin(name))
        return results

    def transfer(self, name: ContractName) -> List[StepResult]:
        results = [self.propose(name)]
        if self.acceptor is not None:
            results.append(self.accept(name))
        self.verify(name)
        return results

    def propose(self, name: ContractName) -> StepResult:
        def _propose():
            state = query_owner_state(self.deployer, name)
            if state.owner == self.target:
                click.secho(f"{name} is already owned by {self.target}", fg="blue")
                return None
            contract = self.ledger.require_address(name)
            return self.deployer.transact(str(name), contract, propose_owner_msg(self.target))

        return self.deployer.run_once(ActionKey(Action.OWNERSHIP_PROPOSED, str(name)), _propose)

    def accept(self, name: ContractName) -> StepResult:
        def _accept():
            state = query_owner_state(self.deployer, name)
            if state.owner == self.target:
                click.secho(f"{name} is already owned by {self.target}", fg="blue")
                return None
            contract = self.ledger.require_address(name)
            return self.acceptor.transact(str(name), contract, ACCEPT_OWNERSHIP_MSG)

        return self.deployer.run_once(ActionKey(Action.OWNERSHIP_ACCEPTED, str(name)), _accept)

    def verify(self, name: ContractName) -> OwnerState:
        state = query_owner_state(self.deployer, name)
        if self.acceptor is not None:
            ok = state.owner == self.target
            expectation = "owner"
        else:
            ok = self.target in (state.owner, state.proposed)
            expectation = "proposed owner"
        if not ok:
            raise OwnershipTransferFailed(
                f"{name} reports owner={state.owner} proposed={state.proposed}; "
                f"expected {self.target} as {expectation}."
            )
        click.secho(f"Owner updated for {name}: {state.owner} (proposed: {state.proposed})", fg="yellow")
        return state

    def update_admin(self, name: ContractName) -> StepResult:
        contract = self.ledger.require_address(name)
        return self.deployer.run_once(
            ActionKey(Action.ADMIN_UPDATED, f"{name}/{self.target}"),
            lambda: self.deployer.client.update_admin(contract, self.target),
        )


def transfer_minter(deployer: Deployer) -> List[StepResult]:
    """
    Hands the account NFT (and with it the right to mint credit accounts) to
    the credit manager. The credit manager accepts through its own
    update_config path.
    """
    nft = deployer.ledger.require_address(ContractName.ACCOUNT_NFT)
    credit_manager = deployer.ledger.require_address(ContractName.CREDIT_MANAGER)

    proposed = deployer.execute_once(
        ActionKey(Action.MINTER_PROPOSED, str(ContractName.ACCOUNT_NFT)),
        ContractName.ACCOUNT_NFT,
        {"update_ownership": {"transfer_ownership": {"new_owner": credit_manager, "expiry": None}}},
    )
    accepted = deployer.execute_once(
        ActionKey(Action.MINTER_ACCEPTED, str(ContractName.CREDIT_MANAGER)),
        ContractName.CREDIT_MANAGER,
        {"update_config": {"updates": {"account_nft": nft}}},
    )

    state = query_owner_state(deployer, ContractName.ACCOUNT_NFT)
    if state.owner != credit_manager:
        raise OwnershipTransferFailed(
            f"{ContractName.ACCOUNT_NFT} reports owner={state.owner}; "
            f"expected the credit manager {credit_manager}."
        )
    click.secho(f"Minter set to credit manager {credit_manager}", fg="yellow")
    return [proposed, accepted]
