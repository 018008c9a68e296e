"""
Functional checks run against a freshly deployed protocol.

Each check drives one user action and asserts the resulting position
right away; the first mismatch raises VerificationFailed.
"""

import time
from decimal import Decimal
from typing import Callable, List, NamedTuple, Optional

import click

from deployment.client import ChainClient, Coin
from deployment.config import VerificationConfig
from deployment.constants import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, ContractName
from deployment.ledger import Ledger
from deployment.utils import wait_until

ACCOUNT_BALANCE = "account_balance"


class VerificationFailed(AssertionError):
    """A deployed contract did not behave as expected."""


def _check(condition: bool, message: str) -> None:
    if not condition:
        raise VerificationFailed(message)


def _amount(coins: List[dict], denom: str) -> int:
    for coin in coins:
        if coin["denom"] == denom:
            return int(coin["amount"])
    return 0


class VaultBalance(NamedTuple):
    unlocked: int
    locked: int
    unlocking: List[dict]

    @classmethod
    def from_position(cls, amount: dict) -> "VaultBalance":
        if "unlocked" in amount:
            return cls(unlocked=int(amount["unlocked"]), locked=0, unlocking=[])
        locking = amount["locking"]
        return cls(unlocked=0, locked=int(locking["locked"]), unlocking=list(locking["unlocking"]))


class VaultInfo(NamedTuple):
    address: str
    base_token: str
    vault_token: str


class CreditAccountVerifier:
    """Drives a credit account through the credit manager."""

    def __init__(self, client: ChainClient, ledger: Ledger, config: VerificationConfig):
        self.client = client
        self.config = config
        self.credit_manager = ledger.require_address(ContractName.CREDIT_MANAGER)
        self.account_nft = ledger.require_address(ContractName.ACCOUNT_NFT)
        self.account_id: Optional[str] = None

    @property
    def base_denom(self) -> str:
        return self.config.base_denom

    def run(self, vault: Optional[str] = None) -> None:
        self.create_credit_account()
        self.deposit()
        self.lend()
        self.borrow()
        self.repay()
        self.reclaim()
        self.withdraw()
        if self.config.second_denom and int(self.config.swap_amount):
            self.swap()
        if vault and int(self.config.vault_deposit_amount):
            info = self.vault_info(vault)
            balance = self.vault_deposit(info)
            if balance.locked:
                self.vault_request_unlock(info)
            else:
                self.vault_withdraw(info)
        self.refund_all_balances()
        click.secho("Credit account verification passed.", fg="green")

    #
    # Queries
    #

    def positions(self) -> dict:
        return self.client.query(self.credit_manager, {"positions": {"account_id": self.account_id}})

    def tokens(self) -> List[str]:
        response = self.client.query(self.account_nft, {"tokens": {"owner": self.client.address}})
        return list(response["tokens"])

    def vault_info(self, vault: str) -> VaultInfo:
        info = self.client.query(vault, {"info": {}})
        return VaultInfo(address=vault, base_token=info["base_token"], vault_token=info["vault_token"])

    def vault_balance(self, vault: str) -> VaultBalance:
        for position in self.positions()["vaults"]:
            if position["vault"]["address"] == vault:
                return VaultBalance.from_position(position["amount"])
        raise VerificationFailed(f"No vault position for {vault}")

    def _update_credit_account(self, actions: List[dict], funds: Optional[List[Coin]] = None):
        msg = {"update_credit_account": {"account_id": self.account_id, "actions": actions}}
        return self.client.execute(self.credit_manager, msg, funds=funds)

    #
    # Actions
    #

    def create_credit_account(self) -> str:
        before = set(self.tokens())
        self.client.execute(self.credit_manager, {"create_credit_account": "default"})
        created = [token for token in self.tokens() if token not in before]
        _check(len(created) == 1, f"Expected one new credit account, found {created}")
        self.account_id = created[0]
        click.secho(f"Newly created credit account id: #{self.account_id}", fg="green")
        return self.account_id

    def deposit(self) -> None:
        amount = self.config.deposit_amount
        self._update_credit_account(
            [{"deposit": {"denom": self.base_denom, "amount": amount}}],
            funds=[Coin(denom=self.base_denom, amount=amount)],
        )
        deposits = self.positions()["deposits"]
        _check(len(deposits) == 1, f"Expected one deposit, found {deposits}")
        _check(
            deposits[0]["denom"] == self.base_denom and deposits[0]["amount"] == amount,
            f"Expected a deposit of {amount}{self.base_denom}, found {deposits[0]}",
        )
        click.secho(f"Deposited into credit account: {amount} {self.base_denom}", fg="green")

    def lend(self) -> None:
        amount = self.config.lend_amount
        self._update_credit_account(
            [{"lend": {"denom": self.base_denom, "amount": {"exact": amount}}}]
        )
        lends = self.positions()["lends"]
        _check(len(lends) == 1, f"Expected one lend, found {lends}")
        _check(lends[0]["denom"] == self.base_denom, f"Unexpected lend {lends[0]}")
        click.secho(f"Lent to Red Bank: {amount} {self.base_denom}", fg="green")

    def borrow(self) -> None:
        amount = self.config.borrow_amount
        self._update_credit_account([{"borrow": {"denom": self.base_denom, "amount": amount}}])
        debts = self.positions()["debts"]
        _check(len(debts) == 1, f"Expected one debt, found {debts}")
        _check(debts[0]["denom"] == self.base_denom, f"Unexpected debt {debts[0]}")
        _check(
            int(debts[0]["amount"]) >= int(amount),
            f"Debt {debts[0]['amount']} is below the borrowed {amount}",
        )
        click.secho(f"Borrowed from Red Bank: {amount} {self.base_denom}", fg="green")

    def repay(self) -> None:
        before = _amount(self.positions()["debts"], self.base_denom)
        if self.config.repay_amount is None:
            amount = ACCOUNT_BALANCE
        else:
            amount = {"exact": self.config.repay_amount}
        self._update_credit_account(
            [{"repay": {"coin": {"denom": self.base_denom, "amount": amount}}}]
        )
        debts = self.positions()["debts"]
        if self.config.repay_amount is None:
            _check(debts == [], f"Expected no debt after a full repay, found {debts}")
        else:
            after = _amount(debts, self.base_denom)
            _check(after < before, f"Debt did not decrease after repay ({before} -> {after})")
        click.secho(f"Repaid to Red Bank. Debt remaining: {debts}", fg="green")

    def reclaim(self) -> None:
        before = _amount(self.positions()["lends"], self.base_denom)
        amount = self.config.reclaim_amount
        self._update_credit_account(
            [{"reclaim": {"denom": self.base_denom, "amount": {"exact": amount}}}]
        )
        after = _amount(self.positions()["lends"], self.base_denom)
        _check(after < before, f"Lent amount did not decrease after reclaim ({before} -> {after})")
        click.secho(f"Reclaimed: {amount} {self.base_denom}. Lent remaining: {after}", fg="green")

    def withdraw(self) -> None:
        amount = self.config.withdraw_amount
        before = _amount(self.positions()["deposits"], self.base_denom)
        self._update_credit_account(
            [{"withdraw": {"denom": self.base_denom, "amount": {"exact": amount}}}]
        )
        after = _amount(self.positions()["deposits"], self.base_denom)
        _check(
            before - after == int(amount),
            f"Withdrew {before - after} {self.base_denom}, expected {amount}",
        )
        click.secho(f"Withdrew: {amount} {self.base_denom}", fg="green")

    def swap(self) -> None:
        amount = self.config.swap_amount
        denom_out = self.config.second_denom
        click.secho(f"Swapping {amount} {self.base_denom} for {denom_out}", fg="blue")
        before = self.positions()["deposits"]
        self._update_credit_account(
            [
                {
                    "swap_exact_in": {
                        "coin_in": {"denom": self.base_denom, "amount": {"exact": amount}},
                        "denom_out": denom_out,
                        "slippage": self.config.slippage,
                    }
                }
            ]
        )
        after = self.positions()["deposits"]
        _check(
            _amount(before, self.base_denom) - _amount(after, self.base_denom) == int(amount),
            f"Swap did not spend {amount} {self.base_denom}",
        )
        _check(
            _amount(after, denom_out) > _amount(before, denom_out),
            f"Swap did not credit any {denom_out}",
        )
        click.secho(f"New account balance: {after}", fg="green")

    def vault_deposit(self, info: VaultInfo) -> VaultBalance:
        amount = self.config.vault_deposit_amount
        old_balance = self.client.get_balance(self.credit_manager, info.vault_token)
        self._update_credit_account(
            [
                {
                    "enter_vault": {
                        "coin": {"denom": info.base_token, "amount": {"exact": amount}},
                        "vault": {"address": info.address},
                    }
                }
            ]
        )
        _check(len(self.positions()["vaults"]) == 1, "Expected exactly one vault position")
        balance = self.vault_balance(info.address)
        _check(balance.locked > 0 or balance.unlocked > 0, "Vault position is empty")

        new_balance = self.client.get_balance(self.credit_manager, info.vault_token)
        minted = int(new_balance.amount) - int(old_balance.amount)
        _check(
            minted in (balance.locked, balance.unlocked),
            f"Vault token delta {minted} does not match the position {balance}",
        )
        click.secho(
            f"Deposited {amount} {info.base_token} in exchange for {minted} {info.vault_token}",
            fg="green",
        )
        return balance

    def vault_request_unlock(self, info: VaultInfo) -> VaultBalance:
        old_balance = self.vault_balance(info.address)
        self._update_credit_account(
            [
                {
                    "request_vault_unlock": {
                        "amount": str(old_balance.locked),
                        "vault": {"address": info.address},
                    }
                }
            ]
        )
        new_balance = self.vault_balance(info.address)
        _check(new_balance.locked < old_balance.locked, "Locked amount did not decrease")
        _check(
            len(new_balance.unlocking) == 1,
            f"Expected one unlocking entry, found {new_balance.unlocking}",
        )
        _check(
            int(new_balance.unlocking[0]["coin"]["amount"]) > 0,
            f"Unlocking entry is empty: {new_balance.unlocking[0]}",
        )
        click.secho(
            f"Requested unlock: ID #{new_balance.unlocking[0]['id']} "
            f"for {old_balance.locked - new_balance.locked} {info.vault_token}",
            fg="green",
        )
        return new_balance

    def vault_withdraw(self, info: VaultInfo) -> int:
        old_balance = _amount(self.positions()["deposits"], info.base_token)
        vault_tokens = self.vault_balance(info.address).unlocked
        self._update_credit_account(
            [{"exit_vault": {"amount": str(vault_tokens), "vault": {"address": info.address}}}]
        )
        new_balance = _amount(self.positions()["deposits"], info.base_token)
        _check(new_balance > old_balance, f"Exiting {info.address} returned no {info.base_token}")
        click.secho(
            f"Withdrew {new_balance - old_balance} {info.base_token} "
            f"in exchange for {vault_tokens} {info.vault_token}",
            fg="green",
        )
        return new_balance - old_balance

    def refund_all_balances(self) -> None:
        self._update_credit_account([{"refund_all_coin_balances": {}}])
        deposits = self.positions()["deposits"]
        _check(deposits == [], f"Expected no deposits after a refund, found {deposits}")
        click.secho("Withdrew all balances back to wallet", fg="green")


class RedBankVerifier:
    """Deposits, borrows, repays and withdraws directly against the red bank."""

    def __init__(self, client: ChainClient, ledger: Ledger, config: VerificationConfig):
        self.client = client
        self.config = config
        self.red_bank = ledger.require_address(ContractName.RED_BANK)
        self.rewards_collector = ledger.address(ContractName.REWARDS_COLLECTOR)

    def run(self) -> None:
        self.deposit()
        self.borrow()
        self.repay()
        self.withdraw()
        if self.config.rewards_swap:
            self.rewards_swap()
        click.secho("Red bank verification passed.", fg="green")

    def _collateral(self, denom: str) -> int:
        response = self.client.query(
            self.red_bank, {"user_collateral": {"user": self.client.address, "denom": denom}}
        )
        return int(response["amount"])

    def _debt(self, denom: str) -> int:
        response = self.client.query(
            self.red_bank, {"user_debt": {"user": self.client.address, "denom": denom}}
        )
        return int(response["amount"])

    def _log_position(self) -> None:
        position = self.client.query(self.red_bank, {"user_position": {"user": self.client.address}})
        click.secho(f"User position: {position}", fg="yellow")

    def deposit(self) -> None:
        denom, amount = self.config.base_denom, self.config.deposit_amount
        before = self._collateral(denom)
        self.client.execute(self.red_bank, {"deposit": {}}, funds=[Coin(denom=denom, amount=amount)])
        after = self._collateral(denom)
        _check(
            after - before == int(amount),
            f"Collateral grew by {after - before}{denom} after depositing {amount}{denom}",
        )
        click.secho("Deposit Executed.", fg="yellow")
        self._log_position()

    def borrow(self) -> None:
        denom, amount = self.config.second_denom, self.config.borrow_amount
        self.client.execute(self.red_bank, {"borrow": {"denom": denom, "amount": amount}})
        debt = self._debt(denom)
        _check(debt >= int(amount), f"Debt {debt}{denom} is below the borrowed {amount}")
        click.secho("Borrow executed.", fg="yellow")
        self._log_position()

    def repay(self) -> None:
        denom = self.config.second_denom
        before = self._debt(denom)
        if self.config.repay_amount is None:
            # overpay; the red bank refunds the excess
            amount = str(before + before // 1000 + 1)
        else:
            amount = self.config.repay_amount
        self.client.execute(self.red_bank, {"repay": {}}, funds=[Coin(denom=denom, amount=amount)])
        after = self._debt(denom)
        if self.config.repay_amount is None:
            _check(after == 0, f"Debt of {after}{denom} remains after a full repay")
        else:
            _check(after < before, f"Debt did not decrease after repay ({before} -> {after})")
        click.secho("Repay executed.", fg="yellow")
        self._log_position()

    def withdraw(self) -> None:
        denom, amount = self.config.base_denom, self.config.withdraw_amount
        before = self.client.get_balance(self.client.address, denom)
        self.client.execute(self.red_bank, {"withdraw": {"denom": denom, "amount": amount}})
        after = self.client.get_balance(self.client.address, denom)
        _check(
            int(after.amount) > int(before.amount),
            f"Wallet balance of {denom} did not grow after withdrawing",
        )
        click.secho("Withdraw executed.", fg="yellow")
        self._log_position()

    def rewards_swap(self) -> None:
        """Sends fees to the rewards collector and checks they are swapped to the base denom."""
        _check(self.rewards_collector is not None, "No rewards collector deployed")
        denom, amount = self.config.second_denom, self.config.swap_amount
        self.client.send_tokens(self.rewards_collector, [Coin(denom=denom, amount=amount)])

        fee_before = self.client.get_balance(self.rewards_collector, denom)
        base_before = self.client.get_balance(self.rewards_collector, self.config.base_denom)
        click.secho(f"Rewards Collector balance: {fee_before} {base_before}", fg="yellow")

        self.client.execute(self.rewards_collector, {"swap_asset": {"denom": denom}})

        fee_after = self.client.get_balance(self.rewards_collector, denom)
        base_after = self.client.get_balance(self.rewards_collector, self.config.base_denom)
        click.secho(f"Rewards Collector balance: {fee_after} {base_after}", fg="yellow")
        _check(int(fee_after.amount) == 0, f"{denom} was not swapped: {fee_after}")
        _check(
            int(base_after.amount) > int(base_before.amount),
            f"{self.config.base_denom} balance did not grow after the swap",
        )


def liquidation_health_factor(client: ChainClient, red_bank: str, user: str) -> Optional[Decimal]:
    """Returns the user's liquidation health factor, or None when they are not borrowing."""
    position = client.query(red_bank, {"user_position": {"user": user}})
    status = position.get("health_status")
    if not isinstance(status, dict):
        return None
    borrowing = status.get("borrowing")
    if isinstance(borrowing, dict):
        borrowing = borrowing.get("liq_threshold_hf")
    if borrowing is None:
        return None
    return Decimal(str(borrowing))


def wait_until_liquidatable(
    client: ChainClient,
    red_bank: str,
    user: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Polls until the user's health factor drops below one."""

    def _liquidatable() -> bool:
        health_factor = liquidation_health_factor(client, red_bank, user)
        return health_factor is not None and health_factor < 1

    return wait_until(
        predicate=_liquidatable,
        description=f"{user} to become liquidatable",
        max_attempts=max_attempts,
        base_delay=base_delay,
        sleep=sleep,
    )


def verify_deployment(
    client: ChainClient, ledger: Ledger, config: VerificationConfig, vault: Optional[str] = None
) -> None:
    click.secho("\nRunning functional verification", fg="yellow")
    if config.red_bank:
        RedBankVerifier(client=client, ledger=ledger, config=config).run()
    if config.credit_manager:
        CreditAccountVerifier(client=client, ledger=ledger, config=config).run(vault=vault)
