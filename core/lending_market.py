"""
Lending Market Model.

This module simulates a multi-token lending market. Every listed token has its
own market: lenders deposit it and earn a share of the interest paid by its
borrowers, and deposits double as collateral for loans in any other market.

Key mechanics:
1. Interest accrues lazily, once per block, through a jump rate model
2. Debt is tracked as proportional shares (a rebase pair), so interest raises
   what every share is worth without touching individual borrowers
3. Lender yield is distributed through a reward-per-share index and
   auto-compounded into each lender's balance on its next interaction
4. Loans and withdrawals must leave the account solvent, checked after the
   state change has been applied

Internally every balance is normalized to 18 decimals whatever the token's
native decimals; token amounts crossing the market boundary are native.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace

from constants import MAX_BORROW_RATE_PER_BLOCK, SCALE, ZERO_ADDRESS
from errors import (
    AccountInsolvent,
    BorrowRateTooHigh,
    InsufficientBalance,
    MarketAlreadyListed,
    NotAuthorized,
    NotEnoughCash,
    NotEnoughReserves,
    TokenNotListed,
    ZeroAddress,
    ZeroAmount,
)
from events import EventLog
from fixed_point import checked_add, checked_mul, checked_sub, from_scaled, mul_div, to_scaled
from jump_rate_model import JumpInterestRateModel
from rebase import Rebase
from rewards import checkpoint, compound, distribute, pending_rewards
from solvency import SolvencyChecker

logger = logging.getLogger(__name__)


@dataclass
class Market:
    """
    State of a single token market.

    The risk parameters are fixed when the market is listed; only the
    interest rate model can be swapped afterwards by the owner.
    """
    token: str
    interest_rate_model: JumpInterestRateModel
    max_ltv: int                  # Share of collateral value that can be borrowed
    reserve_factor: int           # Share of interest kept by the protocol
    liquidation_fee: int          # Premium charged on debt repaid in a liquidation
    liquidator_portion: int       # Share of seized collateral paid to the liquidator
    loan: Rebase = field(default_factory=Rebase)  # elastic = debt, base = borrower shares
    total_reserves: int = 0
    total_supply_scaled: int = 0
    total_rewards_per_token: int = 0
    last_accrued_block: int = 0

    def copy(self):
        return replace(self, loan=Rebase(self.loan.elastic, self.loan.base))

    def restore_from(self, other):
        for f in fields(self):
            if f.name == "loan":
                self.loan.elastic = other.loan.elastic
                self.loan.base = other.loan.base
            else:
                setattr(self, f.name, getattr(other, f.name))


@dataclass
class Account:
    """Position of one holder in one market."""
    balance: int = 0      # Deposit shares, including compounded rewards
    reward_debt: int = 0  # balance * total_rewards_per_token at the last settlement
    principal: int = 0    # Borrow shares, in loan.base units

    def copy(self):
        return replace(self)

    def restore_from(self, other):
        self.balance = other.balance
        self.reward_debt = other.reward_debt
        self.principal = other.principal


class MarketStore:
    """
    Explicit store of markets (keyed by token) and accounts (keyed by token and holder).
    """

    def __init__(self):
        self.markets = {}
        self.accounts = {}

    def has_market(self, token):
        return token in self.markets

    def market(self, token):
        """Returns the market of a token or raises TokenNotListed."""
        try:
            return self.markets[token]
        except KeyError:
            raise TokenNotListed(f"MAIL: {token} not listed") from None

    def listed_tokens(self):
        return list(self.markets)

    def account(self, token, holder):
        """Returns the account of ``holder`` in ``token``'s market, creating it on first use."""
        key = (token, holder)
        account = self.accounts.get(key)
        if account is None:
            account = self.accounts[key] = Account()
        return account

    def peek_account(self, token, holder):
        """Returns the account if it exists, otherwise an empty one that is not stored."""
        return self.accounts.get((token, holder)) or Account()

    def snapshot(self):
        markets = {token: market.copy() for token, market in self.markets.items()}
        accounts = {key: account.copy() for key, account in self.accounts.items()}
        return markets, accounts

    def restore(self, snapshot):
        """Restores a snapshot in place so outstanding references stay valid."""
        markets, accounts = snapshot

        for token in list(self.markets):
            if token in markets:
                self.markets[token].restore_from(markets[token])
            else:
                del self.markets[token]

        for key in list(self.accounts):
            if key in accounts:
                self.accounts[key].restore_from(accounts[key])
            else:
                del self.accounts[key]


class LendingMarket:
    """
    Simulates the lending market contract.

    Every mutating operation takes the acting account as ``caller`` (the
    transaction sender) and is atomic: if anything fails, all market state,
    token balances and events it produced are rolled back.

    Args:
        owner: Account allowed to use the admin surface
        treasury: Receiver of withdrawn reserves
        oracle: PriceOracle used for solvency checks and liquidations
        router: Account allowed to submit batches on behalf of others
        address: Address the market holds tokens under
        block_number: Starting block
    """

    def __init__(self, owner, treasury, oracle, router=None, address="lending-market", block_number=0):
        self.owner = owner
        self.treasury = treasury
        self.router = router
        self.oracle = oracle
        self.address = address

        # Current block, advanced with mine()
        self.block_number = block_number

        # Per-token state and ERC20 contracts
        self.store = MarketStore()
        self.tokens = {}

        self.log = EventLog()
        self.solvency = SolvencyChecker(self.store, oracle)

        self._atomic_depth = 0

    # --- Infrastructure ---

    @property
    def events(self):
        return self.log.events

    def mine(self, blocks=1):
        """Advances the chain by ``blocks`` blocks."""
        if blocks < 1:
            raise ValueError("Must mine at least one block")
        self.block_number += blocks
        return self.block_number

    def _emit(self, name, **args):
        return self.log.emit(name, block=self.block_number, **args)

    @contextmanager
    def atomic(self):
        """
        Runs the enclosed operations as one all-or-nothing unit.

        Only the outermost section snapshots; nested sections join it.
        """
        if self._atomic_depth > 0:
            self._atomic_depth += 1
            try:
                yield
            finally:
                self._atomic_depth -= 1
            return

        snapshot = (
            self.store.snapshot(),
            self.log.snapshot(),
            {symbol: token.snapshot() for symbol, token in self.tokens.items()},
        )
        self._atomic_depth = 1
        try:
            yield
        except Exception as e:
            store_snapshot, log_snapshot, token_snapshots = snapshot
            self.store.restore(store_snapshot)
            self.log.restore(log_snapshot)
            for symbol, token_snapshot in token_snapshots.items():
                self.tokens[symbol].restore(token_snapshot)
            logger.debug("Rolled back operation: %s", e)
            raise
        finally:
            self._atomic_depth = 0

    def _only_owner(self, caller):
        if caller != self.owner:
            raise NotAuthorized("Ownable: caller is not the owner")

    @staticmethod
    def _require_address(address, message):
        if not address or address == ZERO_ADDRESS:
            raise ZeroAddress(message)

    def _held_balance(self, market):
        token = self.tokens[market.token]
        return to_scaled(token.balance_of(self.address), token.decimals)

    def _cash(self, market):
        return checked_sub(self._held_balance(market), market.total_reserves)

    def _pull(self, token, sender, amount):
        """Transfers native ``amount`` of ``token`` from ``sender`` into the market."""
        self.tokens[token].transfer_from(self.address, sender, self.address, amount)

    def _push(self, token, recipient, amount):
        """Transfers native ``amount`` of ``token`` out of the market."""
        self.tokens[token].transfer(self.address, recipient, amount)

    def _settle(self, market, account):
        """Compounds pending rewards into the account's balance. Returns the amount."""
        rewards = compound(market, account)
        checkpoint(market, account)
        return rewards

    def check_solvency(self, account, message="MAIL: account is insolvent"):
        """Raises AccountInsolvent unless ``account`` is solvent."""
        if not self.solvency.is_solvent(account):
            raise AccountInsolvent(message)

    # --- Interest ---

    def accrue(self, token):
        """
        Charges the interest owed since the last accrual and distributes the
        lenders' share.

        Args:
            token: Market to accrue

        Raises:
            TokenNotListed: If the token has no market
            BorrowRateTooHigh: If the rate model returns a rate above the ceiling
        """
        with self.atomic():
            self._accrue(self.store.market(token))

    def _accrue(self, market):
        current_block = self.block_number

        # Nothing to charge: only move the clock
        if market.loan.elastic == 0 or market.last_accrued_block == current_block:
            market.last_accrued_block = current_block
            return

        block_delta = current_block - market.last_accrued_block
        cash = self._cash(market)
        model = market.interest_rate_model

        borrow_rate = model.borrow_rate_per_block(cash, market.loan.elastic, market.total_reserves)
        if borrow_rate > MAX_BORROW_RATE_PER_BLOCK:
            logger.warning(
                "Market %s halted: borrow rate %d exceeds the ceiling %d",
                market.token, borrow_rate, MAX_BORROW_RATE_PER_BLOCK,
            )
            raise BorrowRateTooHigh("MAIL: borrow rate is too high")

        supply_rate = model.supply_rate_per_block(
            cash, market.loan.elastic, market.total_reserves, market.reserve_factor
        )

        # Both are computed against the debt before this accrual
        interest = mul_div(checked_mul(block_delta, borrow_rate), market.loan.elastic, SCALE)
        rewards = mul_div(checked_mul(block_delta, supply_rate), market.loan.elastic, SCALE)

        market.loan.add_interest(interest)
        market.total_reserves = checked_add(market.total_reserves, checked_sub(interest, rewards))
        distribute(market, rewards)
        market.last_accrued_block = current_block

        self._emit(
            "Accrue",
            token=market.token,
            cash=cash,
            interest=interest,
            rewards=rewards,
            total_reserves=market.total_reserves,
            total_rewards_per_token=market.total_rewards_per_token,
        )
        logger.debug(
            "Accrued %s over %d blocks: interest=%d rewards=%d", market.token, block_delta, interest, rewards
        )

    # --- Lending ---

    def deposit(self, caller, token, amount, to):
        """
        Deposits ``amount`` of ``token`` from ``caller`` into ``to``'s balance.

        The deposit earns the market's supply rate and counts as collateral.

        Args:
            caller: Account paying the tokens
            token: Market token
            amount: Native token amount
            to: Account credited with the deposit

        Returns:
            Rewards compounded into ``to``'s balance before the deposit
        """
        with self.atomic():
            market = self.store.market(token)
            if amount <= 0:
                raise ZeroAmount("MAIL: no zero deposits")
            self._require_address(to, "MAIL: no zero address deposits")

            self._accrue(market)
            self._pull(token, caller, amount)

            scaled = to_scaled(amount, self.tokens[token].decimals)
            account = self.store.account(token, to)
            rewards = self._settle(market, account)

            account.balance = checked_add(account.balance, scaled)
            market.total_supply_scaled = checked_add(market.total_supply_scaled, scaled)
            checkpoint(market, account)

            self._emit("Deposit", sender=caller, to=to, token=token, amount=amount, rewards=rewards)
            logger.debug("%s deposited %d %s for %s", caller, amount, token, to)
            return rewards

    def withdraw(self, caller, token, amount, to):
        """
        Withdraws ``amount`` of ``token`` from ``caller``'s balance and sends it to ``to``.

        Args:
            caller: Account whose deposit is reduced
            token: Market token
            amount: Native token amount
            to: Receiver of the tokens

        Returns:
            Rewards compounded into ``caller``'s balance before the withdrawal

        Raises:
            NotEnoughCash: If the market does not hold enough free tokens
            InsufficientBalance: If ``caller`` has not deposited that much
            AccountInsolvent: If the withdrawal leaves ``caller`` insolvent
        """
        with self.atomic():
            rewards = self._withdraw(caller, token, amount, to)
            self.check_solvency(caller)
            return rewards

    def _withdraw(self, caller, token, amount, to):
        """Withdrawal without the solvency check. Must run inside ``atomic``."""
        market = self.store.market(token)
        if amount <= 0:
            raise ZeroAmount("MAIL: no zero withdraws")
        self._require_address(to, "MAIL: no zero address")

        # Without debt there is no interest to charge
        if market.loan.elastic > 0:
            self._accrue(market)

        scaled = to_scaled(amount, self.tokens[token].decimals)
        if scaled > self._cash(market):
            raise NotEnoughCash("MAIL: not enough cash")

        account = self.store.account(token, caller)
        rewards = self._settle(market, account)

        if scaled > account.balance:
            raise InsufficientBalance("MAIL: not enough balance")

        account.balance -= scaled
        market.total_supply_scaled = checked_sub(market.total_supply_scaled, scaled)
        checkpoint(market, account)

        self._push(token, to, amount)

        self._emit("Withdraw", sender=caller, to=to, token=token, amount=amount, rewards=rewards)
        logger.debug("%s withdrew %d %s to %s", caller, amount, token, to)
        return rewards

    # --- Borrowing ---

    def borrow(self, caller, token, amount, to):
        """
        Borrows ``amount`` of ``token`` against ``caller``'s collateral.

        Args:
            caller: Account taking on the debt
            token: Market token
            amount: Native token amount
            to: Receiver of the borrowed tokens

        Returns:
            Borrow shares (principal) added to ``caller``'s account

        Raises:
            NotEnoughCash: If the market does not hold enough free tokens
            AccountInsolvent: If the loan leaves ``caller`` insolvent
        """
        with self.atomic():
            principal = self._borrow(caller, token, amount, to)
            self.check_solvency(caller)
            return principal

    def _borrow(self, caller, token, amount, to):
        """Borrow without the solvency check. Must run inside ``atomic``."""
        market = self.store.market(token)
        if amount <= 0:
            raise ZeroAmount("MAIL: no zero borrows")
        self._require_address(to, "MAIL: no zero address")

        self._accrue(market)

        scaled = to_scaled(amount, self.tokens[token].decimals)
        if scaled > self._cash(market):
            raise NotEnoughCash("MAIL: not enough cash")

        # New debt rounds its shares up
        principal = market.loan.add_elastic(scaled, round_up=True)

        account = self.store.account(token, caller)
        account.principal = checked_add(account.principal, principal)

        self._push(token, to, amount)

        self._emit("Borrow", borrower=caller, to=to, token=token, amount=amount, principal=principal)
        logger.debug("%s borrowed %d %s (principal %d)", caller, amount, token, principal)
        return principal

    def repay(self, caller, token, principal, to):
        """
        Repays ``principal`` borrow shares of ``to``'s loan, paid by ``caller``.

        Args:
            caller: Account paying the debt
            token: Market token
            principal: Borrow shares to burn (18 decimals)
            to: Account whose loan is reduced

        Returns:
            Debt repaid (18 decimals)
        """
        with self.atomic():
            market = self.store.market(token)
            if principal <= 0:
                raise ZeroAmount("MAIL: principal cannot be 0")
            self._require_address(to, "MAIL: no to zero address")

            self._accrue(market)

            account = self.store.account(token, to)
            account.principal = checked_sub(account.principal, principal)

            # The debt a share represents rounds up in favour of the market
            debt = market.loan.sub_base(principal, round_up=True)

            token_contract = self.tokens[token]
            self._pull(token, caller, from_scaled(debt, token_contract.decimals, round_up=True))

            self._emit("Repay", sender=caller, account=to, token=token, principal=principal, amount=debt)
            logger.debug("%s repaid %d %s for %s", caller, debt, token, to)
            return debt

    # --- Admin ---

    def list_market(self, caller, token, config, interest_rate_model=None):
        """
        Lists a new market.

        Args:
            caller: Must be the owner
            token: ERC20Token to list
            config: MarketConfig with the market's risk parameters
            interest_rate_model: Model to use, built from ``config`` when omitted

        Returns:
            The new Market
        """
        self._only_owner(caller)

        if self.store.has_market(token.symbol):
            raise MarketAlreadyListed(f"MAIL: {token.symbol} already listed")

        if interest_rate_model is None:
            interest_rate_model = JumpInterestRateModel.from_config(config.interest_rate_model, owner=self.owner)

        market = Market(
            token=token.symbol,
            interest_rate_model=interest_rate_model,
            max_ltv=config.max_ltv,
            reserve_factor=config.reserve_factor,
            liquidation_fee=config.liquidation_fee,
            liquidator_portion=config.liquidator_portion,
            last_accrued_block=self.block_number,
        )
        self.store.markets[token.symbol] = market
        self.tokens[token.symbol] = token

        self._emit("MarketListed", token=token.symbol)
        logger.info("Listed market %s (max LTV %d, reserve factor %d)", token.symbol, config.max_ltv, config.reserve_factor)
        return market

    def set_interest_rate_model(self, caller, token, model):
        """
        Replaces the interest rate model of a market.

        The market is not accrued first, so a market halted by a broken model
        can be recovered.
        """
        self._only_owner(caller)
        market = self.store.market(token)
        market.interest_rate_model = model

        self._emit("SetInterestRateModel", token=token, model=model)
        logger.info("Interest rate model of %s replaced", token)

    def deposit_reserves(self, caller, token, amount):
        """Donates ``amount`` of ``token`` to the market's reserves."""
        with self.atomic():
            market = self.store.market(token)
            if amount <= 0:
                raise ZeroAmount("MAIL: no zero donations")

            self._pull(token, caller, amount)
            scaled = to_scaled(amount, self.tokens[token].decimals)
            market.total_reserves = checked_add(market.total_reserves, scaled)

            self._emit("DepositReserves", token=token, donor=caller, amount=amount)
            logger.info("%s donated %d %s to the reserves", caller, amount, token)

    def get_reserves(self, caller, token, amount):
        """
        Sends ``amount`` of ``token`` from the reserves to the treasury.

        Raises:
            NotAuthorized: If the caller is not the owner
            NotEnoughCash: If the market does not hold that many tokens
            NotEnoughReserves: If the reserves are smaller than ``amount``
        """
        with self.atomic():
            self._only_owner(caller)
            market = self.store.market(token)
            if amount <= 0:
                raise ZeroAmount("MAIL: no zero withdrawals")

            self._accrue(market)

            scaled = to_scaled(amount, self.tokens[token].decimals)
            if scaled > self._held_balance(market):
                raise NotEnoughCash("MAIL: not enough cash")
            if scaled > market.total_reserves:
                raise NotEnoughReserves("MAIL: not enough reserves")

            market.total_reserves -= scaled
            self._push(token, self.treasury, amount)

            self._emit("GetReserves", token=token, treasury=self.treasury, amount=amount)
            logger.info("Sent %d %s of reserves to the treasury", amount, token)

    # --- Queries ---

    def is_market(self, token):
        return self.store.has_market(token)

    def market_of(self, token):
        return self.store.market(token)

    def account_of(self, token, holder):
        """Returns ``holder``'s account without creating one."""
        self.store.market(token)
        return self.store.peek_account(token, holder)

    def total_supply_of(self, token):
        return self.store.market(token).total_supply_scaled

    def get_cash(self, token):
        """Returns the free tokens of a market, 18 decimals."""
        return self._cash(self.store.market(token))

    def borrow_rate_per_block(self, token):
        market = self.store.market(token)
        return market.interest_rate_model.borrow_rate_per_block(
            self._cash(market), market.loan.elastic, market.total_reserves
        )

    def supply_rate_per_block(self, token):
        market = self.store.market(token)
        return market.interest_rate_model.supply_rate_per_block(
            self._cash(market), market.loan.elastic, market.total_reserves, market.reserve_factor
        )

    def debt_of(self, token, holder):
        """Returns the debt ``holder`` owes in ``token`` (18 decimals, rounded up) as of the last accrual."""
        market = self.store.market(token)
        return market.loan.to_elastic(self.store.peek_account(token, holder).principal, round_up=True)

    def pending_rewards_of(self, token, holder):
        """Returns the rewards ``holder`` would compound on its next interaction, as of the last accrual."""
        market = self.store.market(token)
        account = self.store.peek_account(token, holder)
        return pending_rewards(account.balance, market.total_rewards_per_token, account.reward_debt)
