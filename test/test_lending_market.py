"""
Unit tests for the LendingMarket module.

Covers listing, accrual, deposits, withdrawals, borrows, repayments, the
reserves admin surface and the read-only queries.
"""

import unittest

from fixtures import (
    ALICE,
    BOB,
    BORROWER,
    BROKEN_RATE_MODEL,
    CAROL,
    LENDER,
    OWNER,
    TREASURY,
    MarketSetup,
    market_config,
    units,
)

from config import InterestRateModelConfig
from constants import SCALE, ZERO_ADDRESS
from erc20_token import ERC20Token
from errors import (
    AccountInsolvent,
    BorrowRateTooHigh,
    InsufficientAllowance,
    InsufficientBalance,
    MarketAlreadyListed,
    NotAuthorized,
    NotEnoughCash,
    NotEnoughReserves,
    TokenNotListed,
    ZeroAddress,
    ZeroAmount,
)
from fixed_point import from_scaled
from jump_rate_model import JumpInterestRateModel
from rebase import Rebase


class TestLendingMarket(unittest.TestCase):
    def setUp(self):
        """Set up the test environment."""
        self.setup = MarketSetup()
        self.market = self.setup.market

    def open_usdc_loan(self, borrow=10_000, supply=100_000):
        """Lender supplies USDC, borrower posts 10 WBTC and borrows USDC."""
        self.setup.deposit(LENDER, "USDC", units(supply, "USDC"))
        self.setup.deposit(BORROWER, "WBTC", units(10, "WBTC"))
        return self.market.borrow(BORROWER, "USDC", units(borrow, "USDC"), BORROWER)

    # --- Listing ---

    def test_list_market(self):
        """Test that listing creates a market and rejects duplicates."""
        self.assertTrue(self.market.is_market("WBTC"))
        self.assertFalse(self.market.is_market("DOGE"))
        self.assertEqual(len(self.setup.events("MarketListed")), 3)

        with self.assertRaises(MarketAlreadyListed):
            self.market.list_market(OWNER, self.setup.tokens["WBTC"], market_config("WBTC"))

        with self.assertRaises(NotAuthorized):
            self.market.list_market(ALICE, ERC20Token("DOGE", 8), market_config("WBTC"))

    def test_market_parameters(self):
        """Test that the market takes its parameters from the configuration."""
        market = self.market.market_of("USDC")

        self.assertEqual(market.max_ltv, SCALE // 2)
        self.assertEqual(market.reserve_factor, SCALE // 5)
        self.assertEqual(market.liquidation_fee, SCALE * 15 // 100)
        self.assertEqual(market.liquidator_portion, SCALE * 98 // 100)
        self.assertEqual(market.interest_rate_model.kink, 85 * 10**16)

    def test_get_cash_is_normalized(self):
        """Test that cash is reported in 18 decimals whatever the token decimals."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.setup.deposit(BOB, "USDC", units(10_000, "USDC"))

        self.assertEqual(self.market.get_cash("WBTC"), 10 * SCALE)
        self.assertEqual(self.market.get_cash("USDC"), 10_000 * SCALE)

    # --- Accrue ---

    def test_accrue_unlisted_token(self):
        """Test that accruing an unknown market fails."""
        with self.assertRaises(TokenNotListed):
            self.market.accrue("DOGE")

    def test_accrue_without_loans(self):
        """Test that nothing accrues without open loans but the clock still moves."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.market.mine(10)

        self.market.accrue("WBTC")

        self.assertEqual(self.setup.events("Accrue"), [])
        self.assertEqual(self.market.market_of("WBTC").last_accrued_block, 10)

    def test_accrue_once_per_block(self):
        """Test that a second accrual in the same block changes nothing."""
        self.open_usdc_loan()
        self.market.mine(10)

        self.market.accrue("USDC")
        market = self.market.market_of("USDC")
        state = (market.loan.elastic, market.total_reserves, market.total_rewards_per_token)

        self.market.accrue("USDC")

        self.assertEqual(len(self.setup.events("Accrue")), 1)
        self.assertEqual((market.loan.elastic, market.total_reserves, market.total_rewards_per_token), state)

    def test_accrue(self):
        """Test interest, reserves and the reward index after an accrual."""
        self.open_usdc_loan(borrow=10_000, supply=100_000)
        self.market.mine(100)

        market = self.market.market_of("USDC")
        model = market.interest_rate_model
        cash = 90_000 * SCALE
        borrows = 10_000 * SCALE

        self.assertEqual(self.market.get_cash("USDC"), cash)

        borrow_rate = model.borrow_rate_per_block(cash, borrows, 0)
        supply_rate = model.supply_rate_per_block(cash, borrows, 0, market.reserve_factor)
        interest = 100 * borrow_rate * borrows // SCALE
        rewards = 100 * supply_rate * borrows // SCALE

        self.market.accrue("USDC")

        self.assertGreater(interest, rewards)
        self.assertEqual(market.loan.elastic, borrows + interest)
        self.assertEqual(market.loan.base, borrows)
        self.assertEqual(market.total_reserves, interest - rewards)
        self.assertEqual(market.total_rewards_per_token, rewards * SCALE // (100_000 * SCALE))
        self.assertEqual(market.last_accrued_block, 100)

        event = self.setup.events("Accrue")[-1]
        self.assertEqual(event.block, 100)
        self.assertEqual(event.args["cash"], cash)
        self.assertEqual(event.args["interest"], interest)
        self.assertEqual(event.args["rewards"], rewards)

    def test_accrue_borrow_rate_too_high(self):
        """Test that a broken rate model halts the market until it is replaced."""
        self.open_usdc_loan(borrow=1_000)
        good_model = self.market.market_of("USDC").interest_rate_model

        broken = JumpInterestRateModel.from_config(InterestRateModelConfig(**BROKEN_RATE_MODEL), owner=OWNER)
        self.market.set_interest_rate_model(OWNER, "USDC", broken)
        self.market.mine(10)

        with self.assertRaises(BorrowRateTooHigh):
            self.market.accrue("USDC")

        with self.assertRaises(BorrowRateTooHigh):
            self.setup.deposit(ALICE, "USDC", units(1, "USDC"))

        self.assertEqual(self.market.market_of("USDC").loan.elastic, 1_000 * SCALE)

        self.market.set_interest_rate_model(OWNER, "USDC", good_model)
        self.market.accrue("USDC")
        self.assertGreater(self.market.market_of("USDC").loan.elastic, 1_000 * SCALE)

    def test_set_interest_rate_model_only_owner(self):
        """Test that only the owner can swap a rate model."""
        model = self.market.market_of("USDC").interest_rate_model

        with self.assertRaises(NotAuthorized):
            self.market.set_interest_rate_model(ALICE, "USDC", model)

        with self.assertRaises(TokenNotListed):
            self.market.set_interest_rate_model(OWNER, "DOGE", model)

    # --- Deposit ---

    def test_deposit_invalid_arguments(self):
        """Test deposit argument validation."""
        self.setup.fund(ALICE, "WBTC", units(1, "WBTC"))

        with self.assertRaises(TokenNotListed):
            self.market.deposit(ALICE, "DOGE", 1, ALICE)

        with self.assertRaises(ZeroAmount):
            self.market.deposit(ALICE, "WBTC", 0, ALICE)

        with self.assertRaises(ZeroAddress):
            self.market.deposit(ALICE, "WBTC", 1, ZERO_ADDRESS)

    def test_deposit_without_rewards(self):
        """Test a first deposit into an idle market."""
        rewards = self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))

        account = self.market.account_of("WBTC", ALICE)
        self.assertEqual(rewards, 0)
        self.assertEqual(account.balance, 10 * SCALE)
        self.assertEqual(account.reward_debt, 0)
        self.assertEqual(account.principal, 0)
        self.assertEqual(self.market.total_supply_of("WBTC"), 10 * SCALE)
        self.assertEqual(self.setup.balance_of(self.market.address, "WBTC"), units(10, "WBTC"))

        event = self.setup.events("Deposit")[-1]
        self.assertEqual(event.args, {
            "sender": ALICE, "to": ALICE, "token": "WBTC", "amount": units(10, "WBTC"), "rewards": 0,
        })

    def test_deposit_for_another_account(self):
        """Test that the payer and the credited account can differ."""
        self.setup.fund(ALICE, "USDC", units(500, "USDC"))
        self.market.deposit(ALICE, "USDC", units(500, "USDC"), BOB)

        self.assertEqual(self.market.account_of("USDC", BOB).balance, 500 * SCALE)
        self.assertEqual(self.market.account_of("USDC", ALICE).balance, 0)
        self.assertEqual(self.setup.balance_of(ALICE, "USDC"), 0)

    def test_rewards_are_proportional_to_balance(self):
        """Test that lenders earn in proportion to their deposits."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.setup.deposit(BOB, "WBTC", units(5, "WBTC"))
        self.setup.deposit(CAROL, "USDC", units(1_000_000, "USDC"))
        self.market.borrow(CAROL, "WBTC", units(3, "WBTC"), CAROL)

        self.market.mine(100)
        self.market.accrue("WBTC")

        index = self.market.market_of("WBTC").total_rewards_per_token
        self.assertGreater(index, 0)
        self.assertEqual(self.market.pending_rewards_of("WBTC", ALICE), 10 * SCALE * index // SCALE)

        alice_rewards = self.setup.deposit(ALICE, "WBTC", units(1, "WBTC"))
        bob_rewards = self.setup.deposit(BOB, "WBTC", units(1, "WBTC"))

        self.assertEqual(alice_rewards, 10 * SCALE * index // SCALE)
        self.assertEqual(bob_rewards, 5 * SCALE * index // SCALE)
        self.assertAlmostEqual(alice_rewards, 2 * bob_rewards, delta=1)

        alice = self.market.account_of("WBTC", ALICE)
        self.assertEqual(alice.balance, 11 * SCALE + alice_rewards)
        self.assertEqual(alice.reward_debt, alice.balance * index // SCALE)
        self.assertEqual(self.market.total_supply_of("WBTC"), 17 * SCALE + alice_rewards + bob_rewards)

    # --- Withdraw ---

    def test_withdraw_invalid_arguments(self):
        """Test withdraw argument validation."""
        with self.assertRaises(TokenNotListed):
            self.market.withdraw(ALICE, "DOGE", 1, ALICE)

        with self.assertRaises(ZeroAmount) as context:
            self.market.withdraw(ALICE, "WBTC", 0, ALICE)
        self.assertIn("no zero withdraws", str(context.exception))

        with self.assertRaises(ZeroAddress):
            self.market.withdraw(ALICE, "WBTC", 1, ZERO_ADDRESS)

    def test_deposit_then_withdraw_is_neutral(self):
        """Test that withdrawing a fresh deposit restores the previous state."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.market.withdraw(ALICE, "WBTC", units(10, "WBTC"), ALICE)

        market = self.market.market_of("WBTC")
        self.assertEqual(self.market.account_of("WBTC", ALICE).balance, 0)
        self.assertEqual(market.total_supply_scaled, 0)
        self.assertEqual(market.total_rewards_per_token, 0)
        self.assertEqual(self.setup.balance_of(ALICE, "WBTC"), units(10, "WBTC"))

    def test_withdraw_accrues_only_with_loans(self):
        """Test that withdrawals skip accrual while nothing is borrowed."""
        self.setup.deposit(ALICE, "USDC", units(1_000, "USDC"))
        self.market.mine(5)
        self.market.withdraw(ALICE, "USDC", units(100, "USDC"), ALICE)
        self.assertEqual(self.setup.events("Accrue"), [])

        self.open_usdc_loan()
        self.market.mine(5)
        self.market.withdraw(ALICE, "USDC", units(100, "USDC"), ALICE)
        self.assertEqual(len(self.setup.events("Accrue")), 1)

    def test_withdraw_not_enough_cash(self):
        """Test that lent out tokens cannot be withdrawn."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.setup.deposit(CAROL, "USDC", units(1_000_000, "USDC"))
        self.market.borrow(CAROL, "WBTC", units(3, "WBTC"), CAROL)

        with self.assertRaises(NotEnoughCash):
            self.market.withdraw(ALICE, "WBTC", units(8, "WBTC"), ALICE)

    def test_withdraw_more_than_balance(self):
        """Test that an account cannot withdraw someone else's deposit."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.setup.deposit(BOB, "WBTC", units(1, "WBTC"))

        with self.assertRaises(InsufficientBalance):
            self.market.withdraw(BOB, "WBTC", units(2, "WBTC"), BOB)

        self.assertEqual(self.market.account_of("WBTC", BOB).balance, SCALE)

    def test_withdraw_to_another_account(self):
        """Test that the caller's deposit pays for tokens sent elsewhere."""
        self.setup.deposit(ALICE, "WETH", units(5, "WETH"))
        self.market.withdraw(ALICE, "WETH", units(2, "WETH"), BOB)

        self.assertEqual(self.market.account_of("WETH", ALICE).balance, 3 * SCALE)
        self.assertEqual(self.setup.balance_of(BOB, "WETH"), 2 * SCALE)

    def test_withdraw_cannot_leave_account_insolvent(self):
        """Test that collateral backing a loan stays in the market."""
        self.open_usdc_loan(borrow=100_000, supply=200_000)
        wbtc_held = self.setup.balance_of(self.market.address, "WBTC")

        # 5 WBTC at 30,000 with a 50% LTV only covers 75,000
        with self.assertRaises(AccountInsolvent) as context:
            self.market.withdraw(BORROWER, "WBTC", units(5, "WBTC"), BORROWER)

        self.assertIn("insolvent", str(context.exception).lower())
        self.assertEqual(self.market.account_of("WBTC", BORROWER).balance, 10 * SCALE)
        self.assertEqual(self.setup.balance_of(self.market.address, "WBTC"), wbtc_held)
        self.assertEqual(self.setup.events("Withdraw"), [])

    # --- Borrow ---

    def test_borrow_invalid_arguments(self):
        """Test borrow argument validation."""
        self.setup.deposit(ALICE, "WBTC", units(10, "WBTC"))
        self.setup.deposit(LENDER, "USDC", units(5_000, "USDC"))

        with self.assertRaises(TokenNotListed):
            self.market.borrow(ALICE, "DOGE", 1, ALICE)

        with self.assertRaises(ZeroAmount):
            self.market.borrow(ALICE, "USDC", 0, ALICE)

        with self.assertRaises(NotEnoughCash):
            self.market.borrow(ALICE, "USDC", units(5_001, "USDC"), ALICE)

    def test_solvency_check_cannot_be_skipped(self):
        """Test that public borrows and withdrawals always check solvency."""
        self.setup.deposit(LENDER, "USDC", units(100_000, "USDC"))
        self.setup.deposit(ALICE, "WBTC", units(1, "WBTC"))
        self.market.borrow(ALICE, "USDC", units(15_000, "USDC"), ALICE)

        with self.assertRaises(TypeError):
            self.market.borrow("mallory", "USDC", units(100_000, "USDC"), "mallory", check_solvency=False)

        with self.assertRaises(TypeError):
            self.market.withdraw(ALICE, "WBTC", units(1, "WBTC"), ALICE, check_solvency=False)

        # No collateral at all
        with self.assertRaises(AccountInsolvent):
            self.market.borrow("mallory", "USDC", units(100_000, "USDC"), "mallory")

        self.assertEqual(self.setup.balance_of("mallory", "USDC"), 0)
        self.assertEqual(self.market.account_of("USDC", "mallory").principal, 0)
        self.assertEqual(self.market.get_cash("USDC"), 85_000 * SCALE)

    def test_borrow_requires_solvency(self):
        """Test that a borrow beyond the collateral's capacity fails."""
        self.setup.deposit(ALICE, "WBTC", units(1, "WBTC"))
        self.setup.deposit(LENDER, "USDC", units(50_000, "USDC"))

        # 1 WBTC covers 15,000 USDC
        with self.assertRaises(AccountInsolvent) as context:
            self.market.borrow(ALICE, "USDC", units(15_001, "USDC"), ALICE)

        self.assertIn("insolvent", str(context.exception).lower())
        self.assertEqual(self.market.market_of("USDC").loan, Rebase())
        self.assertEqual(self.setup.balance_of(ALICE, "USDC"), 0)

        self.market.borrow(ALICE, "USDC", units(15_000, "USDC"), ALICE)
        self.assertEqual(self.setup.balance_of(ALICE, "USDC"), units(15_000, "USDC"))

    def test_borrow(self):
        """Test the state after a first borrow."""
        principal = self.open_usdc_loan(borrow=1_000)

        market = self.market.market_of("USDC")
        self.assertEqual(principal, 1_000 * SCALE)
        self.assertEqual(self.market.account_of("USDC", BORROWER).principal, 1_000 * SCALE)
        self.assertEqual((market.loan.elastic, market.loan.base), (1_000 * SCALE, 1_000 * SCALE))
        self.assertEqual(self.setup.balance_of(BORROWER, "USDC"), units(1_000, "USDC"))

        event = self.setup.events("Borrow")[-1]
        self.assertEqual(event.args, {
            "borrower": BORROWER, "to": BORROWER, "token": "USDC",
            "amount": units(1_000, "USDC"), "principal": 1_000 * SCALE,
        })

    def test_borrow_after_interest_rounds_shares_up(self):
        """Test that later borrowers get fewer shares, rounded in favour of the market."""
        self.open_usdc_loan(borrow=1_000)
        self.setup.deposit(ALICE, "WETH", units(10, "WETH"))

        self.market.mine(1_000)
        self.market.accrue("USDC")
        loan = self.market.market_of("USDC").loan
        expected = Rebase(loan.elastic, loan.base).to_base(500 * SCALE, round_up=True)

        principal = self.market.borrow(ALICE, "USDC", units(500, "USDC"), ALICE)

        self.assertEqual(principal, expected)
        self.assertLess(principal, 500 * SCALE)
        self.assertTrue(loan.is_consistent())

    # --- Repay ---

    def test_repay_invalid_arguments(self):
        """Test repay argument validation."""
        with self.assertRaises(TokenNotListed):
            self.market.repay(ALICE, "DOGE", 0, ALICE)

        with self.assertRaises(ZeroAmount) as context:
            self.market.repay(ALICE, "USDC", 0, ALICE)
        self.assertIn("principal cannot be 0", str(context.exception).lower())

        with self.assertRaises(ZeroAddress):
            self.market.repay(ALICE, "USDC", 1, ZERO_ADDRESS)

    def test_repay(self):
        """Test a partial repayment after interest accrued."""
        self.open_usdc_loan(borrow=1_000)
        self.setup.fund(BORROWER, "USDC", units(100, "USDC"))
        last_accrued = self.market.market_of("USDC").last_accrued_block
        self.market.mine(30)

        usdc_before = self.setup.balance_of(BORROWER, "USDC")
        debt = self.market.repay(BORROWER, "USDC", 300 * SCALE, BORROWER)

        market = self.market.market_of("USDC")
        self.assertGreater(market.last_accrued_block, last_accrued)
        self.assertEqual(len(self.setup.events("Accrue")), 1)
        self.assertEqual(self.market.account_of("USDC", BORROWER).principal, 700 * SCALE)
        self.assertEqual(market.loan.base, 700 * SCALE)
        self.assertAlmostEqual(market.loan.elastic, 700 * SCALE, delta=SCALE)
        self.assertGreater(debt, 300 * SCALE)
        self.assertEqual(usdc_before - self.setup.balance_of(BORROWER, "USDC"), from_scaled(debt, 6, round_up=True))

        event = self.setup.events("Repay")[-1]
        self.assertEqual(event.args["principal"], 300 * SCALE)
        self.assertEqual(event.args["amount"], debt)

    def test_full_repay_clears_the_loan(self):
        """Test that repaying every share zeroes both sides of the loan."""
        self.open_usdc_loan(borrow=1_000)
        self.setup.fund(BORROWER, "USDC", units(100, "USDC"))
        self.market.mine(500)

        self.market.repay(BORROWER, "USDC", 1_000 * SCALE, BORROWER)

        loan = self.market.market_of("USDC").loan
        self.assertEqual((loan.elastic, loan.base), (0, 0))
        self.assertEqual(self.market.debt_of("USDC", BORROWER), 0)

    def test_repay_on_behalf_of_another_account(self):
        """Test that anyone can repay someone else's loan."""
        self.open_usdc_loan(borrow=1_000)
        self.setup.fund(CAROL, "USDC", units(1_000, "USDC"))

        self.market.repay(CAROL, "USDC", 400 * SCALE, BORROWER)

        self.assertEqual(self.market.account_of("USDC", BORROWER).principal, 600 * SCALE)
        self.assertEqual(self.setup.balance_of(CAROL, "USDC"), units(600, "USDC"))

    def test_failed_repay_rolls_back(self):
        """Test that a failing operation leaves no trace, accrual included."""
        self.open_usdc_loan(borrow=1_000)
        self.market.mine(10)

        market = self.market.market_of("USDC")
        events_before = len(self.market.events)

        # Dave never approved the market
        self.setup.tokens["USDC"].mint("dave", units(1_000, "USDC"))
        with self.assertRaises(InsufficientAllowance):
            self.market.repay("dave", "USDC", 100 * SCALE, BORROWER)

        self.assertEqual(market.loan.elastic, 1_000 * SCALE)
        self.assertEqual(market.last_accrued_block, 0)
        self.assertEqual(self.market.account_of("USDC", BORROWER).principal, 1_000 * SCALE)
        self.assertEqual(len(self.market.events), events_before)

    # --- Reserves ---

    def test_get_reserves_only_owner(self):
        """Test that only the owner can withdraw reserves."""
        with self.assertRaises(NotAuthorized):
            self.market.get_reserves(ALICE, "WBTC", 1)

        with self.assertRaises(TokenNotListed):
            self.market.get_reserves(OWNER, "DOGE", 1)

    def test_get_reserves_limits(self):
        """Test that reserves cannot exceed the held tokens nor the recorded reserves."""
        self.setup.deposit(ALICE, "WBTC", units(2, "WBTC"))

        with self.assertRaises(NotEnoughCash):
            self.market.get_reserves(OWNER, "WBTC", units(3, "WBTC"))

        with self.assertRaises(NotEnoughReserves):
            self.market.get_reserves(OWNER, "WBTC", units(1, "WBTC"))

    def test_deposit_and_get_reserves(self):
        """Test donating to the reserves and sending them to the treasury."""
        self.setup.fund(ALICE, "WBTC", units(1, "WBTC"))
        self.market.deposit_reserves(ALICE, "WBTC", units(1, "WBTC"))

        market = self.market.market_of("WBTC")
        self.assertEqual(market.total_reserves, SCALE)
        self.assertEqual(self.market.get_cash("WBTC"), 0)
        self.assertEqual(self.setup.events("DepositReserves")[-1].args,
                         {"token": "WBTC", "donor": ALICE, "amount": units(1, "WBTC")})

        self.market.get_reserves(OWNER, "WBTC", units(0.5, "WBTC"))

        self.assertEqual(market.total_reserves, SCALE // 2)
        self.assertEqual(self.setup.balance_of(TREASURY, "WBTC"), units(0.5, "WBTC"))
        self.assertEqual(self.setup.events("GetReserves")[-1].args,
                         {"token": "WBTC", "treasury": TREASURY, "amount": units(0.5, "WBTC")})

    def test_deposit_reserves_unlisted(self):
        """Test that donations need a listed market."""
        with self.assertRaises(TokenNotListed):
            self.market.deposit_reserves(ALICE, "DOGE", 1)

    # --- Queries ---

    def test_account_of_does_not_create_accounts(self):
        """Test that reading an unknown account leaves the store untouched."""
        accounts = len(self.market.store.accounts)

        account = self.market.account_of("WBTC", "nobody")

        self.assertEqual((account.balance, account.reward_debt, account.principal), (0, 0, 0))
        self.assertEqual(len(self.market.store.accounts), accounts)

    def test_rates_and_debt_queries(self):
        """Test the rate and debt queries against the model."""
        self.open_usdc_loan(borrow=10_000)
        market = self.market.market_of("USDC")
        model = market.interest_rate_model

        self.assertEqual(
            self.market.borrow_rate_per_block("USDC"),
            model.borrow_rate_per_block(90_000 * SCALE, 10_000 * SCALE, 0),
        )
        self.assertEqual(
            self.market.supply_rate_per_block("USDC"),
            model.supply_rate_per_block(90_000 * SCALE, 10_000 * SCALE, 0, market.reserve_factor),
        )
        self.assertEqual(self.market.debt_of("USDC", BORROWER), 10_000 * SCALE)

        self.market.mine(100)
        self.market.accrue("USDC")
        self.assertEqual(self.market.debt_of("USDC", BORROWER), market.loan.elastic)

    def test_invariants_across_operations(self):
        """Test the loan invariant and the monotonic reward index over a sequence of operations."""
        self.open_usdc_loan(borrow=20_000)
        self.setup.fund(BORROWER, "USDC", units(1_000, "USDC"))
        market = self.market.market_of("USDC")
        last_index = market.total_rewards_per_token

        for principal in (5_000, 7_000, 8_000):
            self.market.mine(50)
            self.market.repay(BORROWER, "USDC", principal * SCALE, BORROWER)
            self.assertTrue(market.loan.is_consistent())
            self.assertGreaterEqual(market.total_rewards_per_token, last_index)
            last_index = market.total_rewards_per_token

        self.assertEqual((market.loan.elastic, market.loan.base), (0, 0))
        self.assertGreater(market.total_reserves, 0)

    def test_mine(self):
        """Test that at least one block must be mined."""
        self.assertEqual(self.market.mine(), 1)
        self.assertEqual(self.market.mine(4), 5)

        with self.assertRaises(ValueError):
            self.market.mine(0)


if __name__ == "__main__":
    unittest.main()
