"""
Economic Model for the lending market.

This main module combines all the individual components to create a complete
economic model of the lending market. It can be used to simulate various
scenarios and test the economic behavior of the protocol: lenders supplying
liquidity, borrowers opening loans, interest accruing block by block and
insolvent borrowers being liquidated as prices move.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt

from config import ProtocolConfig
from constants import MAX_UINT256, SCALE
from erc20_token import ERC20Token
from errors import BorrowerIsSolvent, InvalidConfig, ZeroAmount
from fixed_point import from_scaled
from lending_market import LendingMarket
from liquidation import LiquidationEngine
from price_oracle import FeedPriceOracle
from request_batcher import AddCollateral, Borrow, RequestBatcher

logger = logging.getLogger(__name__)

# ~15 second blocks: one simulation step is one hour
BLOCKS_PER_STEP = 240
STEPS_PER_DAY = 24

DEFAULT_CONFIG = {
    "owner": "owner",
    "router": "router",
    "treasury": "treasury",
    "markets": {
        "WBTC": {
            "max_ltv": "0.5",
            "reserve_factor": "0.2",
            "interest_rate_model": {
                "base_rate_per_year": "0.02",
                "multiplier_per_year": "0.05",
                "jump_multiplier_per_year": "0.1",
                "kink": "0.8",
            },
        },
        "WETH": {
            "max_ltv": "0.5",
            "reserve_factor": "0.2",
            "interest_rate_model": {
                "base_rate_per_year": "0.025",
                "multiplier_per_year": "0.06",
                "jump_multiplier_per_year": "0.1",
                "kink": "0.75",
            },
        },
        "USDC": {
            "max_ltv": "0.5",
            "reserve_factor": "0.2",
            "interest_rate_model": {
                "base_rate_per_year": "0.005",
                "multiplier_per_year": "0.02",
                "jump_multiplier_per_year": "0.05",
                "kink": "0.85",
            },
        },
    },
    "assets": {
        "WBTC": {"decimals": 8, "initial_price": "30000"},
        "WETH": {"decimals": 18, "initial_price": "2000"},
        "USDC": {"decimals": 6, "initial_price": "1"},
    },
}


def default_protocol_config():
    """Returns the three market setup (WBTC, WETH, USDC) used by the simulations."""
    return ProtocolConfig.parse(DEFAULT_CONFIG)


class LendingMarketEconomicModel:
    """
    Complete economic model of the lending market.
    Combines all components and provides simulation capabilities.

    Args:
        config: ProtocolConfig describing the markets (defaults to WBTC/WETH/USDC)
        liquidator: Account used to liquidate insolvent borrowers
    """

    def __init__(self, config=None, liquidator="liquidator"):
        self.config = config or default_protocol_config()
        self.owner = self.config.owner
        self.liquidator = liquidator

        # Set up price oracle
        self.oracle = FeedPriceOracle(owner=self.owner)

        # Create market and its satellites
        self.market = LendingMarket(
            self.owner, self.config.treasury, self.oracle, router=self.config.router
        )
        self.liquidation_engine = LiquidationEngine(self.market)
        self.batcher = RequestBatcher(self.market)

        # Create and list tokens
        self.tokens = {}
        for symbol, market_config in self.config.markets.items():
            asset = self.config.assets.get(symbol)
            if asset is None:
                raise InvalidConfig(f"Missing asset metadata for {symbol}")

            token = ERC20Token(symbol, asset.decimals, owner=self.owner)
            self.tokens[symbol] = token
            self.market.list_market(self.owner, token, market_config)
            self.oracle.set_feed(self.owner, symbol, asset.initial_price)

        # Accounts that opened loans
        self.borrowers = set()

        # Liquidations performed so far
        self.liquidations = []

        # History tracking for simulations
        self._reset_history()

    def _reset_history(self):
        self.block_history = []
        self.price_history = {symbol: [] for symbol in self.tokens}
        self.total_collateral_history = []
        self.total_debt_history = []
        self.utilization_history = {symbol: [] for symbol in self.tokens}
        self.reserves_history = {symbol: [] for symbol in self.tokens}
        self.insolvent_history = []
        self._update_history()

    def fund(self, account, token, amount):
        """Mints ``amount`` (native units) to ``account`` and approves the market."""
        erc20 = self.tokens[token]
        erc20.mint(account, amount)
        erc20.approve(account, self.market.address, MAX_UINT256)

    def seed_lenders(self, token, deposits):
        """
        Funds lenders and deposits their tokens.

        Args:
            token: Market token
            deposits: Mapping of lender to native amount
        """
        for lender, amount in deposits.items():
            self.fund(lender, token, amount)
            self.market.deposit(lender, token, amount, lender)

        self._update_history()

    def open_loan(self, borrower, collateral_token, collateral_amount, borrow_token, borrow_amount):
        """
        Deposits collateral and borrows against it in a single batch.

        Args:
            borrower: Borrowing account
            collateral_token: Token deposited as collateral
            collateral_amount: Native collateral amount
            borrow_token: Token borrowed
            borrow_amount: Native amount borrowed

        Returns:
            Debt shares the borrower now holds in ``borrow_token``
        """
        self.fund(borrower, collateral_token, collateral_amount)
        self.tokens[borrow_token].approve(borrower, self.market.address, MAX_UINT256)

        self.batcher.request(borrower, borrower, [
            AddCollateral(collateral_token, collateral_amount, borrower),
            Borrow(borrow_token, borrow_amount, borrower),
        ])
        self.borrowers.add(borrower)

        self._update_history()
        return self.market.account_of(borrow_token, borrower).principal

    def _largest_collateral(self, borrower):
        best_token, best_value = None, 0
        for token in self.tokens:
            balance = self.market.account_of(token, borrower).balance
            if balance == 0:
                continue
            value = self.oracle.value_in_common_unit(token, balance)
            if value > best_value:
                best_token, best_value = token, value
        return best_token

    def liquidate_borrower(self, borrower):
        """
        Liquidates every loan of an insolvent borrower against its largest collateral.

        Returns:
            List of LiquidationValues, one per liquidated loan
        """
        results = []

        for borrow_token in self.tokens:
            principal = self.market.account_of(borrow_token, borrower).principal
            if principal == 0:
                continue

            collateral_token = self._largest_collateral(borrower)
            if collateral_token is None:
                logger.info("%s has no collateral left, %s debt stays unpaid", borrower, borrow_token)
                break

            # The liquidator buys what it needs to repay the whole loan
            self.market.accrue(borrow_token)
            erc20 = self.tokens[borrow_token]
            needed = from_scaled(self.market.debt_of(borrow_token, borrower), erc20.decimals, round_up=True)
            self.fund(self.liquidator, borrow_token, needed)

            try:
                values = self.liquidation_engine.liquidate(
                    self.liquidator, borrower, borrow_token, principal, collateral_token, self.liquidator
                )
            except (BorrowerIsSolvent, ZeroAmount) as e:
                logger.info("Skipping liquidation of %s in %s: %s", borrower, borrow_token, e)
                continue

            results.append(values)
            self.liquidations.append((self.market.block_number, borrower, borrow_token, values))

        return results

    def update_price(self, token, new_price):
        """
        Updates a token price and liquidates every borrower that became insolvent.

        Args:
            token: Token whose feed is updated
            new_price: New price of one whole token (1e18 fixed point)

        Returns:
            List of liquidated borrowers
        """
        self.oracle.set_feed(self.owner, token, new_price)

        # Identify liquidatable borrowers
        liquidated = []
        for borrower in sorted(self.borrowers):
            if self.market.solvency.is_solvent(borrower):
                continue

            if self.liquidate_borrower(borrower):
                liquidated.append(borrower)

        # Update history
        self._update_history()

        return liquidated

    def advance(self, blocks):
        """
        Mines ``blocks`` blocks and accrues interest in every market.

        Args:
            blocks: Number of blocks to advance
        """
        self.market.mine(blocks)

        for token in self.tokens:
            self.market.accrue(token)

        self._update_history()

    def get_system_state(self):
        """
        Returns the current state of the system.

        Returns:
            Dictionary with system state; values are floats in whole tokens or USD
        """
        solvency = self.market.solvency
        markets = {}

        for token in self.tokens:
            market = self.market.market_of(token)
            cash = self.market.get_cash(token)
            markets[token] = {
                'price': self.oracle.price_of(token) / SCALE,
                'total_supply': market.total_supply_scaled / SCALE,
                'total_borrows': market.loan.elastic / SCALE,
                'total_reserves': market.total_reserves / SCALE,
                'cash': cash / SCALE,
                'utilization': market.interest_rate_model.utilization(
                    cash, market.loan.elastic, market.total_reserves
                ) / SCALE,
                'borrow_rate_per_block': self.market.borrow_rate_per_block(token) / SCALE,
                'total_rewards_per_token': market.total_rewards_per_token / SCALE,
            }

        total_collateral = sum(
            self.oracle.value_in_common_unit(token, self.market.market_of(token).total_supply_scaled)
            for token in self.tokens
        )
        total_debt = sum(
            self.oracle.value_in_common_unit(token, self.market.market_of(token).loan.elastic)
            for token in self.tokens
        )

        active_loans = 0
        insolvent = 0
        for borrower in self.borrowers:
            if solvency.debt_value(borrower) == 0:
                continue
            active_loans += 1
            if not solvency.is_solvent(borrower):
                insolvent += 1

        return {
            'block': self.market.block_number,
            'markets': markets,
            'total_collateral': total_collateral / SCALE,
            'total_debt': total_debt / SCALE,
            'active_loans': active_loans,
            'insolvent_borrowers': insolvent,
            'liquidations': len(self.liquidations),
        }

    def _update_history(self):
        """Updates history tracking for simulations."""
        state = self.get_system_state()

        self.block_history.append(state['block'])
        self.total_collateral_history.append(state['total_collateral'])
        self.total_debt_history.append(state['total_debt'])
        self.insolvent_history.append(state['insolvent_borrowers'])

        for token, market_state in state['markets'].items():
            self.price_history[token].append(market_state['price'])
            self.utilization_history[token].append(market_state['utilization'])
            self.reserves_history[token].append(market_state['total_reserves'])

    def simulate_market_scenario(self, blocks, price_volatility=0.02, plot_results=True, seed=None, token=None):
        """
        Runs a simulation with random price movements over the specified period.

        Args:
            blocks: Number of blocks to simulate (one step every BLOCKS_PER_STEP blocks)
            price_volatility: Daily price volatility (standard deviation of log returns)
            plot_results: Whether to plot the results
            seed: Seed for the random generator, for reproducible runs
            token: Token whose price moves (defaults to the first listed market)

        Returns:
            Dictionary with simulation results
        """
        token = token or next(iter(self.tokens))
        steps = max(1, blocks // BLOCKS_PER_STEP)
        step_size = blocks // steps

        # Reset history
        self._reset_history()
        initial_liquidations = len(self.liquidations)

        # Generate random price movements (log-normal)
        rng = np.random.default_rng(seed)
        price = self.oracle.price_of(token) / SCALE
        step_volatility = price_volatility / np.sqrt(STEPS_PER_DAY)  # Scale to hourly

        log_returns = rng.normal(0, step_volatility, steps)

        for i in range(steps):
            # Advance the chain, then move the price
            self.market.mine(step_size)
            for symbol in self.tokens:
                self.market.accrue(symbol)

            price *= np.exp(log_returns[i])
            self.update_price(token, max(int(price * SCALE), 1))

        time_points = np.array(self.block_history[1:])

        # Plot results if requested
        if plot_results:
            fig, axs = plt.subplots(5, 1, figsize=(12, 20), sharex=True)

            # Plot collateral price
            axs[0].plot(time_points, self.price_history[token][1:])
            axs[0].set_title(f'{token} Price')
            axs[0].set_ylabel('USD')

            # Plot total debt
            axs[1].plot(time_points, self.total_debt_history[1:])
            axs[1].set_title('Total Debt')
            axs[1].set_ylabel('USD')

            # Plot total deposits
            axs[2].plot(time_points, self.total_collateral_history[1:])
            axs[2].set_title('Total Deposits')
            axs[2].set_ylabel('USD')

            # Plot utilization per market
            for symbol, history in self.utilization_history.items():
                axs[3].plot(time_points, history[1:], label=symbol)
            axs[3].set_title('Utilization')
            axs[3].set_ylabel('Ratio')
            axs[3].legend()

            # Plot insolvent borrowers
            axs[4].plot(time_points, self.insolvent_history[1:])
            axs[4].set_title('Insolvent Borrowers')
            axs[4].set_ylabel('Count')
            axs[4].set_xlabel('Block')

            plt.tight_layout()
            plt.show()

        # Get final state
        final_state = self.get_system_state()

        return {
            'final_price': final_state['markets'][token]['price'],
            'final_total_debt': final_state['total_debt'],
            'final_total_collateral': final_state['total_collateral'],
            'active_loans': final_state['active_loans'],
            'liquidations': len(self.liquidations) - initial_liquidations,
            'final_block': final_state['block'],
        }
