"""
Shared set up for the lending market tests.

Builds a market with three listed tokens (WBTC 8 decimals, USDC 6, WETH 18),
fixed oracle prices and the rate models the markets are deployed with.
"""

import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))

from config import MarketConfig
from constants import MAX_UINT256, SCALE
from erc20_token import ERC20Token
from lending_market import LendingMarket
from price_oracle import FeedPriceOracle

OWNER = "owner"
TREASURY = "treasury"
ROUTER = "router"

ALICE = "alice"
BOB = "bob"
CAROL = "carol"
BORROWER = "borrower"
LENDER = "lender"
LIQUIDATOR = "liquidator"

DECIMALS = {"WBTC": 8, "USDC": 6, "WETH": 18}

PRICES = {
    "WBTC": 30_000 * SCALE,
    "USDC": SCALE,
    "WETH": 2_000 * SCALE,
}

RATE_MODELS = {
    "WBTC": {"base_rate_per_year": "0.02", "multiplier_per_year": "0.05",
             "jump_multiplier_per_year": "0.1", "kink": "0.8"},
    "USDC": {"base_rate_per_year": "0.005", "multiplier_per_year": "0.02",
             "jump_multiplier_per_year": "0.05", "kink": "0.85"},
    "WETH": {"base_rate_per_year": "0.025", "multiplier_per_year": "0.06",
             "jump_multiplier_per_year": "0.1", "kink": "0.75"},
}

BROKEN_RATE_MODEL = {"base_rate_per_year": "6", "multiplier_per_year": "8",
                     "jump_multiplier_per_year": "10", "kink": "0.001"}


def units(amount, token):
    """Converts a whole token amount into native units."""
    return int(amount * 10 ** DECIMALS[token])


def market_config(token, max_ltv="0.5", reserve_factor="0.2"):
    return MarketConfig.parse({
        "max_ltv": max_ltv,
        "reserve_factor": reserve_factor,
        "interest_rate_model": RATE_MODELS[token],
    })


class MarketSetup:
    """A listed market with funded helpers."""

    def __init__(self):
        self.oracle = FeedPriceOracle(owner=OWNER)
        self.market = LendingMarket(OWNER, TREASURY, self.oracle, router=ROUTER)
        self.tokens = {}

        for symbol, decimals in DECIMALS.items():
            token = ERC20Token(symbol, decimals, owner=OWNER)
            self.tokens[symbol] = token
            self.market.list_market(OWNER, token, market_config(symbol))
            self.oracle.set_feed(OWNER, symbol, PRICES[symbol])

    def fund(self, account, token, amount):
        """Mints native ``amount`` to ``account`` and approves the market."""
        self.tokens[token].mint(account, amount)
        self.tokens[token].approve(account, self.market.address, MAX_UINT256)

    def deposit(self, account, token, amount):
        self.fund(account, token, amount)
        return self.market.deposit(account, token, amount, account)

    def balance_of(self, account, token):
        return self.tokens[token].balance_of(account)

    def events(self, name):
        return self.market.log.filter(name)
