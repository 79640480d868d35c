"""
Price Oracle Model for the lending market.

The market only needs one question answered: what is an amount of a token worth
in a common unit (USD, 18 decimals)? ``FeedPriceOracle`` answers it from a
primary price feed, falling back to a time weighted AMM price when a token has
no feed.
"""

import logging

from constants import SCALE
from errors import NotAuthorized, PriceUnavailable
from fixed_point import mul_div

logger = logging.getLogger(__name__)


class PriceOracle:
    """Interface consumed by the solvency checker and the liquidation engine."""

    def price_of(self, token):
        """Returns the common unit value of one whole token (1e18 fixed point)."""
        raise NotImplementedError

    def value_in_common_unit(self, token, amount):
        """Returns the common unit value of an 18 decimal normalized ``amount``."""
        return mul_div(amount, self.price_of(token), SCALE)


class FeedPriceOracle(PriceOracle):
    """
    Oracle backed by direct price feeds with a TWAP fallback.

    Prices are keyed by token symbol and expressed as the value of one whole
    token in the common unit, 1e18 fixed point.
    """

    def __init__(self, owner=None):
        self.owner = owner

        # Primary feed prices (Chainlink style)
        self.feeds = {}

        # Time weighted average prices used when a token has no feed
        self.twap_prices = {}

    def _only_owner(self, caller):
        if caller != self.owner:
            raise NotAuthorized("Ownable: caller is not the owner")

    def set_feed(self, caller, token, price):
        """
        Sets or removes the primary feed price of a token.

        Args:
            caller: Must be the owner
            token: Token symbol
            price: Price of one token, or None to remove the feed
        """
        self._only_owner(caller)

        if price is None:
            self.feeds.pop(token, None)
            return

        if price < 0:
            raise ValueError("Price cannot be negative")

        self.feeds[token] = price

    def set_twap_price(self, caller, token, price):
        """Sets the fallback TWAP price of a token. Only callable by the owner."""
        self._only_owner(caller)

        if price < 0:
            raise ValueError("Price cannot be negative")

        self.twap_prices[token] = price

    def price_of(self, token):
        price = self.feeds.get(token, 0)
        if price > 0:
            return price

        price = self.twap_prices.get(token, 0)
        if price > 0:
            logger.debug("No feed for %s, using TWAP price %d", token, price)
            return price

        raise PriceUnavailable(f"No price available for {token}")
