"""
Jump Interest Rate Model for the lending market.

This module computes per-block borrow and supply rates from a market's
utilization. Below the kink the borrow rate grows linearly with utilization;
above it the jump multiplier takes over so that lenders are strongly rewarded
(and borrowers strongly discouraged) when cash runs low.

All coefficients are given per year and converted once to per-block values.
Every division truncates, exactly like the on-chain model.
"""

import logging

from constants import BLOCKS_PER_YEAR, SCALE
from errors import InvalidConfig, NotAuthorized
from events import EventLog
from fixed_point import checked_add, checked_sub, mul_div

logger = logging.getLogger(__name__)


class JumpInterestRateModel:
    """
    Kinked utilization based interest rate model.

    Attributes:
        blocks_per_year: Number of blocks the annual rates are spread over
        base_rate_per_block: Rate charged at zero utilization
        multiplier_per_block: Slope of the rate below the kink
        jump_multiplier_per_block: Slope of the rate above the kink
        kink: Utilization (1e18 fixed point) at which the jump slope starts
        owner: Only account allowed to update the coefficients
    """

    def __init__(self, base_rate_per_year, multiplier_per_year, jump_multiplier_per_year,
                 kink, blocks_per_year=BLOCKS_PER_YEAR, owner=None):
        if blocks_per_year <= 0:
            raise InvalidConfig("blocks_per_year must be greater than zero")

        self.blocks_per_year = blocks_per_year
        self.owner = owner
        self.log = EventLog()

        self.base_rate_per_block = 0
        self.multiplier_per_block = 0
        self.jump_multiplier_per_block = 0
        self.kink = 0

        self._update(base_rate_per_year, multiplier_per_year, jump_multiplier_per_year, kink)

    @classmethod
    def from_config(cls, cfg, owner=None):
        """Builds a model from an InterestRateModelConfig."""
        return cls(
            cfg.base_rate_per_year,
            cfg.multiplier_per_year,
            cfg.jump_multiplier_per_year,
            cfg.kink,
            blocks_per_year=cfg.blocks_per_year,
            owner=owner,
        )

    def _update(self, base_rate_per_year, multiplier_per_year, jump_multiplier_per_year, kink):
        if kink <= 0 or kink > SCALE:
            raise InvalidConfig("kink must be in (0, 1e18]")
        if min(base_rate_per_year, multiplier_per_year, jump_multiplier_per_year) < 0:
            raise InvalidConfig("Rates cannot be negative")

        self.base_rate_per_block = base_rate_per_year // self.blocks_per_year
        self.multiplier_per_block = mul_div(multiplier_per_year, SCALE, kink * self.blocks_per_year)
        self.jump_multiplier_per_block = jump_multiplier_per_year // self.blocks_per_year
        self.kink = kink

        self.log.emit(
            "NewJumpRateModelVars",
            base_rate_per_block=self.base_rate_per_block,
            multiplier_per_block=self.multiplier_per_block,
            jump_multiplier_per_block=self.jump_multiplier_per_block,
            kink=self.kink,
        )

    def update_model(self, caller, base_rate_per_year, multiplier_per_year,
                     jump_multiplier_per_year, kink):
        """
        Replaces the model coefficients.

        Args:
            caller: Account requesting the update, must be the owner
            base_rate_per_year: New annual base rate
            multiplier_per_year: New annual multiplier
            jump_multiplier_per_year: New annual jump multiplier
            kink: New kink utilization

        Raises:
            NotAuthorized: If the caller is not the owner
        """
        if caller != self.owner:
            raise NotAuthorized("Ownable: caller is not the owner")

        self._update(base_rate_per_year, multiplier_per_year, jump_multiplier_per_year, kink)
        logger.info(
            "Rate model updated: base=%d multiplier=%d jump=%d kink=%d (per block)",
            self.base_rate_per_block, self.multiplier_per_block,
            self.jump_multiplier_per_block, self.kink,
        )

    def utilization(self, cash, borrows, reserves):
        """Returns borrows / (cash + borrows - reserves) in 1e18 fixed point."""
        if borrows == 0:
            return 0
        return mul_div(borrows, SCALE, checked_sub(checked_add(cash, borrows), reserves))

    def borrow_rate_per_block(self, cash, borrows, reserves):
        """
        Returns the borrow rate per block.

        Args:
            cash: Tokens held by the market available for borrowing
            borrows: Outstanding debt
            reserves: Tokens owned by the protocol

        Returns:
            Borrow rate per block (1e18 fixed point)
        """
        utilization = self.utilization(cash, borrows, reserves)

        if utilization <= self.kink:
            return mul_div(utilization, self.multiplier_per_block, SCALE) + self.base_rate_per_block

        normal_rate = mul_div(self.kink, self.multiplier_per_block, SCALE) + self.base_rate_per_block
        excess_utilization = utilization - self.kink
        return normal_rate + mul_div(excess_utilization, self.jump_multiplier_per_block, SCALE)

    def supply_rate_per_block(self, cash, borrows, reserves, reserve_factor):
        """
        Returns the rate per block earned by lenders.

        Lenders receive the borrow rate net of the reserve factor, weighted by
        how much of the pool is actually lent out.
        """
        investor_factor = checked_sub(SCALE, reserve_factor)
        borrow_rate = self.borrow_rate_per_block(cash, borrows, reserves)
        rate_to_pool = mul_div(borrow_rate, investor_factor, SCALE)
        return mul_div(self.utilization(cash, borrows, reserves), rate_to_pool, SCALE)
