"""
Liquidation Engine for the lending market.

When an account's discounted collateral no longer covers its debt, anyone can
repay part or all of that debt and receive the borrower's collateral in return,
plus a liquidation fee. Most of the seized collateral goes to the liquidator as
a deposit that keeps earning yield; the rest is added to the protocol reserves
of the collateral market.

Seizure calculation:
1. The repaid principal is capped at the borrower's principal
2. The debt it represents is inflated by the liquidation fee
3. That amount is priced in the common unit and converted into collateral
4. If the borrower does not have that much collateral, the principal is scaled
   down to what the collateral can cover
"""

import logging
from dataclasses import dataclass

from constants import SCALE, ZERO_ADDRESS
from errors import BorrowerIsSolvent, TokenNotListed, ZeroAddress, ZeroAmount
from fixed_point import checked_add, checked_sub, from_scaled, mul_div
from rewards import checkpoint

logger = logging.getLogger(__name__)


@dataclass
class LiquidationValues:
    """
    Result of a single liquidation.

    All amounts are normalized to 18 decimals.
    """
    principal: int = 0             # Borrow shares burned
    debt: int = 0                  # Debt repaid by the liquidator
    debt_with_fee: int = 0         # Debt plus the liquidation fee
    collateral_seized: int = 0     # Collateral taken from the borrower
    liquidator_portion: int = 0    # Collateral credited to the recipient
    protocol_portion: int = 0      # Collateral added to the reserves


class LiquidationEngine:
    """
    Liquidates insolvent accounts of a LendingMarket.

    The liquidation fee and liquidator portion are those of the collateral market.
    """

    def __init__(self, market):
        self.market = market

    def _compute(self, borrow_market, collateral_market, principal):
        oracle = self.market.oracle
        values = LiquidationValues(principal=principal)

        values.debt = borrow_market.loan.to_elastic(principal, round_up=True)
        values.debt_with_fee = mul_div(values.debt, SCALE + collateral_market.liquidation_fee, SCALE)

        debt_value = oracle.value_in_common_unit(borrow_market.token, values.debt_with_fee)
        values.collateral_seized = mul_div(debt_value, SCALE, oracle.price_of(collateral_market.token))
        return values

    def preview(self, borrower, borrow_token, principal, collateral_token):
        """
        Returns the LiquidationValues a liquidation would produce right now,
        without accruing interest or changing any state.
        """
        store = self.market.store
        borrow_market = store.market(borrow_token)
        collateral_market = store.market(collateral_token)

        principal = min(principal, store.peek_account(borrow_token, borrower).principal)
        balance = store.peek_account(collateral_token, borrower).balance
        values = self._capped(borrow_market, collateral_market, principal, balance)

        values.liquidator_portion = mul_div(values.collateral_seized, collateral_market.liquidator_portion, SCALE)
        values.protocol_portion = values.collateral_seized - values.liquidator_portion
        return values

    def _capped(self, borrow_market, collateral_market, principal, balance):
        if principal == 0:
            raise ZeroAmount("MAIL: borrower has no debt in this market")

        values = self._compute(borrow_market, collateral_market, principal)

        # Not enough collateral: only liquidate what the collateral covers
        if values.collateral_seized > balance:
            principal = principal * balance // values.collateral_seized
            if principal == 0:
                raise ZeroAmount("MAIL: not enough collateral to liquidate")

            values = self._compute(borrow_market, collateral_market, principal)
            values.collateral_seized = min(values.collateral_seized, balance)

        return values

    def liquidate(self, caller, borrower, borrow_token, principal, collateral_token, recipient):
        """
        Repays ``borrower``'s debt in ``borrow_token`` and seizes its ``collateral_token``.

        Args:
            caller: Liquidator paying the debt
            borrower: Insolvent account
            borrow_token: Market of the debt being repaid
            principal: Borrow shares to repay (18 decimals), capped at the borrower's
            collateral_token: Market of the collateral being seized
            recipient: Account credited with the liquidator's share of the collateral

        Returns:
            LiquidationValues describing what happened

        Raises:
            BorrowerIsSolvent: If the borrower can still cover its debt
        """
        market = self.market
        store = market.store

        with market.atomic():
            if not store.has_market(borrow_token):
                raise TokenNotListed("MAIL: borrowToken not listed")
            if not store.has_market(collateral_token):
                raise TokenNotListed("MAIL: collateralToken not listed")
            if not recipient or recipient == ZERO_ADDRESS:
                raise ZeroAddress("MAIL: no zero address recipient")
            if principal <= 0:
                raise ZeroAmount("MAIL: no zero principal")

            borrow_market = store.market(borrow_token)
            collateral_market = store.market(collateral_token)

            # Only the debt market accrues; collateral rewards settle at its last index
            market._accrue(borrow_market)

            if market.solvency.is_solvent(borrower):
                raise BorrowerIsSolvent("MAIL: borrower is solvent")

            # Settle rewards before balances change
            borrower_collateral = store.account(collateral_token, borrower)
            market._settle(collateral_market, borrower_collateral)
            recipient_collateral = store.account(collateral_token, recipient)
            market._settle(collateral_market, recipient_collateral)

            borrower_loan = store.account(borrow_token, borrower)
            principal = min(principal, borrower_loan.principal)
            values = self._capped(borrow_market, collateral_market, principal, borrower_collateral.balance)

            values.liquidator_portion = mul_div(values.collateral_seized, collateral_market.liquidator_portion, SCALE)
            values.protocol_portion = values.collateral_seized - values.liquidator_portion

            # Repay the debt on behalf of the borrower
            borrower_loan.principal = checked_sub(borrower_loan.principal, values.principal)
            values.debt = borrow_market.loan.sub_base(values.principal, round_up=True)

            token = market.tokens[borrow_token]
            market._pull(borrow_token, caller, from_scaled(values.debt, token.decimals, round_up=True))

            # Move the collateral
            borrower_collateral.balance = checked_sub(borrower_collateral.balance, values.collateral_seized)
            recipient_collateral.balance = checked_add(recipient_collateral.balance, values.liquidator_portion)
            collateral_market.total_supply_scaled = checked_sub(
                collateral_market.total_supply_scaled, values.protocol_portion
            )
            collateral_market.total_reserves = checked_add(collateral_market.total_reserves, values.protocol_portion)

            checkpoint(collateral_market, borrower_collateral)
            checkpoint(collateral_market, recipient_collateral)

            market._emit(
                "Liquidate",
                borrower=borrower,
                borrow_token=borrow_token,
                principal=values.principal,
                debt=values.debt,
                collateral_token=collateral_token,
                collateral_seized=values.collateral_seized,
                recipient=recipient,
                liquidator_portion=values.liquidator_portion,
                protocol_portion=values.protocol_portion,
            )
            logger.info(
                "Liquidated %s: repaid %d %s, seized %d %s (%d to %s)",
                borrower, values.debt, borrow_token, values.collateral_seized,
                collateral_token, values.liquidator_portion, recipient,
            )
            return values
