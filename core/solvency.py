"""
Solvency Checker for the lending market.

An account is solvent when the value of its deposits, each discounted by its
market's maximum loan-to-value, covers the value of everything it owes. Both
sides are priced in the oracle's common unit.
"""

from constants import SCALE
from fixed_point import checked_add, mul_div


class SolvencyChecker:
    """
    Values accounts across every listed market.

    Args:
        store: MarketStore holding markets and accounts
        oracle: PriceOracle pricing normalized amounts in the common unit
    """

    def __init__(self, store, oracle):
        self.store = store
        self.oracle = oracle

    def collateral_value(self, account):
        """Returns the borrowing power of ``account``: sum of balance value * max LTV."""
        total = 0
        for token in self.store.listed_tokens():
            balance = self.store.peek_account(token, account).balance
            if balance == 0:
                continue

            market = self.store.market(token)
            value = self.oracle.value_in_common_unit(token, balance)
            total = checked_add(total, mul_div(value, market.max_ltv, SCALE))
        return total

    def debt_value(self, account):
        """Returns the value of everything ``account`` owes."""
        total = 0
        for token in self.store.listed_tokens():
            principal = self.store.peek_account(token, account).principal
            if principal == 0:
                continue

            market = self.store.market(token)
            debt = market.loan.to_elastic(principal)
            total = checked_add(total, self.oracle.value_in_common_unit(token, debt))
        return total

    def is_solvent(self, account):
        """
        Returns True if the account's discounted collateral covers its debt.

        Accounts without debt are always solvent, even if a collateral price
        is unavailable.
        """
        debt_value = self.debt_value(account)
        if debt_value == 0:
            return True
        return self.collateral_value(account) >= debt_value

    def health_factor(self, account):
        """Returns collateral value / debt value as a float (inf without debt)."""
        debt_value = self.debt_value(account)
        if debt_value == 0:
            return float('inf')
        return self.collateral_value(account) / debt_value
