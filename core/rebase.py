"""
Rebase ledger for proportional shares.

A rebase pair tracks a total value (``elastic``) split into proportional shares
(``base``). Interest increases ``elastic`` without touching ``base``, so every
existing share becomes worth more at once. The market uses it for its debt.
"""

from dataclasses import dataclass

from fixed_point import checked_add, checked_sub


@dataclass
class Rebase:
    """
    Proportional share pair.

    Invariant: base == 0 if and only if elastic == 0.
    """
    elastic: int = 0  # Current total value
    base: int = 0     # Total number of shares

    def to_base(self, elastic, round_up=False):
        """Converts a value into shares. The first deposit mints shares 1:1."""
        if self.elastic == 0:
            return elastic

        base = elastic * self.base // self.elastic
        if round_up and base * self.elastic < elastic * self.base:
            base += 1
        return base

    def to_elastic(self, base, round_up=False):
        """Converts shares into value."""
        if self.base == 0:
            return base

        elastic = base * self.elastic // self.base
        if round_up and elastic * self.base < base * self.elastic:
            elastic += 1
        return elastic

    def add_elastic(self, elastic, round_up=True):
        """
        Adds value and mints the matching shares.

        Args:
            elastic: Value to add
            round_up: Round the minted shares up (protocol favoring for new debt)

        Returns:
            Number of shares minted
        """
        base = self.to_base(elastic, round_up)
        self.elastic = checked_add(self.elastic, elastic)
        self.base = checked_add(self.base, base)
        return base

    def sub_base(self, base, round_up=True):
        """
        Burns shares and removes the value they represent.

        Burning every share removes all of the value. Rounding can otherwise make
        the value of a partial burn equal to everything left; one unit is then
        kept so outstanding shares never become worthless.

        Args:
            base: Shares to burn
            round_up: Round the removed value up (protocol favoring for repayments)

        Returns:
            Value removed
        """
        remaining_base = checked_sub(self.base, base)
        if remaining_base == 0:
            elastic = self.elastic
        else:
            elastic = min(self.to_elastic(base, round_up), max(self.elastic - 1, 0))

        self.elastic = checked_sub(self.elastic, elastic)
        self.base = remaining_base
        return elastic

    def add_interest(self, elastic):
        """Adds value without minting shares."""
        self.elastic = checked_add(self.elastic, elastic)

    def is_consistent(self):
        return (self.base == 0) == (self.elastic == 0)

    def check_invariant(self):
        if not self.is_consistent():
            raise ValueError(f"Rebase invariant violated: elastic={self.elastic}, base={self.base}")
