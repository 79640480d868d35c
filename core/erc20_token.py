"""
ERC20 Token Model for the lending market.

This module simulates the ERC20 tokens the market holds: collateral and
borrowable assets. It handles balances, allowances, minting and transfers,
and keeps each token's native decimal count so the market can
normalize amounts.
"""

from errors import InsufficientAllowance, InsufficientBalance


class ERC20Token:
    """
    Simulates an ERC20 token contract.
    """

    def __init__(self, symbol, decimals=18, initial_supply=0, owner=None):
        # Token metadata
        self.symbol = symbol
        self.decimals = decimals

        # Total token supply
        self.total_supply = 0

        # Mapping of addresses to token balances
        self.balances = {}

        # Mapping of (owner, spender) to approved amounts
        self.allowances = {}

        # Owner of the contract (receives the initial supply)
        self.owner = owner

        if initial_supply:
            self.mint(owner, initial_supply)

    def __repr__(self):
        return f"ERC20Token({self.symbol!r}, decimals={self.decimals})"

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def allowance(self, owner, spender):
        """Returns how much ``spender`` may still move on behalf of ``owner``."""
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner, spender, amount):
        """
        Allows ``spender`` to transfer up to ``amount`` of ``owner``'s tokens.

        Returns:
            True if successful
        """
        if amount < 0:
            raise ValueError("Amount cannot be negative")

        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        if amount < 0:
            raise ValueError("Amount cannot be negative")

        sender_balance = self.balances.get(sender, 0)

        if sender_balance < amount:
            raise InsufficientBalance(f"{self.symbol}: transfer amount exceeds balance")

        # Update balances
        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        return True

    def transfer_from(self, spender, sender, recipient, amount):
        """
        Transfers tokens on behalf of ``sender``, spending ``spender``'s allowance.

        Args:
            spender: Address executing the transfer
            sender: Address the tokens are taken from
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        if spender != sender:
            allowed = self.allowance(sender, spender)

            if allowed < amount:
                raise InsufficientAllowance(f"{self.symbol}: insufficient allowance")

            self.allowances[(sender, spender)] = allowed - amount

        return self.transfer(sender, recipient, amount)

    def mint(self, recipient, amount):
        """
        Mints new tokens to the recipient account.

        Args:
            recipient: Address receiving the minted tokens
            amount: Amount of tokens to mint

        Returns:
            True if successful
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        # Update recipient balance
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        # Update total supply
        self.total_supply += amount

        return True

    def snapshot(self):
        """Captures balances, allowances and supply so a failed operation can be undone."""
        return dict(self.balances), dict(self.allowances), self.total_supply

    def restore(self, snapshot):
        """Restores state captured by ``snapshot``."""
        balances, allowances, total_supply = snapshot
        self.balances = dict(balances)
        self.allowances = dict(allowances)
        self.total_supply = total_supply
