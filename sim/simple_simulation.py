"""
Simple simulation for the Lending Market Economic Model.

This script demonstrates a minimal simulation of the lending market: lenders
supply liquidity, borrowers open loans, interest accrues and a price drop
triggers liquidations.
"""

import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from economic_model import LendingMarketEconomicModel
from constants import SCALE


def print_state(model):
    state = model.get_system_state()
    print(f"  Block: {state['block']}")
    print(f"  Total deposits: ${state['total_collateral']:,.2f}")
    print(f"  Total debt: ${state['total_debt']:,.2f}")
    print(f"  Active loans: {state['active_loans']}")
    for token, market in state['markets'].items():
        print(f"  {token}: price ${market['price']:,.2f}, utilization {market['utilization'] * 100:.2f}%, "
              f"reserves {market['total_reserves']:.6f}")


def run_basic_simulation():
    # Initialize the model
    model = LendingMarketEconomicModel()
    rng = np.random.default_rng(7)

    print("Seeding USDC lenders...")
    model.seed_lenders("USDC", {
        "lender0": 500_000 * 10**6,
        "lender1": 250_000 * 10**6,
    })

    print("\nOpening loans against WBTC...")
    # Borrow between 60% and 95% of what the collateral allows
    for i in range(5):
        collateral = int(rng.uniform(1.0, 3.0) * 10**8)
        capacity = collateral * 30_000 // 2 // 100  # 50% LTV, USDC units
        borrow = int(capacity * rng.uniform(0.6, 0.95))
        model.open_loan(f"user{i}", "WBTC", collateral, "USDC", borrow)
        print(f"  user{i}: {collateral / 10**8:.4f} WBTC, {borrow / 10**6:,.2f} USDC")

    print("\nInitial protocol state:")
    print_state(model)

    # Let interest accrue for a week
    print("\nAdvancing one week...")
    model.advance(7 * 24 * 240)
    print_state(model)

    # Simulate a price drop
    new_price = 21_000 * SCALE
    print(f"\nSimulating WBTC price drop to ${new_price / SCALE:,.2f}")
    liquidated = model.update_price("WBTC", new_price)

    if liquidated:
        print(f"Liquidated borrowers: {liquidated}")
    else:
        print("No borrowers eligible for liquidation at this price")

    print("\nFinal protocol state:")
    print_state(model)


if __name__ == "__main__":
    run_basic_simulation()
