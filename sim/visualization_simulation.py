"""
Visualization simulation for the Lending Market Economic Model.

This script runs a month of random WBTC price movements against a set of
USDC loans and plots prices, debt, deposits, utilization and insolvencies.
An optional path to a JSON protocol configuration replaces the default markets.
"""

import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from config import ProtocolConfig
from economic_model import LendingMarketEconomicModel, BLOCKS_PER_STEP, STEPS_PER_DAY


def run_visualization_simulation(config_path=None):
    config = ProtocolConfig.from_json_file(config_path) if config_path else None
    model = LendingMarketEconomicModel(config)
    rng = np.random.default_rng(42)

    print("Seeding lenders...")
    model.seed_lenders("USDC", {f"lender{i}": 400_000 * 10**6 for i in range(3)})
    model.seed_lenders("WETH", {"weth_lender": 500 * 10**18})

    print("Opening loans with varying risk profiles...")
    for i in range(10):
        collateral = int(rng.uniform(1.0, 5.0) * 10**8)
        # Use 55% to 100% of the borrowing capacity
        target_usage = 0.55 + i * 0.045
        borrow = int(collateral * 30_000 // 2 // 100 * target_usage)
        model.open_loan(f"user{i}", "WBTC", collateral, "USDC", borrow)
        print(f"  user{i}: {collateral / 10**8:.4f} WBTC, {borrow / 10**6:,.2f} USDC, "
              f"capacity used: {target_usage * 100:.0f}%")

    print("\nRunning simulation with visualizations...")
    blocks = 30 * STEPS_PER_DAY * BLOCKS_PER_STEP
    results = model.simulate_market_scenario(blocks, price_volatility=0.03, plot_results=True, seed=42)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    run_visualization_simulation(sys.argv[1] if len(sys.argv) > 1 else None)
