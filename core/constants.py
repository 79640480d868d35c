"""
Protocol constants for the lending market model.

All rates, factors and prices are 18-decimal fixed point integers, the same
representation the on-chain markets use, so the model reproduces their rounding.
"""

# Fixed point scale (1.0)
SCALE = 10**18

# Internal accounting precision, regardless of a token's native decimals
INTERNAL_DECIMALS = 18

# uint256 bounds for checked arithmetic
MAX_UINT256 = 2**256 - 1

# ~15 second blocks
BLOCKS_PER_YEAR = 2_102_400

# Safety ceiling for the borrow rate (0.0005% per block)
MAX_BORROW_RATE_PER_BLOCK = 5 * 10**12

# Reserve factor cap (25%)
MAX_RESERVE_FACTOR = SCALE * 25 // 100

# Default risk parameters
DEFAULT_MAX_LTV = SCALE // 2                 # 50%
DEFAULT_LIQUIDATION_FEE = SCALE * 15 // 100  # 15% on top of the repaid debt
DEFAULT_LIQUIDATOR_PORTION = SCALE * 98 // 100  # 98% of the seized collateral

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Action codes accepted by the request batcher
ADD_COLLATERAL_REQUEST = 0
WITHDRAW_COLLATERAL_REQUEST = 1
BORROW_REQUEST = 2
REPAY_REQUEST = 3
