"""
Reward-per-share accumulator.

Instead of crediting every holder each block, a pool keeps a single monotonic
index of rewards earned per unit of balance. Each holder stores a snapshot of
``balance * index`` at its last settlement (its reward debt); the difference to
the current value is what it has earned since.

Settled rewards are compounded into the holder's balance, so the rewarded asset
is the deposited asset itself. The helpers work on any pool object exposing
``total_supply_scaled`` and ``total_rewards_per_token`` and any holder exposing
``balance`` and ``reward_debt``.
"""

from constants import SCALE
from fixed_point import checked_add, checked_sub, mul_div


def accumulated_rewards(balance, rewards_per_token):
    """Returns the rewards a balance would have earned since the index was zero."""
    return mul_div(balance, rewards_per_token, SCALE)


def pending_rewards(balance, rewards_per_token, reward_debt):
    """Returns the rewards earned since the last settlement."""
    return checked_sub(accumulated_rewards(balance, rewards_per_token), reward_debt)


def rewards_per_token_increment(rewards, total_supply):
    """
    Returns how much the index grows when ``rewards`` are distributed.

    Nothing is distributed to an empty pool (the index stays put).
    """
    if total_supply == 0:
        return 0
    return mul_div(rewards, SCALE, total_supply)


def distribute(pool, rewards):
    """Spreads ``rewards`` over the pool's current supply. Returns the index increment."""
    increment = rewards_per_token_increment(rewards, pool.total_supply_scaled)
    pool.total_rewards_per_token = checked_add(pool.total_rewards_per_token, increment)
    return increment


def compound(pool, holder):
    """
    Settles a holder's pending rewards into its balance.

    The reward debt is left untouched; call ``checkpoint`` once the balance
    has reached its final value for the operation.

    Returns:
        The amount compounded
    """
    pending = pending_rewards(holder.balance, pool.total_rewards_per_token, holder.reward_debt)
    if pending > 0:
        holder.balance = checked_add(holder.balance, pending)
        pool.total_supply_scaled = checked_add(pool.total_supply_scaled, pending)
    return pending


def checkpoint(pool, holder):
    """Snapshots the holder's reward debt at the current index."""
    holder.reward_debt = accumulated_rewards(holder.balance, pool.total_rewards_per_token)
