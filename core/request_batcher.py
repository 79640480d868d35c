"""
Request Batcher for the lending market.

A batch is an ordered list of actions executed atomically on behalf of a single
account. Solvency is checked once, after the last action, so a batch may pass
through states that would fail a per-step check (for example withdrawing old
collateral before depositing new collateral and borrowing against it).

Actions are a closed set of typed records. Encoded requests (an action code
plus a payload) are decoded and validated before anything executes.
"""

import logging
from dataclasses import dataclass
from typing import Union

from constants import (
    ADD_COLLATERAL_REQUEST,
    BORROW_REQUEST,
    REPAY_REQUEST,
    WITHDRAW_COLLATERAL_REQUEST,
)
from errors import InvalidAction, NotAuthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddCollateral:
    """Deposit ``amount`` (native units) of ``token`` for ``to``."""
    token: str
    amount: int
    to: str


@dataclass(frozen=True)
class WithdrawCollateral:
    """Withdraw ``amount`` (native units) of ``token`` to ``to``."""
    token: str
    amount: int
    to: str


@dataclass(frozen=True)
class Borrow:
    """Borrow ``amount`` (native units) of ``token``, sent to ``to``."""
    token: str
    amount: int
    to: str


@dataclass(frozen=True)
class Repay:
    """Repay ``principal`` borrow shares of ``to``'s ``token`` loan."""
    token: str
    principal: int
    to: str


Action = Union[AddCollateral, WithdrawCollateral, Borrow, Repay]

ACTION_TYPES = {
    ADD_COLLATERAL_REQUEST: AddCollateral,
    WITHDRAW_COLLATERAL_REQUEST: WithdrawCollateral,
    BORROW_REQUEST: Borrow,
    REPAY_REQUEST: Repay,
}


def _validate(action):
    quantity = action.principal if isinstance(action, Repay) else action.amount

    if not isinstance(action.token, str) or not isinstance(action.to, str):
        raise InvalidAction("MAIL: invalid action")
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidAction("MAIL: invalid action")
    return action


def decode_action(code, payload):
    """
    Decodes an encoded request into a typed action.

    Args:
        code: One of the *_REQUEST action codes
        payload: ``(token, amount, to)`` tuple or a dict with the same keys
            (``principal`` instead of ``amount`` for repayments)

    Returns:
        The typed action

    Raises:
        InvalidAction: If the code is unknown or the payload does not fit it
    """
    action_type = ACTION_TYPES.get(code)
    if action_type is None:
        raise InvalidAction("MAIL: invalid action")

    try:
        if isinstance(payload, dict):
            action = action_type(**payload)
        else:
            action = action_type(*payload)
    except TypeError as e:
        raise InvalidAction(f"MAIL: invalid payload for action {code}") from e

    return _validate(action)


class RequestBatcher:
    """
    Executes batches of actions against a LendingMarket.

    Args:
        market: LendingMarket the actions run against
    """

    def __init__(self, market):
        self.market = market

    def request(self, caller, from_, actions):
        """
        Runs ``actions`` in order on behalf of ``from_``.

        Args:
            caller: Transaction sender, must be ``from_`` or the market's router
            from_: Account the actions act for
            actions: Sequence of typed actions

        Raises:
            NotAuthorized: If the caller may not act for ``from_``
            InvalidAction: If an element is not a known action
            AccountInsolvent: If ``from_`` is insolvent once every action ran
        """
        market = self.market

        if caller != from_ and (market.router is None or caller != market.router):
            raise NotAuthorized("MAIL: not authorized")

        actions = list(actions)
        for action in actions:
            if not isinstance(action, tuple(ACTION_TYPES.values())):
                raise InvalidAction("MAIL: invalid action")
            _validate(action)

        with market.atomic():
            for action in actions:
                self._execute(from_, action)

            market.check_solvency(from_, "MAIL: from is insolvent")

        logger.debug("Executed %d actions for %s", len(actions), from_)

    def request_encoded(self, caller, from_, codes, payloads):
        """Decodes ``codes``/``payloads`` pairs, then runs them like ``request``."""
        if len(codes) != len(payloads):
            raise InvalidAction("MAIL: actions and data length mismatch")

        actions = [decode_action(code, payload) for code, payload in zip(codes, payloads)]
        return self.request(caller, from_, actions)

    def _execute(self, from_, action):
        market = self.market

        if isinstance(action, AddCollateral):
            market.deposit(from_, action.token, action.amount, action.to)
        elif isinstance(action, WithdrawCollateral):
            market._withdraw(from_, action.token, action.amount, action.to)
        elif isinstance(action, Borrow):
            market._borrow(from_, action.token, action.amount, action.to)
        elif isinstance(action, Repay):
            market.repay(from_, action.token, action.principal, action.to)
