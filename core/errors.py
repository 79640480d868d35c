"""Error types raised by the lending market model.

Every error derives from ``MarketError``, itself a ``ValueError``, so code that
only cares that an operation was rejected can keep catching ``ValueError``.
"""


class MarketError(ValueError):
    """Base error class for market errors"""
    pass


# --- Validation ---

class ValidationError(MarketError):
    """Rejected arguments, raised before any state mutation"""
    pass

class TokenNotListed(ValidationError):
    pass

class MarketAlreadyListed(ValidationError):
    pass

class ZeroAmount(ValidationError):
    pass

class ZeroAddress(ValidationError):
    pass

class InvalidAction(ValidationError):
    """Unknown or malformed batch action"""
    pass

class InvalidConfig(ValidationError):
    pass


# --- Resources ---

class ResourceError(MarketError):
    """Not enough of something (cash, reserves, balance) to honour the call"""
    pass

class NotEnoughCash(ResourceError):
    pass

class NotEnoughReserves(ResourceError):
    pass

class InsufficientBalance(ResourceError):
    pass

class InsufficientAllowance(ResourceError):
    pass


# --- Solvency ---

class SolvencyError(MarketError):
    pass

class AccountInsolvent(SolvencyError):
    pass

class BorrowerIsSolvent(SolvencyError):
    pass


# --- Model ---

class ModelError(MarketError):
    pass

class BorrowRateTooHigh(ModelError):
    """The interest rate model returned a rate above the safety ceiling"""
    pass


class AuthorizationError(MarketError):
    pass

class NotAuthorized(AuthorizationError):
    pass


class OracleError(MarketError):
    pass

class PriceUnavailable(OracleError):
    pass


class ArithmeticOverflow(MarketError):
    """A checked operation left the uint256 range"""
    pass
