"""
Operation boundary

Service methods raise MarketplaceError subclasses internally; the
decorator turns every outcome into a MarketplaceResult so callers never
see a raised fault.
"""

import functools
import logging
from decimal import Decimal, InvalidOperation

from .models import ErrorKind, MarketplaceResult, quantize_money
from .protocols import MarketplaceError, MarketplaceValidationError

logger = logging.getLogger(__name__)


def as_result(func):
    """Wrap an async service method so it always returns a MarketplaceResult"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            value = await func(*args, **kwargs)
        except MarketplaceError as e:
            logger.info(f"{func.__name__} rejected: {e.kind.value}: {e.message}")
            return MarketplaceResult.fail(e.kind, e.message)
        except Exception as e:
            logger.error(f"{func.__name__} failed: {e}", exc_info=True)
            return MarketplaceResult.fail(ErrorKind.INTERNAL_ERROR, "An unexpected error occurred")

        if isinstance(value, MarketplaceResult):
            return value
        return MarketplaceResult.ok(value)

    return wrapper


def require_positive_amount(value, field: str = "amount") -> Decimal:
    """Parse a monetary input, quantize it to cents and insist it is > 0"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise MarketplaceValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise MarketplaceValidationError(f"{field} must be a finite number")

    amount = quantize_money(amount)
    if amount <= 0:
        raise MarketplaceValidationError(f"{field} must be greater than zero")
    return amount
