"""Input checks shared by the services. All of them run before any write."""
import re
from typing import Any

from errors import InvalidArgument, InvalidFormat

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def normalize_currency(currency: Any) -> str:
    """Return the upper-cased ISO 4217 code or raise ``InvalidFormat``."""
    if not isinstance(currency, str) or not CURRENCY_PATTERN.match(currency.upper()):
        raise InvalidFormat(
            "Currency must be a valid 3-letter ISO 4217 code",
            currency=currency
        )
    return currency.upper()


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_positive(value: Any, name: str = "amount_minor") -> int:
    if not is_int(value) or value <= 0:
        raise InvalidArgument(f"{name} must be a positive integer", **{name: value})
    return value


def require_non_negative(value: Any, name: str) -> int:
    if not is_int(value) or value < 0:
        raise InvalidArgument(f"{name} cannot be negative", **{name: value})
    return value
