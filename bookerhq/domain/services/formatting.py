"""Display strings for service and option price/duration"""

from decimal import Decimal
from typing import Any


def format_number(value: Any) -> str:
    """Render whole numbers without a decimal part: 20.0 -> "20", 20.5 -> "20.5" """
    if isinstance(value, bool) or value is None:
        return str(value)
    if isinstance(value, (float, Decimal)) and value == int(value):
        return str(int(value))
    return str(value)


def format_price(service: dict) -> str:
    # Services with options show the effective range over their options
    if (
        service.get("has_options")
        and service.get("effective_min_price") is not None
        and service.get("effective_max_price") is not None
    ):
        low = service["effective_min_price"]
        high = service["effective_max_price"]
        if low == high:
            return format_number(low)
        return f"{format_number(low)} - {format_number(high)}"

    if (
        service.get("price_varies")
        and service.get("min_price") is not None
        and service.get("max_price") is not None
    ):
        return f"{format_number(service['min_price'])} - {format_number(service['max_price'])}"

    return format_number(service.get("price"))


def format_duration(service: dict) -> str:
    if service.get("time_varies") and service.get("min_duration") and service.get("max_duration"):
        return f"{format_number(service['min_duration'])} - {format_number(service['max_duration'])} min"
    return f"{format_number(service.get('duration_minutes'))} min"
