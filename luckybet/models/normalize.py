"""
Boundary Normalization - Coerce loosely typed client payloads.

Clients (USSD gateway, web, mobile) send the same field as a number in one
release and a string in the next. Everything is normalized once, at the
request model, so the core only ever sees Decimal money, str identifiers
and int choices.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import BeforeValidator

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Parse an amount into a 2dp Decimal. Floats go through str() to avoid binary noise.

    Sub-cent precision is refused rather than rounded; a stake of 50.004
    is not a stake of 50.00.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"amount is not numeric: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError("amount must be finite")
    money = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if money != amount:
        raise ValueError(f"amount has more than 2 decimal places: {value!r}")
    return money


def to_identifier(value: Any) -> str:
    """Identifiers arrive as ints or strings; a whole float is accepted as an int."""
    if isinstance(value, bool) or value is None:
        raise ValueError("identifier must be a string or integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"identifier is not integral: {value}")
        value = int(value)
    text = str(value).strip()
    if not text:
        raise ValueError("identifier cannot be empty")
    return text


def to_choice(value: Any) -> int:
    """Lucky number choice: int, integral float, or numeric string."""
    if isinstance(value, bool) or value is None:
        raise ValueError("choice must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"choice is not integral: {value}")
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"choice is not an integer: {value!r}") from exc


def to_optional_date(value: Any) -> date | None:
    """History filters: empty string means no bound."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


Money = Annotated[Decimal, BeforeValidator(to_money)]
Identifier = Annotated[str, BeforeValidator(to_identifier)]
Choice = Annotated[int, BeforeValidator(to_choice)]
OptionalDate = Annotated[date | None, BeforeValidator(to_optional_date)]
