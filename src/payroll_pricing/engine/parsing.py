"""
Parsers for CSV cell values.

Every table is read with ``dtype=str`` and blanks filled with ``''``, so an empty
string always means "not set".
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

CENT = Decimal('0.01')


def parse_bool(value, default: bool = False) -> bool:
    """Parse a boolean from CSV string."""
    if isinstance(value, bool):
        return value
    if value is None or str(value).strip() == '':
        return default
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_str(value) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() in ('', 'nan', 'None'):
        return None
    return str(value).strip()


def parse_optional_int(value) -> Optional[int]:
    """Parse optional integer."""
    text = parse_optional_str(value)
    if text is None:
        return None
    return int(float(text))


def parse_optional_decimal(value) -> Optional[Decimal]:
    """Parse optional decimal; floats go through ``str`` to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    text = parse_optional_str(value)
    if text is None:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not a decimal value: {value!r}")


def parse_optional_date(value) -> Optional[date]:
    """Parse an ISO date (a datetime string is truncated to its date)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = parse_optional_str(value)
    if text is None:
        return None
    return datetime.fromisoformat(text).date()


def parse_optional_datetime(value) -> Optional[datetime]:
    """Parse an ISO timestamp."""
    if isinstance(value, datetime):
        return value
    text = parse_optional_str(value)
    if text is None:
        return None
    return datetime.fromisoformat(text)


def parse_list(value) -> list[str]:
    """Parse a ``|``-separated list cell."""
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = parse_optional_str(value)
    if text is None:
        return []
    return [part.strip() for part in text.split('|') if part.strip()]


def fmt(value) -> str:
    """Format a value for a CSV cell."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, tuple)):
        return '|'.join(str(v) for v in value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def slugify(name: str) -> str:
    """Feature key from a display name: 'On-Demand Pay' → 'on_demand_pay'."""
    out = []
    for ch in name.strip().lower():
        out.append(ch if ch.isalnum() else '_')
    return '_'.join(part for part in ''.join(out).split('_') if part)
