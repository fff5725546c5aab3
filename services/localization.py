"""Indonesian presentation helpers: rupiah amounts, numbers and dates.

Every helper takes the ``LocaleConfig`` explicitly; nothing here reads
global state.
"""

from __future__ import annotations

import datetime
import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from config_models import LocaleConfig
from utils import to_utc

logger = logging.getLogger(__name__)

INDONESIAN_MONTHS = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]
# Python weekday(): Monday == 0
INDONESIAN_DAYS = ["Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]

_COMPACT_UNITS = (
    (Decimal(1_000_000), "jt"),
    (Decimal(1_000), "rb"),
)


def format_number(value, locale: LocaleConfig, decimals: int = 0) -> str:
    """Group digits with the locale separators (``1.234.567,5``)."""
    quantum = Decimal(1).scaleb(-decimals)
    amount = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    text = f"{abs(amount):,.{decimals}f}"
    integer, _, fraction = text.partition(".")
    integer = integer.replace(",", locale.thousands_separator)
    if fraction:
        return f"{sign}{integer}{locale.decimal_separator}{fraction}"
    return f"{sign}{integer}"


def _compact(amount: Decimal, locale: LocaleConfig) -> Optional[str]:
    for threshold, suffix in _COMPACT_UNITS:
        if abs(amount) >= threshold:
            scaled = (amount / threshold).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            if scaled == scaled.to_integral_value():
                return f"{format_number(scaled, locale)} {suffix}"
            return f"{format_number(scaled, locale, 1)} {suffix}"
    return None


def format_idr(
    amount_minor: int,
    locale: LocaleConfig,
    *,
    show_symbol: bool = True,
    show_decimals: bool = False,
    compact: bool = False,
) -> str:
    """Format an amount held in minor units as rupiah.

    ``format_idr(45000000, cfg)`` gives ``"Rp 450.000"``; with
    ``compact=True`` amounts of a thousand rupiah or more are shortened to
    ``"rb"`` (ribu) and ``"jt"`` (juta).
    """
    amount = Decimal(int(amount_minor)) / Decimal(locale.minor_units)
    text = _compact(amount, locale) if compact else None
    if text is None:
        text = format_number(amount, locale, 2 if show_decimals else 0)
    if show_symbol:
        return f"{locale.currency_symbol} {text}"
    return text


def parse_idr(raw: str, locale: LocaleConfig) -> int:
    """Parse a rupiah string back into minor units.

    Understands the symbol, thousands separators, a decimal part and the
    ``rb``/``jt`` suffixes.  Raises ``ValueError`` on garbage.
    """
    text = (raw or "").strip().lower()
    multiplier = Decimal(1)
    if text.endswith("jt"):
        multiplier, text = Decimal(1_000_000), text[:-2]
    elif text.endswith("rb"):
        multiplier, text = Decimal(1_000), text[:-2]
    text = text.replace(locale.currency_symbol.lower(), "")
    text = re.sub(r"\s", "", text)
    text = text.replace(locale.thousands_separator, "").replace(locale.decimal_separator, ".")
    try:
        amount = Decimal(text) * multiplier
    except InvalidOperation:
        raise ValueError(f"Not a rupiah amount: {raw!r}")
    minor = (amount * locale.minor_units).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(minor)


def format_date(value, locale: LocaleConfig, style: str = "long") -> str:
    """Indonesian date text.

    Styles: ``full`` (``Senin, 5 Januari 2026``), ``long``
    (``5 Januari 2026``), ``medium`` (``5/01/2026``) and ``short``
    (``5/01/26``).  Datetimes are shown in the business timezone.
    """
    if isinstance(value, datetime.datetime):
        tz = datetime.timezone(datetime.timedelta(hours=locale.utc_offset_hours))
        value = to_utc(value).astimezone(tz).date()
    month = INDONESIAN_MONTHS[value.month - 1]
    if style == "full":
        return f"{INDONESIAN_DAYS[value.weekday()]}, {value.day} {month} {value.year}"
    if style == "long":
        return f"{value.day} {month} {value.year}"
    if style == "medium":
        return f"{value.day}/{value.month:02d}/{value.year}"
    if style == "short":
        return f"{value.day}/{value.month:02d}/{str(value.year)[-2:]}"
    raise ValueError(f"Unknown date style: {style}")
