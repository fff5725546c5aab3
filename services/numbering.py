"""Document numbering backed by per-scope sequence counters.

Formats:
  quotation    QUO/YYYY/MM/NNNN       counter resets monthly
  order        ORD/YYYY/MM/NNNN       counter resets monthly
  invoice      INV-YYYY-NNNNNN        counter resets yearly
  tax_invoice  010.000-YY.NNNNNNNN    counter resets yearly

Counters live in ``NumberSequence`` rows and are incremented in the
caller's transaction, so a rolled-back document also gives its number back.
"""

from __future__ import annotations

import datetime
from typing import Optional

from extensions import db
from models import NumberSequence
from utils import utc_now

NUMBER_FORMATS: dict[str, tuple[str, str]] = {
    "quotation": ("QUO/{year}/{month:02d}/{seq:04d}", "month"),
    "order": ("ORD/{year}/{month:02d}/{seq:04d}", "month"),
    "invoice": ("INV-{year}-{seq:06d}", "year"),
    "tax_invoice": ("010.000-{yy:02d}.{seq:08d}", "year"),
}


def _next_sequence(entity_type: str, scope_key: str) -> int:
    """Atomically increment and return the next sequence value."""
    seq = NumberSequence.query.filter_by(
        entity_type=entity_type, scope_key=scope_key
    ).with_for_update().first()
    if not seq:
        seq = NumberSequence(
            entity_type=entity_type, scope_key=scope_key, last_value=1
        )
        db.session.add(seq)
        db.session.flush()
        return 1
    # SQL-side increment so concurrent writers serialise on the row
    seq.last_value = NumberSequence.last_value + 1
    db.session.flush()
    db.session.refresh(seq)
    return seq.last_value


def scope_key_for(scope: str, now: datetime.datetime) -> str:
    if scope == "month":
        return f"{now.year}-{now.month:02d}"
    return str(now.year)


def generate_number(entity_type: str, now: Optional[datetime.datetime] = None) -> str:
    """Return the next formatted number for *entity_type*."""
    pattern, scope = NUMBER_FORMATS[entity_type]
    now = now or utc_now()
    seq = _next_sequence(entity_type, scope_key_for(scope, now))
    return pattern.format(year=now.year, yy=now.year % 100, month=now.month, seq=seq)
