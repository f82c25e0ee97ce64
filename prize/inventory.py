"""Conditional updates against the per-prize stock counters.

Every write here is a single ``UPDATE`` whose ``WHERE`` clause carries the
stock condition, so the database decides atomically whether it applies.
Rows of different prizes never block each other.
"""

from __future__ import annotations

from django.db.models import F

from .exceptions import StockExhaustedError
from .models import Prize


def snapshot_available() -> list[Prize]:
    """Return prizes that still have stock, ordered by id."""

    return list(Prize.objects.filter(remaining__gt=0).order_by("id"))


def try_decrement(prize_id: str) -> Prize:
    """Take one unit of ``prize_id`` if any is left and return the updated row."""

    updated = Prize.objects.filter(pk=prize_id, remaining__gt=0).update(
        remaining=F("remaining") - 1
    )
    if updated == 0:
        raise StockExhaustedError(prize_id)
    return Prize.objects.get(pk=prize_id)


def restore_one(prize_id: str) -> bool:
    """Give one unit back to ``prize_id`` without exceeding its total.

    Returns ``False`` when nothing changed (prize missing or already full).
    """

    updated = Prize.objects.filter(pk=prize_id, remaining__lt=F("total")).update(
        remaining=F("remaining") + 1
    )
    return updated == 1


def restore_all() -> int:
    """Set every prize back to its full stock and return the number of rows."""

    return Prize.objects.update(remaining=F("total"))
