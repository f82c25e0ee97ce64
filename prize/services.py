from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count

from .conf import default_rng, lottery_setting
from .eligibility import check_and_reserve
from .exceptions import (
    AllocationNotFoundError,
    AlreadyParticipatedError,
    DrawInternalError,
    DrawValidationError,
    StockExhaustedError,
)
from .inventory import restore_all, restore_one, snapshot_available, try_decrement
from .models import Allocation, Prize
from .selection import select_weighted

logger = logging.getLogger(__name__)
reconciliation_logger = logging.getLogger("prize.reconciliation")


@dataclass(slots=True)
class DrawResult:
    allocation: Allocation
    prize: Prize


@dataclass(slots=True)
class ResetSummary:
    allocations_deleted: int
    prizes_restored: int


@dataclass(slots=True)
class InventoryDrift:
    """A prize whose spent stock disagrees with its allocation count."""

    prize_id: str
    total: int
    remaining: int
    allocated: int

    @property
    def drift(self) -> int:
        return (self.total - self.remaining) - self.allocated

    def to_payload(self) -> dict[str, Any]:
        return {
            "prize_id": self.prize_id,
            "total": self.total,
            "remaining": self.remaining,
            "allocated": self.allocated,
            "drift": self.drift,
        }


def _clean_required(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise DrawValidationError(f"{field_name} is required.")
    cleaned = value.strip()
    max_length = Allocation._meta.get_field(field_name).max_length
    if len(cleaned) > max_length:
        raise DrawValidationError(f"{field_name} must be at most {max_length} characters.")
    return cleaned


def _clean_origin(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DrawValidationError("origin_address must be a string.")
    cleaned = value.strip()
    max_length = Allocation._meta.get_field("origin_address").max_length
    if len(cleaned) > max_length:
        raise DrawValidationError(f"origin_address must be at most {max_length} characters.")
    return cleaned


def draw_prize(
    requester_id: Any,
    requester_name: Any,
    origin_address: Optional[str] = None,
    *,
    rng: Optional[random.Random] = None,
) -> DrawResult:
    """Run one draw for ``requester_id`` and record the allocation.

    The candidate is picked from a snapshot and then claimed with a
    conditional decrement. Another draw may empty the prize in between, in
    which case ``StockExhaustedError`` is raised and the caller may submit the
    whole draw once more. There is no retry loop here.

    Raises
    ------
    DrawValidationError
        If ``requester_id`` or ``requester_name`` is missing or too long.
    AlreadyParticipatedError
        If the requester already holds an allocation.
    NoStockAvailableError
        If every prize is out of stock.
    StockExhaustedError
        If the selected prize ran out before it could be claimed.
    DrawInternalError
        If the database fails.
    """

    requester_id = _clean_required(requester_id, "requester_id")
    requester_name = _clean_required(requester_name, "requester_name")
    origin_address = _clean_origin(origin_address)

    try:
        check_and_reserve(requester_id, origin_address)
        candidates = snapshot_available()
    except DatabaseError as exc:
        logger.exception("Failed to prepare draw for requester %s", requester_id)
        raise DrawInternalError(requester_id=requester_id) from exc

    candidate = select_weighted(candidates, rng or default_rng())

    if lottery_setting("ATOMIC_DRAW"):
        result = _claim_and_record(candidate.pk, requester_id, requester_name, origin_address)
    else:
        result = _claim_then_record(candidate.pk, requester_id, requester_name, origin_address)

    logger.info(
        "Allocated prize %s to requester %s (remaining=%s)",
        result.prize.pk,
        requester_id,
        result.prize.remaining,
    )
    return result


def _record_allocation(
    prize: Prize,
    requester_id: str,
    requester_name: str,
    origin_address: str,
) -> Allocation:
    return Allocation.objects.create(
        requester_id=requester_id,
        requester_name=requester_name,
        prize=prize,
        prize_name_zh=prize.name_zh,
        prize_name_en=prize.name_en,
        origin_address=origin_address,
    )


def _claim_and_record(
    prize_id: str,
    requester_id: str,
    requester_name: str,
    origin_address: str,
) -> DrawResult:
    try:
        with transaction.atomic():
            prize = try_decrement(prize_id)
            allocation = _record_allocation(prize, requester_id, requester_name, origin_address)
    except StockExhaustedError:
        logger.info("Requester %s lost the race for prize %s", requester_id, prize_id)
        raise
    except IntegrityError as exc:
        raise _duplicate_requester(prize_id, requester_id, exc) from exc
    except DatabaseError as exc:
        logger.exception(
            "Failed to allocate prize %s to requester %s; stock change rolled back",
            prize_id,
            requester_id,
        )
        raise DrawInternalError(prize_id=prize_id, requester_id=requester_id) from exc
    return DrawResult(allocation=allocation, prize=prize)


def _claim_then_record(
    prize_id: str,
    requester_id: str,
    requester_name: str,
    origin_address: str,
) -> DrawResult:
    try:
        prize = try_decrement(prize_id)
    except StockExhaustedError:
        logger.info("Requester %s lost the race for prize %s", requester_id, prize_id)
        raise
    except DatabaseError as exc:
        logger.exception("Failed to decrement prize %s for requester %s", prize_id, requester_id)
        raise DrawInternalError(prize_id=prize_id, requester_id=requester_id) from exc

    try:
        with transaction.atomic():
            allocation = _record_allocation(prize, requester_id, requester_name, origin_address)
    except IntegrityError as exc:
        _give_back(prize_id, requester_id)
        raise _duplicate_requester(prize_id, requester_id, exc) from exc
    except DatabaseError as exc:
        reconciliation_logger.error(
            "Orphaned decrement: prize %s lost one unit for requester %s "
            "but no allocation was recorded (%s)",
            prize_id,
            requester_id,
            exc,
        )
        raise DrawInternalError(prize_id=prize_id, requester_id=requester_id) from exc
    return DrawResult(allocation=allocation, prize=prize)


def _give_back(prize_id: str, requester_id: str) -> None:
    try:
        restored = restore_one(prize_id)
    except DatabaseError as exc:
        reconciliation_logger.error(
            "Orphaned decrement: failed to give back prize %s after duplicate requester %s (%s)",
            prize_id,
            requester_id,
            exc,
        )
        return
    if not restored:
        reconciliation_logger.error(
            "Orphaned decrement: prize %s was already full when giving back for requester %s",
            prize_id,
            requester_id,
        )


def _duplicate_requester(prize_id: str, requester_id: str, exc: IntegrityError) -> Exception:
    """Translate a failed allocation insert into the error to raise."""

    try:
        existing = (
            Allocation.objects.select_related("prize")
            .filter(requester_id=requester_id)
            .first()
        )
    except DatabaseError:
        existing = None
    if existing is None:
        logger.error(
            "Integrity error recording prize %s for requester %s: %s",
            prize_id,
            requester_id,
            exc,
        )
        return DrawInternalError(prize_id=prize_id, requester_id=requester_id)

    logger.warning(
        "Concurrent draw for requester %s rejected by unique constraint (prize %s)",
        requester_id,
        prize_id,
    )
    return AlreadyParticipatedError(existing)


def list_allocations() -> list[Allocation]:
    """Return every allocation, newest first."""

    return list(Allocation.objects.select_related("prize").order_by("-created_at", "-id"))


def delete_allocation(allocation_id: int) -> Allocation:
    """Remove one allocation and give its prize unit back to the pool."""

    with transaction.atomic():
        allocation = (
            Allocation.objects.select_for_update()
            .filter(pk=allocation_id)
            .first()
        )
        if allocation is None:
            raise AllocationNotFoundError()
        restored = restore_one(allocation.prize_id)
        allocation.delete()

    if not restored:
        logger.warning(
            "Deleted allocation %s but prize %s was already at its total",
            allocation_id,
            allocation.prize_id,
        )
    else:
        logger.info(
            "Deleted allocation %s of requester %s; prize %s restored by one",
            allocation_id,
            allocation.requester_id,
            allocation.prize_id,
        )
    return allocation


def reset_all() -> ResetSummary:
    """Clear the allocation log and refill every prize to its total."""

    with transaction.atomic():
        deleted, _ = Allocation.objects.all().delete()
        restored = restore_all()

    logger.warning("Lottery reset: %s allocations deleted, %s prizes restored", deleted, restored)
    return ResetSummary(allocations_deleted=deleted, prizes_restored=restored)


def find_inventory_drift() -> list[InventoryDrift]:
    """Report prizes where ``total - remaining`` differs from the allocation count."""

    drift = []
    for prize in Prize.objects.annotate(allocated=Count("allocations")).order_by("id"):
        row = InventoryDrift(
            prize_id=prize.pk,
            total=prize.total,
            remaining=prize.remaining,
            allocated=prize.allocated,
        )
        if row.drift != 0:
            drift.append(row)
    return drift
