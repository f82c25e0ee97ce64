from __future__ import annotations

from typing import Optional

from django.db.models import Q

from .conf import lottery_setting
from .exceptions import AlreadyParticipatedError
from .models import Allocation


def find_prior_allocation(
    requester_id: str,
    origin_address: Optional[str] = None,
) -> Optional[Allocation]:
    """Return the allocation that makes ``requester_id`` ineligible, if any.

    With ``CHECK_ORIGIN_ADDRESS`` enabled an allocation won from the same
    origin address also counts.
    """

    condition = Q(requester_id=requester_id)
    if origin_address and lottery_setting("CHECK_ORIGIN_ADDRESS"):
        condition |= Q(origin_address=origin_address)
    return (
        Allocation.objects.select_related("prize")
        .filter(condition)
        .order_by("created_at", "id")
        .first()
    )


def check_and_reserve(requester_id: str, origin_address: Optional[str] = None) -> None:
    """Raise ``AlreadyParticipatedError`` when the requester already won.

    This is only a fast path for the common case. Two concurrent requests for
    the same requester can both pass it; the unique index on
    ``Allocation.requester_id`` rejects the second insert.
    """

    prior = find_prior_allocation(requester_id, origin_address)
    if prior is not None:
        raise AlreadyParticipatedError(prior)
