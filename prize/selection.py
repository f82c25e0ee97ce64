from __future__ import annotations

import random
from bisect import bisect_right
from itertools import accumulate
from typing import Optional, Protocol, Sequence, TypeVar

from .exceptions import NoStockAvailableError


class Stocked(Protocol):
    remaining: int


StockedT = TypeVar("StockedT", bound=Stocked)


def select_weighted(
    candidates: Sequence[StockedT],
    rng: Optional[random.Random] = None,
) -> StockedT:
    """Pick one candidate with probability proportional to its ``remaining``.

    ``candidates`` is walked in the given order, so a caller that passes an
    id-ordered snapshot together with a seeded ``rng`` gets reproducible
    picks. Candidates without stock carry no weight and are never chosen.

    Raises
    ------
    NoStockAvailableError
        If ``candidates`` is empty or their combined stock is zero.
    """

    weights = [max(int(candidate.remaining), 0) for candidate in candidates]
    cumulative = list(accumulate(weights))
    total_weight = cumulative[-1] if cumulative else 0
    if total_weight <= 0:
        raise NoStockAvailableError()

    point = (rng or random).randrange(total_weight)
    # First cumulative sum strictly greater than ``point``.
    return candidates[bisect_right(cumulative, point)]
