from __future__ import annotations

import random
from typing import Any

from django.conf import settings

DEFAULTS = {
    "CHECK_ORIGIN_ADDRESS": False,
    "ATOMIC_DRAW": True,
    "RANDOM_SEED": None,
}

_seeded_rng: random.Random | None = None
_seeded_with: Any = None


def lottery_setting(name: str) -> Any:
    """Read a key of ``settings.LOTTERY`` at call time, falling back to defaults."""

    configured = getattr(settings, "LOTTERY", None) or {}
    return configured.get(name, DEFAULTS[name])


def default_rng() -> random.Random | None:
    """Return a shared seeded generator when ``RANDOM_SEED`` is configured.

    ``None`` means the module-level ``random`` functions are used.
    """

    global _seeded_rng, _seeded_with

    seed = lottery_setting("RANDOM_SEED")
    if seed in (None, ""):
        return None
    if _seeded_rng is None or _seeded_with != seed:
        _seeded_rng = random.Random(seed)
        _seeded_with = seed
    return _seeded_rng
