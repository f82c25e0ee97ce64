from typing import Optional

from prize.models import Prize


def create_prize(prize_id: str, total: int, remaining: Optional[int] = None) -> Prize:
    return Prize.objects.create(
        id=prize_id,
        name_zh=f"獎品 {prize_id}",
        name_en=f"Prize {prize_id}",
        total=total,
        remaining=total if remaining is None else remaining,
    )
