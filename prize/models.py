from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Prize(models.Model):
    """A prize category with a fixed total and a remaining stock counter."""

    id = models.CharField(max_length=64, primary_key=True)
    name_zh = models.CharField(max_length=255)
    name_en = models.CharField(max_length=255)
    total = models.PositiveIntegerField(default=0)
    remaining = models.PositiveIntegerField(default=0)
    image_icon = models.CharField(max_length=512, blank=True)
    image_photo = models.CharField(max_length=512, blank=True)
    photo_link = models.CharField(max_length=512, blank=True, null=True, default=None)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining__lte=F("total")),
                name="prize_remaining_within_total",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name_en} ({self.remaining}/{self.total})"

    @property
    def display_name(self) -> dict[str, str]:
        return {"zh": self.name_zh, "en": self.name_en}

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.display_name,
            "total": self.total,
            "remaining": self.remaining,
            "image_icon": self.image_icon,
            "image_photo": self.image_photo,
            "photo_link": self.photo_link,
        }


class Allocation(models.Model):
    """Durable record of a requester winning a prize.

    The prize names are copied at allocation time so the history keeps
    displaying what the requester actually saw, even after a catalog edit.
    """

    requester_id = models.CharField(max_length=128, unique=True)
    requester_name = models.CharField(max_length=128)
    prize = models.ForeignKey(
        Prize,
        on_delete=models.PROTECT,
        related_name="allocations",
    )
    prize_name_zh = models.CharField(max_length=255)
    prize_name_en = models.CharField(max_length=255)
    origin_address = models.CharField(max_length=64, blank=True, db_index=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.requester_name} -> {self.prize_name_en}"

    @property
    def prize_name(self) -> dict[str, str]:
        return {"zh": self.prize_name_zh, "en": self.prize_name_en}

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "prize_id": self.prize_id,
            "prize_name": self.prize_name,
            "origin_address": self.origin_address or None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
