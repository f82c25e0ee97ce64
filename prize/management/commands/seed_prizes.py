"""
Reload the prize catalog from a JSON file, or clear the lottery tables.

Prize file: a JSON array of objects with ``id``, ``name`` ({"zh", "en"}),
``total`` and optionally ``remaining``, ``image_icon``, ``image_photo``,
``photo_link``. Allocation file: a JSON array of objects with
``requester_id``, ``requester_name``, ``prize_id`` and optionally
``prize_name``, ``origin_address``, ``created_at`` (ISO 8601).

Stock is derived from the data: ``remaining`` becomes ``total`` minus the
imported allocations for that prize. Allocations beyond ``total`` are skipped,
and a declared ``remaining`` that disagrees aborts the import.
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ...models import Allocation, Prize


def _read_json_array(path: Path, encoding: str) -> List[Any]:
    if not path.exists():
        raise CommandError(f"JSON file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding=encoding))
    except UnicodeDecodeError as exc:
        raise CommandError(f"Failed to decode {path}. Consider using --encoding. Details: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CommandError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise CommandError(f"{path} must contain a JSON array.")
    return payload


def _localized(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict):
        return None
    zh = str(value.get("zh") or "").strip()
    en = str(value.get("en") or "").strip()
    if not zh or not en:
        return None
    return {"zh": zh, "en": en}


class Command(BaseCommand):
    help = "Load prizes (and optionally allocations) from JSON, or delete all lottery data."

    def add_arguments(self, parser):
        parser.add_argument(
            "--import",
            dest="prizes_path",
            help="Path to the prize JSON file; replaces the whole catalog.",
        )
        parser.add_argument(
            "--allocations",
            dest="allocations_path",
            help="Optional path to an allocation JSON file imported after the prizes.",
        )
        parser.add_argument(
            "--delete",
            action="store_true",
            help="Delete every prize and allocation.",
        )
        parser.add_argument(
            "--encoding",
            default="utf-8-sig",
            help="File encoding (default: utf-8-sig)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Parse files only, do not touch the database.",
        )

    def handle(self, *args, **options):
        prizes_path = options.get("prizes_path")
        if options.get("delete") == bool(prizes_path):
            raise CommandError("Use either --import <file> to load data or --delete to remove it.")

        if options.get("delete"):
            self._delete_all(options.get("dry_run", False))
            return

        encoding = options.get("encoding") or "utf-8-sig"
        declared_remaining: Dict[str, int] = {}
        prizes = self._parse_prizes(
            _read_json_array(Path(prizes_path).expanduser(), encoding),
            declared_remaining,
        )
        allocations: List[Allocation] = []
        allocations_path = options.get("allocations_path")
        if allocations_path:
            known = {prize.pk: prize for prize in prizes}
            allocations = self._parse_allocations(
                _read_json_array(Path(allocations_path).expanduser(), encoding),
                known,
            )
        self._derive_remaining(prizes, allocations, declared_remaining)

        if options.get("dry_run"):
            self.stdout.write(
                f"Dry-run: parsed {len(prizes)} prizes and {len(allocations)} allocations."
            )
            return

        try:
            with transaction.atomic():
                Allocation.objects.all().delete()
                Prize.objects.all().delete()
                Prize.objects.bulk_create(prizes)
                Allocation.objects.bulk_create(allocations)
        except DatabaseError as exc:
            raise CommandError(f"Failed to import data: {exc}") from exc

        self.stdout.write(
            self.style.SUCCESS(
                f"Imported {len(prizes)} prizes and {len(allocations)} allocations."
            )
        )

    def _delete_all(self, dry_run: bool) -> None:
        if dry_run:
            self.stdout.write(
                f"Dry-run: would delete {Prize.objects.count()} prizes and "
                f"{Allocation.objects.count()} allocations."
            )
            return
        try:
            with transaction.atomic():
                allocations_deleted, _ = Allocation.objects.all().delete()
                prizes_deleted, _ = Prize.objects.all().delete()
        except DatabaseError as exc:
            raise CommandError(f"Failed to delete data: {exc}") from exc
        self.stdout.write(
            self.style.SUCCESS(
                f"Deleted {prizes_deleted} prizes and {allocations_deleted} allocations."
            )
        )

    def _parse_prizes(self, rows: List[Any], declared_remaining: Dict[str, int]) -> List[Prize]:
        prizes: List[Prize] = []
        seen = set()
        for row in rows:
            if not isinstance(row, dict):
                self.stderr.write(f"Skipping non-object prize entry: {row!r}")
                continue
            prize_id = str(row.get("id") or "").strip()
            if not prize_id:
                self.stderr.write(f"Skipping prize without id: {row}")
                continue
            if prize_id in seen:
                self.stderr.write(f"Skipping duplicate prize id {prize_id}.")
                continue
            name = _localized(row.get("name"))
            if name is None:
                self.stderr.write(f"Skipping prize {prize_id}: name needs both zh and en.")
                continue
            try:
                total = max(int(row.get("total")), 0)
                remaining_raw = row.get("remaining")
                if remaining_raw is not None:
                    declared_remaining[prize_id] = int(remaining_raw)
            except (TypeError, ValueError):
                self.stderr.write(f"Skipping prize {prize_id} with invalid total/remaining: {row}")
                continue

            seen.add(prize_id)
            prizes.append(
                Prize(
                    id=prize_id,
                    name_zh=name["zh"],
                    name_en=name["en"],
                    total=total,
                    remaining=total,
                    image_icon=row.get("image_icon") or "",
                    image_photo=row.get("image_photo") or "",
                    photo_link=row.get("photo_link") or None,
                )
            )
        return prizes

    def _parse_allocations(self, rows: List[Any], prizes: Dict[str, Prize]) -> List[Allocation]:
        allocations: List[Allocation] = []
        seen = set()
        allocated: Counter = Counter()
        for row in rows:
            if not isinstance(row, dict):
                self.stderr.write(f"Skipping non-object allocation entry: {row!r}")
                continue
            requester_id = str(row.get("requester_id") or "").strip()
            requester_name = str(row.get("requester_name") or "").strip()
            prize = prizes.get(str(row.get("prize_id") or "").strip())
            if not requester_id or not requester_name:
                self.stderr.write(f"Skipping allocation without requester: {row}")
                continue
            if requester_id in seen:
                self.stderr.write(f"Skipping duplicate allocation for requester {requester_id}.")
                continue
            if prize is None:
                self.stderr.write(f"Skipping allocation of {requester_id}: unknown prize_id.")
                continue
            if allocated[prize.pk] >= prize.total:
                self.stderr.write(
                    f"Skipping allocation of {requester_id}: prize {prize.pk} has only {prize.total} in total."
                )
                continue

            name = _localized(row.get("prize_name")) or prize.display_name
            try:
                created_at = parse_datetime(str(row.get("created_at") or "")) or timezone.now()
            except ValueError:
                self.stderr.write(f"Allocation of {requester_id} has an invalid created_at; using now.")
                created_at = timezone.now()
            if timezone.is_naive(created_at):
                created_at = timezone.make_aware(created_at)

            seen.add(requester_id)
            allocated[prize.pk] += 1
            allocations.append(
                Allocation(
                    requester_id=requester_id,
                    requester_name=requester_name,
                    prize=prize,
                    prize_name_zh=name["zh"],
                    prize_name_en=name["en"],
                    origin_address=str(row.get("origin_address") or "").strip(),
                    created_at=created_at,
                )
            )
        return allocations

    def _derive_remaining(
        self,
        prizes: List[Prize],
        allocations: List[Allocation],
        declared_remaining: Dict[str, int],
    ) -> None:
        """Set ``remaining = total - allocated`` and reject files that state otherwise."""
        allocated = Counter(allocation.prize_id for allocation in allocations)
        mismatches = []
        for prize in prizes:
            prize.remaining = prize.total - allocated[prize.pk]
            declared = declared_remaining.get(prize.pk)
            if declared is not None and declared != prize.remaining:
                mismatches.append(
                    f"{prize.pk} (remaining={declared}, expected {prize.remaining} "
                    f"for total={prize.total} and {allocated[prize.pk]} allocations)"
                )
        if mismatches:
            raise CommandError(
                "Stock does not match the allocation records: " + "; ".join(mismatches)
            )
