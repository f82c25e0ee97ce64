from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from ...services import find_inventory_drift


class Command(BaseCommand):
    help = "Compare each prize's spent stock against its allocation records."

    def handle(self, *args, **options):
        drift = find_inventory_drift()
        if not drift:
            self.stdout.write(self.style.SUCCESS("Inventory check: OK (no differences)."))
            return

        self.stdout.write(self.style.WARNING("Inventory check: FAILED. Differences detected:"))
        for row in drift:
            self.stdout.write(
                f"- {row.prize_id}: total={row.total} remaining={row.remaining} "
                f"allocated={row.allocated} drift={row.drift:+d}"
            )
        raise CommandError(f"{len(drift)} prize(s) need reconciliation.")
