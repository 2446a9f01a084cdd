"""Management command: release stock held by expired unpaid orders."""

from __future__ import annotations

import json
from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError

from modules.consistency.reaper import build_reservation_reaper
from modules.core.middleware import bind_correlation_id


class Command(BaseCommand):
    help = "Cancel pending orders older than the reservation window and restock them."

    def add_arguments(self, parser):
        parser.add_argument(
            "--ttl-hours",
            type=float,
            default=None,
            help="Override the reservation window (hours).",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print the full result as JSON.",
        )

    def handle(self, *args, **options):
        ttl_hours = options["ttl_hours"]
        if ttl_hours is not None and ttl_hours <= 0:
            raise CommandError("--ttl-hours must be positive.")

        bind_correlation_id()
        overrides = {}
        if ttl_hours is not None:
            overrides["ttl"] = timedelta(hours=ttl_hours)
        result = build_reservation_reaper(**overrides).sweep()

        if options["json"]:
            self.stdout.write(json.dumps(result.model_dump(mode="json"), indent=2))
            return
        self.stdout.write(
            self.style.SUCCESS(
                f"Cancelled {result.orders_cancelled} order(s), "
                f"released {result.units_released} unit(s)."
            )
        )
        if result.skipped:
            self.stdout.write(f"Skipped {len(result.skipped)} order(s).")
        if result.failed:
            self.stderr.write(
                self.style.WARNING(f"Failed on {len(result.failed)} order(s); see logs.")
            )
