# payments/management/commands/run_abandonment_sweeper.py

from __future__ import annotations

import time

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from payments.services.abandonment_sweeper import run_sweep


class Command(BaseCommand):
    help = (
        "Reclaim abandoned online checkouts: cancel stale unpaid orders, "
        "release their stock and expire payment intents."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single sweep and exit.",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=None,
            help="Seconds between sweeps (default: ORDERS_SWEEP_INTERVAL_SECONDS).",
        )

    def handle(self, *args, **options):
        interval = options.get("interval")
        if interval is None:
            interval = int(getattr(settings, "ORDERS_SWEEP_INTERVAL_SECONDS", 300))
        if interval <= 0:
            raise CommandError("--interval must be a positive integer.")

        if options.get("once"):
            self._sweep_once()
            return

        self.stdout.write(self.style.MIGRATE_HEADING(f"Abandonment sweeper every {interval}s"))
        try:
            while True:
                self._sweep_once()
                time.sleep(interval)
        except KeyboardInterrupt:
            self.stdout.write("Sweeper stopped.")

    def _sweep_once(self):
        result = run_sweep()

        if not result.lock_acquired:
            self.stdout.write(self.style.WARNING("Another sweep holds the lock; skipped."))
            return

        style = self.style.SUCCESS if not result.errors else self.style.WARNING
        self.stdout.write(
            style(
                f"Abandoned: {result.orders_abandoned} | intents expired: {result.intents_expired} | "
                f"units released: {result.stock_units_released} | skipped: {result.orders_skipped} | "
                f"errors: {len(result.errors)}"
            )
        )
        for err in result.errors:
            self.stderr.write(self.style.ERROR(f"  {err}"))
