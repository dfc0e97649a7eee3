# notifications/management/commands/deliver_notifications.py

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from notifications.services.outbox import deliver_pending


class Command(BaseCommand):
    help = "Deliver pending notification outbox rows through the configured dispatcher."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum rows to attempt in this run (default: 100)",
        )

    def handle(self, *args, **options):
        limit = int(options.get("limit") or 0)
        if limit <= 0:
            raise CommandError("--limit must be a positive integer.")

        result = deliver_pending(limit=limit)

        self.stdout.write(
            self.style.SUCCESS(
                f"Delivered: {result.delivered} | retry later: {result.retried} | "
                f"failed: {result.failed}"
            )
        )
