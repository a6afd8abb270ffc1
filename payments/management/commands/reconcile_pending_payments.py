import time
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from payments.exceptions import PaymentError
from payments.services import build_reconciler


class Command(BaseCommand):
    help = "Poll MercadoPago for pending payments and update their status locally"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=5)

    def handle(self, *args, **opts):
        reconciler = build_reconciler()
        cutoff = timezone.now() - timedelta(minutes=opts["older_than_minutes"])
        orders = reconciler.ledger.list_stale_pending(cutoff, limit=opts["max"])

        if not orders:
            self.stdout.write(self.style.SUCCESS("No pending payments to reconcile."))
            return

        updated = 0
        for o in orders:
            try:
                result = reconciler.sync_order(o.id)
            except PaymentError as e:
                self.stdout.write(self.style.WARNING(f"{o.id}: {e.details or e.error}"))
            else:
                if result.status != o.status:
                    updated += 1
                    self.stdout.write(self.style.SUCCESS(f"Updated {o.id} -> {result.status}"))
                else:
                    self.stdout.write(f"{o.id}: still {result.status}")
            if opts["sleep"]:
                time.sleep(opts["sleep"])

        self.stdout.write(self.style.SUCCESS(f"Checked {len(orders)}, updated {updated} payments."))
