from django.core.management.base import BaseCommand, CommandError

from apps.auctions.logic.settle_auction import settle_auction, settle_due_auctions
from apps.auctions.models import Auction
from config.app_settings.logic import load_auction_settings
from core.errors import ReconciliationRequired


class Command(BaseCommand):
    help = "Settle auctions whose end time has passed. Safe to run concurrently and repeatedly."

    def add_arguments(self, parser):
        parser.add_argument("--auction-id", help="Settle a single auction (public id).")
        parser.add_argument("--limit", type=int, default=None, help="Max auctions per run.")
        parser.add_argument(
            "--strict",
            action="store_true",
            help="Exit non-zero if any deposit needs manual reconciliation.",
        )

    def handle(self, *args, **options):
        config = load_auction_settings()

        if options["auction_id"]:
            auction = Auction.objects.filter(public_id=options["auction_id"]).first()
            if auction is None:
                raise CommandError(f"Auction {options['auction_id']} not found.")
            summaries = [settle_auction(auction.pk, config=config)]
        else:
            summaries = settle_due_auctions(config=config, limit=options["limit"])

        processed = [s for s in summaries if not s.skipped]
        for s in processed:
            self.stdout.write(
                f"{s.auction_id}: {s.outcome} "
                f"(captured={s.captured}, cancelled={s.cancelled}, failed={s.failed})"
            )

        self.stdout.write(self.style.SUCCESS(f"Processed {len(processed)} auction(s)."))

        if options["strict"]:
            for s in processed:
                try:
                    s.raise_for_reconciliation()
                except ReconciliationRequired as exc:
                    raise CommandError(f"Reconciliation required: {exc.detail}")
