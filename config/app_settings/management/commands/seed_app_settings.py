from django.core.management.base import BaseCommand
from django.db import transaction

from config.app_settings.logic import default_setting_rows
from config.app_settings.models import AppSetting


class Command(BaseCommand):
    help = "Seed default auction settings. Safe to run multiple times; existing values are kept unless --reset."

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Overwrite existing values with defaults.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        created = 0
        for row in default_setting_rows():
            if options["reset"]:
                _, was_created = AppSetting.objects.update_or_create(
                    key=row["key"],
                    defaults={"value": row["value"], "category": row["category"]},
                )
            else:
                _, was_created = AppSetting.objects.get_or_create(
                    key=row["key"],
                    defaults={"value": row["value"], "category": row["category"]},
                )
            created += int(was_created)

        self.stdout.write(self.style.SUCCESS(f"App settings seeded ({created} created)."))
