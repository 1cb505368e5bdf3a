from django.core.management.base import BaseCommand

from storefront.services import cleanup_expired_access, list_expired_access


class Command(BaseCommand):
    help = "Deactivate digital access records that are past expiry or out of downloads."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many records would be deactivated.",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            count = list_expired_access().count()
            self.stdout.write(f"{count} digital access record(s) would be deactivated.")
            return

        count = cleanup_expired_access()
        self.stdout.write(self.style.SUCCESS(f"Deactivated {count} digital access record(s)."))
