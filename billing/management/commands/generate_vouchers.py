"""
Django management command to print a batch of vouchers
Run with: python manage.py generate_vouchers <package_id> --quantity 20
"""

from django.core.management.base import BaseCommand, CommandError

from billing.activation import issue_vouchers
from billing.exceptions import ValidationError


class Command(BaseCommand):
    help = "Generate single-use voucher codes for a package"

    def add_arguments(self, parser):
        parser.add_argument("package_id", type=int)
        parser.add_argument(
            "--quantity",
            type=int,
            default=10,
            help="Number of vouchers (clamped to VOUCHER_BATCH_LIMIT)",
        )

    def handle(self, *args, **options):
        try:
            vouchers = issue_vouchers(options["package_id"], options["quantity"])
        except (ValidationError, RuntimeError) as e:
            raise CommandError(str(getattr(e, "detail", e)))

        for voucher in vouchers:
            self.stdout.write(voucher.code)
        self.stdout.write(
            self.style.SUCCESS(
                f"Generated {len(vouchers)} voucher(s) for {vouchers[0].package.name}"
            )
        )
