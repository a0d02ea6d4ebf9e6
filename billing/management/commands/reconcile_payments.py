"""
Django management command to activate paid-but-unprovisioned payments
Run with: python manage.py reconcile_payments
"""

from django.core.management.base import BaseCommand

from billing.tasks import reconcile_payments


class Command(BaseCommand):
    help = "Create sessions for successful payments that have none"

    def handle(self, *args, **options):
        result = reconcile_payments()

        if not result["success"]:
            self.stdout.write(self.style.ERROR(f"Error: {result.get('error', 'Unknown error')}"))
            return

        self.stdout.write(self.style.SUCCESS(f"Activated {result['activated']} payment(s)"))
        if result["failed"]:
            self.stdout.write(self.style.WARNING(f"{result['failed']} payment(s) could not be activated"))
