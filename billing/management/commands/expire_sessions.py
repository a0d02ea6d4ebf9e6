"""
Django management command to expire finished sessions
Run with: python manage.py expire_sessions
"""

from django.core.management.base import BaseCommand

from billing.tasks import expire_sessions


class Command(BaseCommand):
    help = "Deactivate sessions past their expiry and remove their router accounts"

    def handle(self, *args, **options):
        self.stdout.write("Checking for expired sessions...")

        result = expire_sessions()

        if not result["success"]:
            self.stdout.write(self.style.ERROR(f"Error: {result.get('error', 'Unknown error')}"))
            return

        self.stdout.write(self.style.SUCCESS(f"Expired {result['expired']} session(s)"))
        if result["router_failures"]:
            self.stdout.write(
                self.style.WARNING(
                    f"Router cleanup failed for {result['router_failures']} session(s)"
                )
            )
