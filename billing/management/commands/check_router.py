"""
Django management command to verify the router connection
Run with: python manage.py check_router
"""

from django.core.management.base import BaseCommand

from billing.mikrotik import get_provisioner


class Command(BaseCommand):
    help = "Connect to the hotspot router and report the active user count"

    def handle(self, *args, **options):
        provisioner = get_provisioner()
        self.stdout.write(f"Checking router ({provisioner.name})...")

        result = provisioner.check_connection()

        if result["success"]:
            self.stdout.write(self.style.SUCCESS(f"Connected to {result['host']}"))
            if result.get("version"):
                self.stdout.write(f"  RouterOS version: {result['version']}")
                self.stdout.write(f"  Uptime: {result.get('uptime')}")
            self.stdout.write(f"  Active hotspot users: {result['active_users']}")
        else:
            self.stdout.write(
                self.style.ERROR(f"Cannot connect to {result['host']}: {result.get('error')}")
            )
