# Seed the default package catalog

from django.db import migrations

DEFAULT_PACKAGES = [
    ("1 DAY", 24, 1000, "24 hours unlimited internet"),
    ("3 DAYS", 72, 2500, "3 days unlimited internet"),
    ("WEEKLY", 168, 6000, "7 days unlimited internet"),
    ("MONTHLY", 720, 25000, "30 days unlimited internet"),
]


def seed_packages(apps, schema_editor):
    Package = apps.get_model("billing", "Package")
    if Package.objects.exists():
        return
    for name, hours, price, description in DEFAULT_PACKAGES:
        Package.objects.create(
            name=name, duration_hours=hours, price=price, description=description
        )


def unseed_packages(apps, schema_editor):
    Package = apps.get_model("billing", "Package")
    Package.objects.filter(
        name__in=[name for name, *_ in DEFAULT_PACKAGES],
        payments__isnull=True,
        vouchers__isnull=True,
    ).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('billing', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_packages, unseed_packages),
    ]
