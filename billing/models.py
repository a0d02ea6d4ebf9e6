"""
Database models for FASTNET Wi-Fi Hotspot Billing

Four ledgers back the activation pipeline: packages, payments, sessions and
vouchers. Every status-changing method here is a single conditional UPDATE so
that concurrent webhook deliveries, status polls and redemptions racing on
the same row have exactly one winner.
"""

import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import IntegrityError, models
from django.utils import timezone

logger = logging.getLogger(__name__)

# Unambiguous alphabet: no I, O, 0 or 1
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def random_code(length=8):
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class Package(models.Model):
    """
    Time-boxed data package sold on the captive portal.
    Never hard-deleted once a payment or voucher references it.
    """

    name = models.CharField(max_length=50)
    duration_hours = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.PositiveIntegerField(
        validators=[MinValueValidator(1)], help_text="Whole currency units"
    )
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["price"]

    def __str__(self):
        return f"{self.name} - {self.duration_hours}hrs - {self.price}"

    @property
    def duration(self):
        return timedelta(hours=self.duration_hours)

    def deactivate(self):
        """Soft delete: hide from the catalog, keep history intact."""
        self.is_active = False
        self.save(update_fields=["is_active"])


class Payment(models.Model):
    """
    Mobile-money payment for a package, keyed by tx_ref.
    tx_ref is the idempotency key for webhook and poll transitions.
    """

    STATUS_PENDING = "pending"
    STATUS_SUCCESSFUL = "successful"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_SUCCESSFUL, "Successful"),
        (STATUS_FAILED, "Failed"),
    ]

    tx_ref = models.CharField(max_length=100, unique=True)
    provider_ref = models.CharField(max_length=100, blank=True, default="")
    phone = models.CharField(max_length=15, db_index=True)
    amount = models.PositiveIntegerField()
    package = models.ForeignKey(
        Package, on_delete=models.PROTECT, related_name="payments"
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True
    )
    mac_address = models.CharField(max_length=17, blank=True, default="")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.tx_ref} - {self.phone} - {self.amount} - {self.status}"

    def mark_successful(self, provider_ref=None):
        """
        Flip pending -> successful, stamping paid_at and expires_at.

        Returns True only for the caller that performed the transition.
        Everyone else (duplicate webhook, racing poll) gets False and must
        not activate.
        """
        now = timezone.now()
        expires_at = now + timedelta(hours=self.package.duration_hours)
        fields = {
            "status": self.STATUS_SUCCESSFUL,
            "paid_at": now,
            "expires_at": expires_at,
        }
        if provider_ref:
            fields["provider_ref"] = provider_ref

        updated = Payment.objects.filter(
            pk=self.pk, status=self.STATUS_PENDING
        ).update(**fields)

        self.refresh_from_db()
        if updated:
            logger.info(f"Payment {self.tx_ref} marked successful at {now}")
        return bool(updated)

    def mark_failed(self, provider_ref=None):
        """Flip pending -> failed. A successful payment is never downgraded."""
        fields = {"status": self.STATUS_FAILED}
        if provider_ref:
            fields["provider_ref"] = provider_ref

        updated = Payment.objects.filter(
            pk=self.pk, status=self.STATUS_PENDING
        ).update(**fields)

        self.refresh_from_db()
        if updated:
            logger.info(f"Payment {self.tx_ref} marked failed")
        return bool(updated)


class VoucherQuerySet(models.QuerySet):
    def get_by_code(self, code):
        return self.select_related("package").get(code=code.strip().upper())


class Voucher(models.Model):
    """
    Pre-generated single-use code redeemable for a package.
    """

    code = models.CharField(max_length=16, unique=True)
    package = models.ForeignKey(
        Package, on_delete=models.PROTECT, related_name="vouchers"
    )
    is_used = models.BooleanField(default=False, db_index=True)
    used_by = models.CharField(max_length=17, blank=True, default="")
    used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = VoucherQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.code} - {self.package.name} - {'Used' if self.is_used else 'Available'}"

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def claim(self, used_by):
        """
        Mark the voucher used if, and only if, it is still unused.

        Returns False when another redemption got there first.
        """
        now = timezone.now()
        updated = Voucher.objects.filter(pk=self.pk, is_used=False).update(
            is_used=True, used_by=used_by or "unknown", used_at=now
        )
        self.refresh_from_db()
        return bool(updated)

    @staticmethod
    def generate_code(length=None, max_attempts=None):
        """
        Generate a code not yet present in the ledger.

        Raises RuntimeError after max_attempts collisions.
        """
        length = length or getattr(settings, "VOUCHER_CODE_LENGTH", 8)
        max_attempts = max_attempts or getattr(settings, "VOUCHER_MAX_ATTEMPTS", 10)

        for _ in range(max_attempts):
            code = random_code(length)
            if not Voucher.objects.filter(code=code).exists():
                return code

        raise RuntimeError(
            f"Could not generate a unique voucher code after {max_attempts} attempts"
        )

    @classmethod
    def issue(cls, package, quantity=1):
        """Create ``quantity`` unused vouchers for a package."""
        vouchers = []
        for _ in range(quantity):
            # The unique constraint is the final arbiter if two issuers collide
            for attempt in range(getattr(settings, "VOUCHER_MAX_ATTEMPTS", 10)):
                try:
                    vouchers.append(
                        cls.objects.create(code=cls.generate_code(), package=package)
                    )
                    break
                except IntegrityError:
                    logger.warning(f"Voucher code collision on insert (attempt {attempt + 1})")
            else:
                raise RuntimeError("Could not insert a unique voucher code")
        return vouchers


class SessionQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True, expires_at__gt=timezone.now())

    def due_for_expiry(self):
        return self.filter(is_active=True, expires_at__lte=timezone.now())


class Session(models.Model):
    """
    Granted, time-bounded network access. Source of truth for who is online.

    Exactly one of ``payment`` / ``voucher`` is set; the one-to-one links make
    "at most one session per payment or voucher" a database guarantee.
    """

    payment = models.OneToOneField(
        Payment,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="session",
    )
    voucher = models.OneToOneField(
        Voucher,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="session",
    )
    mac_address = models.CharField(max_length=17, default="unknown")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    username = models.CharField(max_length=64, db_index=True)
    password = models.CharField(max_length=32)
    package_name = models.CharField(max_length=50, blank=True)
    started_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)
    is_active = models.BooleanField(default=True)

    objects = SessionQuerySet.as_manager()

    class Meta:
        ordering = ["-started_at"]

    def __str__(self):
        return f"{self.username} - {self.mac_address} - {'Active' if self.is_active else 'Ended'}"

    @property
    def payment_ref_id(self):
        # Voucher sessions report payment 0
        return self.payment_id or 0

    def deactivate(self):
        """End the session. Returns False if it had already ended."""
        updated = Session.objects.filter(pk=self.pk, is_active=True).update(
            is_active=False
        )
        self.refresh_from_db()
        return bool(updated)

    def credentials(self):
        return {
            "username": self.username,
            "password": self.password,
            "package_name": self.package_name,
            "expires_at": self.expires_at,
        }


class PaymentWebhook(models.Model):
    """
    Log of payment webhooks received from the provider.
    Tracks every authenticated delivery for debugging and audit purposes.
    """

    PROCESSING_STATUS_CHOICES = [
        ("received", "Received"),
        ("processed", "Processed Successfully"),
        ("failed", "Processing Failed"),
        ("ignored", "Ignored"),
    ]

    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processing_status = models.CharField(
        max_length=20, choices=PROCESSING_STATUS_CHOICES, default="received"
    )
    processing_error = models.TextField(blank=True)

    provider = models.CharField(max_length=20)
    tx_ref = models.CharField(max_length=100, db_index=True, blank=True)
    payment_status = models.CharField(max_length=50, blank=True)
    amount = models.PositiveIntegerField(null=True, blank=True)
    raw_payload = models.JSONField()

    payment = models.ForeignKey(
        Payment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_logs",
    )
    source_ip = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ["-received_at"]
        indexes = [
            models.Index(
                fields=["tx_ref", "-received_at"], name="billing_pay_tx_ref_3c1f0e_idx"
            ),
            models.Index(
                fields=["processing_status", "-received_at"],
                name="billing_pay_process_8a2d4b_idx",
            ),
        ]

    def __str__(self):
        return f"{self.tx_ref} - {self.payment_status} - {self.processing_status}"

    def mark_processed(self, payment=None):
        """Mark webhook as successfully processed"""
        self.processing_status = "processed"
        self.processed_at = timezone.now()
        if payment:
            self.payment = payment
        self.save()

    def mark_failed(self, error_message):
        """Mark webhook processing as failed"""
        self.processing_status = "failed"
        self.processed_at = timezone.now()
        self.processing_error = error_message
        self.save()

    def mark_ignored(self, reason, payment=None):
        """Mark webhook as ignored (e.g., duplicate, unknown reference)"""
        self.processing_status = "ignored"
        self.processed_at = timezone.now()
        self.processing_error = reason
        if payment:
            self.payment = payment
        self.save()
