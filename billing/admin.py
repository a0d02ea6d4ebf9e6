"""
Django admin configuration for FASTNET Wi-Fi Billing with Jazzmin
"""

import csv

from django.contrib import admin
from django.http import HttpResponse
from django.utils.html import format_html

from .activation import ActivationPipeline
from .models import Package, Payment, PaymentWebhook, Session, Voucher


def badge(color, text):
    return format_html(
        '<span style="background: {}; color: white; padding: 2px 8px; border-radius: 4px; text-transform: uppercase;">{}</span>',
        color,
        text,
    )


def duration_text(hours):
    """Display duration in human-readable format"""
    if hours >= 24:
        days = hours // 24
        return f"{days} day{'s' if days > 1 else ''}"
    return f"{hours}h"


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "duration_display",
        "price_formatted",
        "is_active_badge",
        "payment_count",
        "created_at",
    ]
    list_filter = ["is_active"]
    search_fields = ["name", "description"]
    ordering = ["price"]
    actions = ["deactivate_packages"]

    def duration_display(self, obj):
        return duration_text(obj.duration_hours)

    duration_display.short_description = "Duration"

    def price_formatted(self, obj):
        return f"UGX {obj.price:,}"

    price_formatted.short_description = "Price"

    def is_active_badge(self, obj):
        return badge("green", "Active") if obj.is_active else badge("gray", "Inactive")

    is_active_badge.short_description = "Status"

    def payment_count(self, obj):
        return obj.payments.count()

    payment_count.short_description = "Payments"

    def deactivate_packages(self, request, queryset):
        """Hide packages from the portal without deleting history"""
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} packages deactivated.")

    deactivate_packages.short_description = "Deactivate selected packages"

    def has_delete_permission(self, request, obj=None):
        # Referenced packages are protected; deactivate instead
        if obj is not None and (obj.payments.exists() or obj.vouchers.exists()):
            return False
        return super().has_delete_permission(request, obj)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "tx_ref",
        "phone",
        "package",
        "amount",
        "status_badge",
        "created_at",
        "paid_at",
        "expires_at",
    ]
    list_filter = ["status", "package", "created_at"]
    search_fields = ["tx_ref", "provider_ref", "phone", "mac_address"]
    readonly_fields = [
        "tx_ref",
        "provider_ref",
        "phone",
        "amount",
        "package",
        "status",
        "mac_address",
        "ip_address",
        "created_at",
        "paid_at",
        "expires_at",
    ]
    ordering = ["-created_at"]

    def status_badge(self, obj):
        colors = {"pending": "orange", "successful": "green", "failed": "red"}
        return badge(colors.get(obj.status, "gray"), obj.status)

    status_badge.short_description = "Status"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("package")


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = [
        "username",
        "mac_address",
        "ip_address",
        "package_name",
        "source",
        "started_at",
        "expires_at",
        "active_badge",
    ]
    list_filter = ["is_active", "package_name", "started_at"]
    search_fields = ["username", "mac_address", "payment__tx_ref", "voucher__code"]
    readonly_fields = [
        "payment",
        "voucher",
        "username",
        "password",
        "package_name",
        "started_at",
        "expires_at",
        "is_active",
    ]
    ordering = ["-started_at"]
    actions = ["disconnect_sessions"]

    def source(self, obj):
        if obj.payment_id:
            return f"Payment {obj.payment.tx_ref}"
        if obj.voucher_id:
            return f"Voucher {obj.voucher.code}"
        return "-"

    source.short_description = "Source"

    def active_badge(self, obj):
        return badge("green", "Active") if obj.is_active else badge("gray", "Ended")

    active_badge.short_description = "Status"

    def disconnect_sessions(self, request, queryset):
        """End selected sessions and remove them from the router"""
        pipeline = ActivationPipeline()
        count = 0
        for session in queryset.filter(is_active=True):
            pipeline.disconnect_session(session.pk)
            count += 1
        self.message_user(request, f"{count} sessions disconnected.")

    disconnect_sessions.short_description = "Disconnect selected sessions"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("payment", "voucher")


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = [
        "code",
        "package",
        "status_badge",
        "created_at",
        "used_at",
        "used_by",
    ]
    list_filter = ["is_used", "package", "created_at"]
    search_fields = ["code", "used_by"]
    readonly_fields = ["code", "created_at", "used_at", "used_by", "is_used"]
    ordering = ["-created_at"]

    actions = ["export_vouchers_csv"]

    def status_badge(self, obj):
        """Display voucher status with badges"""
        if obj.is_used:
            return badge("red", "Used")
        return badge("green", "Available")

    status_badge.short_description = "Status"

    def save_model(self, request, obj, form, change):
        if not obj.code:
            obj.code = Voucher.generate_code()
        super().save_model(request, obj, form, change)

    def export_vouchers_csv(self, request, queryset):  # noqa: ARG002
        """Export selected vouchers to CSV"""
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="vouchers.csv"'

        writer = csv.writer(response)
        writer.writerow(["Code", "Package", "Price", "Status", "Created At", "Used At"])

        for voucher in queryset.select_related("package"):
            writer.writerow(
                [
                    voucher.code,
                    voucher.package.name,
                    voucher.package.price,
                    "Used" if voucher.is_used else "Available",
                    voucher.created_at.strftime("%Y-%m-%d %H:%M"),
                    (
                        voucher.used_at.strftime("%Y-%m-%d %H:%M")
                        if voucher.used_at
                        else "-"
                    ),
                ]
            )

        return response

    export_vouchers_csv.short_description = "Export selected vouchers to CSV"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("package")


@admin.register(PaymentWebhook)
class PaymentWebhookAdmin(admin.ModelAdmin):
    list_display = [
        "tx_ref",
        "provider",
        "processing_status_badge",
        "payment_status",
        "amount",
        "received_at",
        "processed_at",
    ]
    list_filter = ["provider", "processing_status", "payment_status", "received_at"]
    search_fields = ["tx_ref", "source_ip"]
    readonly_fields = [
        "received_at",
        "processed_at",
        "raw_payload",
        "source_ip",
    ]
    ordering = ["-received_at"]

    fieldsets = (
        (
            "Webhook Information",
            {
                "fields": (
                    "provider",
                    "processing_status",
                    "processing_error",
                    "received_at",
                    "processed_at",
                )
            },
        ),
        (
            "Payment Data",
            {"fields": ("tx_ref", "payment_status", "amount", "payment")},
        ),
        ("Request Metadata", {"fields": ("source_ip",), "classes": ("collapse",)}),
        ("Raw Data", {"fields": ("raw_payload",), "classes": ("collapse",)}),
    )

    def processing_status_badge(self, obj):
        """Display processing status with color badges"""
        colors = {
            "received": "blue",
            "processed": "green",
            "failed": "red",
            "ignored": "gray",
        }
        return badge(colors.get(obj.processing_status, "gray"), obj.processing_status)

    processing_status_badge.short_description = "Processing Status"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("payment")
