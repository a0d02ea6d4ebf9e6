"""
API views for FASTNET Wi-Fi Billing System
"""

import logging

from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .activation import ActivationPipeline, issue_vouchers
from .exceptions import NotFoundError, ValidationError
from .mikrotik import get_provisioner
from .models import Package, Voucher
from .permissions import SimpleAdminTokenPermission
from .serializers import (
    GenerateVouchersSerializer,
    InitiatePaymentSerializer,
    PackageSerializer,
    RedeemVoucherSerializer,
    VoucherSerializer,
)
from .utils import get_client_ip

logger = logging.getLogger(__name__)


def get_pipeline():
    """Activation pipeline wired with the configured adapters."""
    return ActivationPipeline()


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    return Response(
        {"success": True, "status": "healthy", "timestamp": timezone.now().isoformat()}
    )


@api_view(["GET"])
@permission_classes([AllowAny])
def list_packages(request):
    """Active packages for the captive portal, cheapest first."""
    packages = Package.objects.filter(is_active=True).order_by("price")
    return Response(
        {"success": True, "packages": PackageSerializer(packages, many=True).data}
    )


# =============================================================================
# PAYMENT FLOW
# =============================================================================


@api_view(["POST"])
@permission_classes([AllowAny])
def initiate_payment(request):
    """
    Start a mobile-money charge for a package.
    The portal then polls payment_status with the returned tx_ref.
    """
    serializer = InitiatePaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = get_pipeline().initiate_payment(
        data["phone"],
        data["package_id"],
        mac_address=data.get("mac_address", ""),
        ip_address=data.get("ip_address") or get_client_ip(request),
    )
    result["message"] = "Payment initiated. Please approve the prompt on your phone."
    return Response(result)


@csrf_exempt
@api_view(["POST"])
@permission_classes([AllowAny])
def payment_webhook(request):
    """
    Payment provider webhook endpoint.

    Answers 200 for everything it understood, including events it chose to
    ignore, so the provider does not retry. 401 on a bad signature, 400 on
    a malformed payload.
    """
    # Read the raw body before DRF parses the stream
    raw_body = request.body
    source_ip = get_client_ip(request)
    pipeline = get_pipeline()

    # Unsigned requests are rejected before their body is parsed
    pipeline.verify_webhook(request.headers, raw_body, source_ip)

    result = pipeline.handle_webhook(
        request.data,
        headers=request.headers,
        raw_body=raw_body,
        source_ip=source_ip,
    )
    return Response(result, status=status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([AllowAny])
def payment_status(request, tx_ref=None):
    """Polling fallback: current status plus credentials once paid."""
    tx_ref = tx_ref or request.query_params.get("tx_ref")
    if not tx_ref:
        raise ValidationError("tx_ref is required")

    return Response(get_pipeline().poll_status(tx_ref))


# =============================================================================
# VOUCHERS
# =============================================================================


@api_view(["POST"])
@permission_classes([AllowAny])
def redeem_voucher(request):
    serializer = RedeemVoucherSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = get_pipeline().redeem_voucher(
        data["code"],
        mac_address=data.get("mac_address", ""),
        ip_address=data.get("ip_address") or get_client_ip(request),
    )
    result["message"] = "Voucher redeemed successfully"
    return Response(result)


@api_view(["GET", "POST"])
@permission_classes([SimpleAdminTokenPermission])
def admin_vouchers(request):
    """
    GET: latest 100 vouchers.
    POST: generate a batch for a package.
    """
    if request.method == "GET":
        vouchers = Voucher.objects.select_related("package").order_by("-created_at")[:100]
        return Response(
            {"success": True, "vouchers": VoucherSerializer(vouchers, many=True).data}
        )

    serializer = GenerateVouchersSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    vouchers = issue_vouchers(
        serializer.validated_data["package_id"],
        serializer.validated_data["quantity"],
    )
    return Response(
        {
            "success": True,
            "message": f"Generated {len(vouchers)} voucher(s)",
            "vouchers": [
                {"code": v.code, "package_name": v.package.name, "price": v.package.price}
                for v in vouchers
            ],
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["DELETE"])
@permission_classes([SimpleAdminTokenPermission])
def delete_voucher(request, voucher_id):
    """Only unused vouchers can be deleted."""
    deleted, _ = Voucher.objects.filter(pk=voucher_id, is_used=False).delete()
    if not deleted:
        raise NotFoundError("Voucher not found or already used")
    return Response({"success": True, "message": "Voucher deleted"})


# =============================================================================
# ROUTER / SESSIONS
# =============================================================================


@api_view(["POST"])
@permission_classes([SimpleAdminTokenPermission])
def disconnect_session(request, session_id):
    return Response(get_pipeline().disconnect_session(session_id))


@api_view(["GET"])
@permission_classes([SimpleAdminTokenPermission])
def active_users(request):
    """Who the router currently sees online."""
    users = get_provisioner().active_users()
    return Response({"success": True, "count": len(users), "users": users})
