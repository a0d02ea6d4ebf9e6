"""
Serializers for API requests and responses
"""

from rest_framework import serializers

from .models import Package, Voucher
from .utils import MAC_ADDRESS_RE, detect_network


def validate_mac_address_field(value):
    if value and not MAC_ADDRESS_RE.match(value):
        raise serializers.ValidationError("Invalid MAC address format")
    return value


class PackageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Package
        fields = [
            "id",
            "name",
            "duration_hours",
            "price",
            "description",
            "is_active",
        ]
        read_only_fields = ["id"]


class VoucherSerializer(serializers.ModelSerializer):
    package_name = serializers.CharField(source="package.name", read_only=True)
    price = serializers.IntegerField(source="package.price", read_only=True)

    class Meta:
        model = Voucher
        fields = [
            "id",
            "code",
            "package",
            "package_name",
            "price",
            "is_used",
            "used_by",
            "used_at",
            "created_at",
        ]
        read_only_fields = fields


class InitiatePaymentSerializer(serializers.Serializer):
    phone = serializers.CharField(max_length=20)
    package_id = serializers.IntegerField()
    mac_address = serializers.CharField(
        max_length=17, required=False, allow_blank=True, default=""
    )
    ip_address = serializers.IPAddressField(required=False, allow_null=True)

    def validate_phone(self, value):
        if not detect_network(value):
            raise serializers.ValidationError(
                "Could not detect mobile network. Please use MTN or Airtel number."
            )
        return value

    def validate_mac_address(self, value):
        return validate_mac_address_field(value)


class RedeemVoucherSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=16)
    mac_address = serializers.CharField(
        max_length=17, required=False, allow_blank=True, default=""
    )
    ip_address = serializers.IPAddressField(required=False, allow_null=True)

    def validate_code(self, value):
        # Codes are stored uppercase; redemption is case-insensitive
        return value.strip().upper()

    def validate_mac_address(self, value):
        return validate_mac_address_field(value)


class GenerateVouchersSerializer(serializers.Serializer):
    package_id = serializers.IntegerField()
    # Clamped to VOUCHER_BATCH_LIMIT by the issuer
    quantity = serializers.IntegerField(required=False, default=1)
