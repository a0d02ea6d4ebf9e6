"""
Error taxonomy for the FASTNET activation pipeline.

All errors derive from DRF's APIException so views can simply raise them and
``billing.exception_handler.custom_exception_handler`` renders the
``{"success": false, "error": ...}`` envelope with the right status code.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class BillingError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Billing error"
    default_code = "billing_error"


class ValidationError(BillingError):
    """Bad phone, unknown package, missing fields or malformed payload."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"
    default_code = "invalid"


class AuthenticationError(BillingError):
    """Webhook signature did not match the configured secret."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid webhook signature"
    default_code = "authentication_failed"


class NotFoundError(BillingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
    default_code = "not_found"


class AlreadyUsedError(BillingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This voucher has already been used"
    default_code = "already_used"


class AlreadyProcessedError(BillingError):
    """Payment already reached a terminal state. Callers treat it as success."""

    status_code = status.HTTP_200_OK
    default_detail = "Payment already processed"
    default_code = "already_processed"


class ProviderError(BillingError):
    """Payment provider definitively rejected the request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment provider rejected the request"
    default_code = "provider_error"


class TransientProviderError(ProviderError):
    """Network error, timeout or 5xx talking to the payment provider."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Payment provider unavailable, please try again"
    default_code = "provider_unavailable"


class ProvisioningError(BillingError):
    """Router call failed. Raised inside the adapter only."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Router provisioning failed"
    default_code = "provisioning_failed"


class ConfigurationError(BillingError):
    default_detail = "Billing is misconfigured"
    default_code = "configuration_error"
