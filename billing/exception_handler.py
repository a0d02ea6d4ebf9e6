"""
Custom DRF exception handler for consistent frontend error responses.

Every error response will have the shape:
{
    "success": false,
    "error": "Human-readable error message",
    // optional field-level errors for validation
    "errors": { "field_name": ["..."] }
}

Anything DRF does not know about is logged and answered with a generic 500
so internal details never reach the captive portal.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    """
    Wrap the default DRF exception handler to produce consistent
    { success, error, errors? } responses for the frontend.
    """
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception(
            "Unhandled error in %s: %s",
            getattr(view, "__name__", view.__class__.__name__ if view else "unknown"),
            exc,
        )
        return Response(
            {"success": False, "error": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, AuthenticationError):
        request = context.get("request")
        logger.warning(
            "Security: rejected request to %s: %s",
            getattr(request, "path", "unknown"),
            exc.detail,
        )

    data = response.data

    # DRF returns `{"detail": "..."}` for auth/permission/throttle errors
    if isinstance(data, dict) and "detail" in data:
        response.data = {
            "success": False,
            "error": str(data["detail"]),
        }

    # Serializer validation: `{"field": ["msg", ...], ...}`
    elif isinstance(data, dict) and "success" not in data:
        error_messages = []
        for field, msgs in data.items():
            if isinstance(msgs, list):
                for msg in msgs:
                    error_messages.append(f"{field}: {msg}")
            else:
                error_messages.append(f"{field}: {msgs}")

        response.data = {
            "success": False,
            "error": (
                "; ".join(error_messages) if error_messages else "Validation error"
            ),
            "errors": data,
        }

    elif isinstance(data, list):
        response.data = {
            "success": False,
            "error": "; ".join(str(e) for e in data),
        }

    return response
