"""
Custom permissions for FASTNET Wi-Fi Billing System
"""

import hmac

from django.conf import settings
from rest_framework import permissions


class SimpleAdminTokenPermission(permissions.BasePermission):
    """
    Allow access if user is a Django staff member (admin site session)
    OR sends the operator token in the X-Admin-Access header.
    """

    message = "Admin access required"

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated and user.is_staff:
            return True

        admin_token = request.META.get("HTTP_X_ADMIN_ACCESS")
        expected_token = getattr(settings, "SIMPLE_ADMIN_TOKEN", "")
        if not admin_token or not expected_token:
            return False
        return hmac.compare_digest(admin_token, expected_token)
