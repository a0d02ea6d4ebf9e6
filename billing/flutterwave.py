"""
Flutterwave Mobile Money integration (https://api.flutterwave.com/v3)
Uganda MTN and Airtel collections via the ``mobile_money_uganda`` charge.
"""

import hmac
import logging

from django.conf import settings

from .exceptions import ProviderError, ValidationError
from .gateways import (
    STATUS_PENDING,
    PaymentProvider,
    WebhookEvent,
    get_header,
    normalize_status,
    parse_amount,
)

logger = logging.getLogger(__name__)

FLW_BASE_URL = "https://api.flutterwave.com/v3"
SIGNATURE_HEADER = "verif-hash"


class FlutterwaveProvider(PaymentProvider):
    """
    Flutterwave client.

    Can be constructed with explicit credentials (tests)
    or will fall back to Django settings.
    """

    name = "flutterwave"

    def __init__(self, secret_key=None, webhook_secret=None, base_url=None, timeout=None):
        super().__init__(
            webhook_secret=(
                webhook_secret
                if webhook_secret is not None
                else getattr(settings, "FLW_WEBHOOK_SECRET", "")
            ),
            timeout=timeout,
        )
        self.secret_key = secret_key or getattr(settings, "FLW_SECRET_KEY", "")
        self.base_url = (base_url or getattr(settings, "FLW_BASE_URL", FLW_BASE_URL)).rstrip("/")
        self.customer_email = getattr(settings, "FLW_CUSTOMER_EMAIL", "customer@fastnet.ug")

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initiate(self, phone, amount, tx_ref, network=None):
        """Push a mobile-money charge prompt to the payer's handset."""
        payload = {
            "tx_ref": tx_ref,
            "amount": str(amount),
            "currency": self.currency,
            "email": self.customer_email,
            "phone_number": phone,
            "network": network,
        }

        body = self._request(
            "POST",
            f"{self.base_url}/charges",
            json_data=payload,
            params={"type": "mobile_money_uganda"},
        )

        if body.get("status") != "success":
            raise ProviderError(body.get("message") or "Charge was not accepted")

        data = body.get("data") or {}
        logger.info(f"Flutterwave charge initiated for {tx_ref}: {body.get('message')}")
        return {
            "provider_ref": data.get("flw_ref", ""),
            "status": normalize_status(data.get("status")),
        }

    def query_status(self, tx_ref):
        body = self._request(
            "GET",
            f"{self.base_url}/transactions/verify_by_reference",
            params={"tx_ref": tx_ref},
        )

        if body.get("status") != "success":
            raise ProviderError(body.get("message") or "Transaction lookup failed")

        data = body.get("data") or {}
        return {
            "status": normalize_status(data.get("status")),
            "provider_ref": data.get("flw_ref", ""),
            "amount": parse_amount(data.get("amount")),
        }

    def verify_signature(self, headers, raw_body):
        """
        Flutterwave echoes the dashboard secret hash in ``verif-hash``.
        """
        if not self.webhook_secret:
            logger.warning("Flutterwave webhook secret not configured - skipping verification")
            return True

        signature = get_header(headers, SIGNATURE_HEADER) or ""
        return hmac.compare_digest(signature.encode(), self.webhook_secret.encode())

    def parse_webhook(self, payload):
        """
        ``{"event": "charge.completed", "data": {"tx_ref", "status", "amount", "flw_ref", ...}}``
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ValidationError("Invalid webhook payload")

        data = payload["data"]
        tx_ref = data.get("tx_ref")
        if not tx_ref:
            raise ValidationError("Webhook payload has no tx_ref")

        raw_status = str(data.get("status", ""))
        status = normalize_status(raw_status)
        if payload.get("event") not in (None, "charge.completed"):
            # Only charge completion moves a payment
            status = STATUS_PENDING

        customer = data.get("customer") or {}
        return WebhookEvent(
            tx_ref=str(tx_ref),
            status=status,
            raw_status=raw_status,
            amount=parse_amount(data.get("amount")),
            provider_ref=data.get("flw_ref", "") or "",
            payer=customer.get("phone_number", "") if isinstance(customer, dict) else "",
        )
