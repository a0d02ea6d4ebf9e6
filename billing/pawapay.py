"""
Pawapay Deposits integration (https://docs.pawapay.io)

A deposit's ``depositId`` is our tx_ref, so references for this provider
are UUIDs rather than the FASTNET-<ms>-<suffix> form.
"""

import logging
import uuid

from django.conf import settings

from .exceptions import ProviderError, ValidationError
from .gateways import (
    STATUS_PENDING,
    PaymentProvider,
    WebhookEvent,
    get_header,
    normalize_status,
    parse_amount,
    verify_hmac_signature,
)

logger = logging.getLogger(__name__)

PAWAPAY_BASE_URL = "https://api.sandbox.pawapay.io"

# Mobile network operator codes for Uganda
PROVIDER_CODES = {
    "MTN": "MTN_MOMO_UGA",
    "AIRTEL": "AIRTEL_OAPI_UGA",
}


class PawapayProvider(PaymentProvider):
    name = "pawapay"

    def __init__(self, api_token=None, webhook_secret=None, base_url=None, timeout=None):
        super().__init__(
            webhook_secret=(
                webhook_secret
                if webhook_secret is not None
                else getattr(settings, "PAWAPAY_WEBHOOK_SECRET", "")
            ),
            timeout=timeout,
        )
        self.api_token = api_token or getattr(settings, "PAWAPAY_API_TOKEN", "")
        self.base_url = (
            base_url or getattr(settings, "PAWAPAY_BASE_URL", PAWAPAY_BASE_URL)
        ).rstrip("/")
        self.signature_header = getattr(settings, "PAWAPAY_SIGNATURE_HEADER", "Signature")

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def new_reference(self):
        return str(uuid.uuid4())

    def initiate(self, phone, amount, tx_ref, network=None):
        provider_code = PROVIDER_CODES.get((network or "").upper())
        if not provider_code:
            raise ValidationError("Could not detect mobile network. Please use MTN or Airtel number.")

        payload = {
            "depositId": tx_ref,
            "amount": str(amount),
            "currency": self.currency,
            "payer": {
                "type": "MMO",
                "accountDetails": {"phoneNumber": phone, "provider": provider_code},
            },
        }

        body = self._request("POST", f"{self.base_url}/v2/deposits", json_data=payload)

        status = str(body.get("status", "")).upper()
        if status == "REJECTED":
            reason = body.get("failureReason") or {}
            message = reason.get("failureMessage") or reason.get("failureCode") or "Deposit rejected"
            raise ProviderError(message)

        logger.info(f"Pawapay deposit {tx_ref} accepted with status {status}")
        return {"provider_ref": body.get("depositId", tx_ref), "status": STATUS_PENDING}

    def query_status(self, tx_ref):
        body = self._request("GET", f"{self.base_url}/v2/deposits/{tx_ref}")

        # v2 wraps the deposit: {"status": "FOUND", "data": {...}}
        if isinstance(body, list):
            deposit = body[0] if body else {}
        elif str(body.get("status", "")).upper() == "NOT_FOUND":
            return {"status": STATUS_PENDING, "provider_ref": "", "amount": None}
        elif isinstance(body.get("data"), dict):
            deposit = body["data"]
        else:
            deposit = body

        return {
            "status": normalize_status(deposit.get("status")),
            "provider_ref": deposit.get("providerTransactionId", "") or "",
            "amount": parse_amount(deposit.get("amount")),
        }

    def verify_signature(self, headers, raw_body):
        """HMAC-SHA256 of the raw callback body."""
        if not self.webhook_secret:
            logger.warning("Pawapay webhook secret not configured - skipping verification")
            return True

        signature = get_header(headers, self.signature_header) or ""
        return verify_hmac_signature(raw_body, signature, self.webhook_secret)

    def parse_webhook(self, payload):
        """
        ``{"depositId", "status", "amount", "currency", "payer", "providerTransactionId"}``
        """
        if not isinstance(payload, dict):
            raise ValidationError("Invalid webhook payload")

        deposit_id = payload.get("depositId")
        if not deposit_id:
            raise ValidationError("Invalid webhook payload")

        raw_status = str(payload.get("status", ""))
        payer = payload.get("payer") or {}
        account = payer.get("accountDetails") or {} if isinstance(payer, dict) else {}
        return WebhookEvent(
            tx_ref=str(deposit_id),
            status=normalize_status(raw_status),
            raw_status=raw_status,
            amount=parse_amount(payload.get("amount")),
            provider_ref=payload.get("providerTransactionId", "") or "",
            payer=account.get("phoneNumber", ""),
        )
