"""
Payment provider adapters for FASTNET.

The activation pipeline only talks to the ``PaymentProvider`` interface:

  - initiate(phone, amount, tx_ref, network)  -> {"provider_ref", "status"}
  - query_status(tx_ref)                      -> {"status", "provider_ref", "amount"}
  - verify_signature(headers, raw_body)       -> bool
  - parse_webhook(payload)                    -> WebhookEvent

Statuses are normalised to the Payment ledger vocabulary
(pending / successful / failed) before they leave the adapter.

Transport failures (timeout, connection error, 5xx, unreadable body) raise
TransientProviderError. Definitive rejections raise ProviderError.
"""

import hashlib
import hmac
import logging
import time

import requests
from django.conf import settings

from .exceptions import (
    ConfigurationError,
    ProviderError,
    TransientProviderError,
    ValidationError,
)
from .utils import generate_tx_ref

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SUCCESSFUL = "successful"
STATUS_FAILED = "failed"

SUCCESS_STATUSES = {"COMPLETED", "SUCCESSFUL", "SUCCESS"}
FAILURE_STATUSES = {"FAILED", "REJECTED", "CANCELLED"}


def normalize_status(raw_status):
    """Map a provider status string onto pending / successful / failed."""
    value = str(raw_status or "").strip().upper()
    if value in SUCCESS_STATUSES:
        return STATUS_SUCCESSFUL
    if value in FAILURE_STATUSES:
        return STATUS_FAILED
    return STATUS_PENDING


def get_header(headers, name):
    """Case-insensitive header lookup for both HttpHeaders and plain dicts."""
    if headers is None:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def verify_hmac_signature(payload, signature, secret):
    """
    Verify an HMAC-SHA256 hex signature over the raw request body.

    Accepts signatures with or without a ``sha256=`` prefix.
    """
    if not signature:
        return False

    if isinstance(payload, str):
        payload = payload.encode()

    clean_sig = signature.strip()
    if clean_sig.startswith("sha256="):
        clean_sig = clean_sig[len("sha256="):]

    expected = hmac.new(secret.encode(), payload or b"", hashlib.sha256).hexdigest()
    return hmac.compare_digest(clean_sig, expected)


class WebhookEvent:
    """A provider webhook reduced to what the pipeline needs."""

    def __init__(self, tx_ref, status, raw_status="", amount=None, provider_ref="", payer=""):
        self.tx_ref = tx_ref
        self.status = status
        self.raw_status = raw_status
        self.amount = amount
        self.provider_ref = provider_ref
        self.payer = payer

    def __repr__(self):
        return f"<WebhookEvent {self.tx_ref} {self.raw_status}>"

    @property
    def is_terminal(self):
        return self.status in (STATUS_SUCCESSFUL, STATUS_FAILED)


def parse_amount(value):
    """Provider amounts arrive as numbers or numeric strings."""
    if value in (None, ""):
        return None
    try:
        amount = int(float(value))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid amount in webhook payload: {value!r}")
    if amount < 0:
        raise ValidationError(f"Invalid amount in webhook payload: {value!r}")
    return amount


class PaymentProvider:
    """Base class for mobile-money providers."""

    name = "base"

    def __init__(self, webhook_secret="", timeout=None):
        self.webhook_secret = webhook_secret
        self.timeout = timeout or getattr(settings, "PAYMENT_PROVIDER_TIMEOUT", 15)
        self.currency = getattr(settings, "PAYMENT_CURRENCY", "UGX")

    def new_reference(self):
        return generate_tx_ref(getattr(settings, "HOTSPOT_USERNAME_PREFIX", "FASTNET"))

    def initiate(self, phone, amount, tx_ref, network=None):
        raise NotImplementedError

    def query_status(self, tx_ref):
        raise NotImplementedError

    def parse_webhook(self, payload):
        raise NotImplementedError

    def verify_signature(self, headers, raw_body):
        raise NotImplementedError

    def _headers(self):
        return {"Content-Type": "application/json"}

    def _request(self, method, url, json_data=None, params=None):
        """
        Generic HTTP request wrapper, bounded by ``self.timeout``.

        Returns the decoded JSON body of a 2xx response.
        """
        try:
            response = requests.request(
                method,
                url,
                json=json_data,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.error("%s API timeout: %s %s", self.name, method, url)
            raise TransientProviderError("Payment provider timed out")
        except requests.exceptions.ConnectionError:
            logger.error("%s API connection error: %s %s", self.name, method, url)
            raise TransientProviderError("Could not connect to payment provider")
        except requests.exceptions.RequestException as exc:
            logger.error("%s API request error: %s", self.name, exc)
            raise TransientProviderError(str(exc))

        if response.status_code >= 500:
            logger.error(
                "%s API server error %s %s -> %s",
                self.name,
                method,
                url,
                response.status_code,
            )
            raise TransientProviderError(
                f"Payment provider unavailable ({response.status_code})"
            )

        try:
            body = response.json()
        except ValueError:
            logger.error("%s API returned non-JSON response for %s %s", self.name, method, url)
            raise TransientProviderError("Invalid response from payment provider")

        if response.status_code >= 400:
            message = "Payment provider rejected the request"
            if isinstance(body, dict):
                message = body.get("message") or message
            logger.error(
                "%s API error %s %s -> %s: %s",
                self.name,
                method,
                url,
                response.status_code,
                message,
            )
            raise ProviderError(message)

        return body


class DemoPaymentProvider(PaymentProvider):
    """
    Simulated provider used when DEMO_MODE is on.

    Every charge is accepted and reported successful on the first poll.
    """

    name = "demo"

    def initiate(self, phone, amount, tx_ref, network=None):
        logger.info(f"[DEMO] Payment initiated {tx_ref} for {phone}: {amount}")
        return {
            "provider_ref": f"DEMO-{int(time.time() * 1000)}",
            "status": STATUS_PENDING,
        }

    def query_status(self, tx_ref):
        return {"status": STATUS_SUCCESSFUL, "provider_ref": f"DEMO-{tx_ref}", "amount": None}

    def verify_signature(self, headers, raw_body):
        return True

    def parse_webhook(self, payload):
        if not isinstance(payload, dict):
            raise ValidationError("Invalid webhook payload")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        tx_ref = data.get("tx_ref") or data.get("depositId")
        if not tx_ref:
            raise ValidationError("Webhook payload has no transaction reference")
        raw_status = data.get("status", "")
        return WebhookEvent(
            tx_ref=str(tx_ref),
            status=normalize_status(raw_status),
            raw_status=str(raw_status),
            amount=parse_amount(data.get("amount")),
            provider_ref=data.get("flw_ref") or data.get("providerTransactionId") or "",
        )


def get_payment_provider(name=None):
    """
    Build the configured payment provider.

    DEMO_MODE forces the simulated provider regardless of PAYMENT_PROVIDER.
    """
    if getattr(settings, "DEMO_MODE", False):
        return DemoPaymentProvider()

    name = (name or getattr(settings, "PAYMENT_PROVIDER", "flutterwave")).lower()

    if name == "demo":
        return DemoPaymentProvider()
    if name == "flutterwave":
        from .flutterwave import FlutterwaveProvider

        return FlutterwaveProvider()
    if name == "pawapay":
        from .pawapay import PawapayProvider

        return PawapayProvider()

    raise ConfigurationError(f"Unknown payment provider: {name}")
