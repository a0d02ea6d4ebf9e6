"""
Payment-to-access activation pipeline.

Three triggers converge on ``ActivationPipeline.activate``:

  - handle_webhook: provider pushes a terminal payment status
  - poll_status:    captive portal polls while the payer approves on the handset
  - redeem_voucher: a printed voucher is exchanged for access

Only this module creates Session rows or provisions router accounts.

Ordering rules:
  1. The ledger flip (payment -> successful, voucher -> used) is a conditional
     UPDATE and is committed before the router is touched. Exactly one
     caller wins it; everyone else short-circuits.
  2. Router failures are logged for the operator and never unwind the
     ledger. The caller still receives credentials.
"""

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import (
    AlreadyProcessedError,
    AlreadyUsedError,
    AuthenticationError,
    NotFoundError,
    ProviderError,
    TransientProviderError,
    ValidationError,
)
from .gateways import STATUS_FAILED, STATUS_PENDING, STATUS_SUCCESSFUL, get_payment_provider
from .mikrotik import generate_password, get_provisioner, hours_to_uptime
from .models import Package, Payment, PaymentWebhook, Session, Voucher
from .utils import detect_network, format_phone_number, normalize_mac_address

logger = logging.getLogger(__name__)


def username_prefix():
    return getattr(settings, "HOTSPOT_USERNAME_PREFIX", "FASTNET")


def payment_username(phone):
    return f"{username_prefix()}-{phone[-4:]}"


def voucher_username(code):
    return f"{username_prefix()}-V{code[-4:]}"


def session_credentials(session):
    """Caller-facing view of a session."""
    return {**session.credentials(), "payment_id": session.payment_ref_id}


class ActivationPipeline:
    """
    Orchestrates the ledgers, the payment provider and the router.

    Adapters are injected; with no arguments the configured ones are built
    from settings.
    """

    def __init__(self, provider=None, provisioner=None):
        self.provider = provider if provider is not None else get_payment_provider()
        self.provisioner = provisioner if provisioner is not None else get_provisioner()

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate_payment(self, phone, package_id, mac_address="", ip_address=None):
        """
        Create a pending payment and push the charge prompt to the payer.

        A definitive provider rejection fails the payment (ValidationError).
        A transport failure leaves it pending (TransientProviderError).
        """
        network = detect_network(phone)
        if not network:
            raise ValidationError(
                "Could not detect mobile network. Please use MTN or Airtel number."
            )

        package = Package.objects.filter(pk=package_id, is_active=True).first()
        if package is None:
            raise ValidationError("Invalid or inactive package")

        formatted_phone = format_phone_number(phone)
        payment = Payment.objects.create(
            tx_ref=self.provider.new_reference(),
            phone=formatted_phone,
            amount=package.price,
            package=package,
            mac_address=normalize_mac_address(mac_address),
            ip_address=ip_address or None,
        )
        logger.info(
            f"Payment {payment.tx_ref} created: {formatted_phone} ({network}) "
            f"{package.name} {package.price}"
        )

        try:
            result = self.provider.initiate(
                formatted_phone, package.price, payment.tx_ref, network
            )
        except TransientProviderError as e:
            logger.error(f"Provider unavailable initiating {payment.tx_ref}: {e.detail}")
            raise
        except ProviderError as e:
            payment.mark_failed()
            logger.error(f"Provider rejected {payment.tx_ref}: {e.detail}")
            raise ValidationError(str(e.detail))

        provider_ref = result.get("provider_ref")
        if provider_ref:
            Payment.objects.filter(pk=payment.pk).update(provider_ref=provider_ref)

        return {
            "success": True,
            "tx_ref": payment.tx_ref,
            "payment_id": payment.pk,
            "network": network,
            "amount": payment.amount,
            "package_name": package.name,
            "status": STATUS_PENDING,
        }

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def verify_webhook(self, headers, raw_body, source_ip=None):
        """Raise AuthenticationError unless the raw body carries a valid signature."""
        if not self.provider.verify_signature(headers or {}, raw_body):
            logger.warning(
                f"Security: invalid {self.provider.name} webhook signature from {source_ip}"
            )
            raise AuthenticationError()

    def handle_webhook(self, payload, headers=None, raw_body=b"", source_ip=None):
        """
        Apply a provider webhook.

        Raises AuthenticationError (bad signature) or ValidationError
        (malformed payload). Every other outcome is a dict the transport
        answers with 200.
        """
        self.verify_webhook(headers, raw_body, source_ip)

        event = self.provider.parse_webhook(payload)
        logger.info(f"Webhook received for {event.tx_ref}: {event.raw_status}")

        webhook_log = PaymentWebhook.objects.create(
            provider=self.provider.name,
            tx_ref=event.tx_ref,
            payment_status=event.raw_status,
            amount=event.amount,
            raw_payload=payload,
            source_ip=source_ip,
        )

        try:
            return self._apply_webhook(event, webhook_log)
        except Exception as e:
            webhook_log.mark_failed(str(e))
            raise

    def _apply_webhook(self, event, webhook_log):
        payment = (
            Payment.objects.select_related("package").filter(tx_ref=event.tx_ref).first()
        )
        if payment is None:
            logger.warning(f"Payment not found for tx_ref: {event.tx_ref}")
            webhook_log.mark_ignored("Payment not found")
            return {"success": True, "status": "payment not found"}

        if not event.is_terminal:
            webhook_log.mark_ignored(f"Non-terminal status {event.raw_status}", payment)
            return {"success": True, "status": "noted"}

        if (
            event.status == STATUS_SUCCESSFUL
            and event.amount is not None
            and event.amount != payment.amount
        ):
            logger.error(
                f"Amount mismatch for {payment.tx_ref}: expected {payment.amount}, got {event.amount}"
            )
            webhook_log.mark_ignored(
                f"Amount mismatch: expected {payment.amount}, got {event.amount}", payment
            )
            return {"success": True, "status": "amount mismatch"}

        try:
            self._transition(payment, event.status, event.provider_ref)
        except AlreadyProcessedError:
            logger.info(f"Duplicate webhook for {payment.tx_ref} ({payment.status})")
            webhook_log.mark_ignored("Payment already processed", payment)
            return {"success": True, "status": "already processed"}

        webhook_log.mark_processed(payment)
        return {"success": True, "status": payment.status}

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def poll_status(self, tx_ref):
        """
        Report a payment's status, asking the provider while it is pending.

        Provider errors never turn into a failed payment: they report pending.
        """
        payment = Payment.objects.select_related("package").filter(tx_ref=tx_ref).first()
        if payment is None:
            raise NotFoundError("Payment not found")

        if payment.status != STATUS_PENDING:
            return self._payment_status(payment)

        try:
            result = self.provider.query_status(tx_ref)
        except TransientProviderError as e:
            logger.warning(f"Provider unavailable polling {tx_ref}: {e.detail}")
            return self._payment_status(payment)
        except ProviderError as e:
            logger.warning(f"Provider could not report status for {tx_ref}: {e.detail}")
            return self._payment_status(payment)

        status = result.get("status", STATUS_PENDING)
        if status == STATUS_PENDING:
            return self._payment_status(payment)

        amount = result.get("amount")
        if status == STATUS_SUCCESSFUL and amount is not None and amount != payment.amount:
            logger.error(
                f"Amount mismatch for {payment.tx_ref}: expected {payment.amount}, got {amount}"
            )
            return self._payment_status(payment)

        try:
            self._transition(payment, status, result.get("provider_ref"))
        except AlreadyProcessedError:
            payment.refresh_from_db()

        return self._payment_status(payment)

    def _payment_status(self, payment):
        data = {"success": True, "tx_ref": payment.tx_ref, "status": payment.status}
        if payment.status == STATUS_SUCCESSFUL:
            session = Session.objects.filter(payment=payment).first()
            if session is not None:
                data["session"] = session_credentials(session)
            else:
                logger.warning(
                    f"Payment {payment.tx_ref} is successful but has no session yet"
                )
        return data

    # ------------------------------------------------------------------
    # Shared transition + activation
    # ------------------------------------------------------------------

    def _transition(self, payment, status, provider_ref=None):
        """
        Move a pending payment to a terminal status.

        Raises AlreadyProcessedError for every caller except the one whose
        conditional update actually flipped the row.
        """
        if payment.status != STATUS_PENDING:
            raise AlreadyProcessedError()

        if status == STATUS_SUCCESSFUL:
            if not payment.mark_successful(provider_ref):
                logger.info(f"Lost activation race for {payment.tx_ref}")
                raise AlreadyProcessedError()
            return self.activate_payment(payment)

        if status == STATUS_FAILED:
            if not payment.mark_failed(provider_ref):
                raise AlreadyProcessedError()
            logger.info(f"Payment {payment.tx_ref} failed.")
        return None

    def activate_payment(self, payment):
        return self.activate(
            payment.package,
            username=payment_username(payment.phone),
            mac_address=payment.mac_address,
            ip_address=payment.ip_address,
            started_at=payment.paid_at,
            payment=payment,
        )

    def activate(
        self,
        package,
        username,
        mac_address=None,
        ip_address=None,
        started_at=None,
        payment=None,
        voucher=None,
    ):
        """
        Provision the router account and record the session.

        Returns the Session. Router failure is logged, not raised.
        """
        password = generate_password()
        uptime_limit = hours_to_uptime(package.duration_hours)
        source = f"payment {payment.tx_ref}" if payment else f"voucher {voucher.code}"

        self._provision(username, password, mac_address, uptime_limit, source)

        started_at = started_at or timezone.now()
        expires_at = started_at + package.duration

        try:
            with transaction.atomic():
                session = Session.objects.create(
                    payment=payment,
                    voucher=voucher,
                    mac_address=mac_address or "unknown",
                    ip_address=ip_address or None,
                    username=username,
                    password=password,
                    package_name=package.name,
                    started_at=started_at,
                    expires_at=expires_at,
                )
        except IntegrityError:
            # Another activation already recorded the session for this source
            session = Session.objects.get(payment=payment) if payment else Session.objects.get(voucher=voucher)
            logger.warning(f"Session for {source} already exists, keeping {session.username}")
            self._provision(
                session.username, session.password, mac_address, uptime_limit, source
            )
            return session

        logger.info(f"{source} activated: user {username} until {expires_at}")
        return session

    def _provision(self, username, password, mac_address, uptime_limit, source):
        try:
            created = self.provisioner.create_user(
                username,
                password,
                mac_address=mac_address or None,
                uptime_limit=uptime_limit,
            )
        except Exception as e:
            logger.error(f"Router provisioning raised for {username}: {e}")
            created = False

        if not created:
            logger.error(
                f"Router provisioning failed for {username} ({source}); "
                f"access must be reconciled manually"
            )
        return created

    # ------------------------------------------------------------------
    # Vouchers
    # ------------------------------------------------------------------

    def redeem_voucher(self, code, mac_address="", ip_address=None):
        """
        Exchange a voucher code for access.

        The voucher is consumed before the router is called and stays
        consumed whatever the router does.
        """
        code = (code or "").strip().upper()
        if not code:
            raise ValidationError("Voucher code is required")

        try:
            voucher = Voucher.objects.get_by_code(code)
        except Voucher.DoesNotExist:
            raise NotFoundError("Invalid voucher code")
        if voucher.is_used:
            raise AlreadyUsedError()

        mac_address = normalize_mac_address(mac_address)
        if not voucher.claim(mac_address or "unknown"):
            logger.info(f"Lost redemption race for voucher {code}")
            raise AlreadyUsedError()

        logger.info(f"Voucher {code} redeemed by {mac_address or 'unknown'}")
        session = self.activate(
            voucher.package,
            username=voucher_username(code),
            mac_address=mac_address,
            ip_address=ip_address,
            started_at=voucher.used_at,
            voucher=voucher,
        )
        return {"success": True, **session_credentials(session)}

    # ------------------------------------------------------------------
    # Operator actions and sweeps
    # ------------------------------------------------------------------

    def disconnect_session(self, session_id):
        session = Session.objects.filter(pk=session_id).first()
        if session is None:
            raise NotFoundError("Session not found")

        if not session.deactivate():
            return {"success": True, "message": "Session already inactive"}

        self._release(session)
        logger.info(f"Session {session.pk} ({session.username}) disconnected")
        return {"success": True, "message": "User disconnected"}

    def expire_sessions(self):
        """Deactivate sessions past expires_at and drop their router accounts."""
        expired = 0
        router_failures = 0
        for session in Session.objects.due_for_expiry():
            if not session.deactivate():
                continue
            expired += 1
            if not self._release(session):
                router_failures += 1

        if expired:
            logger.info(f"Expired {expired} session(s), {router_failures} router failure(s)")
        return {"expired": expired, "router_failures": router_failures}

    def _release(self, session):
        """Best-effort router cleanup for an ended session."""
        ok = True
        live = Session.objects.active()

        # A renewal from the same device keeps its bindings
        mac = session.mac_address
        if mac and mac != "unknown" and not live.filter(mac_address=mac).exists():
            ok = self.provisioner.disconnect(mac) and ok

        # Usernames derive from phone suffixes and can be shared; keep the
        # router account while another active session still uses it
        if live.filter(username=session.username).exists():
            return ok
        return self.provisioner.remove_user(session.username) and ok

    def reconcile_payments(self):
        """Activate successful payments that never got a session."""
        orphaned = Payment.objects.select_related("package").filter(
            status=STATUS_SUCCESSFUL, session__isnull=True
        )
        activated = 0
        failed = 0
        for payment in orphaned:
            try:
                self.activate_payment(payment)
                activated += 1
            except Exception as e:
                failed += 1
                logger.exception(f"Reconciliation failed for {payment.tx_ref}: {e}")

        if activated or failed:
            logger.info(f"Reconciled {activated} payment(s), {failed} failure(s)")
        return {"activated": activated, "failed": failed}


def issue_vouchers(package_id, quantity):
    """Create a batch of vouchers, quantity clamped to 1..VOUCHER_BATCH_LIMIT."""
    package = Package.objects.filter(pk=package_id, is_active=True).first()
    if package is None:
        raise ValidationError("Invalid or inactive package")

    limit = getattr(settings, "VOUCHER_BATCH_LIMIT", 50)
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        quantity = 1
    quantity = min(max(quantity, 1), limit)

    try:
        vouchers = Voucher.issue(package, quantity)
    except RuntimeError as e:
        logger.error(f"Voucher issuance failed: {e}")
        raise
    logger.info(f"Issued {len(vouchers)} voucher(s) for {package.name}")
    return vouchers
