"""
Tests for the payment-to-access activation pipeline
"""
from datetime import timedelta
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from billing.activation import ActivationPipeline, issue_vouchers
from billing.exceptions import (
    AlreadyProcessedError,
    AlreadyUsedError,
    AuthenticationError,
    NotFoundError,
    ProviderError,
    TransientProviderError,
    ValidationError,
)
from billing.flutterwave import FlutterwaveProvider
from billing.models import Payment, PaymentWebhook, Session, Voucher

from .fakes import FakeProvider, FakeProvisioner, make_package


def completed_event(tx_ref, amount=1000, status="COMPLETED"):
    return {"depositId": tx_ref, "status": status, "amount": str(amount), "providerTransactionId": "MTN-1"}


class InitiatePaymentTest(TestCase):
    def setUp(self):
        self.package = make_package(duration_hours=24, price=1000)
        self.provider = FakeProvider()
        self.pipeline = ActivationPipeline(provider=self.provider, provisioner=FakeProvisioner())

    def test_creates_pending_payment(self):
        result = self.pipeline.initiate_payment(
            "0770000000", self.package.pk, mac_address="aa:bb:cc:dd:ee:ff", ip_address="192.168.88.20"
        )

        payment = Payment.objects.get(tx_ref=result["tx_ref"])
        self.assertEqual(payment.status, Payment.STATUS_PENDING)
        self.assertEqual(payment.phone, "256770000000")
        self.assertEqual(payment.amount, 1000)
        self.assertEqual(payment.mac_address, "AA:BB:CC:DD:EE:FF")
        self.assertEqual(payment.provider_ref, f"FAKE-{payment.tx_ref}")
        self.assertEqual(result["network"], "MTN")
        self.assertTrue(payment.tx_ref.startswith("FASTNET-"))
        self.assertEqual(self.provider.initiated[0][:2], ("256770000000", 1000))

    def test_unsupported_network_creates_nothing(self):
        with self.assertRaises(ValidationError):
            self.pipeline.initiate_payment("0790000000", self.package.pk)
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self.provider.initiated, [])

    def test_inactive_package(self):
        self.package.deactivate()
        with self.assertRaises(ValidationError):
            self.pipeline.initiate_payment("0770000000", self.package.pk)
        self.assertFalse(Payment.objects.exists())

    def test_provider_rejection_fails_payment(self):
        self.provider.initiate_error = ProviderError("Insufficient balance")

        with self.assertRaises(ValidationError):
            self.pipeline.initiate_payment("0770000000", self.package.pk)

        self.assertEqual(Payment.objects.get().status, Payment.STATUS_FAILED)

    def test_provider_outage_leaves_payment_pending(self):
        self.provider.initiate_error = TransientProviderError()

        with self.assertRaises(TransientProviderError):
            self.pipeline.initiate_payment("0770000000", self.package.pk)

        self.assertEqual(Payment.objects.get().status, Payment.STATUS_PENDING)


class WebhookTest(TestCase):
    def setUp(self):
        self.package = make_package(duration_hours=24, price=1000)
        self.provisioner = FakeProvisioner()
        self.pipeline = ActivationPipeline(provider=FakeProvider(), provisioner=self.provisioner)
        self.payment = Payment.objects.create(
            tx_ref="FASTNET-1700000000000-abc123xyz",
            phone="256770000000",
            amount=1000,
            package=self.package,
            mac_address="AA:BB:CC:DD:EE:FF",
            ip_address="192.168.88.20",
        )

    def test_completed_webhook_activates(self):
        result = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))

        self.assertEqual(result["status"], "successful")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_SUCCESSFUL)
        self.assertEqual(self.payment.provider_ref, "MTN-1")

        session = Session.objects.get(payment=self.payment)
        self.assertEqual(session.username, "FASTNET-0000")
        self.assertEqual(session.mac_address, "AA:BB:CC:DD:EE:FF")
        self.assertEqual(session.started_at, self.payment.paid_at)
        self.assertEqual(session.expires_at, self.payment.expires_at)
        self.assertEqual(session.expires_at - self.payment.paid_at, timedelta(hours=24))

        self.assertEqual(len(self.provisioner.created), 1)
        created = self.provisioner.created[0]
        self.assertEqual(created["username"], "FASTNET-0000")
        self.assertEqual(created["password"], session.password)
        self.assertEqual(created["uptime_limit"], "1d")
        self.assertEqual(created["mac_address"], "AA:BB:CC:DD:EE:FF")

        log = PaymentWebhook.objects.get()
        self.assertEqual(log.processing_status, "processed")
        self.assertEqual(log.payment, self.payment)

    def test_duplicate_delivery_is_idempotent(self):
        """Test the same terminal event delivered twice yields one session"""
        self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))
        second = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))

        self.assertTrue(second["success"])
        self.assertEqual(second["status"], "already processed")
        self.assertEqual(Session.objects.filter(payment=self.payment).count(), 1)
        self.assertEqual(len(self.provisioner.created), 1)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_SUCCESSFUL)
        self.assertEqual(
            list(PaymentWebhook.objects.order_by("pk").values_list("processing_status", flat=True)),
            ["processed", "ignored"],
        )

    def test_webhook_racing_a_poll(self):
        """Test a caller holding a stale pending copy cannot activate again"""
        stale = Payment.objects.select_related("package").get(pk=self.payment.pk)
        self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))
        self.assertEqual(stale.status, Payment.STATUS_PENDING)

        with self.assertLogs("billing.activation", level="INFO") as logs:
            with self.assertRaises(AlreadyProcessedError):
                self.pipeline._transition(stale, "successful")

        self.assertIn("Lost activation race", "\n".join(logs.output))
        self.assertEqual(Session.objects.count(), 1)
        self.assertEqual(len(self.provisioner.created), 1)

    def test_stale_copy_cannot_fail_a_paid_payment(self):
        stale = Payment.objects.select_related("package").get(pk=self.payment.pk)
        self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))

        with self.assertRaises(AlreadyProcessedError):
            self.pipeline._transition(stale, "failed")

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_SUCCESSFUL)

    def test_negative_amount_is_malformed(self):
        with self.assertRaises(ValidationError):
            self.pipeline.handle_webhook(completed_event(self.payment.tx_ref, amount=-5))

        self.assertFalse(PaymentWebhook.objects.exists())
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)

    def test_failed_webhook(self):
        result = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref, status="FAILED"))

        self.assertEqual(result["status"], "failed")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_FAILED)
        self.assertFalse(Session.objects.exists())
        self.assertEqual(self.provisioner.created, [])

    def test_success_after_failure_is_ignored(self):
        self.payment.mark_failed()

        result = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))

        self.assertEqual(result["status"], "already processed")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_FAILED)
        self.assertFalse(Session.objects.exists())

    def test_unknown_tx_ref_is_soft(self):
        result = self.pipeline.handle_webhook(completed_event("FASTNET-unknown"))

        self.assertTrue(result["success"])
        self.assertEqual(result["status"], "payment not found")
        self.assertEqual(PaymentWebhook.objects.get().processing_status, "ignored")

    def test_amount_mismatch_is_not_applied(self):
        result = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref, amount=500))

        self.assertEqual(result["status"], "amount mismatch")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)
        self.assertFalse(Session.objects.exists())

    def test_non_terminal_status_is_noted(self):
        result = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref, status="SUBMITTED"))

        self.assertEqual(result["status"], "noted")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)

    def test_malformed_payload(self):
        with self.assertRaises(ValidationError):
            self.pipeline.handle_webhook({"status": "COMPLETED"})
        self.assertFalse(PaymentWebhook.objects.exists())

    def test_wrong_signature_mutates_nothing(self):
        pipeline = ActivationPipeline(
            provider=FlutterwaveProvider(secret_key="sk", webhook_secret="s3cret"),
            provisioner=self.provisioner,
        )
        payload = {
            "event": "charge.completed",
            "data": {"tx_ref": self.payment.tx_ref, "status": "successful", "amount": 1000},
        }

        with self.assertLogs("billing.activation", level="WARNING"):
            with self.assertRaises(AuthenticationError):
                pipeline.handle_webhook(payload, headers={"verif-hash": "guess"})

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)
        self.assertFalse(Session.objects.exists())
        self.assertFalse(PaymentWebhook.objects.exists())
        self.assertEqual(self.provisioner.created, [])

    def test_correct_signature_is_applied(self):
        pipeline = ActivationPipeline(
            provider=FlutterwaveProvider(secret_key="sk", webhook_secret="s3cret"),
            provisioner=self.provisioner,
        )
        payload = {
            "event": "charge.completed",
            "data": {"tx_ref": self.payment.tx_ref, "status": "successful", "amount": 1000, "flw_ref": "FLW-9"},
        }

        pipeline.handle_webhook(payload, headers={"verif-hash": "s3cret"})

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_SUCCESSFUL)
        self.assertEqual(self.payment.provider_ref, "FLW-9")

    def test_router_failure_does_not_roll_back_payment(self):
        self.provisioner.fail = True

        with self.assertLogs("billing.activation", level="ERROR"):
            result = self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))

        self.assertEqual(result["status"], "successful")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_SUCCESSFUL)
        self.assertTrue(Session.objects.filter(payment=self.payment).exists())


class PollStatusTest(TestCase):
    def setUp(self):
        self.package = make_package(duration_hours=24, price=1000)
        self.provider = FakeProvider()
        self.provisioner = FakeProvisioner()
        self.pipeline = ActivationPipeline(provider=self.provider, provisioner=self.provisioner)
        self.payment = Payment.objects.create(
            tx_ref="FASTNET-1700000000000-poll00001",
            phone="256770000000",
            amount=1000,
            package=self.package,
        )

    def test_unknown_tx_ref(self):
        with self.assertRaises(NotFoundError):
            self.pipeline.poll_status("FASTNET-nope")

    def test_pending_stays_pending(self):
        result = self.pipeline.poll_status(self.payment.tx_ref)
        self.assertEqual(result["status"], "pending")
        self.assertNotIn("session", result)

    def test_transient_provider_error_reports_pending(self):
        """Test a network failure is never reported as a failed payment"""
        self.provider.error = TransientProviderError()

        with self.assertLogs("billing.activation", level="WARNING"):
            result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "pending")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)

    def test_provider_lookup_error_reports_pending(self):
        self.provider.error = ProviderError("No transaction was found")

        result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "pending")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.STATUS_PENDING)

    def test_successful_poll_activates(self):
        self.provider.status = "successful"

        result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "successful")
        self.assertEqual(result["session"]["username"], "FASTNET-0000")
        self.assertEqual(result["session"]["package_name"], self.package.name)
        self.assertEqual(Session.objects.count(), 1)

    def test_failed_poll(self):
        self.provider.status = "failed"

        result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "failed")
        self.assertFalse(Session.objects.exists())

    def test_successful_payment_returns_cached_credentials(self):
        """Test repeat polls never re-provision or re-query the provider"""
        self.provider.status = "successful"
        first = self.pipeline.poll_status(self.payment.tx_ref)
        second = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(first["session"], second["session"])
        self.assertEqual(len(self.provisioner.created), 1)
        self.assertEqual(self.provider.queries, [self.payment.tx_ref])

    def test_poll_after_webhook_does_not_query_provider(self):
        self.pipeline.handle_webhook(completed_event(self.payment.tx_ref))

        result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "successful")
        self.assertEqual(self.provider.queries, [])
        self.assertEqual(len(self.provisioner.created), 1)

    def test_webhook_landing_during_poll(self):
        """Test a poll that loses the status flip returns the webhook's session"""

        def webhook_arrives(tx_ref):
            self.pipeline.handle_webhook(completed_event(tx_ref))
            return {"status": "successful", "provider_ref": "POLL-1", "amount": 1000}

        with mock.patch.object(self.provider, "query_status", side_effect=webhook_arrives):
            result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "successful")
        self.assertEqual(result["session"]["username"], "FASTNET-0000")
        self.assertEqual(Session.objects.count(), 1)
        self.assertEqual(len(self.provisioner.created), 1)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.provider_ref, "MTN-1")

    def test_poll_amount_mismatch_stays_pending(self):
        self.provider.status = "successful"
        self.provider.amount = 10

        with self.assertLogs("billing.activation", level="ERROR"):
            result = self.pipeline.poll_status(self.payment.tx_ref)

        self.assertEqual(result["status"], "pending")

    def test_end_to_end_scenario(self):
        """Test initiate, webhook COMPLETED, then poll for credentials"""
        package = make_package(name="ONE DAY", duration_hours=24, price=1000)
        started = self.pipeline.initiate_payment("0770000000", package.pk)

        self.pipeline.handle_webhook(completed_event(started["tx_ref"], amount=1000))
        result = self.pipeline.poll_status(started["tx_ref"])

        payment = Payment.objects.get(tx_ref=started["tx_ref"])
        self.assertEqual(result["status"], "successful")
        self.assertTrue(result["session"]["username"].startswith("FASTNET-0000"))
        self.assertEqual(result["session"]["expires_at"], payment.paid_at + timedelta(hours=24))


class RedeemVoucherTest(TestCase):
    def setUp(self):
        self.weekly = make_package(name="TEST WEEKLY", duration_hours=168, price=6000)
        self.voucher = Voucher.objects.create(code="ABCD2345", package=self.weekly)
        self.provisioner = FakeProvisioner()
        self.pipeline = ActivationPipeline(provider=FakeProvider(), provisioner=self.provisioner)

    def test_redeem_is_case_insensitive_and_single_use(self):
        result = self.pipeline.redeem_voucher("abcd2345", "aa:bb:cc:dd:ee:ff", "192.168.88.30")

        self.assertEqual(result["username"], "FASTNET-V2345")
        self.assertEqual(result["package_name"], "TEST WEEKLY")
        self.assertEqual(result["payment_id"], 0)
        self.assertEqual(len(result["password"]), 8)

        self.voucher.refresh_from_db()
        self.assertTrue(self.voucher.is_used)
        self.assertEqual(self.voucher.used_by, "AA:BB:CC:DD:EE:FF")
        session = Session.objects.get(voucher=self.voucher)
        self.assertEqual(session.expires_at - self.voucher.used_at, timedelta(hours=168))
        self.assertEqual(self.provisioner.created[0]["uptime_limit"], "7d")

        with self.assertRaises(AlreadyUsedError):
            self.pipeline.redeem_voucher("ABCD2345", "11:22:33:44:55:66")
        self.assertEqual(Session.objects.count(), 1)

    def test_concurrent_redemption_has_one_winner(self):
        """Test the loser of the conditional update sees AlreadyUsedError"""
        first = Voucher.objects.get_by_code("ABCD2345")
        second = Voucher.objects.get_by_code("ABCD2345")

        with mock.patch.object(Voucher.objects, "get_by_code", side_effect=[first, second]):
            result = self.pipeline.redeem_voucher("ABCD2345", "AA:BB:CC:DD:EE:FF")
            self.assertFalse(second.is_used)
            with self.assertRaises(AlreadyUsedError):
                self.pipeline.redeem_voucher("ABCD2345", "11:22:33:44:55:66")

        self.assertTrue(result["success"])
        self.assertEqual(Session.objects.count(), 1)
        self.assertEqual(len(self.provisioner.created), 1)
        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.used_by, "AA:BB:CC:DD:EE:FF")

    def test_unknown_code(self):
        with self.assertRaises(NotFoundError):
            self.pipeline.redeem_voucher("ZZZZ9999", "AA:BB:CC:DD:EE:FF")

    def test_blank_code(self):
        with self.assertRaises(ValidationError):
            self.pipeline.redeem_voucher("  ", "AA:BB:CC:DD:EE:FF")

    def test_router_failure_still_returns_credentials(self):
        self.provisioner.fail = True

        with self.assertLogs("billing.activation", level="ERROR"):
            result = self.pipeline.redeem_voucher("ABCD2345", "AA:BB:CC:DD:EE:FF")

        self.assertEqual(result["username"], "FASTNET-V2345")
        self.voucher.refresh_from_db()
        self.assertTrue(self.voucher.is_used)
        self.assertTrue(Session.objects.filter(voucher=self.voucher).exists())

    def test_router_exception_is_swallowed(self):
        self.provisioner.raise_error = True

        with self.assertLogs("billing.activation", level="ERROR"):
            result = self.pipeline.redeem_voucher("ABCD2345", "")

        self.assertTrue(result["success"])
        session = Session.objects.get(voucher=self.voucher)
        self.assertEqual(session.mac_address, "unknown")
        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.used_by, "unknown")


class OperatorActionsTest(TestCase):
    def setUp(self):
        self.package = make_package(duration_hours=24, price=1000)
        self.provisioner = FakeProvisioner()
        self.pipeline = ActivationPipeline(provider=FakeProvider(), provisioner=self.provisioner)

    def make_session(self, username="FASTNET-0000", expires_in=timedelta(hours=1), mac="AA:BB:CC:DD:EE:FF"):
        return Session.objects.create(
            username=username,
            password="PASSWORD",
            mac_address=mac,
            package_name=self.package.name,
            expires_at=timezone.now() + expires_in,
        )

    def test_disconnect_session(self):
        session = self.make_session()

        result = self.pipeline.disconnect_session(session.pk)

        self.assertTrue(result["success"])
        session.refresh_from_db()
        self.assertFalse(session.is_active)
        self.assertEqual(self.provisioner.disconnected, ["AA:BB:CC:DD:EE:FF"])
        self.assertEqual(self.provisioner.removed, ["FASTNET-0000"])

        again = self.pipeline.disconnect_session(session.pk)
        self.assertEqual(again["message"], "Session already inactive")
        self.assertEqual(len(self.provisioner.removed), 1)

    def test_disconnect_missing_session(self):
        with self.assertRaises(NotFoundError):
            self.pipeline.disconnect_session(999999)

    def test_expire_sessions(self):
        expired = self.make_session(username="FASTNET-1111", expires_in=-timedelta(minutes=5))
        live = self.make_session(username="FASTNET-2222")

        result = self.pipeline.expire_sessions()

        self.assertEqual(result, {"expired": 1, "router_failures": 0})
        expired.refresh_from_db()
        live.refresh_from_db()
        self.assertFalse(expired.is_active)
        self.assertTrue(live.is_active)
        self.assertEqual(self.provisioner.removed, ["FASTNET-1111"])

    def test_expiry_keeps_bindings_of_renewed_device(self):
        """Test a device that renewed keeps its router session when the old one expires"""
        self.make_session(username="FASTNET-1111", expires_in=-timedelta(minutes=5))
        self.make_session(username="FASTNET-2222")

        self.pipeline.expire_sessions()

        self.assertEqual(self.provisioner.disconnected, [])
        self.assertEqual(self.provisioner.removed, ["FASTNET-1111"])

    def test_expiry_keeps_router_account_shared_with_live_session(self):
        """Test phone-suffix usernames shared by a newer session survive the sweep"""
        self.make_session(username="FASTNET-0000", expires_in=-timedelta(minutes=5))
        self.make_session(username="FASTNET-0000", mac="11:22:33:44:55:66")

        self.pipeline.expire_sessions()

        self.assertEqual(self.provisioner.removed, [])
        self.assertEqual(self.provisioner.disconnected, ["AA:BB:CC:DD:EE:FF"])

    def test_reconcile_activates_orphaned_payment(self):
        """Test a payment flipped to successful before a crash gets its session"""
        payment = Payment.objects.create(
            tx_ref="FASTNET-orphan", phone="256700001234", amount=1000, package=self.package
        )
        payment.mark_successful()

        result = self.pipeline.reconcile_payments()

        self.assertEqual(result, {"activated": 1, "failed": 0})
        session = Session.objects.get(payment=payment)
        self.assertEqual(session.username, "FASTNET-1234")
        self.assertEqual(session.expires_at, payment.expires_at)

        self.assertEqual(self.pipeline.reconcile_payments(), {"activated": 0, "failed": 0})

    def test_second_activation_keeps_existing_session(self):
        payment = Payment.objects.create(
            tx_ref="FASTNET-twice", phone="256770000000", amount=1000, package=self.package
        )
        payment.mark_successful()
        first = self.pipeline.activate_payment(payment)

        with self.assertLogs("billing.activation", level="WARNING"):
            second = self.pipeline.activate_payment(payment)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Session.objects.filter(payment=payment).count(), 1)
        self.assertEqual(self.provisioner.created[-1]["password"], first.password)

    def test_issue_vouchers_clamps_quantity(self):
        self.assertEqual(len(issue_vouchers(self.package.pk, 500)), 50)
        self.assertEqual(len(issue_vouchers(self.package.pk, 0)), 1)
        self.assertEqual(Voucher.objects.filter(package=self.package).count(), 51)

    def test_issue_vouchers_for_unknown_package(self):
        with self.assertRaises(ValidationError):
            issue_vouchers(999999, 5)
