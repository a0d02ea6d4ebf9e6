"""
URL patterns for billing app
"""

from django.urls import path

from . import views

urlpatterns = [
    path("health/", views.health_check, name="health_check"),
    path("packages/", views.list_packages, name="list_packages"),
    # Payment flow
    path("payment/initiate/", views.initiate_payment, name="initiate_payment"),
    path("payment/status/", views.payment_status, name="payment_status"),
    path(
        "payment/status/<str:tx_ref>/",
        views.payment_status,
        name="payment_status_detail",
    ),
    path("webhook/", views.payment_webhook, name="payment_webhook"),
    # Vouchers
    path("voucher/redeem/", views.redeem_voucher, name="redeem_voucher"),
    # Operator endpoints
    path("admin/vouchers/", views.admin_vouchers, name="admin_vouchers"),
    path(
        "admin/vouchers/<int:voucher_id>/",
        views.delete_voucher,
        name="delete_voucher",
    ),
    path(
        "admin/sessions/<int:session_id>/disconnect/",
        views.disconnect_session,
        name="disconnect_session",
    ),
    path("admin/active-users/", views.active_users, name="active_users"),
]
