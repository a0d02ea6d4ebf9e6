"""
Utility functions for billing system
"""

import re
import secrets
import string
import time

MAC_ADDRESS_RE = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")

# Uganda mobile-money prefixes (digits after the leading 0 / 256)
NETWORK_PREFIXES = {
    "MTN": ("77", "78", "76"),
    "AIRTEL": ("70", "75", "74"),
}


def format_phone_number(phone_number):
    """
    Format phone number to standard Uganda format (256XXXXXXXXX)

    Handles formats like:
    - +256770000000 -> 256770000000
    - 256770000000 -> 256770000000
    - 0770000000 -> 256770000000
    - 770000000 -> 256770000000
    """
    phone = "".join(c for c in str(phone_number or "") if c.isdigit())

    if phone.startswith("256"):
        return phone
    if phone.startswith("0"):
        return "256" + phone[1:]
    return "256" + phone


def detect_network(phone_number):
    """
    Return "MTN", "AIRTEL" or None for a Uganda phone number.

    Pure function, no side effects. Used before initiating a charge so that
    unsupported numbers are rejected before any payment row exists.
    """
    phone = format_phone_number(phone_number)
    if len(phone) != 12:
        return None

    prefix = phone[3:5]
    for network, prefixes in NETWORK_PREFIXES.items():
        if prefix in prefixes:
            return network
    return None


def normalize_mac_address(mac_address):
    """Uppercase, colon separated MAC, or "" if the value is not a MAC."""
    if not mac_address:
        return ""
    mac = str(mac_address).strip()
    if not MAC_ADDRESS_RE.match(mac):
        return ""
    return mac.replace("-", ":").upper()


def get_client_ip(request):
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def generate_tx_ref(prefix="FASTNET"):
    """FASTNET-<epoch ms>-<9 base36 chars>"""
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"
