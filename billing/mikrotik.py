"""
Mikrotik Router Integration for FASTNET Wi-Fi Billing System

Access provisioning adapter. Every operation is best-effort: router
failures are logged and reported as False (or an empty list), never raised
to the activation pipeline.
"""

import logging
import socket
import time

import routeros_api
from django.conf import settings

from .exceptions import ProvisioningError
from .models import random_code

logger = logging.getLogger(__name__)


def hours_to_uptime(hours):
    """RouterOS limit-uptime: whole days from 24h up, hours below."""
    hours = int(hours)
    if hours >= 24:
        return f"{hours // 24}d"
    return f"{hours}h"


def generate_password(length=8):
    return random_code(length)


def safe_close(api):
    """Safely close routeros_api communicator if present."""
    try:
        if api:
            api.get_communicator().close()
    except Exception as e:
        logger.debug(f"Ignoring error while closing RouterOS connection: {e}")


class Provisioner:
    """
    Hotspot user database on the access router.

    create_user / remove_user / disconnect return True on success and False
    on any failure. active_users returns [] on failure.
    """

    name = "base"

    def create_user(self, username, password, mac_address=None, uptime_limit=None):
        raise NotImplementedError

    def remove_user(self, username):
        raise NotImplementedError

    def disconnect(self, mac_address):
        raise NotImplementedError

    def active_users(self):
        raise NotImplementedError

    def check_connection(self):
        raise NotImplementedError


class MikrotikProvisioner(Provisioner):
    """
    RouterOS API implementation. One connection per operation.

    Credentials come from Django settings unless passed explicitly.
    """

    name = "mikrotik"

    def __init__(
        self,
        host=None,
        port=None,
        username=None,
        password=None,
        use_ssl=None,
        ssl_verify=None,
        profile=None,
        timeout=None,
        retries=None,
        retry_delay=1,
    ):
        self.host = host or getattr(settings, "MIKROTIK_HOST", "192.168.88.1")
        self.port = int(port or getattr(settings, "MIKROTIK_PORT", 8728))
        self.username = username or getattr(settings, "MIKROTIK_USER", "admin")
        self.password = (
            password if password is not None else getattr(settings, "MIKROTIK_PASSWORD", "")
        )
        self.use_ssl = bool(
            use_ssl if use_ssl is not None else getattr(settings, "MIKROTIK_USE_SSL", False)
        )
        self.ssl_verify = bool(
            ssl_verify
            if ssl_verify is not None
            else getattr(settings, "MIKROTIK_SSL_VERIFY", False)
        )
        self.profile = profile or getattr(settings, "MIKROTIK_DEFAULT_PROFILE", "default")
        self.timeout = timeout or getattr(settings, "MIKROTIK_TIMEOUT", 10)
        self.retries = max(1, retries or getattr(settings, "MIKROTIK_RETRIES", 2))
        self.retry_delay = retry_delay

    def connect(self):
        """
        Return an authenticated RouterOS API connection.
        Caller should close it with safe_close(api) in a finally block.

        Raises ProvisioningError once every attempt has failed.
        """
        original_timeout = socket.getdefaulttimeout()
        socket.setdefaulttimeout(self.timeout)

        last_error = None
        try:
            for attempt in range(self.retries):
                try:
                    pool = routeros_api.RouterOsApiPool(
                        self.host,
                        username=self.username,
                        password=self.password,
                        port=self.port,
                        use_ssl=self.use_ssl,
                        ssl_verify=self.ssl_verify,
                        plaintext_login=True,
                    )
                    api = pool.get_api()
                    logger.debug(
                        f"MikroTik API connected successfully on attempt {attempt + 1}"
                    )
                    return api
                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"MikroTik connection attempt {attempt + 1}/{self.retries} failed: {e}"
                    )
                    if attempt < self.retries - 1 and self.retry_delay:
                        time.sleep(self.retry_delay)
        finally:
            socket.setdefaulttimeout(original_timeout)

        raise ProvisioningError(f"Failed to connect to MikroTik router: {last_error}")

    def create_user(self, username, password, mac_address=None, uptime_limit=None):
        """Create or update /ip/hotspot/user entry."""
        if not username:
            return False

        fields = {"password": password, "profile": self.profile, "disabled": "no"}
        if mac_address:
            fields["mac_address"] = mac_address
        if uptime_limit:
            fields["limit_uptime"] = uptime_limit

        api = None
        try:
            api = self.connect()
            users = api.get_resource("/ip/hotspot/user")
            exist = users.get(name=username)

            if exist:
                for item in exist:
                    user_id = item.get(".id") or item.get("id")
                    if user_id:
                        users.set(id=user_id, **fields)
                logger.info(f"Updated and re-enabled hotspot user {username}")
                return True

            users.add(name=username, **fields)
            logger.info(f"Created hotspot user {username} (limit-uptime={uptime_limit})")
            return True
        except Exception as e:
            logger.error(f"create_user failed for {username}: {e}")
            return False
        finally:
            safe_close(api)

    def remove_user(self, username):
        api = None
        try:
            api = self.connect()
            users = api.get_resource("/ip/hotspot/user")
            for item in users.get(name=username):
                user_id = item.get(".id") or item.get("id")
                if user_id:
                    users.remove(id=user_id)
            logger.info(f"Removed hotspot user {username}")
            return True
        except Exception as e:
            logger.error(f"remove_user failed for {username}: {e}")
            return False
        finally:
            safe_close(api)

    def disconnect(self, mac_address):
        """Drop IP bindings and active sessions for a MAC."""
        if not mac_address or mac_address == "unknown":
            return False

        api = None
        try:
            api = self.connect()

            bindings = api.get_resource("/ip/hotspot/ip-binding")
            for binding in bindings.get(mac_address=mac_address):
                binding_id = binding.get(".id") or binding.get("id")
                if binding_id:
                    bindings.remove(id=binding_id)

            active = api.get_resource("/ip/hotspot/active")
            for session in active.get():
                if session.get("mac-address", "").upper() == mac_address.upper():
                    session_id = session.get(".id") or session.get("id")
                    if session_id:
                        active.remove(id=session_id)

            logger.info(f"Disconnected {mac_address} from hotspot")
            return True
        except Exception as e:
            logger.error(f"disconnect failed for {mac_address}: {e}")
            return False
        finally:
            safe_close(api)

    def active_users(self):
        """List active hotspot users using /ip/hotspot/active."""
        api = None
        try:
            api = self.connect()
            active = api.get_resource("/ip/hotspot/active").get()
            return [
                {
                    "user": u.get("user") or "unknown",
                    "mac_address": u.get("mac-address", ""),
                    "ip_address": u.get("address", ""),
                    "uptime": u.get("uptime", ""),
                    "bytes_in": u.get("bytes-in", ""),
                    "bytes_out": u.get("bytes-out", ""),
                }
                for u in active
            ]
        except Exception as e:
            logger.error(f"Error getting active users: {e}")
            return []
        finally:
            safe_close(api)

    def check_connection(self):
        api = None
        try:
            api = self.connect()
            resource = api.get_resource("/system/resource").get()
            info = resource[0] if resource else {}
            active = api.get_resource("/ip/hotspot/active").get()
            return {
                "success": True,
                "host": self.host,
                "version": info.get("version"),
                "uptime": info.get("uptime"),
                "active_users": len(active),
            }
        except Exception as e:
            logger.error(f"Error testing MikroTik connection: {e}")
            return {"success": False, "host": self.host, "error": str(e)}
        finally:
            safe_close(api)


class DemoProvisioner(Provisioner):
    """Simulated router used when DEMO_MODE is on."""

    name = "demo"

    def create_user(self, username, password, mac_address=None, uptime_limit=None):
        logger.info(f"[DEMO] Creating hotspot user: {username} (limit-uptime={uptime_limit})")
        return True

    def remove_user(self, username):
        logger.info(f"[DEMO] Removing hotspot user: {username}")
        return True

    def disconnect(self, mac_address):
        logger.info(f"[DEMO] Disconnecting user with MAC: {mac_address}")
        return True

    def active_users(self):
        return [
            {
                "user": "demo-user-1",
                "mac_address": "AA:BB:CC:DD:EE:F1",
                "ip_address": "192.168.88.100",
                "uptime": "2h30m",
                "bytes_in": "150MB",
                "bytes_out": "25MB",
            },
            {
                "user": "demo-user-2",
                "mac_address": "AA:BB:CC:DD:EE:F2",
                "ip_address": "192.168.88.101",
                "uptime": "45m",
                "bytes_in": "80MB",
                "bytes_out": "10MB",
            },
        ]

    def check_connection(self):
        return {"success": True, "host": "demo", "active_users": len(self.active_users())}


def get_provisioner():
    if getattr(settings, "DEMO_MODE", False):
        return DemoProvisioner()
    return MikrotikProvisioner()
