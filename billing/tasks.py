"""
Background tasks for FASTNET Wi-Fi Billing System
Scheduled through django-crontab (see CRONJOBS in settings)
"""

import logging

from .activation import ActivationPipeline

logger = logging.getLogger(__name__)


def expire_sessions(pipeline=None):
    """
    Deactivate sessions whose expires_at has passed and remove their
    hotspot accounts from the router. Runs every 5 minutes.
    """
    try:
        pipeline = pipeline or ActivationPipeline()
        result = pipeline.expire_sessions()
        return {"success": True, **result}
    except Exception as e:
        logger.error(f"Error in expire_sessions task: {str(e)}")
        return {"success": False, "error": str(e)}


def reconcile_payments(pipeline=None):
    """
    Activate payments marked successful that never got a session
    (crash between the status flip and provisioning). Runs hourly.
    """
    try:
        pipeline = pipeline or ActivationPipeline()
        result = pipeline.reconcile_payments()
        return {"success": True, **result}
    except Exception as e:
        logger.error(f"Error in reconcile_payments task: {str(e)}")
        return {"success": False, "error": str(e)}
