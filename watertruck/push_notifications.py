"""
Web Push Notification Service

Sends browser push notifications through the Web Push protocol with VAPID
authentication (pywebpush). Recipients are stored PushSubscription rows
(endpoint + p256dh + auth keys).

Configuration keys:
    VAPID_PUBLIC_KEY   - Application server public key, shared with browsers
    VAPID_PRIVATE_KEY  - Matching private key used to sign VAPID JWTs
    VAPID_SUBJECT      - mailto: or https: contact for the push service
    PUSH_TTL_SECONDS   - How long the push service should hold a message
    PUSH_TIMEOUT_SECONDS - Bound on each HTTP request to the push service
"""

import json
import logging
import threading

from flask import current_app
from pywebpush import webpush, WebPushException

logger = logging.getLogger(__name__)

# Push services answer 404/410 for subscriptions that will never work again
EXPIRED_STATUS_CODES = (404, 410)


class PushReport:
    """Outcome of one push attempt."""

    def __init__(self, success, expired=False, status_code=None, reason=None):
        self.success = success
        self.expired = expired
        self.status_code = status_code
        self.reason = reason

    def __bool__(self):
        return self.success

    def __repr__(self):
        return (
            f"PushReport(success={self.success!r}, expired={self.expired!r}, "
            f"status_code={self.status_code!r}, reason={self.reason!r})"
        )


class WebPushNotifier:
    """Notifier capability backed by pywebpush."""

    def __init__(self, public_key, private_key, subject, ttl=3600, icon=None, timeout=10.0):
        self.public_key = public_key
        self.private_key = private_key
        self.subject = subject
        self.ttl = ttl
        self.icon = icon
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            public_key=config.get("VAPID_PUBLIC_KEY", ""),
            private_key=config.get("VAPID_PRIVATE_KEY", ""),
            subject=config.get("VAPID_SUBJECT", "mailto:admin@example.com"),
            ttl=config.get("PUSH_TTL_SECONDS", 3600),
            icon=config.get("APP_LOGO"),
            timeout=config.get("PUSH_TIMEOUT_SECONDS", 10.0),
        )

    def is_configured(self) -> bool:
        return bool(self.public_key and self.private_key)

    def build_payload(self, title: str, body: str, data: dict | None = None) -> str:
        payload = {
            "title": title,
            "body": body,
            "icon": self.icon,
            "badge": self.icon,
            "data": data or {},
        }
        return json.dumps(payload)

    def send(self, subscription_info: dict, title: str, body: str, data: dict | None = None) -> PushReport:
        """Send one push message.

        Returns a PushReport; never raises.
        """
        endpoint = (subscription_info or {}).get("endpoint") or ""
        short_endpoint = endpoint[:48]

        if not self.is_configured():
            logger.warning("Web Push is not configured (missing VAPID keys). Skipping push to %s...", short_endpoint)
            return PushReport(False, reason="not_configured")

        try:
            response = webpush(
                subscription_info=subscription_info,
                data=self.build_payload(title, body, data),
                vapid_private_key=self.private_key,
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
                timeout=self.timeout,
            )
            status_code = getattr(response, "status_code", None)
            logger.info("Web Push sent to %s... title=%r status=%s", short_endpoint, title, status_code)
            return PushReport(True, status_code=status_code)

        except WebPushException as e:
            status_code = getattr(e.response, "status_code", None) if e.response is not None else None
            expired = status_code in EXPIRED_STATUS_CODES
            logger.warning(
                "Web Push failed: status=%s endpoint=%s... expired=%s reason=%s",
                status_code, short_endpoint, expired, e,
            )
            return PushReport(False, expired=expired, status_code=status_code, reason=str(e))

        except Exception as e:
            logger.exception("Web Push failed with exception for endpoint=%s...", short_endpoint)
            return PushReport(False, reason=str(e))


# ---------------------------------------------------------------------------
# Process-wide notifier
# ---------------------------------------------------------------------------
_notifier = None
_notifier_lock = threading.Lock()


def get_notifier():
    """Return the process-wide notifier, creating it on first use."""
    global _notifier
    if _notifier is None:
        with _notifier_lock:
            if _notifier is None:
                _notifier = WebPushNotifier.from_config(current_app.config)
    return _notifier
