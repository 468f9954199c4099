"""
Passenger notifications.

Delivery (email gateway) lives outside this service; the core only hands
messages to a ``Notifier``. Dispatch is fire-and-forget: a failing notifier
is logged and never fails the booking, refund or reschedule that triggered it.
"""

import logging
from typing import Optional

from ferry.config import settings

logger = logging.getLogger(__name__)


class Notifier:
    """Default notifier: records the outbound message in the application log"""

    def booking_payment_required(self, to: str, reference: str, total_amount_cents: int):
        logger.info("Payment required notice for %s sent to %s (total %s cents)", reference, to, total_amount_cents)

    def booking_confirmed(self, to: str, reference: str, total_amount_cents: int, tickets_url: Optional[str] = None):
        logger.info("Booking confirmed notice for %s sent to %s", reference, to)

    def booking_rescheduled(self, to: str, reference: str, fee_delta_cents: int):
        logger.info("Reschedule notice for %s sent to %s (fee %s cents)", reference, to, fee_delta_cents)

    def refund_updated(self, to: str, reference: str, refund_status: str):
        logger.info("Refund %s notice for %s sent to %s", refund_status, reference, to)

    def restriction_changed(self, profile_id: int, action: str):
        logger.info("Restriction %s applied to profile %s", action, profile_id)


class SafeNotifier:
    """Wraps a notifier so delivery errors are logged and swallowed"""

    def __init__(self, notifier: Optional[Notifier] = None, enabled: bool = True):
        self.notifier = notifier or Notifier()
        self.enabled = enabled

    def send(self, event: str, **kwargs) -> bool:
        if not self.enabled:
            return False
        handler = getattr(self.notifier, event)
        try:
            handler(**kwargs)
            return True
        except Exception:
            logger.exception("Notification %s failed; continuing", event)
            return False

    def send_to_contacts(self, event: str, to: Optional[str], also: Optional[str] = None, **kwargs):
        """Send to the main contact and, when different, the secondary address"""
        main = (to or "").strip()
        if main:
            self.send(event, to=main, **kwargs)
        extra = (also or "").strip()
        if extra and extra.lower() != main.lower():
            self.send(event, to=extra, **kwargs)


def tickets_url(reference: str) -> Optional[str]:
    if not settings.APP_URL:
        return None
    return f"{settings.APP_URL.rstrip('/')}/bookings/{reference}/tickets"


def get_notifier() -> SafeNotifier:
    return SafeNotifier(enabled=settings.NOTIFICATIONS_ENABLED)
