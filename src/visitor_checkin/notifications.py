"""
Guard and host notifications sent after a visitor checks in.

Delivery is best-effort: both writes are issued in parallel, failures are
logged and never reach the caller.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait

from . import config
from .exceptions import NotificationFailure
from .models import Notification
from .validation import utcnow

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def build_notifications(visitor, timestamp=None):
    """
    Returns the (guard, host) notification payloads for a checked-in visitor.
    """
    timestamp = timestamp or utcnow()
    guard_notification = {
        "type": "visitor_logged",
        "title": "Visitor Logged Successfully",
        "message": f"{visitor.name} has been logged and checked in to visit {visitor.visiting_flat}",
        "visitor_id": visitor.id,
        "visitor_name": visitor.name,
        "flat_no": visitor.visiting_flat,
        "host_name": visitor.host_name,
        "purpose": visitor.purpose,
        "timestamp": timestamp,
        "read": False,
        "target_role": "guard",
    }
    host_notification = {
        "type": "visitor_checked_in",
        "title": "Visitor Checked In",
        "message": f"{visitor.name} has checked in and is on their way to visit you",
        "visitor_id": visitor.id,
        "visitor_name": visitor.name,
        "visitor_phone": visitor.phone,
        "purpose": visitor.purpose,
        "timestamp": timestamp,
        "read": False,
        "target_user_id": visitor.host_id,
    }
    return guard_notification, host_notification


# PUBLIC_INTERFACE
class NotificationDispatcher:
    """
    Writes notification payloads to the notifications table.

    `writer` may be swapped for another sink (push, mail); it receives one
    payload dict per call.
    """

    def __init__(self, session_factory=None, writer=None, timeout=None):
        if writer is None and session_factory is None:
            raise ValueError("NotificationDispatcher needs a session_factory or a writer")
        self.session_factory = session_factory
        self.writer = writer or self._store
        self.timeout = timeout or config.NOTIFICATION_TIMEOUT_SECONDS

    def _store(self, payload):
        with self.session_factory() as db:
            db.add(Notification(**payload))
            db.commit()

    def _send(self, payload):
        try:
            self.writer(payload)
        except Exception as exc:
            failure = NotificationFailure(f"Error sending {payload['type']} notification: {exc}")
            logger.error("%s", failure.message)
            return False
        return True

    def dispatch(self, visitor):
        """
        Sends both notifications concurrently. Returns one bool per write,
        guard first. Never raises.
        """
        payloads = build_notifications(visitor)
        pool = ThreadPoolExecutor(max_workers=len(payloads), thread_name_prefix="notify")
        try:
            futures = [pool.submit(self._send, payload) for payload in payloads]
            done, _ = wait(futures, timeout=self.timeout)
        finally:
            # a write still running after the timeout finishes in the background
            pool.shutdown(wait=False)
        outcomes = [future in done and future.result() for future in futures]
        if all(outcomes):
            logger.info("Notifications sent for visitor %s", visitor.id)
        else:
            logger.warning("Some notifications failed for visitor %s: %s", visitor.id, outcomes)
        return outcomes
