"""
Header bell notifications

Marking as read updates local state at once and tells the backend in the
background. A failed write is logged and left alone; the next
``reconcile()`` replaces local state with whatever the backend holds.
"""
import logging
import time

from .api_client import ApiError, expect
from .config import Config
from .resources.base import Resource, parse_rows
from .schemas import Notification
from .tz_utils import now_utc

logger = logging.getLogger(__name__)

NOTIFICATIONS_PATH = '/api/notifications'


class NotificationCenter(Resource):
    """
    Notifications for the signed-in user

    ``GET /api/notifications`` answers ``{notifications, unreadCount}``;
    ``PUT /api/notifications?id=`` marks one as read.
    """

    name = 'notifications'

    def __init__(self, client, auth_token=None):
        self.auth_token = auth_token
        self.last_used_at = time.monotonic()
        self.last_reconciled_at = None
        self.failed_writes = 0
        super().__init__(client)

    def load(self):
        payload = self.client.get(NOTIFICATIONS_PATH, legacy=True)
        return parse_rows(Notification, expect(payload, 'notifications'), 'notifications')

    def touch(self, now=None):
        self.last_used_at = time.monotonic() if now is None else now

    @property
    def signed_out(self):
        return self.error_status in (401, 403)

    @property
    def unread_count(self):
        return sum(1 for n in self.data if not n.get('is_read'))

    def _send_read(self, notification_id):
        try:
            self.client.put(NOTIFICATIONS_PATH, params={'id': notification_id}, legacy=True)
        except ApiError as e:
            self.failed_writes += 1
            logger.warning(f"⚠️ Could not mark notification {notification_id} as read: {e}")
            return False
        return True

    def mark_as_read(self, notification_id):
        """Flip one notification locally, then tell the backend."""
        found = False
        for notification in self.data:
            if notification['id'] == notification_id:
                notification['is_read'] = True
                found = True
        if not found:
            return False
        self._send_read(notification_id)
        return True

    def mark_all_as_read(self):
        unread = [n for n in self.data if not n.get('is_read')]
        for notification in unread:
            notification['is_read'] = True
        for notification in unread:
            self._send_read(notification['id'])
        return len(unread)

    def reconcile(self):
        """Refetch from the backend, discarding any optimistic drift."""
        self.refetch()
        if self.error is None:
            self.last_reconciled_at = now_utc()
            logger.info(f"🔄 Notifications reconciled: {self.unread_count} unread")
        return self.data


def prune_centers(centers, now=None, idle_minutes=None, limit=None):
    """
    Drop centers nobody has used for ``idle_minutes``, then the least
    recently used ones until at most ``limit`` remain

    Returns:
        The removed keys
    """
    now = time.monotonic() if now is None else now
    idle_seconds = (idle_minutes or Config.NOTIFICATION_CENTER_IDLE_MINUTES) * 60
    limit = limit or Config.NOTIFICATION_CENTER_LIMIT

    removed = [key for key, center in list(centers.items()) if now - center.last_used_at > idle_seconds]
    by_age = sorted((k for k in centers if k not in removed), key=lambda k: centers[k].last_used_at)
    removed.extend(by_age[:max(len(by_age) - limit, 0)])
    for key in removed:
        centers.pop(key, None)
    if removed:
        logger.info(f"🗑️ Dropped {len(removed)} notification center(s), {len(centers)} left")
    return removed
