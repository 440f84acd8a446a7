"""
Registration drafts

The self-registration form keeps a time-stamped snapshot of its progress in
local storage so a patient who closes the page can pick up where they left
off. A save is scheduled on every change and only runs once the form has
been quiet for the debounce delay.
"""
import logging
import threading
import time

from .config import Config

logger = logging.getLogger(__name__)


def draft_key(token=None, source='qr-token'):
    """``qr-registration-<token>`` or ``generic-registration-<source>``."""
    if token:
        return f"qr-registration-{token}"
    return f"generic-registration-{source or 'qr-token'}"


def now_ms():
    return int(time.time() * 1000)


class DraftStore:
    """Read and write one draft in a KeyValueStorage"""

    def __init__(self, storage, key, max_age_hours=None):
        self.storage = storage
        self.key = key
        self.max_age_hours = Config.DRAFT_MAX_AGE_HOURS if max_age_hours is None else max_age_hours

    def save(self, form_data, medical_history, current_step, timestamp=None):
        draft = {
            'formData': dict(form_data),
            'medicalHistory': dict(medical_history or {}),
            'currentStep': current_step,
            'timestamp': now_ms() if timestamp is None else timestamp,
        }
        self.storage.set(self.key, draft)
        logger.info(f"💾 Draft saved ({self.key}, step {current_step})")
        return draft

    def load(self, now=None):
        """
        Return the stored draft if it is younger than the max age

        Args:
            now: current time in epoch milliseconds

        Returns:
            The draft dict, or None when missing, stale or unreadable
        """
        draft = self.storage.get(self.key)
        if not draft:
            return None
        try:
            age_hours = ((now_ms() if now is None else now) - draft['timestamp']) / (1000 * 60 * 60)
        except (KeyError, TypeError) as e:
            logger.warning(f"⚠️ Error loading draft {self.key}: {e}")
            return None
        if age_hours >= self.max_age_hours:
            logger.info(f"Draft {self.key} is {age_hours:.1f}h old, not restoring")
            return None
        return draft

    def clear(self):
        self.storage.remove(self.key)


class Debouncer:
    """
    Run ``func`` once, ``delay`` seconds after the last ``trigger()``

    Every trigger restarts the countdown. ``cancel()`` drops a pending call;
    ``flush()`` runs it immediately.
    """

    def __init__(self, delay, func, timer_factory=threading.Timer):
        self.delay = delay
        self.func = func
        self.timer_factory = timer_factory
        self._timer = None
        self._args = ()
        self._kwargs = {}
        self._lock = threading.Lock()

    @property
    def pending(self):
        return self._timer is not None

    def trigger(self, *args, **kwargs):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._args, self._kwargs = args, kwargs
            self._timer = self.timer_factory(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self):
        with self._lock:
            self._timer = None
            args, kwargs = self._args, self._kwargs
        self.func(*args, **kwargs)

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self):
        if self.pending:
            self.cancel()
            self.func(*self._args, **self._kwargs)
