"""
Local device storage

Drafts, preferences, recently viewed items and search history live in a
small key-value store injected wherever it is needed. Values are stored as
JSON text. Writes are last-write-wins with no locking: two tabs editing the
same key simply overwrite each other.
"""
import json
import logging

from .models import db, StorageItem

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """Interface: JSON values under string keys"""

    def get(self, key, default=None):
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"⚠️ Unreadable storage value for '{key}', ignoring it")
            return default

    def set(self, key, value):
        self.set_raw(key, json.dumps(value))

    def remove(self, key):
        raise NotImplementedError

    def get_raw(self, key):
        raise NotImplementedError

    def set_raw(self, key, raw):
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    """Process-local storage, one instance per test or per session"""

    def __init__(self, initial=None):
        self._items = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get_raw(self, key):
        return self._items.get(key)

    def set_raw(self, key, raw):
        self._items[key] = raw

    def remove(self, key):
        self._items.pop(key, None)

    def keys(self):
        return list(self._items)


class DatabaseStorage(KeyValueStorage):
    """Storage backed by the ``storage_items`` table; needs an app context"""

    def __init__(self, namespace=''):
        self.namespace = namespace

    def _key(self, key):
        return f"{self.namespace}:{key}" if self.namespace else key

    def get_raw(self, key):
        item = db.session.get(StorageItem, self._key(key))
        return item.value if item else None

    def set_raw(self, key, raw):
        try:
            db.session.merge(StorageItem(key=self._key(key), value=raw))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"❌ Error writing storage key '{key}': {e}", exc_info=True)
            raise

    def remove(self, key):
        try:
            item = db.session.get(StorageItem, self._key(key))
            if item:
                db.session.delete(item)
                db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"❌ Error removing storage key '{key}': {e}", exc_info=True)
            raise


DEFAULT_UI_PREFERENCES = {
    'sidebarCollapsed': False,
    'theme': 'system',
    'itemsPerPage': 20,
    'defaultView': 'list',
    'calendarView': 'month',
}


class Preferences:
    """User preferences merged over defaults, stored under ``user-preferences``"""

    key = 'user-preferences'

    def __init__(self, storage, defaults=None):
        self.storage = storage
        self.defaults = dict(DEFAULT_UI_PREFERENCES if defaults is None else defaults)

    def all(self):
        stored = self.storage.get(self.key, {})
        if not isinstance(stored, dict):
            stored = {}
        return {**self.defaults, **stored}

    def get(self, name):
        return self.all().get(name)

    def update(self, **values):
        merged = {**self.all(), **values}
        self.storage.set(self.key, merged)
        return merged

    def reset(self):
        self.storage.remove(self.key)
        return dict(self.defaults)


class RecentItems:
    """Most recently used records, newest first, unique by ``id``"""

    def __init__(self, storage, name, max_items=10):
        self.storage = storage
        self.key = f"recent-{name}"
        self.max_items = max_items

    def all(self):
        return self.storage.get(self.key, [])

    def add(self, item):
        items = [existing for existing in self.all() if existing.get('id') != item.get('id')]
        items = [item] + items
        self.storage.set(self.key, items[:self.max_items])

    def remove(self, item_id):
        self.storage.set(self.key, [i for i in self.all() if str(i.get('id')) != str(item_id)])

    def clear(self):
        self.storage.set(self.key, [])


class SearchHistory:
    def __init__(self, storage, name, max_history=20):
        self.storage = storage
        self.key = f"search-history-{name}"
        self.max_history = max_history

    def all(self):
        return self.storage.get(self.key, [])

    def add(self, term):
        term = (term or '').strip()
        if not term:
            return
        history = [term] + [t for t in self.all() if t != term]
        self.storage.set(self.key, history[:self.max_history])

    def remove(self, term):
        self.storage.set(self.key, [t for t in self.all() if t != term])

    def clear(self):
        self.storage.set(self.key, [])
