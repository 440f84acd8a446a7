"""
Base class for data-fetch resources

A resource owns one slice of backend state and exposes ``data``,
``loading``, ``error`` and ``refetch()``. Fetch failures are stored on the
resource, never raised past it. Mutations return a ``MutationResult`` and
refetch on success so the list always mirrors the backend.

Each fetch takes a sequence number; a response is only applied if no newer
fetch has started since, so a slow reply for an old window cannot overwrite
fresher state.
"""
import logging
import threading
from collections import namedtuple

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from ..api_client import ApiError, EnvelopeError, expect
from ..validation import ValidationError

logger = logging.getLogger(__name__)

MutationResult = namedtuple('MutationResult', ['success', 'data', 'error'], defaults=(None, None))


def parse_rows(model, rows, source):
    """Validate backend rows against a schema and return plain dicts."""
    try:
        items = TypeAdapter(list[model]).validate_python(rows)
    except PydanticValidationError as e:
        logger.error(f"❌ Invalid {source} rows from backend: {e.error_count()} error(s)")
        raise EnvelopeError(f"Unexpected {source} data from server")
    return [item.model_dump() for item in items]


def parse_row(model, row, source):
    try:
        return model.model_validate(row).model_dump()
    except PydanticValidationError as e:
        logger.error(f"❌ Invalid {source} from backend: {e.error_count()} error(s)")
        raise EnvelopeError(f"Unexpected {source} data from server")


class Resource:
    name = 'resource'

    def __init__(self, client):
        self.client = client
        self.data = self.empty()
        self.loading = False
        self.error = None
        self.error_status = None
        self._sequence = 0
        self._lock = threading.Lock()

    def empty(self):
        return []

    def load(self):
        """Fetch and return fresh data. Subclasses raise ApiError on failure."""
        raise NotImplementedError

    def begin(self):
        """Start a fetch and return its sequence number."""
        with self._lock:
            self._sequence += 1
            self.loading = True
            self.error = None
            self.error_status = None
            return self._sequence

    def apply(self, sequence, data=None, error=None):
        """
        Store the outcome of fetch ``sequence`` if it is still the latest.

        Returns:
            True when applied, False when the response was stale
        """
        with self._lock:
            if sequence != self._sequence:
                logger.info(f"Dropping stale {self.name} response #{sequence} (latest #{self._sequence})")
                return False
            self.loading = False
            if error is not None:
                self.error = str(error)
                self.error_status = getattr(error, 'status_code', None)
                self.data = self.empty()
            else:
                self.data = data
            return True

    def fetch(self):
        sequence = self.begin()
        try:
            data = self.load()
        except ApiError as e:
            logger.error(f"❌ Error fetching {self.name}: {e}")
            self.apply(sequence, error=e)
        else:
            self.apply(sequence, data=data)
        return self.data

    def refetch(self):
        return self.fetch()

    def mutate(self, action, *args, refetch=True, **kwargs):
        """
        Run a backend mutation and wrap its outcome

        Client-side validation failures and API errors both come back as
        ``MutationResult(success=False, error=...)``.
        """
        try:
            data = action(*args, **kwargs)
        except ValidationError as e:
            return MutationResult(False, error=str(e))
        except ApiError as e:
            logger.error(f"❌ {self.name} mutation failed: {e}")
            return MutationResult(False, error=str(e))

        if refetch:
            self.refetch()
        return MutationResult(True, data)


class CollectionResource(Resource):
    """
    A paginated backend collection at ``path``

    The list endpoint answers ``{success, data: {<plural>: [...], pagination}}``
    and single-row endpoints answer ``{success, data: {<singular>: {...}}}``.
    """

    path = None
    plural = None
    singular = None
    model = None
    default_params = {}

    def __init__(self, client, filters=None):
        self.filters = dict(filters or {})
        self.total_count = 0
        self.has_more = False
        super().__init__(client)

    @property
    def name(self):
        return self.plural

    def params(self):
        params = dict(self.default_params)
        params.update({k: v for k, v in self.filters.items() if v is not None and v != ''})
        return params

    def load(self):
        payload = self.client.get(self.path, params=self.params())
        rows = parse_rows(self.model, expect(payload, self.plural), self.plural)
        pagination = payload.get('pagination') or {}
        self.total_count = pagination.get('total', len(rows))
        self.has_more = bool(pagination.get('hasMore', False))
        logger.info(f"✅ Loaded {len(rows)} {self.plural}")
        return rows

    def get(self, row_id):
        payload = self.client.get(f"{self.path}/{row_id}")
        return parse_row(self.model, expect(payload, self.singular, dict), self.singular)

    def _create(self, values):
        payload = self.client.post(self.path, json=values)
        return payload.get(self.singular)

    def _update(self, row_id, values):
        payload = self.client.put(f"{self.path}/{row_id}", json=values)
        return payload.get(self.singular)

    def _delete(self, row_id):
        self.client.delete(f"{self.path}/{row_id}")
        return row_id

    def create(self, values):
        return self.mutate(self._create, values)

    def update(self, row_id, values):
        return self.mutate(self._update, row_id, values)

    def delete(self, row_id):
        return self.mutate(self._delete, row_id)

    def set_filters(self, **filters):
        """Replace filters and refetch."""
        self.filters = filters
        return self.fetch()
