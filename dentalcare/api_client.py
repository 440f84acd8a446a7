"""
HTTP client for the clinic REST backend

Every call goes through ``ApiClient.request`` which forwards the caller's
cookies, maps transport and HTTP failures onto the ``ApiError`` family and
unwraps the response envelope. The canonical envelope is
``{success, data?, error?}``; the few endpoints still answering with a bare
``{<resource>: ...}`` body must be called with ``legacy=True``.
"""
import logging

import requests
from pydantic import ValidationError as PydanticValidationError

from .config import Config
from .schemas import Envelope

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = 'Failed to connect to server'


class ApiError(Exception):
    """Base class for failures talking to the backend"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        return self.message


class NetworkError(ApiError):
    """No response: DNS, refused connection, timeout"""

    def __init__(self, message=NETWORK_ERROR_MESSAGE):
        super().__init__(message, status_code=503)


class HttpError(ApiError):
    """Non-2xx response, or a canonical envelope with ``success: false``"""


class EnvelopeError(ApiError):
    """Response body does not have the shape the caller declared"""

    def __init__(self, message, status_code=502):
        super().__init__(message, status_code)


def error_message_from_body(body, status_code):
    """Pick the user-facing message out of an error body."""
    if isinstance(body, dict):
        if body.get('error'):
            return str(body['error'])
        details = body.get('details')
        if isinstance(details, list):
            messages = [d.get('message') for d in details if isinstance(d, dict) and d.get('message')]
            if messages:
                return ', '.join(messages)
        if body.get('message'):
            return str(body['message'])
    return f"Server error ({status_code}). Please try again."


def expect(payload, key, kind=list):
    """
    Pull ``key`` out of an unwrapped payload, failing loudly on mismatch.

    Raises:
        EnvelopeError: key missing or value of the wrong type
    """
    if not isinstance(payload, dict) or key not in payload:
        raise EnvelopeError(f"Response is missing '{key}'")
    value = payload[key]
    if kind is not None and not isinstance(value, kind):
        raise EnvelopeError(f"Response field '{key}' has unexpected type {type(value).__name__}")
    return value


class ApiClient:
    def __init__(self, base_url=None, session=None, cookies=None, timeout=None):
        self.base_url = (base_url or Config.API_BASE_URL).rstrip('/')
        self.session = session or requests.Session()
        self.cookies = dict(cookies or {})
        self.timeout = timeout if timeout is not None else Config.API_TIMEOUT

    def url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method, path, params=None, json=None, legacy=False):
        """
        Perform one request and unwrap its envelope

        Args:
            method: HTTP verb
            path: Path under the API base URL, e.g. ``/api/patients``
            params: Query parameters; None values are dropped
            json: JSON body
            legacy: Accept a bare ``{<resource>: ...}`` body instead of the
                canonical envelope

        Returns:
            The envelope's ``data`` (an empty dict when absent) or, for
            legacy endpoints, the whole body

        Raises:
            NetworkError, HttpError, EnvelopeError
        """
        if params:
            params = {
                k: ('true' if v else 'false') if isinstance(v, bool) else v
                for k, v in params.items() if v is not None and v != ''
            }

        try:
            response = self.session.request(
                method,
                self.url(path),
                params=params or None,
                json=json,
                cookies=self.cookies,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"❌ {method} {path} failed: {e}")
            raise NetworkError()

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            message = error_message_from_body(body, response.status_code)
            logger.warning(f"⚠️ {method} {path} returned {response.status_code}: {message}")
            raise HttpError(message, response.status_code)

        if body is None:
            raise EnvelopeError(f"Expected JSON from {path}, got {response.headers.get('Content-Type', 'unknown content')}")

        if legacy:
            if not isinstance(body, dict):
                raise EnvelopeError(f"Unexpected response shape from {path}")
            return body

        try:
            envelope = Envelope.model_validate(body)
        except PydanticValidationError:
            raise EnvelopeError(f"Unexpected response shape from {path}")

        if not envelope.success:
            raise HttpError(envelope.error or f"Server error ({response.status_code}). Please try again.",
                            response.status_code)

        return envelope.data if envelope.data is not None else {}

    def get(self, path, params=None, legacy=False):
        return self.request('GET', path, params=params, legacy=legacy)

    def post(self, path, json=None, params=None, legacy=False):
        return self.request('POST', path, params=params, json=json, legacy=legacy)

    def put(self, path, json=None, params=None, legacy=False):
        return self.request('PUT', path, params=params, json=json, legacy=legacy)

    def delete(self, path, params=None, legacy=False):
        return self.request('DELETE', path, params=params, legacy=legacy)
