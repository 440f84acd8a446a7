import json
from datetime import date
from urllib.parse import urlparse

import pytest
import requests

from dentalcare.api_client import ApiClient
from dentalcare.storage import MemoryStorage
from dentalcare.web_dashboard import create_app

API_BASE = 'http://api.test'
TODAY = date(2024, 2, 15)


def make_response(status, body=None, text=None):
    response = requests.Response()
    response.status_code = status
    if body is not None:
        response._content = json.dumps(body).encode()
        response.headers['Content-Type'] = 'application/json'
    else:
        response._content = (text or '').encode()
        response.headers['Content-Type'] = 'text/html'
    response.url = API_BASE
    return response


def ok(data=None):
    return 200, {'success': True, 'data': data}


def page(key, rows, total=None, has_more=False):
    return ok({key: rows, 'pagination': {'total': len(rows) if total is None else total, 'hasMore': has_more}})


class StubSession:
    """
    Stands in for ``requests.Session``

    Routes map (method, path) to a (status, body) tuple, an exception to
    raise, or a callable taking (params, json) and returning either.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, result):
        self.routes[(method, path)] = result
        return self

    def request(self, method, url, params=None, json=None, cookies=None, timeout=None, **kwargs):
        path = urlparse(url).path
        self.calls.append({
            'method': method,
            'path': path,
            'params': params or {},
            'json': json,
            'cookies': cookies or {},
            'timeout': timeout,
        })
        result = self.routes.get((method, path))
        if result is None:
            return make_response(404, {'success': False, 'error': f'No route for {method} {path}'})
        if callable(result):
            result = result(params or {}, json)
        if isinstance(result, Exception):
            raise result
        status, body = result
        if isinstance(body, str):
            return make_response(status, text=body)
        return make_response(status, body)

    def calls_to(self, method, path):
        return [c for c in self.calls if c['method'] == method and c['path'] == path]


@pytest.fixture
def stub():
    return StubSession()


@pytest.fixture
def client(stub):
    return ApiClient(base_url=API_BASE, session=stub, cookies={'sb-access-token': 'abc'})


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def app(stub, storage):
    return create_app(
        {'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://', 'API_BASE_URL': API_BASE},
        api_session=stub,
        storage=storage,
    )


@pytest.fixture
def db_app(stub):
    """App using the real storage_items table in an in-memory database."""
    return create_app(
        {'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://', 'API_BASE_URL': API_BASE},
        api_session=stub,
    )


@pytest.fixture
def web(app):
    return app.test_client()


def patient_row(**overrides):
    row = {
        'id': 1,
        'patient_id': 'P001',
        'first_name': 'Ana',
        'last_name': 'Cruz',
        'email': 'ana@example.com',
        'phone': '09171234567',
        'created_at': '2024-01-10T08:00:00Z',
    }
    row.update(overrides)
    return row


def appointment_row(**overrides):
    row = {
        'id': 1,
        'patient_id': 1,
        'appointment_date': '2024-02-15',
        'appointment_time': '09:00',
        'duration_minutes': 30,
        'status': 'scheduled',
        'patients': {'first_name': 'Ana', 'last_name': 'Cruz', 'patient_id': 'P001'},
    }
    row.update(overrides)
    return row
