import pytest
import requests

from dentalcare.api_client import (
    ApiClient,
    EnvelopeError,
    HttpError,
    NetworkError,
    error_message_from_body,
    expect,
)

from conftest import API_BASE, ok


def test_canonical_envelope_returns_data(client, stub):
    stub.add('GET', '/api/patients', ok({'patients': []}))
    assert client.get('/api/patients') == {'patients': []}


def test_cookies_and_timeout_are_forwarded(stub):
    stub.add('GET', '/api/patients', ok({'patients': []}))
    client = ApiClient(base_url=API_BASE, session=stub, cookies={'sb-access-token': 'abc'}, timeout=5)
    client.get('/api/patients')
    call = stub.calls[0]
    assert call['cookies'] == {'sb-access-token': 'abc'}
    assert call['timeout'] == 5


def test_params_drop_empty_values_and_stringify_bools(client, stub):
    stub.add('GET', '/api/procedures', ok({'procedures': []}))
    client.get('/api/procedures', params={'is_active': True, 'search': '', 'limit': 10, 'status': None})
    assert stub.calls[0]['params'] == {'is_active': 'true', 'limit': 10}


def test_missing_data_is_an_empty_dict(client, stub):
    stub.add('DELETE', '/api/patients/1', (200, {'success': True}))
    assert client.delete('/api/patients/1') == {}


def test_success_false_raises_with_backend_message(client, stub):
    stub.add('POST', '/api/patients', (200, {'success': False, 'error': 'Duplicate patient'}))
    with pytest.raises(HttpError) as excinfo:
        client.post('/api/patients', json={})
    assert str(excinfo.value) == 'Duplicate patient'


def test_http_error_uses_error_field(client, stub):
    stub.add('DELETE', '/api/patients/1', (409, {'error': 'Patient has treatment records and cannot be deleted'}))
    with pytest.raises(HttpError) as excinfo:
        client.delete('/api/patients/1')
    assert excinfo.value.status_code == 409
    assert str(excinfo.value) == 'Patient has treatment records and cannot be deleted'


def test_http_error_without_json_body(client, stub):
    stub.add('GET', '/api/patients', (502, '<html>Bad gateway</html>'))
    with pytest.raises(HttpError) as excinfo:
        client.get('/api/patients')
    assert str(excinfo.value) == 'Server error (502). Please try again.'


def test_transport_failure_is_a_network_error(client, stub):
    stub.add('GET', '/api/patients', requests.ConnectionError('refused'))
    with pytest.raises(NetworkError) as excinfo:
        client.get('/api/patients')
    assert str(excinfo.value) == 'Failed to connect to server'


def test_unknown_shape_raises_envelope_error(client, stub):
    stub.add('GET', '/api/patients', (200, {'patients': []}))
    with pytest.raises(EnvelopeError):
        client.get('/api/patients')


def test_legacy_endpoints_return_the_body(client, stub):
    stub.add('GET', '/api/notifications', (200, {'notifications': [], 'unreadCount': 0}))
    assert client.get('/api/notifications', legacy=True) == {'notifications': [], 'unreadCount': 0}


def test_non_json_success_is_an_envelope_error(client, stub):
    stub.add('GET', '/api/dashboard/stats', (200, 'OK'))
    with pytest.raises(EnvelopeError):
        client.get('/api/dashboard/stats', legacy=True)


def test_error_message_priority():
    assert error_message_from_body({'error': 'Nope', 'message': 'Other'}, 400) == 'Nope'
    assert error_message_from_body({'details': [{'message': 'Name is required'}, {'message': 'Bad email'}]}, 400) \
        == 'Name is required, Bad email'
    assert error_message_from_body({'message': 'Try later'}, 503) == 'Try later'
    assert error_message_from_body(None, 500) == 'Server error (500). Please try again.'


def test_expect_checks_key_and_type():
    assert expect({'rows': [1]}, 'rows') == [1]
    with pytest.raises(EnvelopeError):
        expect({}, 'rows')
    with pytest.raises(EnvelopeError):
        expect({'rows': {}}, 'rows')
    assert expect({'stats': {}}, 'stats', dict) == {}
