"""
Per-request helpers shared by the blueprints

Every request gets its own ``ApiClient`` carrying the caller's cookies so
the backend sees the signed-in user. Tests inject a stub ``requests``
session and an in-memory storage through ``app.extensions``.
"""
import logging
import secrets
import threading

from flask import current_app, jsonify, request, session

from .api_client import ApiClient
from .notifications import NotificationCenter, prune_centers
from .storage import DatabaseStorage

logger = logging.getLogger(__name__)

_centers_lock = threading.Lock()


def get_api_client():
    return ApiClient(
        base_url=current_app.config['API_BASE_URL'],
        session=current_app.extensions.get('api_session'),
        cookies=request.cookies,
        timeout=current_app.config.get('API_TIMEOUT'),
    )


def get_storage():
    """Injected storage if any, else the ``storage_items`` table."""
    storage = current_app.extensions.get('storage')
    if storage is not None:
        return storage
    return DatabaseStorage(namespace=device_id())


def device_id():
    """Stable id for this browser, kept in the signed session cookie."""
    if 'device_id' not in session:
        session['device_id'] = secrets.token_hex(16)
        session.permanent = True
    return session['device_id']


def auth_token():
    cookie_name = current_app.config.get('AUTH_COOKIE_NAME')
    return (request.cookies.get(cookie_name) if cookie_name else None) or 'default'


def notification_center():
    """
    The caller's NotificationCenter, created and loaded on first use

    Centers live in ``app.extensions['notification_centers']`` keyed by
    device id so the background reconcile job can refresh them between
    requests. A changed auth cookie reloads the center; idle and surplus
    centers are dropped on the way.
    """
    centers = current_app.extensions['notification_centers']
    key = device_id()
    token = auth_token()
    with _centers_lock:
        center = centers.get(key)
        if center is None:
            center = NotificationCenter(get_api_client(), auth_token=token)
            centers[key] = center
            stale = True
        else:
            center.client.cookies = dict(request.cookies)
            stale = center.auth_token != token
            center.auth_token = token
        center.touch()
        prune_centers(
            centers,
            idle_minutes=current_app.config.get('NOTIFICATION_CENTER_IDLE_MINUTES'),
            limit=current_app.config.get('NOTIFICATION_CENTER_LIMIT'),
        )
    if stale or center.error:
        center.fetch()
    return center


def error_response(resource, default_status=500):
    """JSON error body for a resource holding a fetch error."""
    return jsonify({'success': False, 'error': resource.error}), resource.error_status or default_status


def mutation_response(result, key=None, status=200, error_status=400):
    if not result.success:
        return jsonify({'success': False, 'error': result.error}), error_status
    body = {'success': True}
    if key is not None:
        body['data'] = {key: result.data}
    return jsonify(body), status


def request_json():
    return request.get_json(silent=True) or {}
