from flask import Blueprint, jsonify, request
import logging

from ..api_client import ApiError
from ..extensions import error_response, get_api_client, mutation_response, request_json
from ..qr_tokens import (
    EXPIRATION_OPTIONS,
    QR_TYPE_INFO,
    QRTokenError,
    delete_warning,
    format_expiration,
    token_status,
)
from ..resources.qr_tokens import QRTokensResource
from ..tz_utils import now_utc

qr_bp = Blueprint('qr', __name__)
logger = logging.getLogger(__name__)


def _with_status(token, now):
    return dict(token, status=token_status(token, now), delete_warning=delete_warning(token))


@qr_bp.route('/qr-tokens', methods=['GET'])
def list_tokens():
    """Tokens with their current status, delete warning and totals"""
    tokens = QRTokensResource(get_api_client())
    tokens.fetch()
    if tokens.error:
        return error_response(tokens)

    now = now_utc()
    status_filter = request.args.get('status')
    rows = [_with_status(t, now) for t in tokens.data]
    if status_filter:
        rows = [t for t in rows if t['status'] == status_filter]
    return jsonify({'success': True, 'data': {'tokens': rows, 'stats': tokens.stats(now)}})


@qr_bp.route('/qr-tokens/options', methods=['GET'])
def token_options():
    return jsonify({
        'success': True,
        'data': {
            'types': [{'value': k, **v} for k, v in QR_TYPE_INFO.items()],
            'expiration_options': [{'value': h, 'label': format_expiration(h)} for h in EXPIRATION_OPTIONS],
        },
    })


@qr_bp.route('/qr-tokens', methods=['POST'])
def generate_token():
    body = request_json()
    tokens = QRTokensResource(get_api_client())
    try:
        result = tokens.generate(body.get('qr_type', 'single-use'), body.get('expiration_hours', 24), body.get('note'))
    except QRTokenError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    return mutation_response(result, 'token', status=201)


@qr_bp.route('/qr-tokens/<token_id>', methods=['GET'])
def get_token(token_id):
    tokens = QRTokensResource(get_api_client())
    try:
        token = tokens.get_token(token_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500
    return jsonify({'success': True, 'data': {'token': _with_status(token, now_utc())}})


@qr_bp.route('/qr-tokens/<token_id>', methods=['DELETE'])
def delete_token(token_id):
    """
    Delete a token

    Tokens whose warning requires confirmation answer 409 with the warning
    until the request repeats with ``?confirm=true``.
    """
    tokens = QRTokensResource(get_api_client())
    try:
        token = tokens.get_token(token_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500

    warning = delete_warning(token)
    if warning['requires_confirmation'] and request.args.get('confirm') != 'true':
        return jsonify({'success': False, 'error': warning['message'], 'data': {'warning': warning}}), 409

    result = tokens.delete_token(token_id)
    if result.success:
        logger.info(f"🗑️ Deleted {token.get('qr_type')} QR token {token_id}")
    return mutation_response(result)


@qr_bp.route('/qr-tokens/cleanup', methods=['POST'])
def cleanup_tokens():
    """Remove expired tokens"""
    return mutation_response(QRTokensResource(get_api_client()).cleanup_expired())
