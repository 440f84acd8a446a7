from flask import Blueprint, jsonify
import logging

from ..extensions import error_response, notification_center

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)


def _body(center):
    return jsonify({
        'success': True,
        'data': {
            'notifications': center.data,
            'unread_count': center.unread_count,
            'last_reconciled_at': center.last_reconciled_at.isoformat() if center.last_reconciled_at else None,
        },
    })


@notifications_bp.route('/notifications', methods=['GET'])
def list_notifications():
    center = notification_center()
    if center.error:
        return error_response(center)
    return _body(center)


@notifications_bp.route('/notifications/<notification_id>/read', methods=['POST'])
def mark_read(notification_id):
    """Flip the flag locally; the backend write never fails the request."""
    center = notification_center()
    matched = center.mark_as_read(_row_id(center, notification_id))
    if not matched:
        return jsonify({'success': False, 'error': 'Notification not found'}), 404
    return _body(center)


@notifications_bp.route('/notifications/read-all', methods=['POST'])
def mark_all_read():
    center = notification_center()
    marked = center.mark_all_as_read()
    logger.info(f"Marked {marked} notification(s) as read")
    return _body(center)


@notifications_bp.route('/notifications/reconcile', methods=['POST'])
def reconcile():
    center = notification_center()
    center.reconcile()
    if center.error:
        return error_response(center)
    return _body(center)


def _row_id(center, raw):
    """Match the URL id against loaded ids, which may be ints or strings."""
    for notification in center.data:
        if str(notification['id']) == raw:
            return notification['id']
    return raw
