from flask import Blueprint, jsonify, request
import logging

from ..calendar_views import VIEWS, CalendarCoordinator
from ..date_time import format_date_for_input, parse_date
from ..extensions import get_api_client, get_storage, request_json
from ..storage import Preferences

calendar_bp = Blueprint('calendar', __name__)
logger = logging.getLogger(__name__)


def _coordinator(**kwargs):
    preferences = Preferences(get_storage())
    view = request.args.get('view') or preferences.get('calendarView') or 'month'
    if view not in VIEWS:
        return None
    return CalendarCoordinator(get_api_client(), view=view, selected_date=request.args.get('date'), **kwargs)


def _render(coordinator):
    state = coordinator.render()
    if state['error']:
        state['retry'] = {'view': coordinator.view, 'date': state['current_date']}
        return jsonify({'success': False, 'error': state['error'], 'data': {'calendar': state}}), \
            coordinator.window.error_status or 500
    return jsonify({'success': True, 'data': {'calendar': state}})


@calendar_bp.route('/calendar', methods=['GET'])
def calendar_view():
    """
    Render the calendar around ``date`` in ``view`` mode

    ``nav=previous|next|today`` moves the pivot first. The chosen view is
    remembered in the user's preferences.
    """
    coordinator = _coordinator()
    if coordinator is None:
        return jsonify({'success': False, 'error': f"View must be one of: {', '.join(VIEWS)}"}), 400

    nav = request.args.get('nav')
    if nav == 'previous':
        coordinator.previous()
    elif nav == 'next':
        coordinator.next()
    elif nav == 'today':
        coordinator.go_today()
    else:
        coordinator.refetch()

    if request.args.get('view'):
        Preferences(get_storage()).update(calendarView=coordinator.view)
    return _render(coordinator)


@calendar_bp.route('/calendar/day/<day>', methods=['GET'])
def calendar_day(day):
    """Month cell click: open the day view on ``day``"""
    if parse_date(day) is None:
        return jsonify({'success': False, 'error': 'Invalid date'}), 400
    coordinator = _coordinator()
    if coordinator is None:
        return jsonify({'success': False, 'error': f"View must be one of: {', '.join(VIEWS)}"}), 400
    coordinator.click_date(day)
    return _render(coordinator)


@calendar_bp.route('/calendar/new-appointment', methods=['POST'])
def calendar_new_appointment():
    """Prefill for the booking form from a clicked slot or the New button"""
    body = request_json()
    requested = []
    coordinator = _coordinator(on_new_appointment=lambda d, t: requested.append((d, t)))
    if coordinator is None:
        return jsonify({'success': False, 'error': f"View must be one of: {', '.join(VIEWS)}"}), 400

    try:
        if body.get('time'):
            coordinator.click_time_slot(body.get('date'), body['time'])
        else:
            coordinator.new_appointment(body.get('date') or coordinator.current_date)
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    day, time = requested[0]
    return jsonify({
        'success': True,
        'data': {'prefill': {'appointment_date': format_date_for_input(day), 'appointment_time': time or ''}},
    })
