from flask import Blueprint, jsonify, request
import logging

from ..api_client import ApiError
from ..costs import TreatmentLineItems, apply_discount, cost_breakdown, cost_summary, format_currency
from ..extensions import error_response, get_api_client, mutation_response, request_json
from ..resources.procedures import ProceduresResource
from ..resources.treatments import TreatmentsResource
from ..validation import ValidationError

treatments_bp = Blueprint('treatments', __name__)
logger = logging.getLogger(__name__)

LIST_FILTERS = ('start_date', 'end_date', 'payment_status', 'patient_id', 'limit', 'offset')


def _line_items(body):
    """Line items from a request body, quantities and prices clamped."""
    lines = [line for line in (body.get('procedures') or []) if isinstance(line, dict) and line.get('procedure_id')]
    return TreatmentLineItems(lines)


def _costs(items):
    summary = cost_summary(items)
    return {
        'summary': summary,
        'breakdown': cost_breakdown(items),
        'formatted_total': format_currency(summary['total']),
    }


@treatments_bp.route('/treatments', methods=['GET'])
def list_treatments():
    filters = {k: request.args.get(k) for k in LIST_FILTERS if request.args.get(k)}
    treatments = TreatmentsResource(get_api_client(), filters)
    treatments.fetch()
    if treatments.error:
        return error_response(treatments)
    return jsonify({
        'success': True,
        'data': {
            'treatments': treatments.data,
            'pagination': {'total': treatments.total_count, 'hasMore': treatments.has_more},
        },
    })


@treatments_bp.route('/treatments/stats', methods=['GET'])
def treatment_stats():
    params = {k: request.args.get(k) for k in ('start_date', 'end_date') if request.args.get(k)}
    try:
        stats = TreatmentsResource(get_api_client()).stats(**params)
    except ApiError as e:
        logger.error(f"Error loading treatment stats: {e}")
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500
    return jsonify({'success': True, 'data': {'stats': stats}})


@treatments_bp.route('/treatments/preview', methods=['POST'])
def preview_treatment():
    """
    Recompute line items and totals while the form is being edited

    Body: ``procedures`` (current lines), optional ``add_procedure_id`` to
    add from the catalog, optional ``discount`` and ``discount_type``.
    """
    body = request_json()
    items = _line_items(body)

    if body.get('add_procedure_id'):
        catalog = ProceduresResource(get_api_client())
        catalog.fetch()
        if catalog.error:
            return error_response(catalog)
        procedure = catalog.find(body['add_procedure_id'])
        if procedure is None:
            return jsonify({'success': False, 'error': 'Procedure not found'}), 404
        try:
            items.add_procedure(procedure)
        except ValidationError as e:
            return jsonify({'success': False, 'error': str(e), 'errors': e.errors}), 400

    data = {'procedures': items.items, 'total_cost': items.total, **_costs(items.items)}
    if body.get('discount'):
        try:
            data['discount'] = apply_discount(items.total, float(body['discount']),
                                              body.get('discount_type', 'percentage'))
        except (TypeError, ValueError) as e:
            return jsonify({'success': False, 'error': str(e)}), 400
    return jsonify({'success': True, 'data': data})


@treatments_bp.route('/treatments/<treatment_id>', methods=['GET'])
def get_treatment(treatment_id):
    try:
        treatment = TreatmentsResource(get_api_client()).get(treatment_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500
    return jsonify({
        'success': True,
        'data': {'treatment': treatment, **_costs(TreatmentLineItems(treatment['treatment_procedures']).items)},
    })


@treatments_bp.route('/treatments', methods=['POST'])
def create_treatment():
    body = request_json()
    result = TreatmentsResource(get_api_client()).create_from_form(body, _line_items(body))
    return mutation_response(result, 'treatment', status=201)


@treatments_bp.route('/treatments/<treatment_id>', methods=['PUT'])
def update_treatment(treatment_id):
    body = request_json()
    result = TreatmentsResource(get_api_client()).update_from_form(treatment_id, body, _line_items(body))
    return mutation_response(result, 'treatment')


@treatments_bp.route('/treatments/<treatment_id>', methods=['DELETE'])
def delete_treatment(treatment_id):
    return mutation_response(TreatmentsResource(get_api_client()).delete(treatment_id))
