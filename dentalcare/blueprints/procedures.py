from flask import Blueprint, jsonify, request
import logging

from ..api_client import ApiError
from ..extensions import error_response, get_api_client, mutation_response, request_json
from ..resources.procedures import ProceduresForSelection, ProceduresResource

procedures_bp = Blueprint('procedures', __name__)
logger = logging.getLogger(__name__)


@procedures_bp.route('/procedures', methods=['GET'])
def list_procedures():
    filters = {k: request.args.get(k) for k in ('search', 'is_active', 'limit') if request.args.get(k)}
    procedures = ProceduresResource(get_api_client(), filters)
    procedures.fetch()
    if procedures.error:
        return error_response(procedures)
    return jsonify({
        'success': True,
        'data': {
            'procedures': procedures.data,
            'pagination': {'total': procedures.total_count, 'hasMore': procedures.has_more},
        },
    })


@procedures_bp.route('/procedures/options', methods=['GET'])
def procedure_options():
    """Active procedures for the treatment form picker"""
    procedures = ProceduresForSelection(get_api_client())
    procedures.fetch()
    if procedures.error:
        return error_response(procedures)
    return jsonify({'success': True, 'data': {'options': procedures.options_for_select()}})


@procedures_bp.route('/procedures/popular', methods=['GET'])
def popular_procedures():
    try:
        rows = ProceduresResource(get_api_client()).popular(request.args.get('limit', 5, type=int))
    except ApiError as e:
        logger.error(f"Error loading popular procedures: {e}")
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500
    return jsonify({'success': True, 'data': {'procedures': rows}})


@procedures_bp.route('/procedures/<procedure_id>', methods=['GET'])
def get_procedure(procedure_id):
    try:
        procedure = ProceduresResource(get_api_client()).get(procedure_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500
    return jsonify({'success': True, 'data': {'procedure': procedure}})


@procedures_bp.route('/procedures', methods=['POST'])
def create_procedure():
    result = ProceduresResource(get_api_client()).create_from_form(request_json())
    return mutation_response(result, 'procedure', status=201)


@procedures_bp.route('/procedures/<procedure_id>', methods=['PUT'])
def update_procedure(procedure_id):
    result = ProceduresResource(get_api_client()).update_from_form(procedure_id, request_json())
    return mutation_response(result, 'procedure')


@procedures_bp.route('/procedures/<procedure_id>', methods=['DELETE'])
def delete_procedure(procedure_id):
    return mutation_response(ProceduresResource(get_api_client()).delete(procedure_id))
