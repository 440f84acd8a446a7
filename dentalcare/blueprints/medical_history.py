from flask import Blueprint, jsonify
import logging

from ..extensions import error_response, get_api_client
from ..medical_history import MedicalHistoryFieldsResource, grouped_fields

medical_history_bp = Blueprint('medical_history', __name__)
logger = logging.getLogger(__name__)


@medical_history_bp.route('/medical-history-fields', methods=['GET'])
def medical_history_fields():
    """Active fields grouped by type, as the registration form lays them out"""
    fields = MedicalHistoryFieldsResource(get_api_client())
    fields.fetch()
    if fields.error:
        return error_response(fields)
    return jsonify({
        'success': True,
        'data': {
            'fields': [f.model_dump() for f in fields.data],
            'grouped': {kind: [f.model_dump() for f in group] for kind, group in grouped_fields(fields.data).items()},
        },
    })
