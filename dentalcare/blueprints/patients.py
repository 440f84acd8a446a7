from flask import Blueprint, jsonify, request, Response
import logging

from ..csv_export import export_filename, patients_to_csv
from ..extensions import error_response, get_api_client, get_storage, mutation_response, request_json
from ..medical_history import MedicalHistoryFieldsResource
from ..registration import TOTAL_STEPS, PatientEditWizard, RegistrationWizard
from ..resources.appointments import PatientAppointments
from ..resources.patients import PatientsResource, patient_full_name
from ..api_client import ApiError
from ..schemas import REGISTRATION_STATUSES
from ..storage import RecentItems, SearchHistory

patients_bp = Blueprint('patients', __name__)
logger = logging.getLogger(__name__)

LIST_FILTERS = ('search', 'gender', 'registration_status', 'sort_by', 'sort_order', 'limit', 'offset')
EXPORT_LIMIT = 1000


def _filters():
    return {k: request.args.get(k) for k in LIST_FILTERS if request.args.get(k)}


def _medical_fields(client):
    fields = MedicalHistoryFieldsResource(client)
    fields.fetch()
    return fields.data


def _submit(wizard, body):
    """Run a full-form submission through the step checks."""
    wizard.update(**{k: v for k, v in body.items() if k != 'medical_history'})
    for field_id, value in (body.get('medical_history') or {}).items():
        wizard.set_medical_history(field_id, value)
    wizard.step = TOTAL_STEPS
    result = wizard.submit()
    if not result.success:
        payload = {'success': False, 'error': result.error}
        if wizard.errors:
            payload['errors'] = wizard.errors
        return jsonify(payload), 400
    return None


@patients_bp.route('/patients', methods=['GET'])
def list_patients():
    """Patient list with backend-side filters"""
    filters = _filters()
    status = filters.get('registration_status')
    if status and status not in REGISTRATION_STATUSES:
        return jsonify({'success': False, 'error': f"Unknown registration status: {status}"}), 400
    patients = PatientsResource(get_api_client(), filters)
    patients.fetch()
    if patients.error:
        return error_response(patients)

    if filters.get('search'):
        SearchHistory(get_storage(), 'patients').add(filters['search'])

    return jsonify({
        'success': True,
        'data': {
            'patients': patients.data,
            'pagination': {'total': patients.total_count, 'hasMore': patients.has_more},
        },
    })


@patients_bp.route('/patients/export', methods=['GET'])
def export_patients():
    """Download the currently filtered list as CSV"""
    filters = _filters()
    filters['limit'] = EXPORT_LIMIT
    filters.pop('offset', None)
    patients = PatientsResource(get_api_client(), filters)
    patients.fetch()
    if patients.error:
        return error_response(patients)

    filename = export_filename(filters=[filters.get('search'), filters.get('gender')])
    logger.info(f"📝 Exporting {len(patients.data)} patients to {filename}")
    return Response(
        patients_to_csv(patients.data),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@patients_bp.route('/patients/search-history', methods=['GET'])
def search_history():
    return jsonify({'success': True, 'data': {'history': SearchHistory(get_storage(), 'patients').all()}})


@patients_bp.route('/patients/search-history', methods=['DELETE'])
def clear_search_history():
    SearchHistory(get_storage(), 'patients').clear()
    return jsonify({'success': True})


@patients_bp.route('/patients/recent', methods=['GET'])
def recent_patients():
    return jsonify({'success': True, 'data': {'patients': RecentItems(get_storage(), 'patients').all()}})


@patients_bp.route('/patients/<patient_id>', methods=['GET'])
def get_patient(patient_id):
    """Patient detail with their appointments"""
    client = get_api_client()
    try:
        patient = PatientsResource(client).get(patient_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500

    appointments = PatientAppointments(client, patient_id)
    appointments.fetch()

    RecentItems(get_storage(), 'patients').add({
        'id': patient['id'],
        'patient_id': patient.get('patient_id'),
        'name': patient_full_name(patient),
    })
    return jsonify({
        'success': True,
        'data': {
            'patient': patient,
            'appointments': appointments.data,
            'appointments_error': appointments.error,
        },
    })


@patients_bp.route('/patients', methods=['POST'])
def create_patient():
    client = get_api_client()
    patients = PatientsResource(client)
    wizard = RegistrationWizard(patients=patients, source='manual', medical_fields=_medical_fields(client))
    failed = _submit(wizard, request_json())
    if failed:
        return failed
    logger.info("✅ Patient created")
    return jsonify({'success': True, 'notices': wizard.notices}), 201


@patients_bp.route('/patients/<patient_id>', methods=['PUT'])
def update_patient(patient_id):
    client = get_api_client()
    patients = PatientsResource(client)
    try:
        existing = patients.get(patient_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500

    wizard = PatientEditWizard(patients, existing, medical_fields=_medical_fields(client))
    failed = _submit(wizard, request_json())
    if failed:
        return failed
    return jsonify({'success': True, 'notices': wizard.notices})


@patients_bp.route('/patients/<patient_id>', methods=['DELETE'])
def delete_patient(patient_id):
    """Delete a patient; a refusal from the backend is passed through as-is."""
    result = PatientsResource(get_api_client()).delete(patient_id)
    if result.success:
        RecentItems(get_storage(), 'patients').remove(patient_id)
    return mutation_response(result)


@patients_bp.route('/patients/<patient_id>/approve', methods=['POST'])
def approve_patient(patient_id):
    """Accept a pending self-registration"""
    return mutation_response(PatientsResource(get_api_client()).approve(patient_id))


@patients_bp.route('/patients/<patient_id>/deny', methods=['POST'])
def deny_patient(patient_id):
    """Reject a pending self-registration; body: ``{reason}``"""
    return mutation_response(PatientsResource(get_api_client()).deny(patient_id, request_json().get('reason')))
