"""
Patient self-registration pages

The browser holds the wizard state between requests and posts it back with
every step change; each request rebuilds a ``RegistrationWizard`` from it,
applies the action and writes the draft before answering.
"""
from flask import Blueprint, jsonify, request
import logging

from ..extensions import get_api_client, get_storage, request_json
from ..medical_history import MedicalHistoryFieldsResource, grouped_fields
from ..qr_tokens import token_status
from ..registration import STEP_TITLES, TOTAL_STEPS, RegistrationWizard, clamp_step
from ..resources.patients import PatientsResource
from ..resources.qr_tokens import QRTokensResource
from ..schemas import REGISTRATION_SOURCES

registration_bp = Blueprint('registration', __name__)
logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = 'This registration link is invalid or has expired'


class InvalidSource(ValueError):
    pass


def _source(body=None):
    source = request.args.get('source') or (body or {}).get('source') or 'qr-token'
    if source not in REGISTRATION_SOURCES:
        raise InvalidSource(f"Unknown registration source: {source}")
    return source


@registration_bp.errorhandler(InvalidSource)
def invalid_source(e):
    logger.warning(f"⚠️ {e}")
    return jsonify({'success': False, 'error': str(e)}), 400


def _build(token, body=None):
    source = _source(body)
    client = get_api_client()
    fields = MedicalHistoryFieldsResource(client)
    fields.fetch()
    qr_tokens = QRTokensResource(client)
    wizard = RegistrationWizard(
        patients=PatientsResource(client),
        qr_tokens=qr_tokens,
        token=token,
        source=source,
        storage=get_storage(),
        mobile=True,
        medical_fields=fields.data,
    )
    return wizard, qr_tokens


def _restore(wizard, body):
    """Load the posted wizard state without touching the draft."""
    wizard.step = clamp_step(body.get('step'))
    form = body.get('form') or {}
    wizard.form.update({k: v for k, v in form.items() if k in wizard.form and v is not None})
    wizard.medical_history = {str(k): v for k, v in (body.get('medical_history') or {}).items()}


def _finish(wizard):
    """Write any pending draft now; nothing may outlive the request."""
    if wizard.debouncer is not None:
        wizard.debouncer.flush()
    wizard.teardown()


def _state(wizard):
    return {
        'step': wizard.step,
        'total_steps': TOTAL_STEPS,
        'title': STEP_TITLES[wizard.step],
        'progress': wizard.progress,
        'is_final_step': wizard.is_final_step,
        'form': wizard.form,
        'medical_history': wizard.medical_history,
        'medical_fields': {
            kind: [f.model_dump() for f in fields]
            for kind, fields in grouped_fields(wizard.medical_fields).items()
        },
        'errors': wizard.errors,
        'notices': wizard.notices,
        'draft_saved': wizard.draft_saved,
        'submitting': wizard.submitting,
        'submit_error': wizard.submit_error,
    }


@registration_bp.route('/register', methods=['GET'])
@registration_bp.route('/register/<token>', methods=['GET'])
def start_registration(token=None):
    """Open the form, restoring a recent draft if there is one"""
    wizard, qr_tokens = _build(token)
    if token and not qr_tokens.validate_token(token):
        return jsonify({'success': False, 'error': INVALID_TOKEN_MESSAGE}), 410

    wizard.mount()
    _finish(wizard)
    return jsonify({'success': True, 'data': {'registration': _state(wizard)}})


@registration_bp.route('/register/step', methods=['POST'])
@registration_bp.route('/register/<token>/step', methods=['POST'])
def registration_step(token=None):
    """
    Apply one wizard action

    Body: ``{step, form, medical_history, action}`` where ``action`` is
    ``next``, ``previous``, ``enter`` or ``save``.
    """
    body = request_json()
    wizard, _ = _build(token, body)
    _restore(wizard, body)

    action = body.get('action', 'save')
    status = 200
    result = None
    if action == 'next':
        if not wizard.next_step():
            status = 400
    elif action == 'previous':
        wizard.previous_step()
    elif action == 'enter':
        result = wizard.handle_enter()
    elif action == 'save':
        wizard.changed()
    else:
        _finish(wizard)
        return jsonify({'success': False, 'error': f"Unknown action: {action}"}), 400

    if result is not None and not isinstance(result, bool):
        status = 201 if result.success else 400
    elif result is False:
        status = 400
    _finish(wizard)

    return jsonify({'success': status < 400, 'data': {'registration': _state(wizard)}}), status


@registration_bp.route('/register', methods=['POST'])
@registration_bp.route('/register/<token>', methods=['POST'])
def submit_registration(token=None):
    body = request_json()
    wizard, qr_tokens = _build(token, body)
    if token and not qr_tokens.validate_token(token):
        wizard.teardown()
        return jsonify({'success': False, 'error': INVALID_TOKEN_MESSAGE}), 410
    _restore(wizard, body)
    wizard.step = TOTAL_STEPS

    result = wizard.submit()
    _finish(wizard)
    if not result.success:
        return jsonify({
            'success': False,
            'error': result.error,
            'data': {'registration': _state(wizard)},
        }), 400

    data = {'registration': _state(wizard)}
    if qr_tokens.validated:
        data['token'] = {
            'status': token_status(qr_tokens.validated),
            'usage_count': qr_tokens.validated.get('usage_count'),
        }
    return jsonify({'success': True, 'data': data}), 201


@registration_bp.route('/register/draft', methods=['DELETE'])
@registration_bp.route('/register/<token>/draft', methods=['DELETE'])
def discard_draft(token=None):
    wizard, _ = _build(token)
    wizard.drafts.clear()
    _finish(wizard)
    logger.info(f"Draft discarded ({wizard.drafts.key})")
    return jsonify({'success': True})
