import pytest

from dentalcare.api_client import EnvelopeError
from dentalcare.costs import TreatmentLineItems
from dentalcare.resources.appointments import AppointmentsResource, AppointmentWindow, appointment_payload
from dentalcare.resources.base import parse_rows
from dentalcare.resources.dashboard import DashboardStatsResource
from dentalcare.resources.patients import PatientsForSelection, PatientsResource, search_patients
from dentalcare.resources.procedures import ProceduresForSelection, ProceduresResource, procedure_payload
from dentalcare.resources.qr_tokens import QRTokensResource
from dentalcare.resources.reminders import ReminderSettingsResource
from dentalcare.resources.treatments import TreatmentsResource, treatment_payload
from dentalcare.schemas import Patient
from dentalcare.validation import ValidationError

from conftest import appointment_row, ok, page, patient_row


def test_collection_fetch_reads_rows_and_pagination(client, stub):
    stub.add('GET', '/api/patients', page('patients', [patient_row()], total=41, has_more=True))
    patients = PatientsResource(client)
    patients.fetch()

    assert patients.error is None
    assert patients.loading is False
    assert patients.data[0]['first_name'] == 'Ana'
    assert patients.total_count == 41
    assert patients.has_more is True
    assert stub.calls[0]['params'] == {'limit': 20, 'sort_by': 'created_at', 'sort_order': 'desc'}


def test_fetch_failure_is_stored_not_raised(client, stub):
    stub.add('GET', '/api/patients', (500, {'error': 'Database unavailable'}))
    patients = PatientsResource(client)
    patients.data = [patient_row()]
    patients.fetch()
    assert patients.error == 'Database unavailable'
    assert patients.error_status == 500
    assert patients.data == []


def test_bad_rows_become_an_envelope_error(client, stub):
    stub.add('GET', '/api/patients', page('patients', [{'id': 1}]))
    patients = PatientsResource(client)
    patients.fetch()
    assert patients.error == 'Unexpected patients data from server'
    with pytest.raises(EnvelopeError):
        parse_rows(Patient, [{'id': 1}], 'patients')


def test_stale_responses_are_dropped(client):
    window = AppointmentWindow(client)
    old = window.begin()
    new = window.begin()

    assert window.apply(new, data=[appointment_row(id=2)]) is True
    assert window.apply(old, data=[appointment_row(id=1)]) is False
    assert [a['id'] for a in window.data] == [2]


def test_mutation_refetches_on_success(client, stub):
    stub.add('POST', '/api/patients', ok({'patient': patient_row(id=9)}))
    stub.add('GET', '/api/patients', page('patients', [patient_row(id=9)]))
    patients = PatientsResource(client)

    result = patients.create({'first_name': 'Ana', 'last_name': 'Cruz'})
    assert result.success is True
    assert result.data['id'] == 9
    assert len(stub.calls_to('GET', '/api/patients')) == 1
    assert patients.data[0]['id'] == 9


def test_mutation_failure_is_returned(client, stub):
    stub.add('DELETE', '/api/patients/1', (409, {'error': 'Patient has treatments'}))
    result = PatientsResource(client).delete(1)
    assert result.success is False
    assert result.error == 'Patient has treatments'
    assert stub.calls_to('GET', '/api/patients') == []


def test_approve_pending_patient_refetches(client, stub):
    stub.add('POST', '/api/patients/approve', (200, {'success': True, 'message': 'Patient approved successfully'}))
    stub.add('GET', '/api/patients', page('patients', [patient_row(registration_status='approved')]))
    patients = PatientsResource(client, {'registration_status': 'pending'})

    result = patients.approve(1)
    assert result.success is True
    assert stub.calls_to('POST', '/api/patients/approve')[0]['json'] == {'patientId': 1}
    assert stub.calls_to('GET', '/api/patients')[0]['params']['registration_status'] == 'pending'


def test_approve_surfaces_not_pending_refusal(client, stub):
    stub.add('POST', '/api/patients/approve', (400, {'error': 'Patient registration is not pending'}))
    result = PatientsResource(client).approve(1)
    assert result.success is False
    assert result.error == 'Patient registration is not pending'
    assert stub.calls_to('GET', '/api/patients') == []


def test_deny_needs_a_reason(client, stub):
    patients = PatientsResource(client)
    result = patients.deny(1, '   ')
    assert result.success is False
    assert result.error == 'A reason is required to deny a registration'
    assert stub.calls == []

    stub.add('POST', '/api/patients/deny', (200, {'success': True, 'message': 'Patient registration denied'}))
    stub.add('GET', '/api/patients', page('patients', []))
    assert patients.deny(1, ' Duplicate record ').success is True
    assert stub.calls_to('POST', '/api/patients/deny')[0]['json'] == {'patientId': 1, 'reason': 'Duplicate record'}


def test_patient_search_and_select_options(client, stub):
    rows = [patient_row(), patient_row(id=2, patient_id='P002', first_name='Ben', last_name='Reyes', email=None)]
    assert [p['id'] for p in search_patients(rows, 'reyes')] == [2]
    assert [p['id'] for p in search_patients(rows, 'p001')] == [1]
    assert len(search_patients(rows, '  ')) == 2

    stub.add('GET', '/api/patients', page('patients', rows))
    picker = PatientsForSelection(client)
    picker.fetch()
    assert picker.options_for_select()[1] == {'value': 2, 'label': 'Ben Reyes (P002)'}
    assert stub.calls[0]['params']['sort_by'] == 'first_name'


def test_status_change_respects_transitions(client, stub):
    stub.add('PUT', '/api/appointments/1', ok({'appointment': appointment_row(status='completed')}))
    stub.add('GET', '/api/appointments', page('appointments', []))
    appointments = AppointmentsResource(client)

    done = appointments.change_status(appointment_row(), 'completed')
    assert done.success is True
    assert stub.calls_to('PUT', '/api/appointments/1')[0]['json'] == {'status': 'completed'}

    blocked = appointments.change_status(appointment_row(status='completed'), 'scheduled')
    assert blocked.success is False
    assert 'Cannot change status from Completed to Scheduled' in blocked.error
    assert len(stub.calls_to('PUT', '/api/appointments/1')) == 1


def test_appointment_window_sends_range_and_limit(client, stub):
    stub.add('GET', '/api/appointments', page('appointments', [appointment_row()]))
    window = AppointmentWindow(client)
    window.set_window('2024-01-25', '2024-03-07')
    window.fetch()
    assert stub.calls[0]['params'] == {'limit': 100, 'start_date': '2024-01-25', 'end_date': '2024-03-07'}


def test_appointment_payload_validation():
    payload = appointment_payload({
        'patient_id': 1, 'appointment_date': '2024-02-15', 'appointment_time': '09:30',
        'duration_minutes': 45, 'reason': '<b>Cleaning</b>',
    })
    assert payload['status'] == 'scheduled'
    assert payload['reason'] == 'bCleaning/b'

    with pytest.raises(ValidationError) as excinfo:
        appointment_payload({'appointment_date': '2024-02-30', 'appointment_time': '19:00', 'duration_minutes': 20})
    assert set(excinfo.value.errors) == {'patient_id', 'appointment_date', 'appointment_time', 'duration_minutes'}


def test_procedure_payload_and_selection_labels(client, stub):
    assert procedure_payload({'name': 'Cleaning', 'default_cost': '1500'})['default_cost'] == 1500.0
    with pytest.raises(ValidationError) as excinfo:
        procedure_payload({'name': 'X', 'default_cost': '-5', 'estimated_duration': 10})
    assert set(excinfo.value.errors) == {'name', 'default_cost', 'estimated_duration'}

    stub.add('GET', '/api/procedures', page('procedures', [
        {'id': 1, 'name': 'Cleaning', 'default_cost': 1500, 'is_active': True},
        {'id': 2, 'name': 'Consultation', 'default_cost': None, 'is_active': True},
        {'id': 3, 'name': 'Retired', 'default_cost': 10, 'is_active': False},
    ]))
    options = ProceduresForSelection(client)
    options.fetch()
    assert stub.calls[0]['params']['is_active'] == 'true'
    assert [o['label'] for o in options.options_for_select()] == ['Cleaning - ₱1,500.00', 'Consultation - No price set']

    catalog = ProceduresResource(client)
    catalog.data = options.data
    assert catalog.find(3)['name'] == 'Retired'
    assert catalog.find(99) is None


def test_treatment_totals_are_recomputed_from_lines(client, stub):
    stub.add('GET', '/api/treatments', page('treatments', [{
        'id': 5, 'patient_id': 1, 'payment_status': 'partial', 'total_cost': 1,
        'treatment_procedures': [
            {'procedure_id': 1, 'quantity': 2, 'cost_per_unit': 500},
            {'procedure_id': 2, 'quantity': 1, 'cost_per_unit': 250},
        ],
    }]))
    treatments = TreatmentsResource(client)
    treatments.fetch()
    assert treatments.data[0]['total_cost'] == 1250


def test_treatment_payload():
    items = TreatmentLineItems()
    items.add_procedure({'id': 1, 'default_cost': 800, 'is_active': True})
    payload = treatment_payload({'patient_id': 1, 'treatment_date': '2024-02-15'}, items)
    assert payload['total_cost'] == 800
    assert payload['payment_status'] == 'pending'
    assert payload['procedures'] == [{'procedure_id': 1, 'quantity': 1, 'cost_per_unit': 800.0}]

    with pytest.raises(ValidationError) as excinfo:
        treatment_payload({'patient_id': 1, 'treatment_date': '2024-02-15'}, TreatmentLineItems())
    assert 'procedures' in excinfo.value.errors

    with pytest.raises(ValidationError) as excinfo:
        treatment_payload({'treatment_date': 'x', 'payment_status': 'waived'}, items)
    assert set(excinfo.value.errors) == {'patient_id', 'treatment_date', 'payment_status'}


def test_treatment_create_does_not_call_backend_when_invalid(client, stub):
    result = TreatmentsResource(client).create_from_form({'patient_id': 1, 'treatment_date': '2024-02-15'},
                                                         TreatmentLineItems())
    assert result.success is False
    assert result.error == 'Please add at least one procedure'
    assert stub.calls == []


def test_dashboard_stats_use_legacy_body(client, stub):
    stub.add('GET', '/api/dashboard/stats', (200, {'stats': {'totalPatients': 12}}))
    stats = DashboardStatsResource(client)
    stats.fetch()
    assert stats.data == {'totalPatients': 12}

    stub.add('GET', '/api/dashboard/stats', (200, {'success': True, 'data': {}}))
    stats.fetch()
    assert stats.error == "Response is missing 'stats'"
    assert stats.data == {}


def test_qr_tokens_fill_registration_urls(client, stub):
    stub.add('GET', '/api/qr-tokens', ok({'tokens': [
        {'id': 1, 'token': 'abc', 'qr_type': 'single-use', 'expires_at': '2099-01-01T00:00:00Z'},
        {'id': 2, 'token': 'gen', 'qr_type': 'generic'},
    ]}))
    tokens = QRTokensResource(client, site_url='https://clinic.test')
    tokens.fetch()
    assert tokens.data[0]['registration_url'] == 'https://clinic.test/patient-registration/abc'
    assert tokens.data[1]['registration_url'] == 'https://clinic.test/patient-registration'
    assert tokens.stats()['active'] == 2


def test_qr_generate_and_register(client, stub):
    stub.add('GET', '/api/qr-registration', ok({'token': 'new', 'qr_type': 'reusable'}))
    stub.add('GET', '/api/qr-tokens', ok({'tokens': []}))
    stub.add('POST', '/api/qr-registration', ok({'patient': {'id': 3}}))
    tokens = QRTokensResource(client, site_url='https://clinic.test')

    generated = tokens.generate('reusable', 72)
    assert generated.success is True
    assert generated.data['registration_url'] == 'https://clinic.test/patient-registration/new'
    assert stub.calls_to('GET', '/api/qr-registration')[0]['params'] == {
        'qr_type': 'reusable', 'expiration_hours': 72, 'reusable': 'true',
    }

    registered = tokens.register_patient('new', {'first_name': 'Ana'})
    assert registered.success is True
    assert stub.calls_to('POST', '/api/qr-registration')[0]['json'] == {
        'token': 'new', 'patient_data': {'first_name': 'Ana'},
    }


def test_qr_validate_token(client, stub):
    stub.add('POST', '/api/qr-tokens/validate', (410, {'error': 'Token expired'}))
    assert QRTokensResource(client).validate_token('old') is False
    stub.add('POST', '/api/qr-tokens/validate', ok({'valid': True}))
    assert QRTokensResource(client).validate_token('fresh') is True
    stub.add('POST', '/api/qr-tokens/validate', ok({'valid': False, 'reason': 'Token has already been used'}))
    assert QRTokensResource(client).validate_token('spent') is False


def test_registration_counts_against_validated_single_use_token(client, stub):
    stub.add('POST', '/api/qr-tokens/validate', ok({'valid': True, 'token': {
        'id': 7, 'qr_type': 'single-use', 'reusable': False, 'usage_count': 0, 'expires_at': '2099-01-01T00:00:00Z',
    }}))
    stub.add('POST', '/api/qr-registration', ok({'patient': {'id': 3}}))
    tokens = QRTokensResource(client)
    assert tokens.validate_token('once') is True
    assert tokens.validated['used'] is False

    assert tokens.register_patient('once', {'first_name': 'Ana'}).success is True
    assert tokens.validated['used'] is True
    assert tokens.validated['usage_count'] == 1

    second = tokens.register_patient('once', {'first_name': 'Ben'})
    assert second.success is False
    assert second.error == 'This QR code has already been used'
    assert len(stub.calls_to('POST', '/api/qr-registration')) == 1


def test_failed_registration_leaves_loaded_token_untouched(client, stub):
    stub.add('GET', '/api/qr-tokens', ok({'tokens': [
        {'id': 5, 'token': 'multi', 'qr_type': 'reusable', 'reusable': True, 'usage_count': 2,
         'expires_at': '2099-01-01T00:00:00Z'},
    ]}))
    stub.add('POST', '/api/qr-registration', (409, {'error': 'Email already registered'}))
    tokens = QRTokensResource(client, site_url='https://clinic.test')
    tokens.fetch()

    assert tokens.register_patient('multi', {'first_name': 'Ana'}).success is False
    assert tokens.data[0]['usage_count'] == 2

    stub.add('POST', '/api/qr-registration', ok({'patient': {'id': 4}}))
    assert tokens.register_patient('multi', {'first_name': 'Ana'}).success is True
    assert tokens.data[0]['usage_count'] == 3


REMINDER = {
    'id': 1,
    'reminder_type': '24_hour',
    'hours_before': 24,
    'is_enabled': True,
    'email_template_subject': 'Reminder: {{appointment_date}}',
    'email_template_body': 'Hi {{patient_name}}, see you at {{appointment_time}}.',
}


def test_reminder_settings_legacy_load_and_update(client, stub):
    stub.add('GET', '/api/reminders/config', (200, {
        'configs': [REMINDER], 'statistics': {'sent': 10}, 'emailConfigured': True,
    }))
    stub.add('PUT', '/api/reminders/config', (200, {'config': REMINDER, 'message': 'Saved'}))
    settings = ReminderSettingsResource(client)
    settings.fetch()
    assert settings.statistics == {'sent': 10}
    assert settings.email_configured is True

    result = settings.update_config(1, dict(REMINDER, hours_before=48))
    assert result.success is True
    put = stub.calls_to('PUT', '/api/reminders/config')[0]
    assert put['params'] == {'id': 1}
    assert put['json']['hours_before'] == 48


def test_reminder_update_rejects_unknown_placeholders(client, stub):
    result = ReminderSettingsResource(client).update_config(1, dict(REMINDER, email_template_body='Hello {{doctor}}!!'))
    assert result.success is False
    assert '{{doctor}}' in result.error
    assert stub.calls == []


def test_reminder_test_send(client, stub):
    stub.add('POST', '/api/reminders/config', (200, {'success': True, 'message': 'Sent'}))
    result = ReminderSettingsResource(client).send_test(42, 'day_of', 'ana@example.com')
    assert result.success is True
    assert stub.calls[0]['json'] == {
        'action': 'test_reminder', 'appointment_id': 42, 'reminder_type': 'day_of', 'test_email': 'ana@example.com',
    }
    assert stub.calls_to('GET', '/api/reminders/config') == []
