from dentalcare.scheduled_reconcile import reconcile_all

from conftest import appointment_row, ok, page, patient_row


def test_health(web):
    assert web.get('/health').get_json() == {'status': 'ok'}


def test_patient_search_is_remembered(web, stub):
    stub.add('GET', '/api/patients', page('patients', [patient_row()], total=1))
    response = web.get('/patients?search=cruz')
    assert response.status_code == 200
    assert response.get_json()['data']['pagination'] == {'total': 1, 'hasMore': False}
    assert stub.calls[0]['params']['search'] == 'cruz'

    history = web.get('/patients/search-history').get_json()
    assert history['data']['history'] == ['cruz']
    web.delete('/patients/search-history')
    assert web.get('/patients/search-history').get_json()['data']['history'] == []


def test_patient_list_backend_error_is_passed_through(web, stub):
    stub.add('GET', '/api/patients', (403, {'success': False, 'error': 'Forbidden'}))
    response = web.get('/patients')
    assert response.status_code == 403
    assert response.get_json() == {'success': False, 'error': 'Forbidden'}


def test_csv_export(web, stub):
    stub.add('GET', '/api/patients', page('patients', [patient_row(address='12 Rizal St, Manila')]))
    response = web.get('/patients/export?search=cruz&offset=40')

    assert response.status_code == 200
    assert response.mimetype == 'text/csv'
    disposition = response.headers['Content-Disposition']
    assert disposition.startswith('attachment; filename="patients-')
    assert disposition.endswith('-cruz.csv"')
    assert stub.calls[0]['params']['limit'] == 1000
    assert 'offset' not in stub.calls[0]['params']

    lines = response.get_data(as_text=True).split('\r\n')
    assert lines[0].startswith('"Patient ID","First Name"')
    assert '"12 Rizal St, Manila"' in lines[1]


def test_patient_detail_is_added_to_recent(web, stub):
    stub.add('GET', '/api/patients/1', ok({'patient': patient_row()}))
    stub.add('GET', '/api/appointments', page('appointments', [appointment_row()]))
    response = web.get('/patients/1')
    assert response.status_code == 200
    assert len(response.get_json()['data']['appointments']) == 1

    recent = web.get('/patients/recent').get_json()['data']['patients']
    assert recent == [{'id': 1, 'patient_id': 'P001', 'name': 'Ana Cruz'}]


def test_create_patient_rejects_invalid_form(web, stub):
    response = web.post('/patients', json={'first_name': 'Ana', 'phone': '12345'})
    body = response.get_json()
    assert response.status_code == 400
    assert set(body['errors']) == {'last_name', 'phone'}
    assert stub.calls_to('POST', '/api/patients') == []


def test_staff_created_patient_leaves_source_to_backend(web, stub):
    stub.add('POST', '/api/patients', ok({'patient': patient_row(id=9)}))
    stub.add('GET', '/api/patients', page('patients', []))
    response = web.post('/patients', json={'first_name': 'Ana', 'last_name': 'Cruz', 'phone': '9171234567'})
    assert response.status_code == 201
    sent = stub.calls_to('POST', '/api/patients')[0]['json']
    assert 'registration_source' not in sent
    assert sent['phone'] == '09171234567'


def test_pending_tab_filters_by_registration_status(web, stub):
    stub.add('GET', '/api/patients', page('patients', [patient_row(registration_status='pending')], total=1))
    response = web.get('/patients?registration_status=pending')
    assert response.status_code == 200
    assert stub.calls[0]['params']['registration_status'] == 'pending'

    assert web.get('/patients?registration_status=archived').status_code == 400
    assert len(stub.calls) == 1


def test_approve_and_deny_pending_patients(web, stub):
    stub.add('POST', '/api/patients/approve', (400, {'error': 'Patient registration is not pending'}))
    response = web.post('/patients/4/approve')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Patient registration is not pending'

    assert web.post('/patients/4/deny', json={}).status_code == 400
    assert stub.calls_to('POST', '/api/patients/deny') == []

    stub.add('POST', '/api/patients/deny', (200, {'success': True, 'message': 'Patient registration denied'}))
    stub.add('GET', '/api/patients', page('patients', []))
    response = web.post('/patients/4/deny', json={'reason': 'Duplicate record'})
    assert response.status_code == 200
    assert stub.calls_to('POST', '/api/patients/deny')[0]['json'] == {'patientId': '4', 'reason': 'Duplicate record'}


def test_calendar_week_view_is_remembered(web, stub):
    stub.add('GET', '/api/appointments', page('appointments', [appointment_row()]))
    response = web.get('/calendar?view=week&date=2024-02-15')
    calendar = response.get_json()['data']['calendar']
    assert response.status_code == 200
    assert calendar['view'] == 'week'
    assert calendar['grid']['total'] == 1
    assert stub.calls[0]['params']['start_date'] == '2024-02-01'

    prefs = web.get('/preferences').get_json()['data']['preferences']
    assert prefs['calendarView'] == 'week'


def test_calendar_navigation(web, stub):
    stub.add('GET', '/api/appointments', page('appointments', []))
    response = web.get('/calendar?view=day&date=2024-02-15&nav=next')
    assert response.get_json()['data']['calendar']['current_date'] == '2024-02-16'


def test_calendar_error_offers_retry(web, stub):
    stub.add('GET', '/api/appointments', (500, {'success': False, 'error': 'Query failed'}))
    response = web.get('/calendar?view=month&date=2024-02-15')
    body = response.get_json()
    assert response.status_code == 500
    assert body['error'] == 'Query failed'
    assert body['data']['calendar']['grid'] is None
    assert body['data']['calendar']['retry'] == {'view': 'month', 'date': '2024-02-15'}


def test_calendar_rejects_unknown_view(web):
    assert web.get('/calendar?view=year').status_code == 400
    assert web.get('/calendar/day/not-a-date').status_code == 400


def test_calendar_day_click(web, stub):
    stub.add('GET', '/api/appointments', page('appointments', []))
    calendar = web.get('/calendar/day/2024-02-20').get_json()['data']['calendar']
    assert calendar['view'] == 'day'
    assert calendar['current_date'] == '2024-02-20'


def test_new_appointment_prefill(web, stub):
    response = web.post('/calendar/new-appointment', json={'date': '2024-02-16', 'time': '10:30'})
    assert response.get_json()['data']['prefill'] == {'appointment_date': '2024-02-16', 'appointment_time': '10:30'}
    assert stub.calls == []


def test_registration_rejects_bad_token(web, stub):
    stub.add('POST', '/api/qr-tokens/validate', (410, {'success': False, 'error': 'Token expired'}))
    response = web.get('/register/tok123')
    assert response.status_code == 410
    assert response.get_json()['error'] == 'This registration link is invalid or has expired'


def test_registration_draft_survives_between_visits(web, stub, storage):
    stub.add('POST', '/api/qr-tokens/validate', ok({'valid': True}))
    response = web.post('/register/tok123/step', json={
        'step': 2,
        'form': {'first_name': 'Ana', 'last_name': 'Cruz'},
        'action': 'save',
    })
    assert response.status_code == 200
    draft = storage.get('qr-registration-tok123')
    assert draft['formData']['first_name'] == 'Ana'
    assert draft['currentStep'] == 2

    registration = web.get('/register/tok123').get_json()['data']['registration']
    assert registration['step'] == 2
    assert registration['form']['last_name'] == 'Cruz'
    assert registration['notices'][0]['title'] == 'Draft Loaded'

    web.delete('/register/tok123/draft')
    assert storage.get('qr-registration-tok123') is None


def test_registration_rejects_unknown_source(web, stub):
    response = web.post('/register/step?source=walk-in', json={'step': 1, 'action': 'save'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Unknown registration source: walk-in'
    assert stub.calls == []

    response = web.post('/register', json={'source': 'staff', 'form': {'first_name': 'Ana'}})
    assert response.status_code == 400
    assert stub.calls_to('POST', '/api/patients') == []


def test_registration_next_step_is_gated(web, stub):
    response = web.post('/register/step', json={'step': 1, 'form': {'first_name': 'Ana'}, 'action': 'next'})
    registration = response.get_json()['data']['registration']
    assert response.status_code == 400
    assert registration['step'] == 1
    assert 'last_name' in registration['errors']


def test_registration_submit(web, stub, storage):
    stub.add('POST', '/api/qr-tokens/validate', ok({'valid': True, 'token': {
        'id': 7, 'qr_type': 'single-use', 'reusable': False, 'usage_count': 0, 'expires_at': '2099-01-01T00:00:00Z',
    }}))
    stub.add('POST', '/api/qr-registration', ok({'patient': patient_row()}))
    response = web.post('/register/tok123', json={
        'form': {'first_name': 'Ana', 'last_name': 'Cruz', 'email': 'ana@example.com', 'phone': '09171234567'},
    })
    assert response.status_code == 201
    assert stub.calls_to('POST', '/api/qr-registration')[0]['json']['token'] == 'tok123'
    assert storage.get('qr-registration-tok123') is None
    assert response.get_json()['data']['token'] == {'status': 'used', 'usage_count': 1}


def test_registration_refuses_token_reported_invalid(web, stub):
    stub.add('POST', '/api/qr-tokens/validate', ok({'valid': False, 'reason': 'Token has already been used'}))
    assert web.get('/register/tok123').status_code == 410

    response = web.post('/register/tok123', json={'form': {'first_name': 'Ana', 'last_name': 'Cruz'}})
    assert response.status_code == 410
    assert stub.calls_to('POST', '/api/qr-registration') == []


def generic_token(**overrides):
    token = {'id': 5, 'token': 'abc', 'qr_type': 'generic', 'reusable': True, 'usage_count': 3}
    token.update(overrides)
    return token


def test_deleting_permanent_token_needs_confirmation(web, stub):
    stub.add('GET', '/api/qr-tokens/5', ok({'token': generic_token()}))
    stub.add('DELETE', '/api/qr-tokens/5', ok())

    response = web.delete('/qr-tokens/5')
    assert response.status_code == 409
    assert response.get_json()['data']['warning']['severity'] == 'high'
    assert stub.calls_to('DELETE', '/api/qr-tokens/5') == []

    response = web.delete('/qr-tokens/5?confirm=true')
    assert response.status_code == 200
    assert len(stub.calls_to('DELETE', '/api/qr-tokens/5')) == 1


def test_generate_rejects_unknown_type(web, stub):
    response = web.post('/qr-tokens', json={'qr_type': 'forever'})
    assert response.status_code == 400
    assert stub.calls == []


def test_notifications_flow(web, stub):
    stub.add('GET', '/api/notifications', (200, {
        'notifications': [
            {'id': 1, 'title': 'New booking', 'is_read': False},
            {'id': 2, 'title': 'Cancelled', 'is_read': False},
        ],
        'unreadCount': 2,
    }))
    stub.add('PUT', '/api/notifications', (500, {'error': 'boom'}))

    assert web.get('/notifications').get_json()['data']['unread_count'] == 2

    response = web.post('/notifications/1/read')
    assert response.status_code == 200
    assert response.get_json()['data']['unread_count'] == 1

    assert web.post('/notifications/99/read').status_code == 404
    assert web.post('/notifications/read-all').get_json()['data']['unread_count'] == 0

    reconciled = web.post('/notifications/reconcile').get_json()['data']
    assert reconciled['unread_count'] == 2
    assert reconciled['last_reconciled_at'] is not None


def test_rotated_auth_cookies_share_one_notification_center(app, web, stub):
    stub.add('GET', '/api/notifications', (200, {'notifications': [], 'unreadCount': 0}))
    for i in range(50):
        web.set_cookie('sb-access-token', f'token-{i}')
        assert web.get('/notifications').status_code == 200

    centers = app.extensions['notification_centers']
    assert len(centers) == 1
    center = next(iter(centers.values()))
    assert center.auth_token == 'token-49'
    assert stub.calls_to('GET', '/api/notifications')[-1]['cookies']['sb-access-token'] == 'token-49'

    before = len(stub.calls_to('GET', '/api/notifications'))
    reconcile_all(centers)
    assert len(stub.calls_to('GET', '/api/notifications')) == before + 1


def test_separate_browsers_are_capped(app, stub):
    stub.add('GET', '/api/notifications', (200, {'notifications': [], 'unreadCount': 0}))
    app.config['NOTIFICATION_CENTER_LIMIT'] = 3
    for _ in range(5):
        assert app.test_client().get('/notifications').status_code == 200
    assert len(app.extensions['notification_centers']) == 3


def test_preferences_ignore_unknown_keys_and_reset(web):
    prefs = web.put('/preferences', json={'theme': 'dark', 'bogus': 1}).get_json()['data']['preferences']
    assert prefs['theme'] == 'dark'
    assert 'bogus' not in prefs
    assert web.delete('/preferences').get_json()['data']['preferences']['theme'] == 'system'


def test_treatment_preview_adds_from_catalog(web, stub):
    stub.add('GET', '/api/procedures', page('procedures', [
        {'id': 2, 'name': 'Cleaning', 'default_cost': 1000, 'is_active': True},
        {'id': 3, 'name': 'Old Crown', 'default_cost': 8000, 'is_active': False},
    ]))
    response = web.post('/treatments/preview', json={
        'procedures': [{'procedure_id': 1, 'quantity': 2, 'cost_per_unit': 500}],
        'add_procedure_id': 2,
        'discount': 10,
    })
    data = response.get_json()['data']
    assert response.status_code == 200
    assert [p['procedure_id'] for p in data['procedures']] == [1, 2]
    assert data['total_cost'] == 2000
    assert data['discount']['final_cost'] == 1800

    inactive = web.post('/treatments/preview', json={'add_procedure_id': 3})
    assert inactive.status_code == 400


def test_unknown_route_is_json(web):
    response = web.get('/nowhere')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_available_slots_respect_buffer(web, stub):
    stub.add('GET', '/api/appointments', page('appointments', [
        appointment_row(appointment_time='09:00', duration_minutes=30),
        appointment_row(id=2, appointment_time='14:00', status='cancelled'),
    ]))
    slots = web.get('/appointments/slots?date=2024-02-15').get_json()['data']['slots']
    taken = [s['time'] for s in slots if not s['available']]
    assert len(slots) == 20
    assert taken == ['08:30:00', '09:00:00', '09:30:00']

    assert web.get('/appointments/slots?date=soon').status_code == 400


def test_appointment_form_is_checked_before_sending(web, stub):
    response = web.post('/appointments', json={'patient_id': 1, 'appointment_date': '2024-02-15',
                                               'appointment_time': '19:30'})
    assert response.status_code == 400
    assert 'between 08:00 and 18:00' in response.get_json()['error']
    assert stub.calls == []


def test_completed_appointment_cannot_be_reopened(web, stub):
    stub.add('GET', '/api/appointments/1', ok({'appointment': appointment_row(status='completed')}))
    response = web.post('/appointments/1/status', json={'status': 'scheduled'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Cannot change status from Completed to Scheduled'
    assert stub.calls_to('PUT', '/api/appointments/1') == []


def test_reminder_settings_page(web, stub):
    stub.add('GET', '/api/reminders/config', (200, {
        'configs': [{
            'id': 1,
            'reminder_type': 'day_of',
            'hours_before': 3,
            'email_template_subject': 'Today: {{appointment_time}}',
            'email_template_body': 'Hi {{patient_name}}, see you later today.',
        }],
        'statistics': {'sent': 4},
        'emailConfigured': False,
    }))
    data = web.get('/reminders').get_json()['data']
    assert data['configs'][0]['type_label'] == 'Day Of Appointment'
    assert data['configs'][0]['placeholders_used'] == ['appointment_time', 'patient_name']
    assert '{{patient_name}}' in data['placeholders']
    assert data['email_configured'] is False


def test_medical_history_fields_grouped(web, stub):
    stub.add('GET', '/api/medical-history-fields', (200, {'fields': [
        {'id': 1, 'field_name': 'Diabetes', 'field_type': 'checkbox'},
        {'id': 2, 'field_name': 'Allergies', 'field_type': 'text'},
    ]}))
    data = web.get('/medical-history-fields').get_json()['data']
    assert [f['field_name'] for f in data['grouped']['checkbox']] == ['Diabetes']
    assert data['grouped']['number'] == []
