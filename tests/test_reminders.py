import pytest

from dentalcare.reminders import (
    build_test_send_request,
    find_placeholders,
    unknown_placeholders,
    validate_reminder_config,
)
from dentalcare.resources.reminders import ReminderSettingsResource
from dentalcare.validation import ValidationError


def config(**overrides):
    values = {
        'reminder_type': '24_hour',
        'hours_before': 24,
        'is_enabled': True,
        'email_template_subject': 'Reminder: {{appointment_date}}',
        'email_template_body': 'Hi {{patient_name}}, see you at {{appointment_time}}.',
    }
    values.update(overrides)
    return values


def test_placeholders_are_found_once_in_order():
    template = '{{ patient_name }} on {{appointment_date}} ({{patient_name}}) {{bogus}}'
    assert find_placeholders(template) == ['patient_name', 'appointment_date', 'bogus']
    assert unknown_placeholders(template) == ['bogus']


def test_valid_config_is_cleaned():
    cleaned = validate_reminder_config(config(is_enabled=0))
    assert cleaned['hours_before'] == 24
    assert cleaned['is_enabled'] is False


@pytest.mark.parametrize('hours', [0, 169, '24', True, None])
def test_hours_before_bounds(hours):
    with pytest.raises(ValidationError) as exc:
        validate_reminder_config(config(hours_before=hours))
    assert exc.value.errors == {'hours_before': 'Hours before must be between 1 and 168'}


def test_edge_hours_are_accepted():
    assert validate_reminder_config(config(hours_before=1))['hours_before'] == 1
    assert validate_reminder_config(config(hours_before=168))['hours_before'] == 168


def test_template_errors():
    with pytest.raises(ValidationError) as exc:
        validate_reminder_config(config(reminder_type='weekly', email_template_subject='',
                                        email_template_body='Hi {{nickname}}, see you soon'))
    assert set(exc.value.errors) == {'reminder_type', 'email_template_subject', 'email_template_body'}
    assert exc.value.errors['email_template_body'] == 'Unknown placeholders: {{nickname}}'

    with pytest.raises(ValidationError) as exc:
        validate_reminder_config(config(email_template_body='Too short'))
    assert exc.value.errors == {'email_template_body': 'Body must be at least 10 characters'}


def test_test_send_request():
    assert build_test_send_request(7, 'day_of', ' me@example.com ') == {
        'action': 'test_reminder',
        'appointment_id': 7,
        'reminder_type': 'day_of',
        'test_email': 'me@example.com',
    }
    with pytest.raises(ValidationError) as exc:
        build_test_send_request(None, 'hourly', 'nope')
    assert set(exc.value.errors) == {'appointment_id', 'reminder_type', 'test_email'}


def test_resource_reads_legacy_body(client, stub):
    stub.add('GET', '/api/reminders/config', (200, {
        'configs': [dict(config(), id=1)],
        'statistics': {'sent': 12, 'failed': 1},
        'emailConfigured': True,
    }))
    reminders = ReminderSettingsResource(client)
    reminders.fetch()
    assert reminders.data[0]['reminder_type'] == '24_hour'
    assert reminders.statistics == {'sent': 12, 'failed': 1}
    assert reminders.email_configured is True


def test_update_config_validates_before_sending(client, stub):
    reminders = ReminderSettingsResource(client)
    result = reminders.update_config(1, config(hours_before=500))
    assert result.success is False
    assert stub.calls == []


def test_update_config_puts_by_id(client, stub):
    stub.add('PUT', '/api/reminders/config', (200, {'config': dict(config(), id=1)}))
    stub.add('GET', '/api/reminders/config', (200, {'configs': [], 'statistics': {}, 'emailConfigured': False}))
    result = ReminderSettingsResource(client).update_config(1, config())
    assert result.success is True
    assert stub.calls_to('PUT', '/api/reminders/config')[0]['params'] == {'id': 1}


def test_send_test_does_not_refetch(client, stub):
    stub.add('POST', '/api/reminders/config', (200, {'success': True, 'message': 'Test reminder sent'}))
    result = ReminderSettingsResource(client).send_test(7, '24_hour')
    assert result.success is True
    assert stub.calls_to('GET', '/api/reminders/config') == []
    assert stub.calls[0]['json']['action'] == 'test_reminder'
