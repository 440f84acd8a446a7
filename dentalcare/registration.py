"""
Multi-step patient registration and edit forms

Steps are Personal (1), Contact (2) and Medical (3). Moving forward is gated
by the current step's checks; the backend is only called from the final
step. Pressing Enter on an earlier step advances instead of submitting.

The self-registration (mobile) variant also keeps a draft in local storage
and requires an email address before the medical history step.
"""
import logging
import re

from .config import Config
from .date_time import parse_date
from .drafts import Debouncer, DraftStore, draft_key
from .medical_history import clean_medical_history
from .resources.base import MutationResult
from .tz_utils import today_local
from .validation import (
    LOCAL_PHONE_MESSAGE,
    ValidationError,
    is_valid_birth_date,
    is_valid_email,
    is_valid_local_phone,
    sanitize_input,
)

logger = logging.getLogger(__name__)

TOTAL_STEPS = 3

STEP_TITLES = {
    1: 'Personal Information',
    2: 'Contact Information',
    3: 'Medical History',
}

EMPTY_FORM = {
    'first_name': '',
    'middle_name': '',
    'last_name': '',
    'date_of_birth': '',
    'gender': '',
    'phone': '',
    'email': '',
    'address': '',
    'emergency_contact_name': '',
    'emergency_contact_phone': '',
    'notes': '',
}

PHONE_FIELDS = ('phone', 'emergency_contact_phone')


def clamp_step(value):
    """Coerce a stored or posted step number into 1..TOTAL_STEPS."""
    try:
        step = int(value or 1)
    except (TypeError, ValueError):
        step = 1
    return min(max(step, 1), TOTAL_STEPS)


def normalize_phone_input(raw):
    """
    Input mask for mobile numbers as the user types

    Strips non-digits, turns ``9...`` into ``09...`` and pads short input
    with ``09``, then cuts to 11 digits. This does not validate; the step
    gate still checks ``^09\\d{9}$``.
    """
    digits = re.sub(r'\D', '', raw or '')
    if digits.startswith('9') and len(digits) <= 10:
        digits = '0' + digits
    elif not digits.startswith('09') and 0 < len(digits) < 10:
        digits = '09' + digits
    return digits[:11]


def validate_step(step, form, require_email=False, today=None, strict_birth_date=False):
    """
    Errors blocking ``step``, keyed by field name

    Args:
        step: 1, 2 or 3
        form: form values
        require_email: the self-registration variant needs an email at step 2
        today: date used for the future-birth-date check
        strict_birth_date: also apply the edit form's 1900-2100 and 120-year bounds
    """
    errors = {}
    today = today or today_local()

    if step == 1:
        for field, label in (('first_name', 'First name'), ('last_name', 'Last name')):
            value = (form.get(field) or '').strip()
            if not value:
                errors[field] = f"{label} is required"
            elif len(value) > 100:
                errors[field] = f"{label} must be no more than 100 characters"

        dob = (form.get('date_of_birth') or '').strip()
        if dob:
            parsed = parse_date(dob)
            if parsed is None:
                errors['date_of_birth'] = 'Please enter a valid date'
            elif parsed > today:
                errors['date_of_birth'] = 'Birth date cannot be in the future'
            elif strict_birth_date and not is_valid_birth_date(dob, today):
                errors['date_of_birth'] = 'Please enter a valid birth date'

    elif step == 2:
        email = (form.get('email') or '').strip()
        if require_email and not email:
            errors['email'] = 'Email address is required'
        elif email and not is_valid_email(email):
            errors['email'] = 'Please enter a valid email address'

        for field in PHONE_FIELDS:
            value = (form.get(field) or '').strip()
            if value and not is_valid_local_phone(value):
                errors[field] = LOCAL_PHONE_MESSAGE

    return errors


class PatientFormWizard:
    """Step state shared by the registration and edit forms"""

    total_steps = TOTAL_STEPS
    require_email = False
    strict_birth_date = False

    def __init__(self, form=None, medical_history=None, medical_fields=None):
        self.form = dict(EMPTY_FORM)
        self.form.update({k: v for k, v in (form or {}).items() if k in EMPTY_FORM and v is not None})
        self.medical_history = dict(medical_history or {})
        self.medical_fields = medical_fields or []
        self.step = 1
        self.errors = {}
        self.notices = []
        self.submitting = False
        self.submit_error = None

    @property
    def is_final_step(self):
        return self.step == self.total_steps

    @property
    def progress(self):
        return round(self.step / self.total_steps * 100)

    def notify(self, title, description):
        self.notices.append({'title': title, 'description': description})

    def changed(self):
        """Hook for subclasses that persist progress."""

    def update(self, **values):
        for field, value in values.items():
            if field not in EMPTY_FORM:
                continue
            if field in PHONE_FIELDS:
                value = normalize_phone_input(value)
            self.form[field] = value if value is not None else ''
            self.errors.pop(field, None)
        self.changed()

    def set_medical_history(self, field_id, value):
        self.medical_history[str(field_id)] = value
        self.changed()

    def validate_current_step(self, today=None):
        return validate_step(self.step, self.form, self.require_email, today, self.strict_birth_date)

    def next_step(self, today=None):
        """Advance if the current step is valid. Returns True on success."""
        self.errors = self.validate_current_step(today)
        if self.errors:
            return False
        if self.step < self.total_steps:
            self.step += 1
            self.changed()
        return True

    def previous_step(self):
        if self.step > 1:
            self.step -= 1
            self.errors = {}
            self.changed()
        return self.step

    def handle_enter(self, today=None):
        """Enter advances on steps 1-2 and submits on the last step."""
        if self.step < self.total_steps:
            return self.next_step(today)
        return self.submit(today)

    def patient_data(self, today=None):
        """
        Cleaned payload for the backend

        Raises:
            ValidationError: any step fails, or medical history is invalid
        """
        errors = {}
        for step in range(1, self.total_steps + 1):
            errors.update(validate_step(step, self.form, self.require_email, today, self.strict_birth_date))
        try:
            history = clean_medical_history(self.medical_fields, self.medical_history) if self.medical_fields \
                else dict(self.medical_history)
        except ValidationError as e:
            errors.update({f"medical_history.{k}": v for k, v in e.errors.items()})
            history = {}
        if errors:
            raise ValidationError(errors)

        data = {k: (v.strip() if isinstance(v, str) else v) for k, v in self.form.items()}
        data['first_name'] = sanitize_input(data['first_name'])
        data['last_name'] = sanitize_input(data['last_name'])
        for field in ('middle_name', 'address', 'emergency_contact_name', 'notes'):
            data[field] = sanitize_input(data[field])
        data['medical_history'] = history
        return data

    def send(self, data):
        raise NotImplementedError

    def submit(self, today=None):
        """
        Submit from the final step

        Returns:
            MutationResult; failures are also kept on ``submit_error``
        """
        if not self.is_final_step:
            return MutationResult(False, error='Please complete all steps before submitting')

        try:
            data = self.patient_data(today)
        except ValidationError as e:
            self.errors = e.errors
            return MutationResult(False, error=str(e))

        self.submitting = True
        self.submit_error = None
        try:
            result = self.send(data)
        finally:
            self.submitting = False

        if not result.success:
            self.submit_error = result.error
            return result

        self.submitted(result)
        return result

    def submitted(self, result):
        """Hook run after a successful submission."""


class RegistrationWizard(PatientFormWizard):
    """
    New-patient form

    With ``token`` the submission goes through the QR registration endpoint;
    otherwise it creates the patient directly, and the mobile form tags it
    with ``source``. When ``storage`` is given the form keeps a debounced
    draft.
    """

    def __init__(self, patients=None, qr_tokens=None, token=None, source='qr-token',
                 storage=None, mobile=False, medical_fields=None, save_delay=None,
                 timer_factory=None):
        super().__init__(medical_fields=medical_fields)
        self.patients = patients
        self.qr_tokens = qr_tokens
        self.token = token
        self.source = source or 'qr-token'
        self.mobile = mobile
        self.require_email = mobile
        self.drafts = None
        self.debouncer = None
        self.draft_saved = False

        if storage is not None:
            self.drafts = DraftStore(storage, draft_key(token, self.source))
            delay = Config.DRAFT_SAVE_DELAY_SECONDS if save_delay is None else save_delay
            kwargs = {'timer_factory': timer_factory} if timer_factory else {}
            self.debouncer = Debouncer(delay, self.save_draft, **kwargs)

    def mount(self, now=None):
        """Restore a recent draft, if any. Returns True when one was loaded."""
        if self.drafts is None:
            return False
        draft = self.drafts.load(now)
        if draft is None:
            return False

        self.form.update({k: v for k, v in (draft.get('formData') or {}).items() if k in EMPTY_FORM})
        self.medical_history = dict(draft.get('medicalHistory') or {})
        self.step = clamp_step(draft.get('currentStep'))
        self.notify('Draft Loaded', 'Your previous registration progress has been restored.')
        logger.info(f"📝 Restored registration draft {self.drafts.key} at step {self.step}")
        return True

    def changed(self):
        if self.debouncer is not None:
            self.draft_saved = False
            self.debouncer.trigger()

    def save_draft(self):
        if self.drafts is None:
            return None
        draft = self.drafts.save(self.form, self.medical_history, self.step)
        self.draft_saved = True
        return draft

    def teardown(self):
        if self.debouncer is not None:
            self.debouncer.cancel()

    def send(self, data):
        if self.token:
            return self.qr_tokens.register_patient(self.token, data)
        if self.mobile:
            data = dict(data, registration_source=self.source)
        return self.patients.create(data)

    def submitted(self, result):
        if self.debouncer is not None:
            self.debouncer.cancel()
        if self.drafts is not None:
            self.drafts.clear()
        self.notify('Registration Successful!', 'Your patient information has been submitted successfully.')
        logger.info(f"✅ Patient registered ({'token' if self.token else self.source})")


class PatientEditWizard(PatientFormWizard):
    """Edit an existing patient; submits ``PUT /api/patients/<id>``"""

    strict_birth_date = True

    def __init__(self, patients, patient, medical_fields=None):
        super().__init__(form=patient, medical_history=patient.get('medical_history'),
                         medical_fields=medical_fields)
        self.patients = patients
        self.patient_id = patient['id']

    def send(self, data):
        return self.patients.update(self.patient_id, data)

    def submitted(self, result):
        self.notify('Patient Updated', 'Patient information has been updated successfully.')
