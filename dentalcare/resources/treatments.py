import logging

from ..api_client import expect
from ..costs import TreatmentLineItems, treatment_total
from ..date_time import is_valid_date_string
from ..schemas import PAYMENT_STATUSES, Treatment
from ..validation import ValidationError
from .base import CollectionResource

logger = logging.getLogger(__name__)


def treatment_payload(form, line_items):
    """
    Build the body for creating or updating a treatment

    Args:
        form: dict with patient_id, appointment_id, treatment_date,
            payment_status and notes
        line_items: TreatmentLineItems being edited

    Returns:
        dict ready to send, with ``total_cost`` recomputed from the lines

    Raises:
        ValidationError: keyed by field name
    """
    errors = {}
    if not form.get('patient_id'):
        errors['patient_id'] = 'Please select a valid patient'
    if not is_valid_date_string(form.get('treatment_date') or ''):
        errors['treatment_date'] = 'Please select a valid date'
    payment_status = form.get('payment_status') or 'pending'
    if payment_status not in PAYMENT_STATUSES:
        errors['payment_status'] = f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}"
    notes = form.get('notes') or ''
    if len(notes) > 1000:
        errors['notes'] = 'Notes must be no more than 1000 characters'
    if errors:
        raise ValidationError(errors)

    line_items.validate_for_submission()
    payload = {
        'patient_id': form['patient_id'],
        'treatment_date': form['treatment_date'],
        'payment_status': payment_status,
        'notes': notes,
        'procedures': line_items.to_payload(),
        'total_cost': line_items.total,
    }
    if form.get('appointment_id'):
        payload['appointment_id'] = form['appointment_id']
    return payload


def with_recomputed_total(treatment):
    """Replace the stored ``total_cost`` with the sum of the line items."""
    items = TreatmentLineItems(treatment.get('treatment_procedures') or [])
    return dict(treatment, total_cost=treatment_total(items.items))


class TreatmentsResource(CollectionResource):
    path = '/api/treatments'
    plural = 'treatments'
    singular = 'treatment'
    model = Treatment
    default_params = {'limit': 20}

    def load(self):
        return [with_recomputed_total(t) for t in super().load()]

    def get(self, row_id):
        return with_recomputed_total(super().get(row_id))

    def create_from_form(self, form, line_items):
        return self.mutate(lambda: self._create(treatment_payload(form, line_items)))

    def update_from_form(self, row_id, form, line_items):
        return self.mutate(lambda: self._update(row_id, treatment_payload(form, line_items)))

    def stats(self, **params):
        """Aggregate figures from ``/api/treatments/stats``. Errors propagate."""
        payload = self.client.get(f"{self.path}/stats", params=params)
        return expect(payload, 'stats', dict)
