import logging

from ..schemas import Patient
from ..validation import ValidationError
from .base import CollectionResource

logger = logging.getLogger(__name__)


def patient_full_name(patient):
    return f"{patient.get('first_name', '')} {patient.get('last_name', '')}".strip()


def search_patients(patients, term):
    """Case-insensitive match on full name, patient id, phone or email."""
    if not term or not term.strip():
        return list(patients)

    needle = term.lower()
    results = []
    for patient in patients:
        haystacks = (
            patient_full_name(patient).lower(),
            (patient.get('patient_id') or '').lower(),
            (patient.get('phone') or '').lower(),
            (patient.get('email') or '').lower(),
        )
        if any(needle in h for h in haystacks):
            results.append(patient)
    return results


class PatientsResource(CollectionResource):
    path = '/api/patients'
    plural = 'patients'
    singular = 'patient'
    model = Patient
    default_params = {'limit': 20, 'sort_by': 'created_at', 'sort_order': 'desc'}

    def _approve(self, patient_id):
        self.client.post(f"{self.path}/approve", json={'patientId': patient_id})
        logger.info(f"✅ Patient {patient_id} approved")
        return patient_id

    def _deny(self, patient_id, reason):
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError({'reason': 'A reason is required to deny a registration'})
        self.client.post(f"{self.path}/deny", json={'patientId': patient_id, 'reason': reason})
        logger.info(f"Patient {patient_id} denied")
        return patient_id

    def approve(self, patient_id):
        """Approve a pending self-registration; the backend refuses any other status."""
        return self.mutate(self._approve, patient_id)

    def deny(self, patient_id, reason):
        return self.mutate(self._deny, patient_id, reason)

    def search(self, term):
        return search_patients(self.data, term)

    def options_for_select(self):
        """Label/value pairs for patient pickers, e.g. ``Ana Cruz (P001)``."""
        return [
            {
                'value': p['id'],
                'label': f"{patient_full_name(p)} ({p.get('patient_id') or '-'})",
            }
            for p in self.data
        ]


class PatientsForSelection(PatientsResource):
    default_params = {'limit': 100, 'sort_by': 'first_name', 'sort_order': 'asc'}
