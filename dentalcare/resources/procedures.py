import logging

from ..api_client import expect
from ..costs import format_currency
from ..schemas import Procedure
from ..validation import ValidationError, is_valid_cost, is_valid_duration, sanitize_input, validate_field
from .base import CollectionResource, parse_rows

logger = logging.getLogger(__name__)


def search_procedures(procedures, term):
    if not term or not term.strip():
        return list(procedures)
    needle = term.lower()
    return [
        p for p in procedures
        if needle in (p.get('name') or '').lower() or needle in (p.get('description') or '').lower()
    ]


def procedure_payload(form):
    """
    Validate the procedure form

    Raises:
        ValidationError: keyed by field name
    """
    errors = {}
    name_errors = validate_field('Name', form.get('name'), required=True, min_length=2, max_length=100)
    if name_errors:
        errors['name'] = name_errors[0]
    default_cost = form.get('default_cost')
    if default_cost not in (None, '') and not is_valid_cost(default_cost):
        errors['default_cost'] = 'Cost must be a positive amount with at most 2 decimal places'
    duration = form.get('estimated_duration')
    if duration not in (None, '') and not is_valid_duration(duration):
        errors['estimated_duration'] = 'Duration must be 15 to 480 minutes in 15-minute steps'
    if len(form.get('description') or '') > 500:
        errors['description'] = 'Description must be no more than 500 characters'
    if errors:
        raise ValidationError(errors)

    return {
        'name': sanitize_input(form['name']),
        'description': sanitize_input(form.get('description')),
        'default_cost': float(default_cost) if default_cost not in (None, '') else None,
        'estimated_duration': duration if duration not in (None, '') else None,
        'is_active': bool(form.get('is_active', True)),
    }


class ProceduresResource(CollectionResource):
    path = '/api/procedures'
    plural = 'procedures'
    singular = 'procedure'
    model = Procedure
    default_params = {'limit': 50, 'sort_by': 'name', 'sort_order': 'asc'}

    def search(self, term):
        return search_procedures(self.data, term)

    def popular(self, limit=5):
        """Most-used procedures. Errors propagate to the caller."""
        payload = self.client.get(f"{self.path}/popular", params={'limit': limit})
        return parse_rows(Procedure, expect(payload, 'procedures'), 'procedures')

    def create_from_form(self, form):
        return self.mutate(lambda: self._create(procedure_payload(form)))

    def update_from_form(self, row_id, form):
        return self.mutate(lambda: self._update(row_id, procedure_payload(form)))

    def find(self, procedure_id):
        """Look up a loaded procedure, including inactive ones kept for history."""
        for procedure in self.data:
            if procedure['id'] == procedure_id:
                return procedure
        return None


class ProceduresForSelection(ProceduresResource):
    """Active catalog entries offered when building a new treatment."""

    default_params = {'is_active': True, 'limit': 100, 'sort_by': 'name', 'sort_order': 'asc'}

    def options_for_select(self):
        options = []
        for p in self.data:
            if not p.get('is_active', True):
                continue
            price = format_currency(p['default_cost']) if p.get('default_cost') else 'No price set'
            options.append({'value': p['id'], 'label': f"{p['name']} - {price}"})
        return options
