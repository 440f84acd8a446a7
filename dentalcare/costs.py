"""
Treatment cost calculations

A treatment's total is always derived from its line items. Nothing here
trusts a stored ``total_cost``; callers recompute on every read.
"""
import logging
import re

from .validation import ValidationError

logger = logging.getLogger(__name__)

CURRENCY_SYMBOL = '₱'


def line_item_total(item):
    return item['quantity'] * item['cost_per_unit']


def treatment_total(items):
    return sum(line_item_total(item) for item in items)


def coerce_quantity(value):
    """Integer quantity, at least 1; anything unparseable becomes 1."""
    try:
        quantity = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return 1
    return max(1, quantity)


def coerce_cost(value):
    """Non-negative cost; anything unparseable becomes 0."""
    try:
        cost = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if cost != cost or cost in (float('inf'), float('-inf')):
        return 0.0
    return max(0.0, cost)


class TreatmentLineItems:
    """
    Editable list of procedure line items for the treatment form.

    Each line is a dict with ``procedure_id``, ``quantity``,
    ``cost_per_unit``, ``tooth_number`` and ``notes``. The price is copied
    from the procedure once, at insertion, and is not kept in sync with the
    catalog afterwards.
    """

    def __init__(self, items=None):
        self.items = []
        for item in items or []:
            self.items.append({
                'procedure_id': item['procedure_id'],
                'quantity': coerce_quantity(item.get('quantity', 1)),
                'cost_per_unit': coerce_cost(item.get('cost_per_unit', 0)),
                'tooth_number': item.get('tooth_number') or '',
                'notes': item.get('notes') or '',
            })

    def __len__(self):
        return len(self.items)

    def index_of(self, procedure_id):
        for index, item in enumerate(self.items):
            if item['procedure_id'] == procedure_id:
                return index
        return None

    def add_procedure(self, procedure):
        """
        Add a catalog procedure, merging into an existing line if present

        Args:
            procedure: dict with ``id``, ``default_cost`` and ``is_active``

        Returns:
            Index of the line that was added or incremented
        """
        if not procedure.get('is_active', True):
            raise ValidationError({'procedure_id': f"Procedure '{procedure.get('name', procedure.get('id'))}' is inactive"})

        existing = self.index_of(procedure['id'])
        if existing is not None:
            self.items[existing]['quantity'] += 1
            return existing

        self.items.append({
            'procedure_id': procedure['id'],
            'quantity': 1,
            'cost_per_unit': coerce_cost(procedure.get('default_cost') or 0),
            'tooth_number': '',
            'notes': '',
        })
        return len(self.items) - 1

    def remove(self, index):
        del self.items[index]

    def set_quantity(self, index, value):
        self.items[index]['quantity'] = coerce_quantity(value)

    def set_cost(self, index, value):
        self.items[index]['cost_per_unit'] = coerce_cost(value)

    def set_tooth_number(self, index, value):
        self.items[index]['tooth_number'] = (value or '').strip()

    def set_notes(self, index, value):
        self.items[index]['notes'] = value or ''

    @property
    def total(self):
        return treatment_total(self.items)

    def validate_for_submission(self):
        if not self.items:
            raise ValidationError({'procedures': 'Please add at least one procedure'})

    def to_payload(self):
        """Line items in the shape the treatments endpoint expects."""
        payload = []
        for item in self.items:
            row = {
                'procedure_id': item['procedure_id'],
                'quantity': item['quantity'],
                'cost_per_unit': item['cost_per_unit'],
            }
            if item['tooth_number']:
                row['tooth_number'] = item['tooth_number']
            if item['notes']:
                row['notes'] = item['notes']
            payload.append(row)
        return payload


def calculate_treatment_cost(items):
    procedures = [dict(item, line_total=line_item_total(item)) for item in items]
    subtotal = sum(p['line_total'] for p in procedures)
    return {
        'subtotal': subtotal,
        'total': subtotal,
        'procedures': procedures,
    }


def cost_summary(items):
    calculation = calculate_treatment_cost(items)
    line_totals = [p['line_total'] for p in calculation['procedures']]
    return {
        'procedure_count': len(items),
        'total_quantity': sum(item['quantity'] for item in items),
        'average_cost_per_procedure': calculation['total'] / len(items) if items else 0,
        'highest_procedure_cost': max(line_totals, default=0),
        'lowest_procedure_cost': min(line_totals, default=0),
        **calculation,
    }


def cost_breakdown(items):
    """Share of the total per line; empty when the total is zero."""
    calculation = calculate_treatment_cost(items)
    if calculation['total'] == 0:
        return []
    return [
        {
            'procedure_id': p['procedure_id'],
            'cost': p['line_total'],
            'percentage': p['line_total'] / calculation['total'] * 100,
            'quantity': p['quantity'],
            'cost_per_unit': p['cost_per_unit'],
        }
        for p in calculation['procedures']
    ]


def apply_discount(original_cost, discount, discount_type='percentage'):
    if discount_type == 'percentage':
        discount_amount = original_cost * (discount / 100)
    elif discount_type == 'fixed':
        discount_amount = min(discount, original_cost)
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    final_cost = max(0, original_cost - discount_amount)
    return {
        'original_cost': original_cost,
        'discount_amount': discount_amount,
        'final_cost': final_cost,
        'discount_percentage': discount_amount / original_cost * 100 if original_cost > 0 else 0,
    }


def payment_progress(total_cost, paid_amount):
    if paid_amount == 0:
        status = 'pending'
    elif paid_amount < total_cost:
        status = 'partial'
    elif paid_amount == total_cost:
        status = 'paid'
    else:
        status = 'overpaid'

    return {
        'total_cost': total_cost,
        'paid_amount': paid_amount,
        'remaining_amount': max(0, total_cost - paid_amount),
        'percentage_paid': paid_amount / total_cost * 100 if total_cost > 0 else 0,
        'status': status,
    }


def format_currency(amount, show_symbol=True, minimum_fraction_digits=2):
    """Format like ``₱1,234.50``; fraction digits are capped at two."""
    formatted = f"{amount:,.2f}"
    if minimum_fraction_digits < 2:
        whole, _, fraction = formatted.partition('.')
        fraction = fraction.rstrip('0')
        if len(fraction) < minimum_fraction_digits:
            fraction = fraction.ljust(minimum_fraction_digits, '0')
        formatted = f"{whole}.{fraction}" if fraction else whole
    return f"{CURRENCY_SYMBOL}{formatted}" if show_symbol else formatted


def parse_currency(value):
    try:
        return float(re.sub(r'[₱,\s]', '', value or ''))
    except ValueError:
        return 0.0
