"""
Admin-configurable medical history fields

Each field is a tagged union on ``field_type``. Every variant knows how to
coerce and check a submitted value, so a patient's ``medical_history`` bag
is validated against the active field list before it is sent anywhere.
"""
import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError as PydanticValidationError

from .api_client import EnvelopeError, HttpError, expect
from .resources.base import Resource
from .schemas import RowId
from .validation import ValidationError, is_valid_medical_notes

logger = logging.getLogger(__name__)

TEXT_MAX_LENGTH = 1000


class _FieldBase(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: RowId
    field_name: str
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CheckboxField(_FieldBase):
    field_type: Literal['checkbox']

    def clean(self, value):
        if value in (None, ''):
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ('true', 'on', '1', 'yes'):
            return True
        if isinstance(value, str) and value.lower() in ('false', 'off', '0', 'no'):
            return False
        raise ValueError(f"{self.field_name} must be checked or unchecked")


class TextField(_FieldBase):
    field_type: Literal['text']

    def clean(self, value):
        if value is None:
            return ''
        if not isinstance(value, str):
            raise ValueError(f"{self.field_name} must be text")
        if len(value) > TEXT_MAX_LENGTH:
            raise ValueError(f"{self.field_name} must be no more than {TEXT_MAX_LENGTH} characters")
        if not is_valid_medical_notes(value):
            raise ValueError(f"{self.field_name} cannot contain < or >")
        return value.strip()


class NumberField(_FieldBase):
    field_type: Literal['number']

    def clean(self, value):
        if value in (None, ''):
            return None
        if isinstance(value, bool):
            raise ValueError(f"{self.field_name} must be a number")
        if isinstance(value, (int, float)):
            return value
        try:
            number = float(str(value).strip())
        except ValueError:
            raise ValueError(f"{self.field_name} must be a number")
        return int(number) if number.is_integer() else number


MedicalHistoryField = Annotated[
    Union[CheckboxField, TextField, NumberField],
    Field(discriminator='field_type'),
]

_fields_adapter = TypeAdapter(list[MedicalHistoryField])


def parse_fields(rows):
    """
    Parse backend rows into typed fields.

    Raises:
        EnvelopeError: a row has an unknown ``field_type`` or missing keys
    """
    try:
        return _fields_adapter.validate_python(rows)
    except PydanticValidationError as e:
        logger.error(f"❌ Invalid medical history fields: {e.error_count()} error(s)")
        raise EnvelopeError('Unexpected medical history field data from server')


def active_fields(fields):
    return [f for f in fields if f.is_active]


def clean_medical_history(fields, values):
    """
    Validate a ``{field_id: value}`` bag against the active fields

    Values for unknown or inactive fields are dropped; checkbox fields that
    were never touched come back as False.

    Raises:
        ValidationError: keyed by field id
    """
    values = values or {}
    cleaned = {}
    errors = {}
    for field in active_fields(fields):
        key = str(field.id)
        raw = values.get(key, values.get(field.id))
        try:
            cleaned[key] = field.clean(raw)
        except ValueError as e:
            errors[key] = str(e)
    if errors:
        raise ValidationError(errors)
    return cleaned


def grouped_fields(fields):
    """Active fields split the way the form shows them."""
    groups = {'checkbox': [], 'text': [], 'number': []}
    for field in active_fields(fields):
        groups[field.field_type].append(field)
    return groups


class MedicalHistoryFieldsResource(Resource):
    """
    Field definitions from ``/api/medical-history-fields`` (``{fields}`` body)

    A 404 means the clinic has not configured any fields yet and yields an
    empty list rather than an error.
    """

    name = 'medical history fields'

    def load(self):
        try:
            payload = self.client.get('/api/medical-history-fields', legacy=True)
        except HttpError as e:
            if e.status_code == 404:
                logger.warning('⚠️ Medical history fields not found - using empty list')
                return []
            raise
        return parse_fields(expect(payload, 'fields'))

    def clean(self, values):
        return clean_medical_history(self.data, values)
