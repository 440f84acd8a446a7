"""Pydantic models for data crossing the REST boundary"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .date_time import is_valid_date_string, is_valid_time_string
from .reminders import HOURS_BEFORE_MAX, HOURS_BEFORE_MIN

RowId = Union[int, str]

APPOINTMENT_STATUSES = ('scheduled', 'completed', 'cancelled', 'no-show')
PAYMENT_STATUSES = ('pending', 'partial', 'paid')
REGISTRATION_STATUSES = ('pending', 'approved', 'denied')
REGISTRATION_SOURCES = ('manual', 'qr-token', 'online', 'referral')


class Envelope(BaseModel):
    """Canonical response body: ``{success, data?, error?}``"""

    model_config = ConfigDict(extra='allow')

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    details: Optional[List[Dict[str, Any]]] = None


class Record(BaseModel):
    """Base for backend rows; unknown columns are kept as-is."""

    model_config = ConfigDict(extra='allow')

    id: RowId
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Patient(Record):
    patient_id: Optional[str] = None
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    medical_history: Optional[Dict[str, Union[bool, int, float, str, None]]] = None
    notes: Optional[str] = None
    registration_status: Optional[Literal['pending', 'approved', 'denied']] = None
    registration_source: Optional[Literal['manual', 'qr-token', 'online', 'referral']] = None


class Appointment(Record):
    patient_id: RowId
    appointment_date: str
    appointment_time: str
    duration_minutes: int = 30
    status: Literal['scheduled', 'completed', 'cancelled', 'no-show'] = 'scheduled'
    reason: Optional[str] = None
    notes: Optional[str] = None
    patients: Optional[Dict[str, Any]] = None

    @field_validator('appointment_date')
    @classmethod
    def validate_date(cls, v):
        if not is_valid_date_string(v):
            raise ValueError(f"invalid appointment_date: {v!r}")
        return v

    @field_validator('appointment_time')
    @classmethod
    def validate_time(cls, v):
        if not is_valid_time_string(v):
            raise ValueError(f"invalid appointment_time: {v!r}")
        return v


class Procedure(Record):
    name: str
    description: Optional[str] = None
    default_cost: Optional[float] = 0
    estimated_duration: Optional[int] = None
    is_active: bool = True


class TreatmentProcedure(BaseModel):
    model_config = ConfigDict(extra='allow')

    procedure_id: RowId
    quantity: int = Field(default=1, ge=1)
    cost_per_unit: float = Field(default=0, ge=0)
    tooth_number: Optional[str] = None
    notes: Optional[str] = None
    procedures: Optional[Dict[str, Any]] = None


class Treatment(Record):
    patient_id: RowId
    appointment_id: Optional[RowId] = None
    treatment_date: Optional[str] = None
    payment_status: Literal['pending', 'partial', 'paid'] = 'pending'
    notes: Optional[str] = None
    total_cost: Optional[float] = None
    treatment_procedures: List[TreatmentProcedure] = Field(default_factory=list)
    patients: Optional[Dict[str, Any]] = None


class QRToken(Record):
    token: str
    qr_type: Literal['generic', 'reusable', 'single-use'] = 'single-use'
    expires_at: Optional[str] = None
    used: bool = False
    reusable: bool = False
    usage_count: int = 0
    note: Optional[str] = None
    registration_url: Optional[str] = None


class ReminderConfig(Record):
    reminder_type: Literal['24_hour', 'day_of', 'custom']
    hours_before: int = Field(ge=HOURS_BEFORE_MIN, le=HOURS_BEFORE_MAX)
    is_enabled: bool = True
    email_template_subject: str = Field(min_length=1, max_length=200)
    email_template_body: str = Field(min_length=10, max_length=5000)


class Notification(Record):
    title: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None
    is_read: bool = False
