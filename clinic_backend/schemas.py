from __future__ import annotations

import uuid
from datetime import datetime, time

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConstraintViolation
from .models import PatientSex


class _Payload(BaseModel):
    # campi sconosciuti rifiutati: niente scritture silenziosamente ignorate
    model_config = ConfigDict(extra="forbid")


class ClinicIn(_Payload):
    name: str


class UserClinicIn(_Payload):
    user_id: uuid.UUID
    clinic_id: uuid.UUID


class DoctorIn(_Payload):
    clinic_id: uuid.UUID
    name: str
    avatar_image_url: str | None = None
    available_from_week_day: int
    available_to_week_day: int
    available_from_time: time
    available_to_time: time
    specialty: str
    appointment_price_in_cents: int


class PatientIn(_Payload):
    clinic_id: uuid.UUID
    name: str
    email: str
    phone_number: str
    sex: PatientSex


class AppointmentIn(_Payload):
    date: datetime
    clinic_id: uuid.UUID
    patient_id: uuid.UUID
    doctor_id: uuid.UUID


def _constraint_for(err: dict) -> str:
    kind = err.get("type", "")
    if kind == "missing" or ("input" in err and err["input"] is None):
        return "required"
    if kind == "enum":
        return "enum"
    if kind == "extra_forbidden":
        return "unknown_field"
    return "type"


def validate_payload(schema: type[_Payload], entity: str, data: dict) -> dict:
    """
    Valida un payload e ritorna i valori già convertiti (UUID, time, enum...).
    Il primo errore pydantic diventa una ConstraintViolation con campo e vincolo.
    """
    try:
        return schema.model_validate(data).model_dump()
    except ValidationError as e:
        err = e.errors()[0]
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else None
        raise ConstraintViolation(entity, field, _constraint_for(err), f"{entity}.{field}: {err.get('msg')}") from e
