from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Iterator

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import Base, db_session, get_engine
from .errors import ConstraintViolation, ModelError, NotFound
from .models import (
    Appointment,
    Clinic,
    Doctor,
    Patient,
    PatientSex,
    User,
    UserClinic,
    utcnow,
)
from .schemas import AppointmentIn, ClinicIn, DoctorIn, PatientIn, UserClinicIn, validate_payload

logger = logging.getLogger(__name__)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Crea le tabelle se non esistono."""
    Base.metadata.create_all(bind=get_engine())


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class DeleteResult:
    entity: str
    id: str
    # righe dipendenti rimosse a cascata, per tabella
    cascaded: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return 1 + sum(self.cascaded.values())


# campi che il chiamante non può mai scrivere
_SYSTEM_FIELDS = ("id", "created_at", "updated_at")


@contextmanager
def _unit_of_work(entity: str) -> Iterator[Session]:
    """
    db_session() + traduzione degli errori:
    - IntegrityError del DB -> ConstraintViolation
    - errori di dominio loggati e rilanciati così come sono
    """
    try:
        with db_session() as s:
            yield s
    except IntegrityError as e:
        logger.warning("integrity error on %s: %s", entity, e.orig)
        raise ConstraintViolation(entity, None, "integrity", f"{entity}: {e.orig}") from e
    except ModelError as e:
        logger.warning("%s rejected: %s", entity, e)
        raise


def _as_uuid(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_or_404(s: Session, model: type[Base], obj_id: Any) -> Any:
    key = _as_uuid(obj_id)
    obj = s.get(model, key) if key is not None else None
    if obj is None:
        raise NotFound(model.__name__, obj_id)
    return obj


def _require_ref(s: Session, entity: str, field_name: str, model: type[Base], ref_id: uuid.UUID) -> Any:
    """Il riferimento deve esistere, altrimenti violazione di foreign key."""
    ref = s.get(model, ref_id)
    if ref is None:
        raise ConstraintViolation(entity, field_name, "foreign_key", f"{entity}.{field_name}: {model.__name__} {ref_id} inesistente")
    return ref


def _check_changes(entity: str, changes: dict[str, Any], mutable: tuple[str, ...]) -> None:
    for key in changes:
        if key in _SYSTEM_FIELDS:
            raise ConstraintViolation(entity, key, "immutable")
        if key not in mutable:
            raise ConstraintViolation(entity, key, "unknown_field")


def _apply_update(
    s: Session,
    obj: Any,
    schema: type,
    changes: dict[str, Any],
    refs: dict[str, type[Base]] | None = None,
) -> Any:
    """
    Aggiornamento comune a tutte le entità:
    - valida lo stato risultante (valori attuali + modifiche) con lo schema di creazione
    - verifica i riferimenti modificati
    - aggiorna updated_at anche se i valori non cambiano
    """
    entity = type(obj).__name__
    _check_changes(entity, changes, tuple(schema.model_fields))

    current = {name: getattr(obj, name) for name in schema.model_fields}
    data = validate_payload(schema, entity, {**current, **changes})

    for name, model in (refs or {}).items():
        if name in changes:
            _require_ref(s, entity, name, model, data[name])

    for name in changes:
        setattr(obj, name, data[name])
    obj.updated_at = utcnow()
    s.flush()

    logger.debug("%s %s updated: %s", entity, getattr(obj, "id", None), sorted(changes))
    return obj


# =========================
# Utenti
# =========================
def create_user() -> User:
    with _unit_of_work("User") as s:
        u = User()
        s.add(u)
        s.flush()
        logger.info("User %s created", u.id)
        return u


def get_user(user_id: uuid.UUID | str) -> User:
    with _unit_of_work("User") as s:
        return _get_or_404(s, User, user_id)


def list_users() -> list[User]:
    with db_session() as s:
        return list(s.scalars(select(User)))


def delete_user(user_id: uuid.UUID | str) -> DeleteResult:
    """Rimuove l'utente e i suoi collegamenti alle cliniche (le cliniche restano)."""
    with _unit_of_work("User") as s:
        u = _get_or_404(s, User, user_id)
        cascaded = {"users_to_clinics": len(u.clinic_links)}
        s.delete(u)
        s.flush()
        logger.info("User %s deleted (cascade: %s)", u.id, cascaded)
        return DeleteResult("User", str(u.id), cascaded)


# =========================
# Cliniche
# =========================
def create_clinic(name: str) -> Clinic:
    with _unit_of_work("Clinic") as s:
        data = validate_payload(ClinicIn, "Clinic", {"name": name})
        c = Clinic(**data)
        s.add(c)
        s.flush()
        logger.info("Clinic %s created", c.id)
        return c


def get_clinic(clinic_id: uuid.UUID | str) -> Clinic:
    with _unit_of_work("Clinic") as s:
        return _get_or_404(s, Clinic, clinic_id)


def list_clinics() -> list[Clinic]:
    with db_session() as s:
        return list(s.scalars(select(Clinic).order_by(Clinic.name)))


def update_clinic(clinic_id: uuid.UUID | str, **changes: Any) -> Clinic:
    with _unit_of_work("Clinic") as s:
        c = _get_or_404(s, Clinic, clinic_id)
        return _apply_update(s, c, ClinicIn, changes)


def delete_clinic(clinic_id: uuid.UUID | str) -> DeleteResult:
    """
    Cancella la clinica e tutto ciò che le appartiene, in un'unica transazione:
    medici, pazienti, appuntamenti e collegamenti con gli utenti.
    """
    with _unit_of_work("Clinic") as s:
        c = _get_or_404(s, Clinic, clinic_id)

        # appuntamenti raggiungibili anche via medico/paziente di questa clinica
        appointment_ids = {a.id for a in c.appointments}
        for d in c.doctors:
            appointment_ids.update(a.id for a in d.appointments)
        for p in c.patients:
            appointment_ids.update(a.id for a in p.appointments)

        cascaded = {
            "doctors": len(c.doctors),
            "patients": len(c.patients),
            "appointments": len(appointment_ids),
            "users_to_clinics": len(c.user_links),
        }
        s.delete(c)
        s.flush()
        logger.info("Clinic %s deleted (cascade: %s)", c.id, cascaded)
        return DeleteResult("Clinic", str(c.id), cascaded)


# =========================
# Associazione utenti <-> cliniche
# =========================
def link_user_to_clinic(user_id: uuid.UUID | str, clinic_id: uuid.UUID | str) -> UserClinic:
    with _unit_of_work("UserClinic") as s:
        data = validate_payload(UserClinicIn, "UserClinic", {"user_id": user_id, "clinic_id": clinic_id})
        _require_ref(s, "UserClinic", "user_id", User, data["user_id"])
        _require_ref(s, "UserClinic", "clinic_id", Clinic, data["clinic_id"])

        if s.get(UserClinic, (data["user_id"], data["clinic_id"])) is not None:
            raise ConstraintViolation("UserClinic", "clinic_id", "unique", "utente già collegato alla clinica")

        link = UserClinic(**data)
        s.add(link)
        s.flush()
        logger.info("User %s linked to clinic %s", link.user_id, link.clinic_id)
        return link


def unlink_user_from_clinic(user_id: uuid.UUID | str, clinic_id: uuid.UUID | str) -> None:
    with _unit_of_work("UserClinic") as s:
        key = (_as_uuid(user_id), _as_uuid(clinic_id))
        link = s.get(UserClinic, key) if None not in key else None
        if link is None:
            raise NotFound("UserClinic", f"{user_id}/{clinic_id}")
        s.delete(link)
        logger.info("User %s unlinked from clinic %s", user_id, clinic_id)


def list_user_clinics(user_id: uuid.UUID | str) -> list[Clinic]:
    with _unit_of_work("User") as s:
        u = _get_or_404(s, User, user_id)
        q = (
            select(Clinic)
            .join(UserClinic, UserClinic.clinic_id == Clinic.id)
            .where(UserClinic.user_id == u.id)
            .order_by(Clinic.name)
        )
        return list(s.scalars(q))


def list_clinic_users(clinic_id: uuid.UUID | str) -> list[User]:
    with _unit_of_work("Clinic") as s:
        c = _get_or_404(s, Clinic, clinic_id)
        q = select(User).join(UserClinic, UserClinic.user_id == User.id).where(UserClinic.clinic_id == c.id)
        return list(s.scalars(q))


# =========================
# Medici
# =========================
def create_doctor(
    clinic_id: uuid.UUID | str,
    name: str,
    available_from_week_day: int,
    available_to_week_day: int,
    available_from_time: time | str,
    available_to_time: time | str,
    specialty: str,
    appointment_price_in_cents: int,
    avatar_image_url: str | None = None,
) -> Doctor:
    with _unit_of_work("Doctor") as s:
        data = validate_payload(
            DoctorIn,
            "Doctor",
            {
                "clinic_id": clinic_id,
                "name": name,
                "avatar_image_url": avatar_image_url,
                "available_from_week_day": available_from_week_day,
                "available_to_week_day": available_to_week_day,
                "available_from_time": available_from_time,
                "available_to_time": available_to_time,
                "specialty": specialty,
                "appointment_price_in_cents": appointment_price_in_cents,
            },
        )
        clinic = _require_ref(s, "Doctor", "clinic_id", Clinic, data.pop("clinic_id"))
        d = Doctor(clinic=clinic, **data)
        s.add(d)
        s.flush()
        logger.info("Doctor %s created in clinic %s", d.id, clinic.id)
        return d


def get_doctor(doctor_id: uuid.UUID | str) -> Doctor:
    with _unit_of_work("Doctor") as s:
        return _get_or_404(s, Doctor, doctor_id)


def list_doctors(clinic_id: uuid.UUID | str) -> list[Doctor]:
    with _unit_of_work("Clinic") as s:
        c = _get_or_404(s, Clinic, clinic_id)
        return list(s.scalars(select(Doctor).where(Doctor.clinic_id == c.id).order_by(Doctor.name)))


def update_doctor(doctor_id: uuid.UUID | str, **changes: Any) -> Doctor:
    with _unit_of_work("Doctor") as s:
        d = _get_or_404(s, Doctor, doctor_id)
        return _apply_update(s, d, DoctorIn, changes, refs={"clinic_id": Clinic})


def delete_doctor(doctor_id: uuid.UUID | str) -> DeleteResult:
    """Cancella il medico e tutti i suoi appuntamenti."""
    with _unit_of_work("Doctor") as s:
        d = _get_or_404(s, Doctor, doctor_id)
        cascaded = {"appointments": len(d.appointments)}
        s.delete(d)
        s.flush()
        logger.info("Doctor %s deleted (cascade: %s)", d.id, cascaded)
        return DeleteResult("Doctor", str(d.id), cascaded)


# =========================
# Pazienti
# =========================
def create_patient(
    clinic_id: uuid.UUID | str,
    name: str,
    email: str,
    phone_number: str,
    sex: PatientSex | str,
) -> Patient:
    with _unit_of_work("Patient") as s:
        data = validate_payload(
            PatientIn,
            "Patient",
            {"clinic_id": clinic_id, "name": name, "email": email, "phone_number": phone_number, "sex": sex},
        )
        clinic = _require_ref(s, "Patient", "clinic_id", Clinic, data.pop("clinic_id"))
        p = Patient(clinic=clinic, **data)
        s.add(p)
        s.flush()
        logger.info("Patient %s created in clinic %s", p.id, clinic.id)
        return p


def get_patient(patient_id: uuid.UUID | str) -> Patient:
    with _unit_of_work("Patient") as s:
        return _get_or_404(s, Patient, patient_id)


def list_patients(clinic_id: uuid.UUID | str) -> list[Patient]:
    with _unit_of_work("Clinic") as s:
        c = _get_or_404(s, Clinic, clinic_id)
        return list(s.scalars(select(Patient).where(Patient.clinic_id == c.id).order_by(Patient.name)))


def update_patient(patient_id: uuid.UUID | str, **changes: Any) -> Patient:
    with _unit_of_work("Patient") as s:
        p = _get_or_404(s, Patient, patient_id)
        return _apply_update(s, p, PatientIn, changes, refs={"clinic_id": Clinic})


def delete_patient(patient_id: uuid.UUID | str) -> DeleteResult:
    """Cancella il paziente e tutti i suoi appuntamenti."""
    with _unit_of_work("Patient") as s:
        p = _get_or_404(s, Patient, patient_id)
        cascaded = {"appointments": len(p.appointments)}
        s.delete(p)
        s.flush()
        logger.info("Patient %s deleted (cascade: %s)", p.id, cascaded)
        return DeleteResult("Patient", str(p.id), cascaded)


# =========================
# Appuntamenti
# =========================
def create_appointment(
    clinic_id: uuid.UUID | str,
    patient_id: uuid.UUID | str,
    doctor_id: uuid.UUID | str,
    date: datetime | str,
) -> Appointment:
    """
    Registra un appuntamento. Verifica solo che clinica, paziente e medico esistano:
    appartenenza alla stessa clinica e sovrapposizioni sono a carico del chiamante.
    """
    with _unit_of_work("Appointment") as s:
        data = validate_payload(
            AppointmentIn,
            "Appointment",
            {"date": date, "clinic_id": clinic_id, "patient_id": patient_id, "doctor_id": doctor_id},
        )
        clinic = _require_ref(s, "Appointment", "clinic_id", Clinic, data["clinic_id"])
        patient = _require_ref(s, "Appointment", "patient_id", Patient, data["patient_id"])
        doctor = _require_ref(s, "Appointment", "doctor_id", Doctor, data["doctor_id"])

        a = Appointment(date=data["date"], clinic=clinic, patient=patient, doctor=doctor)
        s.add(a)
        s.flush()
        logger.info("Appointment %s created for %s", a.id, a.date.isoformat())
        return a


def get_appointment(appointment_id: uuid.UUID | str) -> Appointment:
    with _unit_of_work("Appointment") as s:
        return _get_or_404(s, Appointment, appointment_id)


def _appointment_filters(
    clinic_id: uuid.UUID,
    doctor_id: uuid.UUID | str | None,
    patient_id: uuid.UUID | str | None,
    day: date | None,
) -> list:
    conds = [Appointment.clinic_id == clinic_id]
    if doctor_id is not None:
        conds.append(Appointment.doctor_id == _as_uuid(doctor_id))
    if patient_id is not None:
        conds.append(Appointment.patient_id == _as_uuid(patient_id))
    if day is not None:
        start_day = datetime.combine(day, datetime.min.time())
        conds.append(Appointment.date >= start_day)
        conds.append(Appointment.date < start_day + timedelta(days=1))
    return conds


def list_appointments(
    clinic_id: uuid.UUID | str,
    doctor_id: uuid.UUID | str | None = None,
    patient_id: uuid.UUID | str | None = None,
    day: date | None = None,
) -> list[Appointment]:
    with _unit_of_work("Clinic") as s:
        c = _get_or_404(s, Clinic, clinic_id)
        q = (
            select(Appointment)
            .where(and_(*_appointment_filters(c.id, doctor_id, patient_id, day)))
            .order_by(Appointment.date.asc())
        )
        return list(s.scalars(q))


def update_appointment(appointment_id: uuid.UUID | str, **changes: Any) -> Appointment:
    with _unit_of_work("Appointment") as s:
        a = _get_or_404(s, Appointment, appointment_id)
        return _apply_update(
            s, a, AppointmentIn, changes,
            refs={"clinic_id": Clinic, "patient_id": Patient, "doctor_id": Doctor},
        )


def delete_appointment(appointment_id: uuid.UUID | str) -> DeleteResult:
    with _unit_of_work("Appointment") as s:
        a = _get_or_404(s, Appointment, appointment_id)
        s.delete(a)
        logger.info("Appointment %s deleted", a.id)
        return DeleteResult("Appointment", str(a.id))


# =========================
# Viste "flat" (dict serializzabili, niente lazy-load fuori sessione)
# =========================
def list_clinics_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(select(Clinic.id, Clinic.name, Clinic.created_at).order_by(Clinic.name)).all()
        return [{"id": str(r.id), "name": r.name, "created_at": r.created_at.isoformat()} for r in rows]


def list_doctors_flat(clinic_id: uuid.UUID | str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(
                Doctor.id,
                Doctor.name,
                Doctor.specialty,
                Doctor.available_from_week_day,
                Doctor.available_to_week_day,
                Doctor.available_from_time,
                Doctor.available_to_time,
                Doctor.appointment_price_in_cents,
            )
            .where(Doctor.clinic_id == _as_uuid(clinic_id))
            .order_by(Doctor.name)
        ).all()
        return [
            {
                "id": str(r.id),
                "name": r.name,
                "specialty": r.specialty,
                "available_week_days": [r.available_from_week_day, r.available_to_week_day],
                "available_hours": [r.available_from_time.strftime("%H:%M"), r.available_to_time.strftime("%H:%M")],
                "appointment_price_in_cents": r.appointment_price_in_cents,
            }
            for r in rows
        ]


def list_patients_flat(clinic_id: uuid.UUID | str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Patient.id, Patient.name, Patient.email, Patient.phone_number, Patient.sex)
            .where(Patient.clinic_id == _as_uuid(clinic_id))
            .order_by(Patient.name)
        ).all()
        return [
            {"id": str(r.id), "name": r.name, "email": r.email, "phone_number": r.phone_number, "sex": r.sex.value}
            for r in rows
        ]


def list_appointments_flat(
    clinic_id: uuid.UUID | str,
    doctor_id: uuid.UUID | str | None = None,
    day: date | None = None,
) -> list[dict]:
    """Agenda della clinica con nomi di medico e paziente."""
    key = _as_uuid(clinic_id)
    if key is None:
        return []

    with db_session() as s:
        q = (
            select(
                Appointment.id,
                Appointment.date,
                Doctor.name.label("doctor_name"),
                Patient.name.label("patient_name"),
                Doctor.appointment_price_in_cents,
            )
            .join(Doctor, Doctor.id == Appointment.doctor_id)
            .join(Patient, Patient.id == Appointment.patient_id)
            .where(and_(*_appointment_filters(key, doctor_id, None, day)))
            .order_by(Appointment.date.asc())
        )
        return [
            {
                "id": str(r.id),
                "date": r.date.isoformat(timespec="minutes"),
                "doctor": r.doctor_name,
                "patient": r.patient_name,
                "price_in_cents": r.appointment_price_in_cents,
            }
            for r in s.execute(q).all()
        ]
