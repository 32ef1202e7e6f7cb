from __future__ import annotations

import enum
import uuid
from datetime import datetime, time, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Text, Time, Uuid, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .db import Base
from .errors import ConstraintViolation


def utcnow() -> datetime:
    # colonne "timestamp" senza fuso: si salva l'ora UTC naive
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PatientSex(enum.Enum):
    MALE = "male"
    FEMALE = "female"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=True)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # cancellare un utente elimina solo i suoi collegamenti, mai le cliniche
    clinic_links: Mapped[list["UserClinic"]] = relationship(back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"User({self.id})"


class Clinic(TimestampMixin, Base):
    __tablename__ = "clinics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    user_links: Mapped[list["UserClinic"]] = relationship(back_populates="clinic", cascade="all, delete-orphan")
    doctors: Mapped[list["Doctor"]] = relationship(back_populates="clinic", cascade="all, delete-orphan")
    patients: Mapped[list["Patient"]] = relationship(back_populates="clinic", cascade="all, delete-orphan")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="clinic", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Clinic({self.name})"


class UserClinic(TimestampMixin, Base):
    """
    Tabella di associazione users <-> clinics (molti-a-molti).
    La coppia (user_id, clinic_id) è chiave primaria: niente collegamenti duplicati.
    """
    __tablename__ = "users_to_clinics"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), primary_key=True, nullable=False)
    clinic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clinics.id"), primary_key=True, nullable=False)

    user: Mapped["User"] = relationship(back_populates="clinic_links")
    clinic: Mapped["Clinic"] = relationship(back_populates="user_links")


class Doctor(TimestampMixin, Base):
    __tablename__ = "doctors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    clinic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    avatar_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # giorni come interi (nessun range imposto), orari come "time"
    available_from_week_day: Mapped[int] = mapped_column(Integer, nullable=False)
    available_to_week_day: Mapped[int] = mapped_column(Integer, nullable=False)
    available_from_time: Mapped[time] = mapped_column(Time, nullable=False)
    available_to_time: Mapped[time] = mapped_column(Time, nullable=False)

    specialty: Mapped[str] = mapped_column(Text, nullable=False)
    appointment_price_in_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    clinic: Mapped["Clinic"] = relationship(back_populates="doctors")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="doctor", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Doctor({self.name}, {self.specialty})"


class Patient(TimestampMixin, Base):
    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    clinic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)
    sex: Mapped[PatientSex] = mapped_column(
        Enum(
            PatientSex,
            name="patient_sex",
            values_callable=lambda e: [m.value for m in e],
            validate_strings=True,
            create_constraint=True,
        ),
        nullable=False,
    )

    clinic: Mapped["Clinic"] = relationship(back_populates="patients")
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="patient", cascade="all, delete-orphan")

    @validates("sex")
    def _validate_sex(self, key: str, value: PatientSex | str) -> PatientSex:
        # anche le scritture ORM dirette restano nel dominio male/female
        if isinstance(value, PatientSex):
            return value
        try:
            return PatientSex(value)
        except ValueError:
            raise ConstraintViolation("Patient", key, "enum", f"Patient.sex: valore {value!r} non ammesso") from None

    def __repr__(self) -> str:
        return f"Patient({self.name})"


class Appointment(TimestampMixin, Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # paziente e medico dovrebbero stare nella stessa clinica: non è un vincolo del DB
    clinic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)

    clinic: Mapped["Clinic"] = relationship(back_populates="appointments")
    patient: Mapped["Patient"] = relationship(back_populates="appointments")
    doctor: Mapped["Doctor"] = relationship(back_populates="appointments")

    def __repr__(self) -> str:
        return f"Appointment({self.date.isoformat()})"


IMMUTABLE_FIELDS = ("id", "created_at")


@event.listens_for(Base, "before_update", propagate=True)
def _guard_immutable(mapper, connection, target) -> None:
    """Identificativo e created_at non cambiano mai dopo l'inserimento."""
    state = inspect(target)
    for key in IMMUTABLE_FIELDS:
        if key in mapper.attrs and state.attrs[key].history.has_changes():
            raise ConstraintViolation(mapper.class_.__name__, key, "immutable")
