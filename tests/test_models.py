import uuid
from datetime import datetime

import pytest
from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError

from clinic_backend.db import db_session, get_engine
from clinic_backend.errors import ConstraintViolation
from clinic_backend.models import Appointment, Clinic, Doctor, Patient, PatientSex, UserClinic


def _fk(table, column):
    (fk,) = table.c[column].foreign_keys
    return fk


def test_tables_and_columns_match_storage_layout():
    assert Clinic.__table__.name == "clinics"
    assert UserClinic.__table__.name == "users_to_clinics"
    assert set(Doctor.__table__.c.keys()) == {
        "id", "clinic_id", "name", "avatar_image_url",
        "available_from_week_day", "available_to_week_day",
        "available_from_time", "available_to_time",
        "specialty", "appointment_price_in_cents", "created_at", "updated_at",
    }
    assert set(Appointment.__table__.c.keys()) == {
        "id", "date", "clinic_id", "patient_id", "doctor_id", "created_at", "updated_at",
    }
    assert Doctor.__table__.c.avatar_image_url.nullable
    assert not Clinic.__table__.c.created_at.nullable
    assert Clinic.__table__.c.updated_at.nullable


def test_patient_sex_enum_type():
    sex_type = Patient.__table__.c.sex.type
    assert sex_type.name == "patient_sex"
    assert list(sex_type.enums) == ["male", "female"]
    assert not Patient.__table__.c.sex.nullable


def test_foreign_keys_cascade_only_for_owned_rows():
    assert _fk(Doctor.__table__, "clinic_id").ondelete == "CASCADE"
    assert _fk(Patient.__table__, "clinic_id").ondelete == "CASCADE"
    for col in ("clinic_id", "patient_id", "doctor_id"):
        assert _fk(Appointment.__table__, col).ondelete == "CASCADE"
    # collegamenti utente/clinica: nessuna cascata lato DB
    assert _fk(UserClinic.__table__, "user_id").ondelete is None
    assert _fk(UserClinic.__table__, "clinic_id").ondelete is None


def test_orm_guard_rejects_created_at_change(clinic):
    with pytest.raises(ConstraintViolation) as exc:
        with db_session() as s:
            c = s.get(Clinic, clinic.id)
            c.created_at = datetime(2000, 1, 1)
    assert exc.value.field == "created_at"
    assert exc.value.constraint == "immutable"

    with db_session() as s:
        assert s.get(Clinic, clinic.id).created_at == clinic.created_at


def test_orm_guard_rejects_id_change(clinic):
    with pytest.raises(ConstraintViolation):
        with db_session() as s:
            c = s.get(Clinic, clinic.id)
            c.id = uuid.uuid4()

    with db_session() as s:
        assert s.get(Clinic, clinic.id) is not None


def test_database_cascade_without_orm(clinic, make_doctor, make_patient, make_appointment):
    d = make_doctor(clinic.id)
    p = make_patient(clinic.id)
    make_appointment(clinic.id, p.id, d.id)

    # DELETE diretto in SQL: è il DB (ON DELETE CASCADE) a rimuovere i dipendenti
    with db_session() as s:
        s.execute(delete(Clinic).where(Clinic.id == clinic.id))

    with db_session() as s:
        for model in (Doctor, Patient, Appointment):
            assert s.scalar(select(func.count()).select_from(model)) == 0


def test_storage_rejects_sex_outside_enum(clinic):
    # INSERT SQL diretto: il vincolo CHECK del DB deve bloccarlo
    insert = text(
        "INSERT INTO patients (id, clinic_id, name, email, phone_number, sex, created_at) "
        "VALUES (:id, :clinic_id, 'X', 'x@example.com', '000', 'other', '2026-01-01 00:00:00')"
    )
    with pytest.raises(IntegrityError):
        with get_engine().begin() as conn:
            conn.execute(insert, {"id": uuid.uuid4().hex, "clinic_id": clinic.id.hex})

    with get_engine().connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM patients")).scalar() == 0


def test_orm_write_with_invalid_sex_is_constraint_violation(clinic):
    with pytest.raises(ConstraintViolation) as exc:
        with db_session() as s:
            s.add(
                Patient(
                    clinic_id=clinic.id,
                    name="X",
                    email="x@example.com",
                    phone_number="000",
                    sex="other",
                )
            )
    assert exc.value.field == "sex"
    assert exc.value.constraint == "enum"

    with db_session() as s:
        assert s.scalar(select(func.count()).select_from(Patient)) == 0
        p = Patient(clinic_id=clinic.id, name="Y", email="y@example.com", phone_number="1", sex="female")
        assert p.sex is PatientSex.FEMALE
        s.add(p)
