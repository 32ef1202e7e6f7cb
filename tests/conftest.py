from datetime import datetime, time

import pytest

from clinic_backend import db
from clinic_backend import services as svc
from clinic_backend.models import PatientSex


@pytest.fixture
def engine():
    # SQLite in memoria, FK attive: un DB pulito per ogni test
    previous = db.get_engine()
    eng = db.configure_engine("sqlite://", echo=False)
    db.Base.metadata.create_all(eng)
    yield eng
    db.Base.metadata.drop_all(eng)
    eng.dispose()
    db.engine = previous
    db.SessionLocal.configure(bind=previous)


@pytest.fixture
def clinic(engine):
    return svc.create_clinic("Clinica Centrale")


@pytest.fixture
def make_doctor(engine):
    return _make_doctor


@pytest.fixture
def make_patient(engine):
    return _make_patient


@pytest.fixture
def make_appointment(engine):
    return _make_appointment


def _make_doctor(clinic_id, **overrides):
    fields = dict(
        clinic_id=clinic_id,
        name="Dr. Rossi",
        available_from_week_day=1,
        available_to_week_day=5,
        available_from_time=time(8, 0),
        available_to_time=time(17, 0),
        specialty="Cardiologia",
        appointment_price_in_cents=12000,
    )
    fields.update(overrides)
    return svc.create_doctor(**fields)


def _make_patient(clinic_id, **overrides):
    fields = dict(
        clinic_id=clinic_id,
        name="Giulia Verdi",
        email="giulia@example.com",
        phone_number="+39 333 0000000",
        sex=PatientSex.FEMALE,
    )
    fields.update(overrides)
    return svc.create_patient(**fields)


def _make_appointment(clinic_id, patient_id, doctor_id, when=None):
    return svc.create_appointment(
        clinic_id=clinic_id,
        patient_id=patient_id,
        doctor_id=doctor_id,
        date=when or datetime(2026, 3, 2, 10, 30),
    )
