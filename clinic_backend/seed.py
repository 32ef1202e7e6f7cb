from __future__ import annotations

from datetime import time

from sqlalchemy import select

from .db import db_session
from .models import Clinic, Doctor, Patient, PatientSex, User, UserClinic

DEMO_CLINIC = "Clinica Demo"


def seed_base() -> Clinic:
    """
    Popola dati minimi (idempotente):
    - una clinica demo con un utente amministratore
    - medici
    - pazienti
    """
    with db_session() as s:
        clinic = s.execute(select(Clinic).where(Clinic.name == DEMO_CLINIC)).scalar_one_or_none()
        if clinic is None:
            clinic = Clinic(name=DEMO_CLINIC)
            s.add(clinic)
            s.flush()

        if not clinic.user_links:
            admin = User()
            s.add(admin)
            s.flush()
            s.add(UserClinic(user_id=admin.id, clinic_id=clinic.id))

        # Medici: (nome, specialità, giorni da-a, orario, prezzo in centesimi)
        medici = [
            ("Mario Rossi", "Medicina Generale", 1, 5, time(8, 0), time(17, 0), 8000),
            ("Laura Bianchi", "Cardiologia", 1, 3, time(9, 0), time(13, 0), 15000),
        ]
        for name, spec, from_day, to_day, from_time, to_time, price in medici:
            exists = s.execute(
                select(Doctor).where(Doctor.clinic_id == clinic.id, Doctor.name == name)
            ).scalar_one_or_none()
            if exists is None:
                s.add(
                    Doctor(
                        clinic_id=clinic.id,
                        name=name,
                        specialty=spec,
                        available_from_week_day=from_day,
                        available_to_week_day=to_day,
                        available_from_time=from_time,
                        available_to_time=to_time,
                        appointment_price_in_cents=price,
                    )
                )

        pazienti = [
            ("Giulia Verdi", "g.verdi@example.com", "+39 333 1234567", PatientSex.FEMALE),
            ("Luca Neri", "l.neri@example.com", "+39 347 7654321", PatientSex.MALE),
        ]
        for name, email, phone, sex in pazienti:
            exists = s.execute(
                select(Patient).where(Patient.clinic_id == clinic.id, Patient.email == email)
            ).scalar_one_or_none()
            if exists is None:
                s.add(Patient(clinic_id=clinic.id, name=name, email=email, phone_number=phone, sex=sex))

        return clinic
