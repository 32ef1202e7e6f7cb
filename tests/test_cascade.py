import pytest
from sqlalchemy import func, select

from clinic_backend import services as svc
from clinic_backend.db import db_session
from clinic_backend.errors import ConstraintViolation, NotFound
from clinic_backend.models import Appointment, Doctor, Patient, UserClinic


def _count(model):
    with db_session() as s:
        return s.scalar(select(func.count()).select_from(model))


def test_delete_clinic_removes_all_dependents(clinic, make_doctor, make_patient, make_appointment):
    c1 = clinic
    d1 = make_doctor(c1.id)
    p1 = make_patient(c1.id)
    a1 = make_appointment(c1.id, p1.id, d1.id)

    svc.delete_clinic(c1.id)

    for getter, obj in (
        (svc.get_clinic, c1),
        (svc.get_doctor, d1),
        (svc.get_patient, p1),
        (svc.get_appointment, a1),
    ):
        with pytest.raises(NotFound):
            getter(obj.id)


def test_delete_clinic_counts_and_spares_other_tenants(engine, make_doctor, make_patient, make_appointment):
    target = svc.create_clinic("Da cancellare")
    other = svc.create_clinic("Altra")
    user = svc.create_user()
    svc.link_user_to_clinic(user.id, target.id)
    svc.link_user_to_clinic(user.id, other.id)

    doctors = [make_doctor(target.id, name=f"Dr. {i}") for i in range(2)]
    patients = [make_patient(target.id, email=f"p{i}@example.com") for i in range(3)]
    for i in range(4):
        make_appointment(target.id, patients[i % 3].id, doctors[i % 2].id)

    od = make_doctor(other.id)
    op = make_patient(other.id)
    oa = make_appointment(other.id, op.id, od.id)

    result = svc.delete_clinic(target.id)
    assert result.cascaded == {"doctors": 2, "patients": 3, "appointments": 4, "users_to_clinics": 1}
    assert result.total == 1 + 2 + 3 + 4 + 1

    assert _count(Doctor) == 1
    assert _count(Patient) == 1
    assert _count(Appointment) == 1
    assert svc.get_appointment(oa.id).clinic_id == other.id
    assert [c.id for c in svc.list_user_clinics(user.id)] == [other.id]


def test_delete_doctor_removes_its_appointments(clinic, make_doctor, make_patient, make_appointment):
    d1 = make_doctor(clinic.id)
    d2 = make_doctor(clinic.id, name="Dr. Bianchi")
    p = make_patient(clinic.id)
    a1 = make_appointment(clinic.id, p.id, d1.id)
    a2 = make_appointment(clinic.id, p.id, d1.id)
    keep = make_appointment(clinic.id, p.id, d2.id)

    result = svc.delete_doctor(d1.id)
    assert result.cascaded == {"appointments": 2}

    for a in (a1, a2):
        with pytest.raises(NotFound):
            svc.get_appointment(a.id)
    assert svc.get_appointment(keep.id).doctor_id == d2.id
    assert svc.get_patient(p.id).id == p.id
    assert svc.get_clinic(clinic.id).id == clinic.id


def test_delete_patient_removes_its_appointments(clinic, make_doctor, make_patient, make_appointment):
    d = make_doctor(clinic.id)
    p1 = make_patient(clinic.id)
    p2 = make_patient(clinic.id, name="Luca Neri", email="luca@example.com")
    a1 = make_appointment(clinic.id, p1.id, d.id)
    keep = make_appointment(clinic.id, p2.id, d.id)

    svc.delete_patient(p1.id)

    with pytest.raises(NotFound):
        svc.get_appointment(a1.id)
    assert svc.get_appointment(keep.id).patient_id == p2.id
    assert svc.get_doctor(d.id).id == d.id


def test_delete_appointment_only_removes_itself(clinic, make_doctor, make_patient, make_appointment):
    d = make_doctor(clinic.id)
    p = make_patient(clinic.id)
    a = make_appointment(clinic.id, p.id, d.id)

    result = svc.delete_appointment(a.id)
    assert result.total == 1
    assert svc.get_doctor(d.id) is not None
    assert svc.get_patient(p.id) is not None

    with pytest.raises(NotFound):
        svc.delete_appointment(a.id)


def test_delete_user_keeps_clinic_and_other_links(engine):
    u1 = svc.create_user()
    u2 = svc.create_user()
    c1 = svc.create_clinic("C1")
    svc.link_user_to_clinic(u1.id, c1.id)
    svc.link_user_to_clinic(u2.id, c1.id)

    result = svc.delete_user(u1.id)
    assert result.cascaded == {"users_to_clinics": 1}

    assert svc.get_clinic(c1.id).name == "C1"
    assert [u.id for u in svc.list_clinic_users(c1.id)] == [u2.id]
    assert _count(UserClinic) == 1
    with pytest.raises(NotFound):
        svc.get_user(u1.id)


def test_link_requires_existing_rows(engine):
    u = svc.create_user()
    c = svc.create_clinic("C1")

    with pytest.raises(ConstraintViolation) as exc:
        svc.link_user_to_clinic(u.id, svc.create_user().id)
    assert exc.value.field == "clinic_id"
    assert exc.value.constraint == "foreign_key"

    with pytest.raises(ConstraintViolation) as exc:
        svc.link_user_to_clinic(c.id, c.id)
    assert exc.value.field == "user_id"

    assert _count(UserClinic) == 0


def test_link_is_unique_per_pair(engine):
    u = svc.create_user()
    c = svc.create_clinic("C1")
    link = svc.link_user_to_clinic(u.id, c.id)
    assert link.created_at is not None

    with pytest.raises(ConstraintViolation) as exc:
        svc.link_user_to_clinic(str(u.id), str(c.id))
    assert exc.value.constraint == "unique"
    assert _count(UserClinic) == 1


def test_unlink(engine):
    u = svc.create_user()
    c = svc.create_clinic("C1")
    svc.link_user_to_clinic(u.id, c.id)

    svc.unlink_user_from_clinic(u.id, c.id)
    assert svc.list_user_clinics(u.id) == []
    assert svc.get_clinic(c.id).id == c.id

    with pytest.raises(NotFound):
        svc.unlink_user_from_clinic(u.id, c.id)
