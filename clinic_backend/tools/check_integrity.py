from __future__ import annotations

from sqlalchemy import text

from clinic_backend.db import get_engine

# righe che puntano a record inesistenti (possibili solo con FK disattivate)
ORPHAN_CHECKS = {
    "doctors senza clinica": (
        "SELECT COUNT(*) FROM doctors d LEFT JOIN clinics c ON c.id = d.clinic_id WHERE c.id IS NULL"
    ),
    "patients senza clinica": (
        "SELECT COUNT(*) FROM patients p LEFT JOIN clinics c ON c.id = p.clinic_id WHERE c.id IS NULL"
    ),
    "appointments senza clinica/paziente/medico": (
        "SELECT COUNT(*) FROM appointments a "
        "LEFT JOIN clinics c ON c.id = a.clinic_id "
        "LEFT JOIN patients p ON p.id = a.patient_id "
        "LEFT JOIN doctors d ON d.id = a.doctor_id "
        "WHERE c.id IS NULL OR p.id IS NULL OR d.id IS NULL"
    ),
    "users_to_clinics senza utente/clinica": (
        "SELECT COUNT(*) FROM users_to_clinics l "
        "LEFT JOIN users u ON u.id = l.user_id "
        "LEFT JOIN clinics c ON c.id = l.clinic_id "
        "WHERE u.id IS NULL OR c.id IS NULL"
    ),
}

# appuntamenti con paziente o medico di un'altra clinica: il DB non lo impedisce
CROSS_CLINIC_CHECK = (
    "SELECT COUNT(*) FROM appointments a "
    "JOIN patients p ON p.id = a.patient_id "
    "JOIN doctors d ON d.id = a.doctor_id "
    "WHERE p.clinic_id != a.clinic_id OR d.clinic_id != a.clinic_id"
)


def collect() -> dict[str, int]:
    with get_engine().connect() as c:
        report = {name: c.execute(text(sql)).scalar() or 0 for name, sql in ORPHAN_CHECKS.items()}
        report["appointments fuori clinica"] = c.execute(text(CROSS_CLINIC_CHECK)).scalar() or 0
    return report


def main() -> None:
    report = collect()
    for name, n in report.items():
        print(f"{name:45s}: {n}")

    if any(report.values()):
        raise SystemExit(1)
    print("OK: nessuna incoerenza.")


if __name__ == "__main__":
    main()
