from __future__ import annotations

import argparse
from datetime import date

from .errors import ModelError
from .logging_setup import setup_logger
from .seed import seed_base
from .services import (
    create_appointment,
    create_clinic,
    create_doctor,
    create_patient,
    create_user,
    delete_appointment,
    delete_clinic,
    delete_doctor,
    delete_patient,
    delete_user,
    init_db,
    link_user_to_clinic,
    list_appointments_flat,
    list_clinic_users,
    list_clinics_flat,
    list_doctors_flat,
    list_patients_flat,
    list_users,
    unlink_user_from_clinic,
)


def _cents(value: int) -> str:
    return f"{value // 100},{value % 100:02d}"


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    clinic = seed_base()
    print(f"DB inizializzato e seed completato (clinica demo: {clinic.id}).")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "users":
        for u in list_users():
            print(u.id)
    elif args.entity == "clinics":
        for c in list_clinics_flat():
            print(f"{c['id']} | {c['name']} | creata {c['created_at']}")
    elif args.entity == "clinic-users":
        for u in list_clinic_users(_required_clinic(args)):
            print(u.id)
    elif args.entity == "doctors":
        for d in list_doctors_flat(_required_clinic(args)):
            days = "-".join(str(x) for x in d["available_week_days"])
            hours = "-".join(d["available_hours"])
            print(f"{d['id']} | {d['name']} | {d['specialty']} | giorni {days} {hours} | € {_cents(d['appointment_price_in_cents'])}")
    elif args.entity == "patients":
        for p in list_patients_flat(_required_clinic(args)):
            print(f"{p['id']} | {p['name']} | {p['email']} | {p['phone_number']} | {p['sex']}")
    elif args.entity == "appointments":
        for a in list_appointments_flat(_required_clinic(args), day=args.day):
            print(f"{a['id']} | {a['date']} | {a['doctor']} -> {a['patient']}")


def _required_clinic(args: argparse.Namespace) -> str:
    if not args.clinic_id:
        raise SystemExit("--clinic-id obbligatorio per questa lista")
    return args.clinic_id


def cmd_add_user(args: argparse.Namespace) -> None:
    u = create_user()
    print(f"Utente creato: {u.id}")


def cmd_add_clinic(args: argparse.Namespace) -> None:
    c = create_clinic(args.name)
    print(f"Clinica creata: {c.id}")
    if args.user_id:
        link_user_to_clinic(args.user_id, c.id)
        print(f"Utente {args.user_id} collegato.")


def cmd_link(args: argparse.Namespace) -> None:
    link_user_to_clinic(args.user_id, args.clinic_id)
    print("Collegato.")


def cmd_unlink(args: argparse.Namespace) -> None:
    unlink_user_from_clinic(args.user_id, args.clinic_id)
    print("Scollegato.")


def cmd_add_doctor(args: argparse.Namespace) -> None:
    d = create_doctor(
        clinic_id=args.clinic_id,
        name=args.name,
        specialty=args.specialty,
        available_from_week_day=args.from_day,
        available_to_week_day=args.to_day,
        available_from_time=args.from_time,
        available_to_time=args.to_time,
        appointment_price_in_cents=args.price_cents,
        avatar_image_url=args.avatar_url,
    )
    print(f"Medico creato: {d.id}")


def cmd_add_patient(args: argparse.Namespace) -> None:
    p = create_patient(args.clinic_id, args.name, args.email, args.phone, args.sex)
    print(f"Paziente creato: {p.id}")


def cmd_book(args: argparse.Namespace) -> None:
    # formato: 2026-01-14T10:30, validato dal servizio
    a = create_appointment(
        clinic_id=args.clinic_id,
        patient_id=args.patient_id,
        doctor_id=args.doctor_id,
        date=args.date,
    )
    print(f"Appuntamento ID: {a.id}")


_DELETE = {
    "user": delete_user,
    "clinic": delete_clinic,
    "doctor": delete_doctor,
    "patient": delete_patient,
    "appointment": delete_appointment,
}


def cmd_delete(args: argparse.Namespace) -> None:
    esito = _DELETE[args.entity](args.id)
    print(f"Cancellato {esito.entity} {esito.id}.")
    for table, n in esito.cascaded.items():
        if n:
            print(f"  + {n} {table}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="clinic_cli", description="CLI gestione cliniche")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["users", "clinics", "clinic-users", "doctors", "patients", "appointments"])
    p_list.add_argument("--clinic-id", default=None)
    p_list.add_argument("--day", type=date.fromisoformat, default=None, help="solo appuntamenti: giorno ISO es: 2026-01-14")
    p_list.set_defaults(func=cmd_list)

    p_addu = sub.add_parser("add-user", help="Crea utente")
    p_addu.set_defaults(func=cmd_add_user)

    p_addc = sub.add_parser("add-clinic", help="Crea clinica")
    p_addc.add_argument("--name", required=True)
    p_addc.add_argument("--user-id", default=None, help="collega subito un utente esistente")
    p_addc.set_defaults(func=cmd_add_clinic)

    p_link = sub.add_parser("link", help="Collega utente e clinica")
    p_link.add_argument("--user-id", required=True)
    p_link.add_argument("--clinic-id", required=True)
    p_link.set_defaults(func=cmd_link)

    p_unlink = sub.add_parser("unlink", help="Scollega utente e clinica")
    p_unlink.add_argument("--user-id", required=True)
    p_unlink.add_argument("--clinic-id", required=True)
    p_unlink.set_defaults(func=cmd_unlink)

    p_addd = sub.add_parser("add-doctor", help="Crea medico")
    p_addd.add_argument("--clinic-id", required=True)
    p_addd.add_argument("--name", required=True)
    p_addd.add_argument("--specialty", required=True)
    p_addd.add_argument("--from-day", type=int, required=True, help="giorno della settimana (intero)")
    p_addd.add_argument("--to-day", type=int, required=True)
    p_addd.add_argument("--from-time", required=True, help="es: 08:00")
    p_addd.add_argument("--to-time", required=True, help="es: 17:30")
    p_addd.add_argument("--price-cents", type=int, required=True)
    p_addd.add_argument("--avatar-url", default=None)
    p_addd.set_defaults(func=cmd_add_doctor)

    p_addp = sub.add_parser("add-patient", help="Crea paziente")
    p_addp.add_argument("--clinic-id", required=True)
    p_addp.add_argument("--name", required=True)
    p_addp.add_argument("--email", required=True)
    p_addp.add_argument("--phone", required=True)
    p_addp.add_argument("--sex", required=True, choices=["male", "female"])
    p_addp.set_defaults(func=cmd_add_patient)

    p_book = sub.add_parser("book", help="Registra appuntamento")
    p_book.add_argument("--clinic-id", required=True)
    p_book.add_argument("--patient-id", required=True)
    p_book.add_argument("--doctor-id", required=True)
    p_book.add_argument("--date", required=True, help="ISO datetime es: 2026-01-14T10:30")
    p_book.set_defaults(func=cmd_book)

    p_del = sub.add_parser("delete", help="Cancella (con dipendenti a cascata)")
    p_del.add_argument("entity", choices=sorted(_DELETE))
    p_del.add_argument("id")
    p_del.set_defaults(func=cmd_delete)

    return p


def main(argv: list[str] | None = None) -> int:
    setup_logger()
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except ModelError as e:
        print(f"Errore: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
