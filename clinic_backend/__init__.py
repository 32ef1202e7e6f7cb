"""
Backend dati per la gestione multi-clinica (cliniche, medici, pazienti, appuntamenti).

Struttura:
- config.py        : configurazione da variabili d'ambiente / .env
- logging_setup.py : log JSON per gli entry point
- db.py            : engine e sessioni SQLAlchemy
- errors.py        : errori di dominio (ConstraintViolation, NotFound)
- models.py        : modelli ORM, enum e vincoli di integrità
- schemas.py       : validazione dei payload (pydantic)
- services.py      : operazioni CRUD, associazioni utente/clinica, cancellazioni a cascata
- seed.py          : dati dimostrativi
- cli.py           : accesso da riga di comando
"""
