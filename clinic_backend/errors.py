from __future__ import annotations

from typing import Any


class ModelError(Exception):
    """Base per gli errori del modello dati."""


class ConstraintViolation(ModelError):
    """
    Scrittura rifiutata da un vincolo:
    - campo obbligatorio mancante ("required")
    - riferimento inesistente ("foreign_key")
    - valore fuori dall'enum ("enum")
    - modifica di un campo immutabile ("immutable")
    """

    def __init__(self, entity: str, field: str | None, constraint: str, message: str | None = None) -> None:
        self.entity = entity
        self.field = field
        self.constraint = constraint
        where = f"{entity}.{field}" if field else entity
        super().__init__(message or f"{where}: violato vincolo '{constraint}'")

    def as_dict(self) -> dict[str, Any]:
        return {"entity": self.entity, "field": self.field, "constraint": self.constraint, "message": str(self)}


class NotFound(ModelError):
    def __init__(self, entity: str, id: Any) -> None:
        self.entity = entity
        self.id = id
        super().__init__(f"{entity} {id} non trovato")

    def as_dict(self) -> dict[str, Any]:
        return {"entity": self.entity, "id": str(self.id), "message": str(self)}
