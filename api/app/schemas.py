"""Validation des corps et paramètres de requête de l'API."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

from compta_syscohada.models import LineRef

# --- Regex de validation ---
RE_COMPTE = re.compile(r"^[0-9A-Z]{1,15}$")
RE_CODE_LETTRAGE = re.compile(r"^[A-Z]{1,4}$")
RE_LIGNE_REF = re.compile(r"^(\d+)[/:-](\d+)$")


def check_compte(value: str) -> str:
    """Numéro de compte : chiffres (et lettres majuscules pour les comptes auxiliaires)."""
    if not RE_COMPTE.match(value):
        raise ValueError(f"Numéro de compte invalide : '{value}'")
    return value


def check_code_lettrage(value: str) -> str:
    if not RE_CODE_LETTRAGE.match(value):
        raise ValueError(f"Code de lettrage invalide : '{value}'")
    return value


def parse_line_ref(value: str) -> LineRef:
    """Référence de ligne au format ``<écriture>/<rang>`` (ex : ``12/0``)."""
    match = RE_LIGNE_REF.match(value)
    if not match:
        raise ValueError(f"Référence de ligne invalide : '{value}' (attendu <écriture>/<rang>)")
    return LineRef(int(match.group(1)), int(match.group(2)))


class LigneRefModel(BaseModel):
    """Ligne d'écriture désignée par son écriture et son rang."""

    ecriture_id: int = Field(ge=0)
    ligne: int = Field(ge=0)

    def to_ref(self) -> LineRef:
        return LineRef(self.ecriture_id, self.ligne)


class LettrageRequest(BaseModel):
    """Lettrage manuel : au moins deux lignes d'un même compte."""

    compte: str
    lignes: list[LigneRefModel] = Field(min_length=2)

    @field_validator("compte")
    @classmethod
    def validate_compte(cls, v: str) -> str:
        return check_compte(v)

    def refs(self) -> list[LineRef]:
        return [ligne.to_ref() for ligne in self.lignes]
