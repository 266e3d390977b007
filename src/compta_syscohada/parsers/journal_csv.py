"""Lecture d'un export de journal : une ligne CSV par ligne d'écriture."""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path

import pandas as pd

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.models import EntryLine, JournalEntry, ParseError, ValidationError
from compta_syscohada.parsers.base import BaseParser

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["ecriture_id", "date", "journal", "piece", "compte", "debit", "credit"]

COLUMN_ALIASES: dict[str, list[str]] = {
    "ecriture_id": ["N° écriture", "Numéro écriture", "EcritureNum", "entry_id"],
    "date": ["Date", "Date pièce", "EcritureDate", "date_piece"],
    "journal": ["Journal", "Code journal", "JournalCode", "journal_code"],
    "piece": ["Pièce", "N° pièce", "PieceRef", "piece_ref", "reference"],
    "compte": ["Compte", "N° compte", "CompteNum", "compte_numero"],
    "libelle": ["Libellé", "EcritureLib", "label"],
    "debit": ["Débit", "Debit"],
    "credit": ["Crédit", "Credit"],
    "tiers": ["Tiers", "Code tiers", "CompAuxNum", "tiers_code"],
    "lettrage": ["Lettrage", "EcritureLet", "lettrage_code"],
}

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y%m%d")


def parse_date(raw: str, row: int) -> datetime.date:
    """Date ISO, JJ/MM/AAAA ou AAAAMMJJ."""
    for fmt in DATE_FORMATS:
        try:
            return datetime.datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    raise ParseError(f"Ligne {row} : date invalide '{raw}'")


def to_minor_units(raw: str, decimals: int, row: int) -> int:
    """Convertit un montant texte en unités mineures, sans perte.

    Accepte la virgule décimale et les espaces de milliers. Un montant plus
    précis que la devise est refusé plutôt qu'arrondi.

    Examples:
        >>> to_minor_units("1 250,50", 2, 1)
        125050
        >>> to_minor_units("", 0, 1)
        0
    """
    text = raw.replace("\u00a0", "").replace("\u202f", "").replace(" ", "").replace(",", ".")
    if not text:
        return 0
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise ParseError(f"Ligne {row} : montant invalide '{raw}'") from e
    if not value.is_finite():
        raise ParseError(f"Ligne {row} : montant invalide '{raw}'")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ParseError(f"Ligne {row} : montant '{raw}' plus précis que {decimals} décimale(s)")
    return int(scaled)


class JournalCsvParser(BaseParser):
    """Lecteur d'export de journal (grand livre à plat).

    Les lignes sont regroupées en écritures par ``ecriture_id`` dans l'ordre
    du fichier. Date, journal et pièce doivent être identiques sur toutes
    les lignes d'une écriture.
    """

    def parse(self, source: Path | BytesIO, config: AppConfig) -> list[JournalEntry]:
        df = self.read_csv(source)
        df = self.apply_column_aliases(df, COLUMN_ALIASES)
        self.validate_columns(df, REQUIRED_COLUMNS)
        if df.empty:
            logger.warning("Flux d'écritures vide")
            return []

        grouped: dict[int, list[tuple[int, pd.Series]]] = {}
        for position, (_, record) in enumerate(df.iterrows(), start=2):
            entry_id = self._entry_id(record["ecriture_id"], position)
            grouped.setdefault(entry_id, []).append((position, record))

        entries = [self._build_entry(entry_id, rows, config) for entry_id, rows in grouped.items()]
        logger.info("%d écritures lues (%d lignes)", len(entries), len(df))
        return entries

    @staticmethod
    def _entry_id(raw: str, row: int) -> int:
        try:
            return int(raw)
        except ValueError as e:
            raise ParseError(f"Ligne {row} : identifiant d'écriture invalide '{raw}'") from e

    @staticmethod
    def _optional(record: pd.Series, column: str) -> str | None:
        value = record.get(column, "")
        return str(value) if value else None

    def _build_entry(self, entry_id: int, rows: list[tuple[int, pd.Series]], config: AppConfig) -> JournalEntry:
        first_row, first = rows[0]
        date = parse_date(str(first["date"]), first_row)
        journal_code = str(first["journal"]).upper()
        piece_ref = str(first["piece"])
        if journal_code not in config.journaux:
            raise ParseError(f"Ligne {first_row} : journal inconnu '{journal_code}'")

        lines: list[EntryLine] = []
        for row, record in rows:
            if (
                parse_date(str(record["date"]), row) != date
                or str(record["journal"]).upper() != journal_code
                or str(record["piece"]) != piece_ref
            ):
                raise ParseError(
                    f"Ligne {row} : en-tête incohérent avec la ligne {first_row} pour l'écriture {entry_id}"
                )
            try:
                lines.append(
                    EntryLine(
                        account_number=str(record["compte"]),
                        debit=to_minor_units(str(record["debit"]), config.decimals, row),
                        credit=to_minor_units(str(record["credit"]), config.decimals, row),
                        label=str(record.get("libelle", "")),
                        tiers_code=self._optional(record, "tiers"),
                        lettrage_code=self._optional(record, "lettrage"),
                    )
                )
            except ValidationError as e:
                raise ParseError(f"Ligne {row} : {e}") from e

        return JournalEntry(
            id=entry_id,
            date=date,
            journal_code=journal_code,
            piece_ref=piece_ref,
            lines=tuple(lines),
        )
