"""Classe abstraite de base pour les lecteurs de flux d'écritures CSV."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path

import pandas as pd

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.models import JournalEntry, ParseError

logger = logging.getLogger(__name__)

SEPARATORS = (";", ",", "\t")


def _first_line(source: Path | BytesIO, encoding: str) -> str:
    if isinstance(source, BytesIO):
        pos = source.tell()
        line = source.readline().decode(encoding)
        source.seek(pos)
        return line
    with open(source, encoding=encoding) as f:
        return f.readline()


class BaseParser(ABC):
    """Interface commune des lecteurs de flux d'écritures."""

    @abstractmethod
    def parse(self, source: Path | BytesIO, config: AppConfig) -> list[JournalEntry]:
        """Lit le flux et retourne les écritures dans l'ordre du fichier."""

    @staticmethod
    def detect_separator(
        source: Path | BytesIO,
        encoding: str = "utf-8",
        candidates: tuple[str, ...] = SEPARATORS,
    ) -> str:
        """Séparateur le plus fréquent dans l'en-tête ; le premier candidat à égalité.

        La position d'un flux en mémoire est restaurée.
        """
        header = _first_line(source, encoding)
        counts = {sep: header.count(sep) for sep in candidates}
        return max(candidates, key=lambda sep: (counts[sep], -candidates.index(sep)))

    def read_csv(self, source: Path | BytesIO, encoding: str = "utf-8") -> pd.DataFrame:
        """Lit un CSV en texte brut (aucune conversion de type), espaces retirés.

        Raises:
            ParseError: Fichier absent ou CSV illisible.
        """
        if isinstance(source, Path) and not source.exists():
            raise ParseError(f"Fichier introuvable : {source}")
        try:
            sep = self.detect_separator(source, encoding)
            logger.debug("Séparateur détecté : %r", sep)
            if isinstance(source, BytesIO):
                source.seek(0)
            df = pd.read_csv(source, sep=sep, encoding=encoding, dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise ParseError(f"CSV illisible : {e}") from e

        df.columns = [str(col).strip() for col in df.columns]
        for col in df.columns:
            if pd.api.types.is_string_dtype(df[col]):
                df[col] = df[col].str.strip()
        return df

    @staticmethod
    def apply_column_aliases(df: pd.DataFrame, aliases: dict[str, list[str]]) -> pd.DataFrame:
        """Ramène les en-têtes connus sous leur nom canonique.

        La comparaison ignore la casse ; une colonne déjà nommée
        canoniquement n'est jamais remplacée par un alias.
        """
        present = {col.casefold(): col for col in df.columns}
        rename_map: dict[str, str] = {}
        for canonical, alternatives in aliases.items():
            if canonical in df.columns:
                continue
            for name in (canonical, *alternatives):
                found = present.get(name.casefold())
                if found is not None:
                    rename_map[found] = canonical
                    break
        return df.rename(columns=rename_map) if rename_map else df

    @staticmethod
    def validate_columns(df: pd.DataFrame, required: list[str]) -> None:
        """Vérifie la présence des colonnes requises.

        Raises:
            ParseError: Le message liste les colonnes manquantes.
        """
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise ParseError(f"Colonnes manquantes : {', '.join(missing)}")
