"""Lecteurs de flux d'écritures."""

from compta_syscohada.parsers.base import BaseParser
from compta_syscohada.parsers.journal_csv import JournalCsvParser

__all__ = ["BaseParser", "JournalCsvParser"]
