"""Accès au stockage des écritures."""

from compta_syscohada.store.base import EntryFilter, LedgerStore
from compta_syscohada.store.memory import InMemoryLedgerStore

__all__ = ["EntryFilter", "InMemoryLedgerStore", "LedgerStore"]
