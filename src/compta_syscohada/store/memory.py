"""Stockage en mémoire des écritures, chargé depuis un flux de journal."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Iterable

from compta_syscohada.engine.chart import ChartOfAccounts
from compta_syscohada.models import (
    Account,
    ConflictError,
    EntryLine,
    JournalEntry,
    LineRef,
    NotFoundError,
    ValidationError,
)
from compta_syscohada.store.base import EntryFilter, LedgerStore

logger = logging.getLogger(__name__)


class InMemoryLedgerStore(LedgerStore):
    """Stockage append-only en mémoire.

    Seul le code de lettrage d'une ligne peut changer après écriture ;
    chaque pose ou retrait de code s'applique sous verrou, à tout le groupe.
    """

    def __init__(self, chart: ChartOfAccounts, entries: Iterable[JournalEntry] = ()) -> None:
        self._chart = chart
        self._entries: dict[int, JournalEntry] = {}
        self._lock = threading.RLock()
        for entry in entries:
            self.post(entry)

    @property
    def chart(self) -> ChartOfAccounts:
        return self._chart

    def post(self, entry: JournalEntry) -> None:
        """Ajoute une écriture au flux (id unique, jamais modifiée ensuite)."""
        with self._lock:
            if entry.id in self._entries:
                raise ConflictError(f"Écriture {entry.id} déjà passée")
            self._entries[entry.id] = entry
        for line in entry.lines:
            self._chart.mark_referenced(line.account_number)
        if not entry.is_balanced:
            logger.warning("Écriture %d (%s) déséquilibrée : écart %d", entry.id, entry.piece_ref, entry.ecart)

    def list_entries(self, entry_filter: EntryFilter | None = None) -> list[JournalEntry]:
        with self._lock:
            snapshot = list(self._entries.values())
        if entry_filter is not None:
            snapshot = [
                e
                for e in snapshot
                if entry_filter.matches_entry(e)
                and (
                    not entry_filter.has_line_criteria
                    or any(entry_filter.matches_line(line) for line in e.posted_lines())
                )
            ]
        return sorted(snapshot, key=lambda e: (e.date, e.id))

    def get_account(self, account_number: str) -> Account | None:
        return self._chart.get(account_number)

    def list_accounts(
        self,
        classe_debut: str | None = None,
        classe_fin: str | None = None,
        only_with_movements: bool = False,
    ) -> list[Account]:
        accounts = self._chart.accounts()
        if classe_debut:
            accounts = [a for a in accounts if a.class_digit >= classe_debut]
        if classe_fin:
            accounts = [a for a in accounts if a.class_digit <= classe_fin]
        if only_with_movements:
            accounts = [a for a in accounts if self._chart.is_referenced(a.number)]
        return accounts

    def apply_lettrage(self, account_number: str, code: str, refs: Iterable[LineRef]) -> None:
        wanted = set(refs)
        if not wanted:
            raise ValidationError("Aucune ligne à lettrer")
        with self._lock:
            if self._lines_with_code(account_number, code):
                raise ConflictError(f"Code de lettrage '{code}' déjà utilisé sur le compte {account_number}")
            located = self._locate(account_number, wanted)
            for ref, line in located.items():
                if line.lettrage_code:
                    raise ConflictError(
                        f"Ligne {ref.entry_id}/{ref.line_no} déjà lettrée ('{line.lettrage_code}')"
                    )
            self._set_codes(wanted, code)
        logger.info("Lettrage %s posé sur %s (%d lignes)", code, account_number, len(wanted))

    def clear_lettrage(
        self, account_number: str, code: str, refs: Iterable[LineRef] | None = None
    ) -> list[LineRef]:
        with self._lock:
            group = self._lines_with_code(account_number, code)
            if not group:
                raise NotFoundError(f"Code de lettrage '{code}' inconnu sur le compte {account_number}")
            targets = set(group) if refs is None else set(refs)
            unknown = targets - set(group)
            if unknown:
                raise ValidationError(
                    f"Lignes hors du groupe '{code}' : "
                    + ", ".join(f"{r.entry_id}/{r.line_no}" for r in sorted(unknown))
                )
            remaining = [line for ref, line in group.items() if ref not in targets]
            ecart = sum(line.debit - line.credit for line in remaining)
            if remaining and ecart != 0:
                raise ValidationError(
                    f"Délettrage partiel refusé : le groupe '{code}' resterait déséquilibré (écart {ecart})"
                )
            self._set_codes(targets, None)
        logger.info("Lettrage %s retiré de %s (%d lignes)", code, account_number, len(targets))
        return sorted(targets)

    def _locate(self, account_number: str, refs: set[LineRef]) -> dict[LineRef, EntryLine]:
        located: dict[LineRef, EntryLine] = {}
        for ref in sorted(refs):
            entry = self._entries.get(ref.entry_id)
            if entry is None or not 0 <= ref.line_no < len(entry.lines):
                raise ValidationError(f"Ligne {ref.entry_id}/{ref.line_no} introuvable")
            line = entry.lines[ref.line_no]
            if line.account_number != account_number:
                raise ValidationError(
                    f"Ligne {ref.entry_id}/{ref.line_no} sur le compte {line.account_number}, "
                    f"pas sur {account_number}"
                )
            located[ref] = line
        return located

    def _lines_with_code(self, account_number: str, code: str) -> dict[LineRef, EntryLine]:
        found: dict[LineRef, EntryLine] = {}
        for entry in self._entries.values():
            for line_no, line in enumerate(entry.lines):
                if line.account_number == account_number and line.lettrage_code == code:
                    found[LineRef(entry.id, line_no)] = line
        return found

    def _set_codes(self, refs: set[LineRef], code: str | None) -> None:
        by_entry: dict[int, set[int]] = {}
        for ref in refs:
            by_entry.setdefault(ref.entry_id, set()).add(ref.line_no)
        for entry_id, line_nos in by_entry.items():
            entry = self._entries[entry_id]
            lines = tuple(
                dataclasses.replace(line, lettrage_code=code) if i in line_nos else line
                for i, line in enumerate(entry.lines)
            )
            self._entries[entry_id] = dataclasses.replace(entry, lines=lines)
