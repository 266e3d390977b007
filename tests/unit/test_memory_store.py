"""Tests pour store/memory.py et store/base.py — flux d'écritures et pose des codes de lettrage."""

from __future__ import annotations

import datetime

import pytest

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.models import ConflictError, JournalEntry, LineRef, NotFoundError, ValidationError
from compta_syscohada.pipeline import build_store
from compta_syscohada.store import InMemoryLedgerStore
from compta_syscohada.store.base import EntryFilter, in_account_range


class TestInAccountRange:
    """Appartenance d'un compte à une plage de comptes."""

    def test_no_bounds(self) -> None:
        """Sans borne, tout compte est dans la plage."""
        assert in_account_range("411", None, None)

    def test_upper_bound_covers_subaccounts(self) -> None:
        """La borne haute couvre ses sous-comptes."""
        assert in_account_range("4111", "401", "411")
        assert not in_account_range("421", "401", "411")

    def test_lower_bound(self) -> None:
        """La borne basse est incluse."""
        assert not in_account_range("399", "401", None)
        assert in_account_range("401", "401", None)


class TestEntryFilter:
    """Validation des critères de filtre."""

    def test_inverted_dates_rejected(self) -> None:
        """date_debut > date_fin : ValidationError."""
        with pytest.raises(ValidationError, match="Plage de dates"):
            EntryFilter(date_debut=datetime.date(2024, 2, 1), date_fin=datetime.date(2024, 1, 1))

    def test_inverted_accounts_rejected(self) -> None:
        """compte_debut > compte_fin : ValidationError."""
        with pytest.raises(ValidationError, match="Plage de comptes"):
            EntryFilter(compte_debut="7", compte_fin="4")

    def test_single_account_range(self) -> None:
        """Une plage de comptes est un critère de ligne."""
        entry_filter = EntryFilter(compte_debut="411", compte_fin="411")
        assert entry_filter.has_line_criteria


class TestInMemoryLedgerStore:
    """Stockage en mémoire du flux d'écritures."""

    def test_entries_sorted_by_date_then_id(
        self, sample_config: AppConfig, scenario_entries: list[JournalEntry]
    ) -> None:
        """Écritures rendues par date puis identifiant."""
        store = build_store(reversed(scenario_entries), sample_config)
        assert [e.id for e in store.list_entries()] == [1, 2, 3]

    def test_duplicate_id_rejected(self, scenario_store: InMemoryLedgerStore, scenario_entries: list[JournalEntry]) -> None:
        """Un identifiant d'écriture déjà passé : ConflictError."""
        with pytest.raises(ConflictError, match="déjà passée"):
            scenario_store.post(scenario_entries[0])

    def test_accounts_registered_on_post(self, scenario_store: InMemoryLedgerStore) -> None:
        """Les comptes sont créés au passage des écritures, avec leur libellé."""
        numbers = [a.number for a in scenario_store.list_accounts()]
        assert numbers == ["12", "411", "521", "571", "701"]
        account = scenario_store.get_account("411")
        assert account is not None
        assert account.label == "Clients"

    def test_list_accounts_by_class(self, scenario_store: InMemoryLedgerStore) -> None:
        """Filtre des comptes sur une plage de classes."""
        numbers = [a.number for a in scenario_store.list_accounts("4", "5")]
        assert numbers == ["411", "521", "571"]

    def test_unknown_account(self, scenario_store: InMemoryLedgerStore) -> None:
        """Compte inconnu : None."""
        assert scenario_store.get_account("999") is None

    def test_filter_by_account(self, scenario_store: InMemoryLedgerStore) -> None:
        """Seules les écritures qui mouvementent le compte sont rendues."""
        entries = scenario_store.list_entries(EntryFilter(compte_debut="571", compte_fin="571"))
        assert [e.id for e in entries] == [3]

    def test_filter_by_journal_and_dates(self, scenario_store: InMemoryLedgerStore) -> None:
        """Filtre combiné journal et dates."""
        entries = scenario_store.list_entries(
            EntryFilter(date_debut=datetime.date(2024, 2, 1), date_fin=datetime.date(2024, 12, 31), journal_code="BQ")
        )
        assert [e.id for e in entries] == [2]

    def test_apply_and_clear_lettrage(self, scenario_store: InMemoryLedgerStore) -> None:
        """Pose puis retrait d'un code sur les trois lignes client."""
        refs = [LineRef(1, 0), LineRef(2, 1), LineRef(3, 1)]
        scenario_store.apply_lettrage("411", "A", refs)
        coded = [
            line.lettrage_code
            for entry in scenario_store.list_entries()
            for line in entry.lines
            if line.account_number == "411"
        ]
        assert coded == ["A", "A", "A"]

        cleared = scenario_store.clear_lettrage("411", "A")
        assert cleared == sorted(refs)
        assert all(
            line.lettrage_code is None for entry in scenario_store.list_entries() for line in entry.lines
        )

    def test_apply_on_lettered_line(self, scenario_store: InMemoryLedgerStore) -> None:
        """Une ligne déjà lettrée refuse un second code."""
        scenario_store.apply_lettrage("411", "A", [LineRef(1, 0), LineRef(2, 1), LineRef(3, 1)])
        with pytest.raises(ConflictError, match="déjà lettrée"):
            scenario_store.apply_lettrage("411", "B", [LineRef(1, 0)])

    def test_code_already_used(self, scenario_store: InMemoryLedgerStore) -> None:
        """Un code déjà posé sur le compte est refusé."""
        scenario_store.apply_lettrage("411", "A", [LineRef(1, 0), LineRef(2, 1), LineRef(3, 1)])
        with pytest.raises(ConflictError, match="déjà utilisé"):
            scenario_store.apply_lettrage("411", "A", [LineRef(4, 0)])

    def test_apply_on_other_account(self, scenario_store: InMemoryLedgerStore) -> None:
        """Ligne d'un autre compte : ValidationError."""
        with pytest.raises(ValidationError, match="pas sur 411"):
            scenario_store.apply_lettrage("411", "A", [LineRef(1, 1)])

    def test_apply_on_unknown_line(self, scenario_store: InMemoryLedgerStore) -> None:
        """Rang de ligne inexistant : ValidationError."""
        with pytest.raises(ValidationError, match="introuvable"):
            scenario_store.apply_lettrage("411", "A", [LineRef(1, 5)])

    def test_clear_unknown_code(self, scenario_store: InMemoryLedgerStore) -> None:
        """Code absent : NotFoundError."""
        with pytest.raises(NotFoundError):
            scenario_store.clear_lettrage("411", "Z")

    def test_partial_clear_must_leave_balanced_group(self, scenario_store: InMemoryLedgerStore) -> None:
        """Un retrait partiel qui déséquilibre le groupe est refusé."""
        scenario_store.apply_lettrage("411", "A", [LineRef(1, 0), LineRef(2, 1), LineRef(3, 1)])
        with pytest.raises(ValidationError, match="déséquilibré"):
            scenario_store.clear_lettrage("411", "A", [LineRef(3, 1)])

    def test_entries_not_mutated_in_place(self, scenario_store: InMemoryLedgerStore) -> None:
        """Les écritures déjà lues ne voient pas les codes posés ensuite."""
        before = scenario_store.list_entries()
        scenario_store.apply_lettrage("411", "A", [LineRef(1, 0), LineRef(2, 1), LineRef(3, 1)])
        assert before[0].lines[0].lettrage_code is None
