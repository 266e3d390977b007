from __future__ import annotations

import datetime
from pathlib import Path

import pytest

from compta_syscohada.config.loader import AppConfig, ClassConfig, JournalConfig, LettrageConfig
from compta_syscohada.models import EntryLine, JournalEntry
from compta_syscohada.pipeline import build_store
from compta_syscohada.store import InMemoryLedgerStore


@pytest.fixture
def fixtures_dir() -> Path:
    """Chemin vers le répertoire de fixtures."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_config() -> AppConfig:
    """AppConfig valide minimale pour les tests."""
    return AppConfig(
        company_name="SOCIETE TEST SARL",
        currency="XOF",
        decimals=0,
        classes={
            "1": ClassConfig(label="Comptes de ressources durables", type="passif"),
            "2": ClassConfig(label="Comptes d'actif immobilisé", type="actif"),
            "3": ClassConfig(label="Comptes de stocks", type="actif"),
            "4": ClassConfig(label="Comptes de tiers", type="mixte"),
            "5": ClassConfig(label="Comptes de trésorerie", type="actif"),
            "6": ClassConfig(label="Comptes de charges", type="charge"),
            "7": ClassConfig(label="Comptes de produits", type="produit"),
        },
        libelles={
            "10": "Capital social",
            "12": "Report à nouveau",
            "40": "Fournisseurs",
            "401": "Fournisseurs, dettes en compte",
            "41": "Clients",
            "411": "Clients",
            "52": "Banques",
            "521": "Banques locales",
            "57": "Caisse",
            "571": "Caisse siège social",
            "60": "Achats",
            "70": "Ventes",
        },
        comptes_defaut={
            "clients": "411",
            "fournisseurs": "401",
            "caisse": "571",
            "banque": "521",
            "resultat_exercice": "12",
        },
        journaux={
            "AC": JournalConfig(code="AC", label="Journal des Achats", type="achat"),
            "VE": JournalConfig(code="VE", label="Journal des Ventes", type="vente"),
            "BQ": JournalConfig(code="BQ", label="Journal de Banque", type="banque"),
            "CA": JournalConfig(code="CA", label="Journal de Caisse", type="caisse"),
            "OD": JournalConfig(code="OD", label="Journal des Opérations Diverses", type="od"),
        },
        taux_tva={"normal": 18.0},
        lettrage=LettrageConfig(max_subset_size=4, max_candidates=40, comptes=("401", "411")),
    )


@pytest.fixture
def scenario_entries() -> list[JournalEntry]:
    """Vente à crédit puis encaissement en banque et en caisse.

    E1 : 411 D 100000 / 701 C 100000 ;
    E2 : 521 D 60000 / 411 C 60000 ;
    E3 : 571 D 40000 / 411 C 40000.
    """
    return [
        JournalEntry(
            id=1,
            date=datetime.date(2024, 1, 10),
            journal_code="VE",
            piece_ref="VE001",
            lines=(
                EntryLine("411", debit=100000, label="Facture V001", tiers_code="C001"),
                EntryLine("701", credit=100000, label="Facture V001"),
            ),
        ),
        JournalEntry(
            id=2,
            date=datetime.date(2024, 2, 10),
            journal_code="BQ",
            piece_ref="BQ001",
            lines=(
                EntryLine("521", debit=60000, label="Règlement partiel V001"),
                EntryLine("411", credit=60000, label="Règlement partiel V001", tiers_code="C001"),
            ),
        ),
        JournalEntry(
            id=3,
            date=datetime.date(2024, 3, 10),
            journal_code="CA",
            piece_ref="CA001",
            lines=(
                EntryLine("571", debit=40000, label="Solde V001"),
                EntryLine("411", credit=40000, label="Solde V001", tiers_code="C001"),
            ),
        ),
    ]


@pytest.fixture
def transfer_entry() -> JournalEntry:
    """Virement du résultat de l'exercice : 701 D 100000 / 12 C 100000."""
    return JournalEntry(
        id=4,
        date=datetime.date(2024, 12, 31),
        journal_code="OD",
        piece_ref="OD001",
        lines=(
            EntryLine("701", debit=100000, label="Virement du résultat"),
            EntryLine("12", credit=100000, label="Virement du résultat"),
        ),
    )


@pytest.fixture
def scenario_store(
    sample_config: AppConfig, scenario_entries: list[JournalEntry], transfer_entry: JournalEntry
) -> InMemoryLedgerStore:
    """Stockage contenant E1, E2, E3 et le virement du résultat."""
    return build_store([*scenario_entries, transfer_entry], sample_config)
