"""Orchestrateur du pipeline : journal CSV → grand livre, balance, états → Excel."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.controls.balance_checker import BalanceChecker
from compta_syscohada.controls.lettrage_checker import LettrageChecker
from compta_syscohada.engine import (
    BalanceResolver,
    ChartOfAccounts,
    LedgerBuilder,
    LettrageEngine,
    StatementDeriver,
    compute_indicators,
)
from compta_syscohada.engine.balances import TrialBalance
from compta_syscohada.engine.lettrage import LettrageResult
from compta_syscohada.engine.statements import Bilan, CompteResultat, Indicateurs
from compta_syscohada.exporters.excel import export, print_summary
from compta_syscohada.models import Anomaly, Exercice, JournalEntry, LedgerRecord, ParseError
from compta_syscohada.parsers import JournalCsvParser
from compta_syscohada.store import InMemoryLedgerStore

logger = logging.getLogger(__name__)


@dataclass
class Report:
    """Résultat complet d'un traitement d'exercice."""

    exercice: Exercice
    entries: list[JournalEntry]
    trial_balance: TrialBalance
    ledgers: list[LedgerRecord]
    compte_resultat: CompteResultat
    bilan: Bilan
    indicateurs: Indicateurs
    lettrage: list[LettrageResult] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)


def build_store(entries: Iterable[JournalEntry], config: AppConfig) -> InMemoryLedgerStore:
    """Stockage en mémoire alimenté par un flux d'écritures."""
    return InMemoryLedgerStore(ChartOfAccounts(config), entries)


def lettrage_accounts(store: InMemoryLedgerStore, config: AppConfig) -> list[str]:
    """Comptes mouvementés couverts par les préfixes de lettrage configurés."""
    return [
        account.number
        for account in store.list_accounts(only_with_movements=True)
        if any(account.number.startswith(prefix) for prefix in config.lettrage.comptes)
    ]


class PipelineOrchestrator:
    """Orchestre le pipeline CSV → Stockage → Contrôles → États → Excel."""

    def run(
        self,
        journal_path: Path,
        output_path: Path,
        config: AppConfig,
        exercice_year: int | None = None,
        auto_lettrage: bool = False,
    ) -> Report:
        """Exécute le pipeline complet et écrit le classeur Excel."""
        entries = JournalCsvParser().parse(journal_path, config)
        report = self.build_report(entries, config, exercice_year, auto_lettrage)
        export(report, output_path, config)
        print_summary(report)
        return report

    def run_from_buffer(
        self,
        content: bytes,
        config: AppConfig,
        exercice_year: int | None = None,
        auto_lettrage: bool = False,
    ) -> Report:
        """Exécute le pipeline à partir d'un journal en mémoire, sans export."""
        entries = JournalCsvParser().parse(BytesIO(content), config)
        return self.build_report(entries, config, exercice_year, auto_lettrage)

    def build_report(
        self,
        entries: list[JournalEntry],
        config: AppConfig,
        exercice_year: int | None = None,
        auto_lettrage: bool = False,
    ) -> Report:
        """Charge les écritures, lettre si demandé, contrôle et dérive les états de l'exercice.

        Raises:
            ParseError: Aucune écriture dans le flux.
        """
        if not entries:
            raise ParseError("Aucune écriture dans le journal. Vérifiez le fichier CSV.")
        store = build_store(entries, config)

        if exercice_year is None:
            exercice_year = max(entry.date for entry in entries).year
        exercice = config.exercice(exercice_year)
        logger.info("Traitement de l'exercice %s (%d écritures)", exercice.code, len(entries))

        lettrage_results: list[LettrageResult] = []
        if auto_lettrage:
            engine = LettrageEngine(store, config)
            for account_number in lettrage_accounts(store, config):
                lettrage_results.append(engine.auto_letter(account_number))

        posted = store.list_entries()
        anomalies: list[Anomaly] = []

        balance_anomalies = BalanceChecker.check(posted)
        logger.info("BalanceChecker: %d anomalies détectées", len(balance_anomalies))
        lettrage_anomalies = LettrageChecker.check(posted)
        logger.info("LettrageChecker: %d anomalies détectées", len(lettrage_anomalies))
        anomalies.extend(balance_anomalies)
        anomalies.extend(lettrage_anomalies)

        trial_balance = BalanceResolver(store, config).trial_balance(date_arrete=exercice.end_date)
        anomalies.extend(trial_balance.anomalies)

        movements = [account.number for account in store.list_accounts(only_with_movements=True)]
        batch = LedgerBuilder(store, config).build_many(movements, date_fin=exercice.end_date)

        deriver = StatementDeriver(store, config)
        compte_resultat = deriver.compte_resultat(exercice)
        bilan = deriver.bilan(exercice, compte_resultat)
        indicateurs = compute_indicators(bilan, compte_resultat, deriver.stock_ouverture(exercice))
        anomalies.extend(compte_resultat.anomalies)
        anomalies.extend(bilan.anomalies)

        return Report(
            exercice=exercice,
            entries=posted,
            trial_balance=trial_balance,
            ledgers=list(batch.records.values()),
            compte_resultat=compte_resultat,
            bilan=bilan,
            indicateurs=indicateurs,
            lettrage=lettrage_results,
            anomalies=anomalies,
        )
