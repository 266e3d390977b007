"""Balance générale, solde à date et soldes par compte."""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.engine.chart import signed_balance
from compta_syscohada.models import Account, Anomaly, NotFoundError, PostedLine
from compta_syscohada.store.base import EntryFilter, LedgerStore, in_account_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrialBalanceRow:
    """Ligne de la balance générale pour un compte."""

    account_number: str
    label: str
    opening: int
    debit: int
    credit: int
    closing: int
    solde_debit: int
    solde_credit: int


@dataclass(frozen=True)
class TrialBalance:
    """Balance générale arrêtée à une date, avec ses totaux et anomalies."""

    date_arrete: datetime.date | None
    date_debut_exercice: datetime.date | None
    rows: tuple[TrialBalanceRow, ...] = ()
    anomalies: tuple[Anomaly, ...] = ()

    @property
    def total_debit(self) -> int:
        return sum(r.debit for r in self.rows)

    @property
    def total_credit(self) -> int:
        return sum(r.credit for r in self.rows)

    @property
    def total_solde_debit(self) -> int:
        return sum(r.solde_debit for r in self.rows)

    @property
    def total_solde_credit(self) -> int:
        return sum(r.solde_credit for r in self.rows)

    @property
    def is_balanced(self) -> bool:
        return not self.anomalies


@dataclass(frozen=True)
class PointBalance:
    """Solde d'un compte à une date."""

    account_number: str
    date: datetime.date
    debit: int
    credit: int
    balance: int


@dataclass(frozen=True)
class AccountSummary:
    """Compte avec ses totaux cumulés (liste des comptes du grand livre)."""

    account: Account
    total_debit: int
    total_credit: int
    balance: int
    nb_lignes: int


@dataclass
class _Accumulator:
    opening: int = 0
    debit: int = 0
    credit: int = 0
    raw: int = 0
    lines: int = 0


class BalanceResolver:
    """Calcule la balance générale et les soldes ponctuels à partir du stockage."""

    def __init__(self, store: LedgerStore, config: AppConfig) -> None:
        self._store = store
        self._config = config

    def _all_lines(self, entry_filter: EntryFilter | None = None) -> list[PostedLine]:
        return [line for entry in self._store.list_entries(entry_filter) for line in entry.posted_lines()]

    def _exercice_start(self, date_arrete: datetime.date) -> datetime.date:
        """Début de l'exercice qui contient ``date_arrete``."""
        exercice = self._config.exercice(date_arrete.year)
        if date_arrete < exercice.start_date:
            return self._config.exercice(date_arrete.year - 1).start_date
        return exercice.start_date

    def trial_balance(
        self,
        compte_debut: str | None = None,
        compte_fin: str | None = None,
        date_arrete: datetime.date | None = None,
        avec_mouvements: bool = False,
    ) -> TrialBalance:
        """Balance générale sur une plage de comptes, arrêtée à ``date_arrete``.

        Sans date d'arrêté, la balance est arrêtée à la date de la dernière
        écriture. Le solde d'ouverture reprend les lignes antérieures au
        début de l'exercice ; les mouvements couvrent le début de l'exercice
        jusqu'à l'arrêté inclus.

        Le contrôle débit = crédit porte sur tous les comptes de la période,
        pas seulement sur la plage demandée : un écart est remonté comme
        anomalie ``balance_desequilibree``, jamais corrigé.
        """
        # Validation de la plage avant toute lecture
        EntryFilter(compte_debut=compte_debut, compte_fin=compte_fin)

        lines = self._all_lines()
        if not lines:
            logger.info("Balance générale : aucune écriture")
            return TrialBalance(date_arrete=date_arrete, date_debut_exercice=None)

        if date_arrete is None:
            date_arrete = max(line.date for line in lines)
        debut = self._exercice_start(date_arrete)

        per_account: dict[str, _Accumulator] = defaultdict(_Accumulator)
        period_debit = 0
        period_credit = 0
        for line in lines:
            if line.date > date_arrete:
                continue
            in_period = line.date >= debut
            if in_period:
                period_debit += line.debit
                period_credit += line.credit
            if not in_account_range(line.account_number, compte_debut, compte_fin):
                continue
            acc = per_account[line.account_number]
            acc.raw += line.debit - line.credit
            acc.lines += 1
            if in_period:
                acc.debit += line.debit
                acc.credit += line.credit
            else:
                acc.opening += signed_balance(line.account_number, line.debit, line.credit)

        rows: list[TrialBalanceRow] = []
        for number in sorted(per_account):
            acc = per_account[number]
            if avec_mouvements and acc.debit == 0 and acc.credit == 0:
                continue
            account = self._store.get_account(number)
            rows.append(
                TrialBalanceRow(
                    account_number=number,
                    label=account.label if account else f"Compte {number}",
                    opening=acc.opening,
                    debit=acc.debit,
                    credit=acc.credit,
                    closing=acc.opening + signed_balance(number, acc.debit, acc.credit),
                    solde_debit=max(acc.raw, 0),
                    solde_credit=max(-acc.raw, 0),
                )
            )

        anomalies: list[Anomaly] = []
        if period_debit != period_credit:
            ecart = period_debit - period_credit
            logger.warning(
                "Balance déséquilibrée au %s : débits=%d, crédits=%d, écart=%d",
                date_arrete.isoformat(),
                period_debit,
                period_credit,
                ecart,
            )
            anomalies.append(
                Anomaly(
                    type="balance_desequilibree",
                    severity="error",
                    reference=f"balance-{date_arrete.isoformat()}",
                    detail=(
                        f"Balance déséquilibrée du {debut.isoformat()} au {date_arrete.isoformat()} : "
                        f"débits={period_debit}, crédits={period_credit}, écart={abs(ecart)}"
                    ),
                    expected_value=period_debit,
                    actual_value=period_credit,
                    ecart=abs(ecart),
                )
            )

        logger.info("Balance générale au %s : %d comptes", date_arrete.isoformat(), len(rows))
        return TrialBalance(
            date_arrete=date_arrete,
            date_debut_exercice=debut,
            rows=tuple(rows),
            anomalies=tuple(anomalies),
        )

    def balance_as_of(self, account_number: str, date: datetime.date) -> PointBalance:
        """Solde d'un compte au soir de ``date`` (lignes datées ``<= date``).

        Raises:
            NotFoundError: Compte inconnu.
        """
        if self._store.get_account(account_number) is None:
            raise NotFoundError(f"Compte {account_number} introuvable")
        entry_filter = EntryFilter(compte_debut=account_number, compte_fin=account_number, date_fin=date)
        debit = 0
        credit = 0
        for line in self._all_lines(entry_filter):
            if line.account_number == account_number and line.date <= date:
                debit += line.debit
                credit += line.credit
        return PointBalance(
            account_number=account_number,
            date=date,
            debit=debit,
            credit=credit,
            balance=signed_balance(account_number, debit, credit),
        )

    def account_summaries(
        self,
        classe_debut: str | None = None,
        classe_fin: str | None = None,
        avec_mouvements: bool = False,
    ) -> list[AccountSummary]:
        """Comptes d'une plage de classes avec leurs totaux et leur solde courant."""
        accounts = self._store.list_accounts(classe_debut, classe_fin, only_with_movements=avec_mouvements)
        wanted = {account.number for account in accounts}

        totals: dict[str, _Accumulator] = defaultdict(_Accumulator)
        for line in self._all_lines():
            if line.account_number in wanted:
                acc = totals[line.account_number]
                acc.debit += line.debit
                acc.credit += line.credit
                acc.lines += 1

        summaries = []
        for account in accounts:
            acc = totals.get(account.number, _Accumulator())
            summaries.append(
                AccountSummary(
                    account=account,
                    total_debit=acc.debit,
                    total_credit=acc.credit,
                    balance=signed_balance(account.number, acc.debit, acc.credit),
                    nb_lignes=acc.lines,
                )
            )
        return summaries
