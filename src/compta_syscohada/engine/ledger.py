"""Grand livre : rejeu des écritures par compte avec solde cumulé."""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.engine.chart import signed_balance
from compta_syscohada.models import (
    Account,
    Exercice,
    LedgerLine,
    LedgerRecord,
    LettrageGroup,
    NotFoundError,
    PostedLine,
    ValidationError,
)
from compta_syscohada.store.base import EntryFilter, LedgerStore

logger = logging.getLogger(__name__)


def group_by_lettrage(lines: Iterable[PostedLine]) -> dict[tuple[str, str], LettrageGroup]:
    """Regroupe les lignes lettrées par (compte, code), dans l'ordre du grand livre."""
    buckets: dict[tuple[str, str], list[PostedLine]] = defaultdict(list)
    for line in lines:
        if line.lettrage_code:
            buckets[(line.account_number, line.lettrage_code)].append(line)
    return {
        key: LettrageGroup(code=key[1], account_number=key[0], lines=tuple(sorted(group, key=lambda l: l.sort_key)))
        for key, group in sorted(buckets.items())
    }


def closed_codes(lines: Iterable[PostedLine]) -> set[tuple[str, str]]:
    """Couples (compte, code) dont le groupe de lettrage est soldé."""
    return {key for key, group in group_by_lettrage(lines).items() if group.is_closed}


def replay(
    account: Account,
    lines: Iterable[PostedLine],
    opening_balance: int = 0,
    date_debut: datetime.date | None = None,
    include_reconciled: bool = True,
    reconciled: set[tuple[str, str]] | None = None,
) -> LedgerRecord:
    """Rejoue des lignes triées d'un compte et construit son grand livre.

    Les lignes antérieures à ``date_debut`` forment le solde d'ouverture.
    Avec ``include_reconciled=False``, les lignes d'un groupe lettré soldé
    sont masquées de la vue mais restent comptées dans le solde cumulé.
    """
    reconciled = reconciled or set()
    running = opening_balance
    opening = opening_balance
    total_debit = 0
    total_credit = 0
    view: list[LedgerLine] = []

    for line in sorted(lines, key=lambda l: l.sort_key):
        delta = signed_balance(account.number, line.debit, line.credit)
        if date_debut is not None and line.date < date_debut:
            running += delta
            opening = running
            continue
        running += delta
        total_debit += line.debit
        total_credit += line.credit
        hidden = (
            not include_reconciled
            and line.lettrage_code is not None
            and (line.account_number, line.lettrage_code) in reconciled
        )
        if not hidden:
            view.append(LedgerLine(line=line, running_balance=running))

    return LedgerRecord(
        account=account,
        lines=tuple(view),
        opening_balance=opening,
        closing_balance=running,
        total_debit=total_debit,
        total_credit=total_credit,
    )


@dataclass
class LedgerBatch:
    """Grands livres de plusieurs comptes ; les comptes introuvables n'interrompent pas le lot."""

    records: dict[str, LedgerRecord] = field(default_factory=dict)
    not_found: list[str] = field(default_factory=list)


class LedgerBuilder:
    """Reconstruit les grands livres à partir du flux d'écritures du stockage."""

    def __init__(self, store: LedgerStore, config: AppConfig) -> None:
        self._store = store
        self._config = config

    def account_lines(self, account_number: str) -> list[PostedLine]:
        """Toutes les lignes d'un compte, dans l'ordre du grand livre."""
        entries = self._store.list_entries(EntryFilter(compte_debut=account_number, compte_fin=account_number))
        lines = [
            line
            for entry in entries
            for line in entry.posted_lines()
            if line.account_number == account_number
        ]
        return sorted(lines, key=lambda l: l.sort_key)

    def _require_account(self, account_number: str) -> Account:
        account = self._store.get_account(account_number)
        if account is None:
            raise NotFoundError(f"Compte {account_number} introuvable")
        return account

    def build(
        self,
        account_number: str,
        date_debut: datetime.date | None = None,
        date_fin: datetime.date | None = None,
        include_reconciled: bool = True,
        opening_balance: int = 0,
    ) -> LedgerRecord:
        """Grand livre d'un compte.

        Raises:
            ValidationError: Plage de dates inversée.
            NotFoundError: Compte inconnu ou sans mouvement jusqu'à ``date_fin``.
        """
        if date_debut and date_fin and date_debut > date_fin:
            raise ValidationError(f"Plage de dates invalide : {date_debut.isoformat()} > {date_fin.isoformat()}")
        account = self._require_account(account_number)
        lines = self.account_lines(account_number)
        in_scope = [line for line in lines if date_fin is None or line.date <= date_fin]
        if not in_scope:
            raise NotFoundError(f"Aucun mouvement sur le compte {account_number}")

        record = replay(
            account,
            in_scope,
            opening_balance=opening_balance,
            date_debut=date_debut,
            include_reconciled=include_reconciled,
            reconciled=closed_codes(lines),
        )
        logger.debug(
            "Grand livre %s : %d lignes, ouverture=%d, clôture=%d",
            account_number,
            len(record.lines),
            record.opening_balance,
            record.closing_balance,
        )
        return record

    def build_many(self, account_numbers: Iterable[str], **options: object) -> LedgerBatch:
        """Grands livres de plusieurs comptes, sans abandonner le lot sur un compte introuvable."""
        batch = LedgerBatch()
        for account_number in account_numbers:
            try:
                batch.records[account_number] = self.build(account_number, **options)  # type: ignore[arg-type]
            except NotFoundError as exc:
                logger.warning("Grand livre ignoré : %s", exc)
                batch.not_found.append(account_number)
        return batch

    def build_by_month(
        self, account_number: str, exercice: Exercice, opening_balance: int = 0
    ) -> list[LedgerRecord]:
        """Grand livre d'un exercice découpé en pages mensuelles.

        Chaque page s'ouvre sur la clôture de la précédente ; la dernière
        clôture égale celle du rejeu de tout l'historique jusqu'à la fin
        de l'exercice.
        """
        account = self._require_account(account_number)
        lines = self.account_lines(account_number)
        reconciled = closed_codes(lines)

        before = [line for line in lines if line.date < exercice.start_date]
        carried = replay(account, before, opening_balance=opening_balance).closing_balance

        pages: list[LedgerRecord] = []
        for month in range(exercice.start_month, exercice.end_month + 1):
            month_lines = [
                line for line in lines if line.date.year == exercice.year and line.date.month == month
            ]
            page = replay(account, month_lines, opening_balance=carried, reconciled=reconciled)
            pages.append(page)
            carried = page.closing_balance
        return pages

    def search(
        self,
        entry_filter: EntryFilter,
        include_reconciled: bool = True,
        limit: int | None = None,
    ) -> list[PostedLine]:
        """Recherche avancée de lignes, triées par compte puis ordre du grand livre."""
        scope = EntryFilter(compte_debut=entry_filter.compte_debut, compte_fin=entry_filter.compte_fin)
        all_lines = [line for entry in self._store.list_entries(scope) for line in entry.posted_lines()]
        reconciled = closed_codes(all_lines)

        matches = [
            line
            for line in all_lines
            if entry_filter.matches_line(line)
            and (
                include_reconciled
                or line.lettrage_code is None
                or (line.account_number, line.lettrage_code) not in reconciled
            )
        ]
        matches.sort(key=lambda l: (l.account_number, l.sort_key))
        if limit is not None:
            matches = matches[:limit]
        return matches

    def search_accounts(self, query: str, limit: int = 20) -> list[Account]:
        """Comptes mouvementés dont le numéro ou le libellé contient ``query`` (casse ignorée)."""
        needle = query.strip().casefold()
        if not needle:
            raise ValidationError("Recherche de compte vide")
        if limit < 1:
            raise ValidationError(f"Limite invalide : {limit}")
        found = [
            account
            for account in self._store.list_accounts(only_with_movements=True)
            if needle in account.number.casefold() or needle in account.label.casefold()
        ]
        return found[:limit]
