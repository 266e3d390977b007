"""Contrat du stockage externe des écritures comptables."""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from compta_syscohada.models import Account, JournalEntry, LineRef, PostedLine, ValidationError


def in_account_range(account_number: str, compte_debut: str | None, compte_fin: str | None) -> bool:
    """Test d'appartenance à une plage de comptes, bornes incluses.

    La borne haute couvre ses sous-comptes : ``"4111"`` est dans ``[.., "411"]``.
    """
    if compte_debut and account_number < compte_debut:
        return False
    if compte_fin and account_number[: len(compte_fin)] > compte_fin:
        return False
    return True


@dataclass(frozen=True)
class EntryFilter:
    """Filtre de lecture des écritures (tous les critères sont optionnels)."""

    compte_debut: str | None = None
    compte_fin: str | None = None
    date_debut: datetime.date | None = None
    date_fin: datetime.date | None = None
    journal_code: str | None = None
    tiers_code: str | None = None

    def __post_init__(self) -> None:
        if self.date_debut and self.date_fin and self.date_debut > self.date_fin:
            raise ValidationError(
                f"Plage de dates invalide : {self.date_debut.isoformat()} > {self.date_fin.isoformat()}"
            )
        if self.compte_debut and self.compte_fin and self.compte_debut[: len(self.compte_fin)] > self.compte_fin:
            raise ValidationError(f"Plage de comptes invalide : {self.compte_debut} > {self.compte_fin}")

    @property
    def has_line_criteria(self) -> bool:
        return bool(self.compte_debut or self.compte_fin or self.tiers_code)

    def matches_entry(self, entry: JournalEntry) -> bool:
        """Critères portés par la pièce : date et journal."""
        if self.date_debut and entry.date < self.date_debut:
            return False
        if self.date_fin and entry.date > self.date_fin:
            return False
        if self.journal_code and entry.journal_code != self.journal_code:
            return False
        return True

    def matches_line(self, line: PostedLine) -> bool:
        """Critères complets appliqués à une ligne."""
        if self.date_debut and line.date < self.date_debut:
            return False
        if self.date_fin and line.date > self.date_fin:
            return False
        if self.journal_code and line.journal_code != self.journal_code:
            return False
        if self.tiers_code and line.tiers_code != self.tiers_code:
            return False
        return in_account_range(line.account_number, self.compte_debut, self.compte_fin)


class LedgerStore(ABC):
    """Stockage des écritures, consommé comme un flux ordonné.

    Les implémentations peuvent lever ``LedgerStoreError`` sur un échec
    d'accès ; l'appelant décide de réessayer, jamais le moteur.
    """

    @abstractmethod
    def list_entries(self, entry_filter: EntryFilter | None = None) -> list[JournalEntry]:
        """Écritures dont au moins une ligne satisfait le filtre, triées par (date, id)."""

    @abstractmethod
    def get_account(self, account_number: str) -> Account | None:
        """Compte connu du stockage, ou ``None``."""

    @abstractmethod
    def list_accounts(
        self,
        classe_debut: str | None = None,
        classe_fin: str | None = None,
        only_with_movements: bool = False,
    ) -> list[Account]:
        """Comptes triés par numéro, filtrés par classe."""

    @abstractmethod
    def apply_lettrage(self, account_number: str, code: str, refs: Iterable[LineRef]) -> None:
        """Pose ``code`` sur toutes les lignes, atomiquement.

        Raises:
            ConflictError: Une ligne est déjà lettrée ou le code est déjà utilisé.
            ValidationError: Ligne inconnue ou sur un autre compte.
        """

    @abstractmethod
    def clear_lettrage(
        self, account_number: str, code: str, refs: Iterable[LineRef] | None = None
    ) -> list[LineRef]:
        """Retire ``code`` de tout le groupe, ou des seules lignes ``refs``.

        Raises:
            NotFoundError: Code inconnu sur ce compte.
            ValidationError: Le reste du groupe ne serait plus soldé.
        """
