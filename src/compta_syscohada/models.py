"""Modèles de données comptables et hiérarchie d'exceptions."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field

# --- Codes d'erreur ---


class ErrorCode(str, enum.Enum):
    """Taxonomie des erreurs remontées à l'appelant."""

    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    INTEGRITY_ERROR = "INTEGRITY_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


# --- Exceptions métier ---


class ComptaError(Exception):
    """Erreur de base pour l'application compta-syscohada."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    retryable: bool = False


class ConfigError(ComptaError):
    """YAML malformé, clé manquante, valeur invalide."""


class ParseError(ComptaError):
    """Colonne CSV manquante, fichier illisible, montant invalide."""


class ValidationError(ComptaError):
    """Filtre malformé ou demande de lettrage non soldée."""


class NotFoundError(ComptaError):
    """Compte inconnu ou sans mouvement sur le périmètre demandé."""

    code = ErrorCode.NOT_FOUND


class ConflictError(ComptaError):
    """Lettrage concurrent sur des lignes communes, ligne déjà lettrée."""

    code = ErrorCode.CONFLICT


class LedgerStoreError(ComptaError):
    """Échec d'accès au stockage des écritures (à réessayer par l'appelant)."""

    code = ErrorCode.STORE_UNAVAILABLE
    retryable = True


# --- Sens des comptes ---

DEBIT = "debit"
CREDIT = "credit"


# --- Dataclasses métier (frozen) ---


@dataclass(frozen=True)
class Account:
    """Compte du plan comptable SYSCOHADA."""

    number: str
    label: str
    class_digit: str
    normal_side: str


@dataclass(frozen=True, order=True)
class LineRef:
    """Référence stable d'une ligne : (écriture, rang de la ligne)."""

    entry_id: int
    line_no: int


@dataclass(frozen=True)
class EntryLine:
    """Ligne d'écriture : exactement un des deux montants est non nul."""

    account_number: str
    debit: int = 0
    credit: int = 0
    label: str = ""
    tiers_code: str | None = None
    lettrage_code: str | None = None

    def __post_init__(self) -> None:
        if not self.account_number:
            raise ValidationError("Numéro de compte vide sur une ligne d'écriture")
        for name, value in (("débit", self.debit), ("crédit", self.credit)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(
                    f"Montant {name} non entier sur le compte {self.account_number} : {value!r} "
                    "(unités mineures attendues)"
                )
        if self.debit < 0 or self.credit < 0:
            raise ValidationError(
                f"Montant négatif sur le compte {self.account_number} : "
                f"débit={self.debit}, crédit={self.credit}"
            )
        if (self.debit == 0) == (self.credit == 0):
            raise ValidationError(
                f"Ligne {self.account_number} : exactement un montant (débit ou crédit) doit être non nul"
            )

    @property
    def amount(self) -> int:
        """Montant signé : positif au débit, négatif au crédit."""
        return self.debit - self.credit


@dataclass(frozen=True)
class JournalEntry:
    """Pièce comptable : une écriture, plusieurs lignes.

    L'équilibre débit/crédit n'est pas imposé à la construction : le flux
    d'écritures vient d'un stockage externe et un déséquilibre doit être
    signalé par les contrôles, pas masqué par une exception de chargement.
    """

    id: int
    date: datetime.date
    journal_code: str
    piece_ref: str
    lines: tuple[EntryLine, ...]

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def ecart(self) -> int:
        return self.total_debit - self.total_credit

    @property
    def is_balanced(self) -> bool:
        return self.ecart == 0

    def posted_lines(self) -> list[PostedLine]:
        """Aplatit l'écriture en lignes datées et référencées."""
        return [
            PostedLine(
                ref=LineRef(self.id, line_no),
                date=self.date,
                journal_code=self.journal_code,
                piece_ref=self.piece_ref,
                account_number=line.account_number,
                label=line.label,
                tiers_code=line.tiers_code,
                debit=line.debit,
                credit=line.credit,
                lettrage_code=line.lettrage_code,
            )
            for line_no, line in enumerate(self.lines)
        ]


@dataclass(frozen=True)
class PostedLine:
    """Ligne d'écriture avec le contexte de sa pièce (date, journal, référence)."""

    ref: LineRef
    date: datetime.date
    journal_code: str
    piece_ref: str
    account_number: str
    label: str
    tiers_code: str | None
    debit: int
    credit: int
    lettrage_code: str | None

    @property
    def amount(self) -> int:
        return self.debit - self.credit

    @property
    def sort_key(self) -> tuple[datetime.date, int, int]:
        """Ordre du grand livre : date, puis numéro d'écriture, puis rang."""
        return (self.date, self.ref.entry_id, self.ref.line_no)


@dataclass(frozen=True)
class LedgerLine:
    """Mouvement du grand livre annoté du solde cumulé."""

    line: PostedLine
    running_balance: int


@dataclass(frozen=True)
class LedgerRecord:
    """Grand livre d'un compte sur une fenêtre de dates."""

    account: Account
    lines: tuple[LedgerLine, ...]
    opening_balance: int
    closing_balance: int
    total_debit: int
    total_credit: int

    @property
    def sens_solde(self) -> str:
        """``debiteur`` | ``crediteur`` | ``nul`` d'après le solde de clôture."""
        if self.closing_balance == 0:
            return "nul"
        positive_is_debit = self.account.normal_side == DEBIT
        if (self.closing_balance > 0) == positive_is_debit:
            return "debiteur"
        return "crediteur"


@dataclass(frozen=True)
class LettrageGroup:
    """Groupe de lignes portant le même code de lettrage sur un compte."""

    code: str
    account_number: str
    lines: tuple[PostedLine, ...]

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def ecart(self) -> int:
        return self.total_debit - self.total_credit

    @property
    def is_closed(self) -> bool:
        return bool(self.lines) and self.ecart == 0

    @property
    def tiers_code(self) -> str | None:
        codes = {line.tiers_code for line in self.lines}
        return codes.pop() if len(codes) == 1 else None


@dataclass(frozen=True)
class Exercice:
    """Exercice comptable : mois [start_month..end_month] d'une année civile."""

    year: int
    start_month: int = 1
    end_month: int = 12

    def __post_init__(self) -> None:
        if not 1 <= self.start_month <= self.end_month <= 12:
            raise ValidationError(
                f"Exercice {self.year} invalide : mois {self.start_month}..{self.end_month}"
            )

    @property
    def code(self) -> str:
        return str(self.year)

    @property
    def start_date(self) -> datetime.date:
        return datetime.date(self.year, self.start_month, 1)

    @property
    def end_date(self) -> datetime.date:
        if self.end_month == 12:
            return datetime.date(self.year, 12, 31)
        return datetime.date(self.year, self.end_month + 1, 1) - datetime.timedelta(days=1)

    def contains(self, day: datetime.date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class Anomaly:
    """Fait d'intégrité constaté sur les données, remonté dans le résultat.

    Une anomalie n'est jamais corrigée : ``ecart`` porte l'écart exact
    (en unités monétaires mineures) pour l'affichage à l'utilisateur.
    """

    type: str
    severity: str
    reference: str
    detail: str
    expected_value: int | None = None
    actual_value: int | None = None
    ecart: int | None = None
    code: ErrorCode = field(default=ErrorCode.INTEGRITY_ERROR)
