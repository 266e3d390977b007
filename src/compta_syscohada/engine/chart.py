"""Plan comptable SYSCOHADA : sens normal des comptes et registre des comptes."""

from __future__ import annotations

import logging
import threading

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.models import CREDIT, DEBIT, Account, ConflictError, ValidationError

logger = logging.getLogger(__name__)

DEBIT_CLASSES = {"2", "3", "5", "6"}
CREDIT_CLASSES = {"1", "7"}
TIERS_CLASS = "4"
RECEIVABLE_PREFIX_MIN = 41


def class_digit(account_number: str) -> str:
    """Classe du compte : premier caractère du numéro."""
    return account_number[:1]


def _leading_int(text: str) -> int | None:
    digits = ""
    for char in text:
        if not char.isdigit():
            break
        digits += char
    return int(digits) if digits else None


def normal_side(account_number: str) -> str:
    """Sens normal du solde d'un compte, d'après son numéro.

    - classes 2, 3, 5, 6 → débit (immobilisations, stocks, trésorerie, charges) ;
    - classes 1, 7 → crédit (capitaux et dettes durables, produits) ;
    - classe 4 → selon les deux premiers chiffres : ``>= 41`` débit (clients),
      sinon crédit (fournisseurs) ;
    - tout autre premier caractère → débit.

    Examples:
        >>> normal_side("411")
        'debit'
        >>> normal_side("401")
        'credit'
        >>> normal_side("40")
        'credit'
    """
    classe = class_digit(account_number)
    if classe in DEBIT_CLASSES:
        return DEBIT
    if classe in CREDIT_CLASSES:
        return CREDIT
    if classe == TIERS_CLASS:
        prefix = _leading_int(account_number[:2])
        if prefix is not None and prefix >= RECEIVABLE_PREFIX_MIN:
            return DEBIT
        return CREDIT
    return DEBIT


def signed_balance(account_number: str, debit: int, credit: int) -> int:
    """Solde exprimé dans le sens normal du compte."""
    if normal_side(account_number) == DEBIT:
        return debit - credit
    return credit - debit


class ChartOfAccounts:
    """Registre des comptes.

    Un compte référencé par une écriture passée ne peut plus être redéfini :
    son libellé et son sens sont figés pour toute la durée du registre.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._accounts: dict[str, Account] = {}
        self._referenced: set[str] = set()
        self._lock = threading.Lock()

    def label_for(self, account_number: str) -> str:
        """Libellé du plus long préfixe connu, sinon ``Compte <numéro>``."""
        for length in range(len(account_number), 1, -1):
            label = self._config.libelles.get(account_number[:length])
            if label:
                return label
        return f"Compte {account_number}"

    def class_label(self, account_number: str) -> str:
        classe = self._config.classes.get(class_digit(account_number))
        return classe.label if classe else "Classe inconnue"

    def build_account(self, account_number: str, label: str | None = None) -> Account:
        """Construit un compte sans l'enregistrer."""
        return Account(
            number=account_number,
            label=label or self.label_for(account_number),
            class_digit=class_digit(account_number),
            normal_side=normal_side(account_number),
        )

    def register(self, account: Account) -> Account:
        """Enregistre ou redéfinit un compte.

        Raises:
            ValidationError: Sens ou classe incohérents avec le numéro.
            ConflictError: Redéfinition d'un compte déjà mouvementé.
        """
        if account.normal_side != normal_side(account.number):
            raise ValidationError(
                f"Compte {account.number} : sens '{account.normal_side}' incompatible "
                f"avec le sens normal '{normal_side(account.number)}'"
            )
        if account.class_digit != class_digit(account.number):
            raise ValidationError(f"Compte {account.number} : classe '{account.class_digit}' incohérente")
        with self._lock:
            existing = self._accounts.get(account.number)
            if existing is not None and existing != account and account.number in self._referenced:
                raise ConflictError(
                    f"Compte {account.number} déjà mouvementé : redéfinition refusée "
                    f"('{existing.label}' → '{account.label}')"
                )
            self._accounts[account.number] = account
        return account

    def ensure(self, account_number: str) -> Account:
        """Retourne le compte enregistré, en le créant avec son libellé par défaut si besoin."""
        with self._lock:
            existing = self._accounts.get(account_number)
            if existing is not None:
                return existing
            account = self.build_account(account_number)
            self._accounts[account_number] = account
            logger.debug("Compte %s créé (%s)", account_number, account.label)
            return account

    def mark_referenced(self, account_number: str) -> None:
        self.ensure(account_number)
        with self._lock:
            self._referenced.add(account_number)

    def is_referenced(self, account_number: str) -> bool:
        return account_number in self._referenced

    def get(self, account_number: str) -> Account | None:
        return self._accounts.get(account_number)

    def accounts(self) -> list[Account]:
        with self._lock:
            return sorted(self._accounts.values(), key=lambda a: a.number)
