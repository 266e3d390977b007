"""États financiers SYSCOHADA : bilan, compte de résultat et indicateurs.

Les états portent sur les lignes datées dans l'exercice. Les montants sont
signés dans le sens de leur section, sans valeur absolue, pour que
l'identité actif = passif soit exacte. Un écart n'est jamais corrigé : il
est remonté comme anomalie avec son montant.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.engine.chart import class_digit, normal_side
from compta_syscohada.models import DEBIT, Anomaly, Exercice, PostedLine
from compta_syscohada.store.base import EntryFilter, LedgerStore

logger = logging.getLogger(__name__)

PREFIX_VENTES = "70"
PREFIX_ACHATS = "60"
PREFIX_CLIENTS = "41"
PREFIX_FOURNISSEURS = "40"
CLASS_STOCKS = "3"


# --- Structures ---


@dataclass(frozen=True)
class LigneEtat:
    """Compte et montant dans une section d'état financier."""

    account_number: str
    label: str
    montant: int


@dataclass(frozen=True)
class SectionBilan:
    code: str
    label: str
    lignes: tuple[LigneEtat, ...] = ()

    @property
    def total(self) -> int:
        return sum(ligne.montant for ligne in self.lignes)

    def total_prefix(self, prefix: str) -> int:
        return sum(ligne.montant for ligne in self.lignes if ligne.account_number.startswith(prefix))


@dataclass(frozen=True)
class Bilan:
    """Bilan d'un exercice.

    Le résultat de l'exercice n'apparaît au passif que par le virement au
    compte de résultat (12 par défaut) : tant qu'il n'est pas passé, le
    bilan est déséquilibré du montant du résultat.
    """

    exercice: Exercice
    actif_immobilise: SectionBilan
    actif_circulant: SectionBilan
    tresorerie_actif: SectionBilan
    capitaux_propres: SectionBilan
    dettes: SectionBilan
    tresorerie_passif: SectionBilan
    resultat_net: int
    anomalies: tuple[Anomaly, ...] = ()

    @property
    def total_actif(self) -> int:
        return self.actif_immobilise.total + self.actif_circulant.total + self.tresorerie_actif.total

    @property
    def total_passif(self) -> int:
        return self.capitaux_propres.total + self.dettes.total + self.tresorerie_passif.total

    @property
    def ecart(self) -> int:
        return self.total_actif - self.total_passif

    @property
    def is_balanced(self) -> bool:
        return self.ecart == 0

    @property
    def sections(self) -> tuple[SectionBilan, ...]:
        return (
            self.actif_immobilise,
            self.actif_circulant,
            self.tresorerie_actif,
            self.capitaux_propres,
            self.dettes,
            self.tresorerie_passif,
        )


@dataclass(frozen=True)
class CompteResultat:
    """Compte de résultat d'un exercice, hors écritures de virement du résultat."""

    exercice: Exercice
    charges: tuple[LigneEtat, ...]
    produits: tuple[LigneEtat, ...]
    resultat_poste: int | None = None
    anomalies: tuple[Anomaly, ...] = ()

    @property
    def total_charges(self) -> int:
        return sum(ligne.montant for ligne in self.charges)

    @property
    def total_produits(self) -> int:
        return sum(ligne.montant for ligne in self.produits)

    @property
    def resultat_net(self) -> int:
        return self.total_produits - self.total_charges

    @property
    def resultat_transfere(self) -> bool:
        return self.resultat_poste is not None


@dataclass(frozen=True)
class Indicateurs:
    exercice: Exercice
    marge_brute: float
    marge_nette: float
    roe: float
    ratio_liquidite: float
    bfr: int
    tresorerie_nette: int
    taux_endettement: float
    autonomie_financiere: float
    delai_client: int
    delai_fournisseur: int
    rotation_stocks: int


# --- Indicateurs ---


def _ratio(numerator: int, denominator: int, scale: int, places: str) -> Decimal:
    if denominator <= 0:
        return Decimal(0)
    value = Decimal(numerator) * scale / Decimal(denominator)
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def _percent(numerator: int, denominator: int) -> float:
    """Pourcentage arrondi au dixième, 0 si le dénominateur n'est pas positif."""
    return float(_ratio(numerator, denominator, 100, "0.1"))


def _days(numerator: int, denominator: int) -> int:
    """Nombre de jours sur 365, arrondi à l'unité."""
    return int(_ratio(numerator, denominator, 365, "1"))


def compute_indicators(bilan: Bilan, resultat: CompteResultat, stock_ouverture: int = 0) -> Indicateurs:
    """Indicateurs financiers, fonction pure du bilan et du compte de résultat.

    Args:
        bilan: Bilan de l'exercice.
        resultat: Compte de résultat du même exercice.
        stock_ouverture: Stock (classe 3) à l'ouverture, pour le stock moyen.
    """
    ventes = sum(p.montant for p in resultat.produits if p.account_number.startswith(PREFIX_VENTES))
    achats = sum(c.montant for c in resultat.charges if c.account_number.startswith(PREFIX_ACHATS))
    creances_clients = bilan.actif_circulant.total_prefix(PREFIX_CLIENTS)
    dettes_fournisseurs = bilan.dettes.total_prefix(PREFIX_FOURNISSEURS)
    stock_cloture = bilan.actif_circulant.total_prefix(CLASS_STOCKS)
    stock_moyen = (Decimal(stock_ouverture) + Decimal(stock_cloture)) / 2

    rotation = 0
    if achats > 0:
        rotation = int((stock_moyen * 365 / Decimal(achats)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return Indicateurs(
        exercice=bilan.exercice,
        marge_brute=_percent(ventes - achats, ventes),
        marge_nette=_percent(resultat.resultat_net, resultat.total_produits),
        roe=_percent(resultat.resultat_net, bilan.capitaux_propres.total),
        ratio_liquidite=float(_ratio(bilan.actif_circulant.total, bilan.dettes.total, 1, "0.01")),
        bfr=bilan.actif_circulant.total - bilan.dettes.total,
        tresorerie_nette=bilan.tresorerie_actif.total - bilan.tresorerie_passif.total,
        taux_endettement=_percent(bilan.dettes.total + bilan.tresorerie_passif.total, bilan.total_passif),
        autonomie_financiere=_percent(bilan.capitaux_propres.total, bilan.total_passif),
        delai_client=_days(creances_clients, ventes),
        delai_fournisseur=_days(dettes_fournisseurs, achats),
        rotation_stocks=rotation,
    )


# --- Dérivation ---


def _closing_transfers(lines: Iterable[PostedLine], prefix_resultat: str) -> set[int]:
    """Écritures de virement du résultat : compte de résultat et comptes de gestion (classes 6 et 7).

    L'affectation du résultat précédent (12 / 11) ne touche aucun compte de
    gestion et n'est pas un virement de l'exercice.
    """
    touched: dict[int, set[str]] = defaultdict(set)
    for line in lines:
        if line.account_number.startswith(prefix_resultat):
            touched[line.ref.entry_id].add("resultat")
        elif class_digit(line.account_number) in ("6", "7"):
            touched[line.ref.entry_id].add("gestion")
    return {entry_id for entry_id, kinds in touched.items() if kinds == {"resultat", "gestion"}}


class StatementDeriver:
    """Dérive les états financiers d'un exercice à partir du flux d'écritures."""

    def __init__(self, store: LedgerStore, config: AppConfig) -> None:
        self._store = store
        self._config = config

    def _label(self, account_number: str) -> str:
        account = self._store.get_account(account_number)
        return account.label if account else f"Compte {account_number}"

    def _exercice_lines(self, exercice: Exercice) -> list[PostedLine]:
        entry_filter = EntryFilter(date_debut=exercice.start_date, date_fin=exercice.end_date)
        return [line for entry in self._store.list_entries(entry_filter) for line in entry.posted_lines()]

    def _raw_balances(self, lines: Iterable[PostedLine]) -> dict[str, int]:
        """Solde débit - crédit par compte."""
        balances: dict[str, int] = defaultdict(int)
        for line in lines:
            balances[line.account_number] += line.debit - line.credit
        return dict(sorted(balances.items()))

    def _ligne(self, account_number: str, montant: int) -> LigneEtat:
        return LigneEtat(account_number=account_number, label=self._label(account_number), montant=montant)

    def compte_resultat(self, exercice: Exercice) -> CompteResultat:
        """Compte de résultat : charges (classe 6) et produits (classe 7) par compte.

        Les écritures qui soldent les comptes de gestion contre le compte de
        résultat sont des virements de clôture : elles sont exclues des
        charges et produits et servent au rapprochement avec le résultat
        calculé.
        """
        prefix_resultat = self._config.compte_resultat
        lines = self._exercice_lines(exercice)
        transfer_entries = _closing_transfers(lines, prefix_resultat)

        charges: list[LigneEtat] = []
        produits: list[LigneEtat] = []
        operating = (line for line in lines if line.ref.entry_id not in transfer_entries)
        for number, raw in self._raw_balances(operating).items():
            classe = class_digit(number)
            if classe == "6":
                charges.append(self._ligne(number, raw))
            elif classe == "7":
                produits.append(self._ligne(number, -raw))

        resultat_lines = [
            line
            for line in lines
            if line.ref.entry_id in transfer_entries and line.account_number.startswith(prefix_resultat)
        ]
        resultat_poste = None
        if resultat_lines:
            resultat_poste = sum(line.credit - line.debit for line in resultat_lines)

        compte = CompteResultat(
            exercice=exercice,
            charges=tuple(charges),
            produits=tuple(produits),
            resultat_poste=resultat_poste,
        )

        anomalies: list[Anomaly] = []
        if resultat_poste is None:
            logger.info("Exercice %s : résultat non encore viré au compte %s", exercice.code, prefix_resultat)
        elif resultat_poste != compte.resultat_net:
            ecart = compte.resultat_net - resultat_poste
            logger.warning(
                "Exercice %s : résultat calculé %d, résultat comptabilisé %d",
                exercice.code,
                compte.resultat_net,
                resultat_poste,
            )
            anomalies.append(
                Anomaly(
                    type="resultat_incoherent",
                    severity="error",
                    reference=f"resultat-{exercice.code}",
                    detail=(
                        f"Résultat calculé ({compte.resultat_net}) différent du solde du compte "
                        f"{prefix_resultat} ({resultat_poste}) : écart={abs(ecart)}"
                    ),
                    expected_value=compte.resultat_net,
                    actual_value=resultat_poste,
                    ecart=abs(ecart),
                )
            )

        return replace(compte, anomalies=tuple(anomalies))

    def bilan(self, exercice: Exercice, resultat: CompteResultat | None = None) -> Bilan:
        """Bilan de l'exercice, sections par classe de compte.

        - actif immobilisé : classe 2 ;
        - actif circulant : classe 3 et comptes de tiers à solde normal débiteur ;
        - trésorerie actif / passif : comptes de classe 5 selon le signe du solde ;
        - capitaux propres : classe 1 ;
        - dettes : comptes de tiers à solde normal créditeur.
        """
        if resultat is None:
            resultat = self.compte_resultat(exercice)

        sections: dict[str, list[LigneEtat]] = defaultdict(list)
        for number, raw in self._raw_balances(self._exercice_lines(exercice)).items():
            classe = class_digit(number)
            if classe == "2":
                sections["actif_immobilise"].append(self._ligne(number, raw))
            elif classe == "3":
                sections["actif_circulant"].append(self._ligne(number, raw))
            elif classe == "4":
                if normal_side(number) == DEBIT:
                    sections["actif_circulant"].append(self._ligne(number, raw))
                else:
                    sections["dettes"].append(self._ligne(number, -raw))
            elif classe == "5":
                if raw > 0:
                    sections["tresorerie_actif"].append(self._ligne(number, raw))
                elif raw < 0:
                    sections["tresorerie_passif"].append(self._ligne(number, -raw))
            elif classe == "1":
                sections["capitaux_propres"].append(self._ligne(number, -raw))

        def section(code: str, label: str) -> SectionBilan:
            return SectionBilan(code=code, label=label, lignes=tuple(sections.get(code, ())))

        bilan = Bilan(
            exercice=exercice,
            actif_immobilise=section("actif_immobilise", "Actif immobilisé"),
            actif_circulant=section("actif_circulant", "Actif circulant"),
            tresorerie_actif=section("tresorerie_actif", "Trésorerie actif"),
            capitaux_propres=section("capitaux_propres", "Capitaux propres"),
            dettes=section("dettes", "Dettes"),
            tresorerie_passif=section("tresorerie_passif", "Trésorerie passif"),
            resultat_net=resultat.resultat_net,
        )
        if bilan.is_balanced:
            return bilan

        detail = (
            f"Bilan {exercice.code} déséquilibré : actif={bilan.total_actif}, "
            f"passif={bilan.total_passif}, écart={abs(bilan.ecart)}"
        )
        if not resultat.resultat_transfere and bilan.ecart == resultat.resultat_net:
            detail += f" (résultat de l'exercice non viré au compte {self._config.compte_resultat})"
        logger.warning("%s", detail)
        anomaly = Anomaly(
            type="bilan_desequilibre",
            severity="error",
            reference=f"bilan-{exercice.code}",
            detail=detail,
            expected_value=bilan.total_actif,
            actual_value=bilan.total_passif,
            ecart=abs(bilan.ecart),
        )
        return replace(bilan, anomalies=(anomaly,))

    def stock_ouverture(self, exercice: Exercice) -> int:
        """Stock (classe 3) cumulé avant le début de l'exercice."""
        total = 0
        for entry in self._store.list_entries():
            if entry.date >= exercice.start_date:
                break
            for line in entry.lines:
                if class_digit(line.account_number) == CLASS_STOCKS:
                    total += line.debit - line.credit
        return total

    def indicateurs(self, exercice: Exercice) -> Indicateurs:
        resultat = self.compte_resultat(exercice)
        bilan = self.bilan(exercice, resultat)
        return compute_indicators(bilan, resultat, self.stock_ouverture(exercice))
