"""Export Excel multi-onglets et résumé console."""

from __future__ import annotations

from collections import Counter
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.models import Anomaly

if TYPE_CHECKING:
    from compta_syscohada.pipeline import Report

BALANCE_COLUMNS = [
    "compte",
    "libelle",
    "ouverture",
    "debit",
    "credit",
    "cloture",
    "solde_debiteur",
    "solde_crediteur",
]

GRAND_LIVRE_COLUMNS = [
    "compte",
    "intitule",
    "date",
    "journal",
    "piece",
    "libelle",
    "tiers",
    "debit",
    "credit",
    "solde",
    "lettrage",
]

ETAT_COLUMNS = ["rubrique", "compte", "libelle", "montant"]

INDICATEURS_COLUMNS = ["indicateur", "valeur"]

ANOMALIES_COLUMNS = [
    "type",
    "severity",
    "reference",
    "detail",
    "expected_value",
    "actual_value",
    "ecart",
]

INDICATEURS_LABELS = {
    "marge_brute": "Marge brute (%)",
    "marge_nette": "Marge nette (%)",
    "roe": "Rentabilité des capitaux propres (%)",
    "ratio_liquidite": "Ratio de liquidité",
    "bfr": "Besoin en fonds de roulement",
    "tresorerie_nette": "Trésorerie nette",
    "taux_endettement": "Taux d'endettement (%)",
    "autonomie_financiere": "Autonomie financière (%)",
    "delai_client": "Délai client (jours)",
    "delai_fournisseur": "Délai fournisseur (jours)",
    "rotation_stocks": "Rotation des stocks (jours)",
}


def _amount(value: int | None, config: AppConfig) -> int | float | None:
    """Unités mineures → montant affiché dans la devise."""
    if value is None or config.decimals == 0:
        return value
    return value / 10**config.decimals


def _total_row(rubrique: str, libelle: str, montant: int | float | None) -> dict[str, object]:
    return {"rubrique": rubrique, "compte": "", "libelle": libelle, "montant": montant}


def _balance_frame(report: Report, config: AppConfig) -> pd.DataFrame:
    rows = [
        {
            "compte": r.account_number,
            "libelle": r.label,
            "ouverture": _amount(r.opening, config),
            "debit": _amount(r.debit, config),
            "credit": _amount(r.credit, config),
            "cloture": _amount(r.closing, config),
            "solde_debiteur": _amount(r.solde_debit, config),
            "solde_crediteur": _amount(r.solde_credit, config),
        }
        for r in report.trial_balance.rows
    ]
    return pd.DataFrame(rows, columns=BALANCE_COLUMNS)


def _grand_livre_frame(report: Report, config: AppConfig) -> pd.DataFrame:
    rows = [
        {
            "compte": record.account.number,
            "intitule": record.account.label,
            "date": ledger_line.line.date,
            "journal": ledger_line.line.journal_code,
            "piece": ledger_line.line.piece_ref,
            "libelle": ledger_line.line.label,
            "tiers": ledger_line.line.tiers_code,
            "debit": _amount(ledger_line.line.debit, config),
            "credit": _amount(ledger_line.line.credit, config),
            "solde": _amount(ledger_line.running_balance, config),
            "lettrage": ledger_line.line.lettrage_code,
        }
        for record in report.ledgers
        for ledger_line in record.lines
    ]
    return pd.DataFrame(rows, columns=GRAND_LIVRE_COLUMNS)


def _bilan_frame(report: Report, config: AppConfig) -> pd.DataFrame:
    bilan = report.bilan
    rows: list[dict[str, object]] = []
    for section in bilan.sections:
        for ligne in section.lignes:
            rows.append(
                {
                    "rubrique": section.label,
                    "compte": ligne.account_number,
                    "libelle": ligne.label,
                    "montant": _amount(ligne.montant, config),
                }
            )
        rows.append(_total_row(section.label, f"Total {section.label.lower()}", _amount(section.total, config)))
    rows.append(_total_row("Actif", "Total actif", _amount(bilan.total_actif, config)))
    rows.append(_total_row("Passif", "Total passif", _amount(bilan.total_passif, config)))
    return pd.DataFrame(rows, columns=ETAT_COLUMNS)


def _resultat_frame(report: Report, config: AppConfig) -> pd.DataFrame:
    compte = report.compte_resultat
    rows: list[dict[str, object]] = []
    for rubrique, lignes, total in (
        ("Charges", compte.charges, compte.total_charges),
        ("Produits", compte.produits, compte.total_produits),
    ):
        for ligne in lignes:
            rows.append(
                {
                    "rubrique": rubrique,
                    "compte": ligne.account_number,
                    "libelle": ligne.label,
                    "montant": _amount(ligne.montant, config),
                }
            )
        rows.append(_total_row(rubrique, f"Total {rubrique.lower()}", _amount(total, config)))
    rows.append(_total_row("Résultat", "Résultat net", _amount(compte.resultat_net, config)))
    return pd.DataFrame(rows, columns=ETAT_COLUMNS)


def _indicateurs_frame(report: Report) -> pd.DataFrame:
    rows = [
        {"indicateur": label, "valeur": getattr(report.indicateurs, key)}
        for key, label in INDICATEURS_LABELS.items()
    ]
    return pd.DataFrame(rows, columns=INDICATEURS_COLUMNS)


def _anomalies_frame(anomalies: list[Anomaly]) -> pd.DataFrame:
    rows = [
        {
            "type": a.type,
            "severity": a.severity,
            "reference": a.reference,
            "detail": a.detail,
            "expected_value": a.expected_value,
            "actual_value": a.actual_value,
            "ecart": a.ecart,
        }
        for a in anomalies
    ]
    return pd.DataFrame(rows, columns=ANOMALIES_COLUMNS)


def _write_sheets(writer: pd.ExcelWriter, report: Report, config: AppConfig) -> None:
    _balance_frame(report, config).to_excel(writer, sheet_name="Balance", index=False)
    _grand_livre_frame(report, config).to_excel(writer, sheet_name="Grand livre", index=False)
    _bilan_frame(report, config).to_excel(writer, sheet_name="Bilan", index=False)
    _resultat_frame(report, config).to_excel(writer, sheet_name="Compte de résultat", index=False)
    _indicateurs_frame(report).to_excel(writer, sheet_name="Indicateurs", index=False)
    _anomalies_frame(report.anomalies).to_excel(writer, sheet_name="Anomalies", index=False)


def export(report: Report, output_path: Path, config: AppConfig) -> None:
    """Exporte balance, grand livre, états financiers et anomalies dans un fichier Excel."""
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        _write_sheets(writer, report, config)


def export_to_bytes(report: Report, config: AppConfig) -> BytesIO:
    """Même classeur que ``export``, en mémoire (téléchargement API)."""
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        _write_sheets(writer, report, config)
    buffer.seek(0)
    return buffer


def print_summary(report: Report) -> None:
    """Affiche un résumé en console."""
    print("=== Résumé ===")
    print(f"Exercice : {report.exercice.code}")
    print(f"Écritures lues : {len(report.entries)}")
    journaux: Counter[str] = Counter(e.journal_code for e in report.entries)
    for journal, count in sorted(journaux.items()):
        print(f"  {journal} : {count}")

    print(f"Comptes mouvementés : {len(report.trial_balance.rows)}")
    print(f"Total débit : {report.trial_balance.total_debit}")
    print(f"Total crédit : {report.trial_balance.total_credit}")

    if report.lettrage:
        groupes = sum(len(r.groups) for r in report.lettrage)
        conflits = sum(len(r.conflicts) for r in report.lettrage)
        print(f"Lettrage automatique : {groupes} groupes posés, {conflits} conflits")

    bilan = report.bilan
    print(f"Bilan : actif={bilan.total_actif}, passif={bilan.total_passif}")
    print(f"Résultat net : {report.compte_resultat.resultat_net}")

    if not report.anomalies:
        print("Aucune anomalie détectée")
        return

    print(f"Anomalies : {len(report.anomalies)}")
    # Ventilation par type (ordre d'apparition)
    type_order: list[str] = []
    type_counts: Counter[str] = Counter()
    for a in report.anomalies:
        if a.type not in type_counts:
            type_order.append(a.type)
        type_counts[a.type] += 1
    print("  Par type :")
    for anom_type in type_order:
        print(f"    {anom_type:<24s}: {type_counts[anom_type]}")
