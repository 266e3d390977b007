"""Conversion des dataclasses métier vers les structures JSON de l'API."""

from __future__ import annotations

from compta_syscohada.engine.balances import AccountSummary, PointBalance, TrialBalance
from compta_syscohada.engine.lettrage import (
    LettrageHistoryEntry,
    LettrageProposal,
    LettrageResult,
    LettrageStatistics,
)
from compta_syscohada.engine.statements import Bilan, CompteResultat, Indicateurs, LigneEtat, SectionBilan
from compta_syscohada.models import Account, Anomaly, LedgerRecord, LettrageGroup, LineRef, PostedLine


def serialize_anomaly(anomaly: Anomaly) -> dict[str, object]:
    """Sérialise une Anomaly vers le format JSON de l'API."""
    return {
        "type": anomaly.type,
        "severity": anomaly.severity,
        "code": anomaly.code.value,
        "reference": anomaly.reference,
        "detail": anomaly.detail,
        "expected_value": anomaly.expected_value,
        "actual_value": anomaly.actual_value,
        "ecart": anomaly.ecart,
    }


def serialize_ref(ref: LineRef) -> dict[str, int]:
    return {"ecriture_id": ref.entry_id, "ligne": ref.line_no}


def serialize_line(line: PostedLine) -> dict[str, object]:
    """Sérialise une ligne d'écriture avec le contexte de sa pièce."""
    return {
        **serialize_ref(line.ref),
        "date": line.date.isoformat(),
        "journal": line.journal_code,
        "piece": line.piece_ref,
        "compte": line.account_number,
        "libelle": line.label,
        "tiers": line.tiers_code,
        "debit": line.debit,
        "credit": line.credit,
        "lettrage": line.lettrage_code,
    }


def serialize_ledger(record: LedgerRecord) -> dict[str, object]:
    return {
        "compte": record.account.number,
        "libelle": record.account.label,
        "sens_normal": record.account.normal_side,
        "solde_ouverture": record.opening_balance,
        "solde_cloture": record.closing_balance,
        "total_debit": record.total_debit,
        "total_credit": record.total_credit,
        "sens_solde": record.sens_solde,
        "lignes": [
            {**serialize_line(ledger_line.line), "solde": ledger_line.running_balance}
            for ledger_line in record.lines
        ],
    }


def serialize_point_balance(balance: PointBalance) -> dict[str, object]:
    return {
        "compte": balance.account_number,
        "date": balance.date.isoformat(),
        "debit": balance.debit,
        "credit": balance.credit,
        "solde": balance.balance,
    }


def serialize_account(account: Account) -> dict[str, object]:
    return {
        "compte": account.number,
        "libelle": account.label,
        "classe": account.class_digit,
        "sens_normal": account.normal_side,
    }


def serialize_account_summary(summary: AccountSummary) -> dict[str, object]:
    return {
        "compte": summary.account.number,
        "libelle": summary.account.label,
        "classe": summary.account.class_digit,
        "sens_normal": summary.account.normal_side,
        "total_debit": summary.total_debit,
        "total_credit": summary.total_credit,
        "solde": summary.balance,
        "nb_lignes": summary.nb_lignes,
    }


def serialize_trial_balance(balance: TrialBalance) -> dict[str, object]:
    """Balance générale : lignes par compte, totaux et anomalies."""
    return {
        "date_arrete": balance.date_arrete.isoformat() if balance.date_arrete else None,
        "date_debut_exercice": balance.date_debut_exercice.isoformat() if balance.date_debut_exercice else None,
        "comptes": [
            {
                "compte": row.account_number,
                "libelle": row.label,
                "ouverture": row.opening,
                "debit": row.debit,
                "credit": row.credit,
                "cloture": row.closing,
                "solde_debiteur": row.solde_debit,
                "solde_crediteur": row.solde_credit,
            }
            for row in balance.rows
        ],
        "totaux": {
            "debit": balance.total_debit,
            "credit": balance.total_credit,
            "solde_debiteur": balance.total_solde_debit,
            "solde_crediteur": balance.total_solde_credit,
        },
        "equilibree": balance.is_balanced,
        "anomalies": [serialize_anomaly(a) for a in balance.anomalies],
    }


def serialize_group(group: LettrageGroup) -> dict[str, object]:
    return {
        "code": group.code,
        "compte": group.account_number,
        "tiers": group.tiers_code,
        "total_debit": group.total_debit,
        "total_credit": group.total_credit,
        "ecart": group.ecart,
        "solde": group.is_closed,
        "lignes": [serialize_line(line) for line in group.lines],
    }


def serialize_proposal(proposal: LettrageProposal) -> dict[str, object]:
    return {
        "compte": proposal.account_number,
        "tiers": proposal.tiers_code,
        "type": proposal.kind,
        "montant": proposal.montant,
        "lignes": [serialize_line(line) for line in proposal.lines],
    }


def serialize_lettrage_result(result: LettrageResult) -> dict[str, object]:
    return {
        "compte": result.account_number,
        "groupes": [serialize_group(g) for g in result.groups],
        "conflits": [
            {"proposition": serialize_proposal(proposal), "detail": detail}
            for proposal, detail in result.conflicts
        ],
    }


def serialize_statistics(stats: LettrageStatistics) -> dict[str, object]:
    return {
        "compte": stats.account_number,
        "nb_lignes": stats.nb_lignes,
        "nb_lettrees": stats.nb_lettrees,
        "nb_non_lettrees": stats.nb_non_lettrees,
        "nb_groupes": stats.nb_groupes,
        "montant_lettre": stats.montant_lettre,
        "montant_non_lettre": stats.montant_non_lettre,
        "taux_lettrage": stats.taux_lettrage,
    }


def serialize_history_entry(entry: LettrageHistoryEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "lettre": entry.code,
        "action": entry.action,
        "compte": entry.account_number,
        "lignes": [serialize_ref(ref) for ref in entry.refs],
        "montant": entry.montant,
        "created_at": entry.created_at.isoformat(),
    }


def _serialize_lignes(lignes: tuple[LigneEtat, ...]) -> list[dict[str, object]]:
    return [{"compte": l.account_number, "libelle": l.label, "montant": l.montant} for l in lignes]


def _serialize_section(section: SectionBilan) -> dict[str, object]:
    return {"total": section.total, "lignes": _serialize_lignes(section.lignes)}


def serialize_bilan(bilan: Bilan) -> dict[str, object]:
    return {
        "exercice": bilan.exercice.code,
        "actif_immobilise": _serialize_section(bilan.actif_immobilise),
        "actif_circulant": _serialize_section(bilan.actif_circulant),
        "tresorerie_actif": _serialize_section(bilan.tresorerie_actif),
        "total_actif": bilan.total_actif,
        "capitaux_propres": _serialize_section(bilan.capitaux_propres),
        "dettes": _serialize_section(bilan.dettes),
        "tresorerie_passif": _serialize_section(bilan.tresorerie_passif),
        "total_passif": bilan.total_passif,
        "ecart": bilan.ecart,
        "equilibre": bilan.is_balanced,
        "anomalies": [serialize_anomaly(a) for a in bilan.anomalies],
    }


def serialize_compte_resultat(compte: CompteResultat) -> dict[str, object]:
    return {
        "exercice": compte.exercice.code,
        "charges": _serialize_lignes(compte.charges),
        "produits": _serialize_lignes(compte.produits),
        "total_charges": compte.total_charges,
        "total_produits": compte.total_produits,
        "resultat_net": compte.resultat_net,
        "resultat_comptabilise": compte.resultat_poste,
        "resultat_transfere": compte.resultat_transfere,
        "anomalies": [serialize_anomaly(a) for a in compte.anomalies],
    }


def serialize_indicateurs(indicateurs: Indicateurs) -> dict[str, object]:
    return {
        "exercice": indicateurs.exercice.code,
        "marge_brute": indicateurs.marge_brute,
        "marge_nette": indicateurs.marge_nette,
        "roe": indicateurs.roe,
        "ratio_liquidite": indicateurs.ratio_liquidite,
        "bfr": indicateurs.bfr,
        "tresorerie_nette": indicateurs.tresorerie_nette,
        "taux_endettement": indicateurs.taux_endettement,
        "autonomie_financiere": indicateurs.autonomie_financiere,
        "delai_client": indicateurs.delai_client,
        "delai_fournisseur": indicateurs.delai_fournisseur,
        "rotation_stocks": indicateurs.rotation_stocks,
    }
