"""Contrôle de lettrage soldé sur tous les comptes."""

from __future__ import annotations

import logging

from compta_syscohada.engine.ledger import group_by_lettrage
from compta_syscohada.models import Anomaly, JournalEntry

logger = logging.getLogger(__name__)


class LettrageChecker:
    """Vérifie que chaque groupe de lettrage est soldé (∑ débits == ∑ crédits)."""

    @staticmethod
    def check(entries: list[JournalEntry]) -> list[Anomaly]:
        """Groupe les lignes lettrées par (compte, code) et vérifie l'équilibre de chaque groupe."""
        lines = [line for entry in entries for line in entry.posted_lines()]
        anomalies: list[Anomaly] = []

        for (account_number, code), group in group_by_lettrage(lines).items():
            if group.is_closed:
                continue
            anomalies.append(
                Anomaly(
                    type="lettrage_desequilibre",
                    severity="error",
                    reference=f"{account_number}/{code}",
                    detail=(
                        f"Groupe de lettrage '{code}' du compte {account_number} déséquilibré : "
                        f"débits={group.total_debit}, crédits={group.total_credit}, "
                        f"écart={abs(group.ecart)}"
                    ),
                    expected_value=group.total_debit,
                    actual_value=group.total_credit,
                    ecart=abs(group.ecart),
                )
            )

        if anomalies:
            logger.warning("%d groupe(s) de lettrage déséquilibré(s)", len(anomalies))
        return anomalies
