"""Contrôle d'équilibre débit/crédit de chaque écriture."""

from __future__ import annotations

import logging

from compta_syscohada.models import Anomaly, JournalEntry

logger = logging.getLogger(__name__)


class BalanceChecker:
    """Vérifie que chaque écriture est équilibrée (∑ débits == ∑ crédits, au franc près)."""

    @staticmethod
    def check(entries: list[JournalEntry]) -> list[Anomaly]:
        anomalies: list[Anomaly] = []

        for entry in entries:
            if entry.is_balanced:
                continue
            anomalies.append(
                Anomaly(
                    type="ecriture_desequilibree",
                    severity="error",
                    reference=f"{entry.journal_code}-{entry.piece_ref}",
                    detail=(
                        f"Écriture {entry.id} ({entry.date.isoformat()}) déséquilibrée : "
                        f"débits={entry.total_debit}, crédits={entry.total_credit}, "
                        f"écart={abs(entry.ecart)}"
                    ),
                    expected_value=entry.total_debit,
                    actual_value=entry.total_credit,
                    ecart=abs(entry.ecart),
                )
            )

        if anomalies:
            logger.warning("%d écriture(s) déséquilibrée(s)", len(anomalies))
        return anomalies
