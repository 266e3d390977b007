"""Moteur comptable SYSCOHADA."""

from __future__ import annotations

from compta_syscohada.engine.balances import BalanceResolver
from compta_syscohada.engine.chart import ChartOfAccounts, normal_side
from compta_syscohada.engine.ledger import LedgerBuilder
from compta_syscohada.engine.lettrage import LettrageEngine
from compta_syscohada.engine.statements import StatementDeriver, compute_indicators

__all__ = [
    "BalanceResolver",
    "ChartOfAccounts",
    "LedgerBuilder",
    "LettrageEngine",
    "StatementDeriver",
    "compute_indicators",
    "normal_side",
]
