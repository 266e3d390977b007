"""Tests pour exporters/excel.py — export Excel et résumé console."""

from __future__ import annotations

import dataclasses
import datetime
from pathlib import Path

import openpyxl
import pytest

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.exporters.excel import (
    ANOMALIES_COLUMNS,
    BALANCE_COLUMNS,
    GRAND_LIVRE_COLUMNS,
    export,
    export_to_bytes,
    print_summary,
)
from compta_syscohada.models import EntryLine, JournalEntry
from compta_syscohada.pipeline import PipelineOrchestrator, Report

SHEETS = ["Balance", "Grand livre", "Bilan", "Compte de résultat", "Indicateurs", "Anomalies"]


@pytest.fixture
def report(
    sample_config: AppConfig, scenario_entries: list[JournalEntry], transfer_entry: JournalEntry
) -> Report:
    return PipelineOrchestrator().build_report([*scenario_entries, transfer_entry], sample_config)


@pytest.fixture
def broken_report(
    sample_config: AppConfig, scenario_entries: list[JournalEntry], transfer_entry: JournalEntry
) -> Report:
    """E3 passée sans sa ligne de caisse."""
    broken = JournalEntry(
        id=3,
        date=datetime.date(2024, 3, 10),
        journal_code="CA",
        piece_ref="CA001",
        lines=(EntryLine("411", credit=40000, tiers_code="C001"),),
    )
    return PipelineOrchestrator().build_report([*scenario_entries[:2], broken, transfer_entry], sample_config)


def _header(sheet: openpyxl.worksheet.worksheet.Worksheet) -> list[object]:
    return [cell.value for cell in sheet[1]]


class TestExportNominal:
    """Tests de l'export Excel nominal."""

    def test_sheets_created(self, tmp_path: Path, sample_config: AppConfig, report: Report) -> None:
        """Les six feuilles sont créées dans l'ordre."""
        output = tmp_path / "etats.xlsx"
        export(report, output, sample_config)
        wb = openpyxl.load_workbook(output)
        assert wb.sheetnames == SHEETS

    def test_balance_sheet(self, tmp_path: Path, sample_config: AppConfig, report: Report) -> None:
        """Une ligne de balance par compte mouvementé."""
        output = tmp_path / "etats.xlsx"
        export(report, output, sample_config)
        ws = openpyxl.load_workbook(output)["Balance"]
        assert _header(ws) == BALANCE_COLUMNS
        assert ws.max_row == 1 + 5
        assert [ws.cell(row=r, column=1).value for r in range(2, 7)] == ["12", "411", "521", "571", "701"]

    def test_grand_livre_sheet(self, tmp_path: Path, sample_config: AppConfig, report: Report) -> None:
        """Une ligne par ligne d'écriture, dates en cellules date."""
        output = tmp_path / "etats.xlsx"
        export(report, output, sample_config)
        ws = openpyxl.load_workbook(output)["Grand livre"]
        assert _header(ws) == GRAND_LIVRE_COLUMNS
        assert ws.max_row == 1 + 8
        assert isinstance(ws.cell(row=2, column=3).value, datetime.datetime)

    def test_bilan_totals(self, tmp_path: Path, sample_config: AppConfig, report: Report) -> None:
        """Totaux actif et passif égaux."""
        output = tmp_path / "etats.xlsx"
        export(report, output, sample_config)
        ws = openpyxl.load_workbook(output)["Bilan"]
        totals = {
            ws.cell(row=r, column=3).value: ws.cell(row=r, column=4).value for r in range(2, ws.max_row + 1)
        }
        assert totals["Total actif"] == 100000
        assert totals["Total passif"] == 100000

    def test_amounts_in_currency_units(
        self, tmp_path: Path, sample_config: AppConfig, scenario_entries: list[JournalEntry]
    ) -> None:
        """Avec deux décimales, les montants sont exprimés en unités de devise."""
        config = dataclasses.replace(sample_config, decimals=2)
        report = PipelineOrchestrator().build_report(scenario_entries, config)
        output = tmp_path / "etats.xlsx"
        export(report, output, config)
        ws = openpyxl.load_workbook(output)["Balance"]
        row = next(r for r in range(2, ws.max_row + 1) if ws.cell(row=r, column=1).value == "521")
        assert ws.cell(row=row, column=4).value == 600.0

    def test_no_anomalies_sheet_has_headers(self, tmp_path: Path, sample_config: AppConfig, report: Report) -> None:
        """Feuille Anomalies vide mais avec ses en-têtes."""
        output = tmp_path / "etats.xlsx"
        export(report, output, sample_config)
        ws = openpyxl.load_workbook(output)["Anomalies"]
        assert _header(ws) == ANOMALIES_COLUMNS
        assert ws.max_row == 1

    def test_anomalies_data(self, tmp_path: Path, sample_config: AppConfig, broken_report: Report) -> None:
        """Les trois anomalies du scénario cassé sont exportées."""
        output = tmp_path / "etats.xlsx"
        export(broken_report, output, sample_config)
        ws = openpyxl.load_workbook(output)["Anomalies"]
        types = [ws.cell(row=r, column=1).value for r in range(2, ws.max_row + 1)]
        assert types == ["ecriture_desequilibree", "balance_desequilibree", "bilan_desequilibre"]
        ecarts = [ws.cell(row=r, column=7).value for r in range(2, ws.max_row + 1)]
        assert ecarts == [40000, 40000, 40000]

    def test_export_to_bytes(self, sample_config: AppConfig, report: Report) -> None:
        """Export en mémoire, tampon rembobiné."""
        buffer = export_to_bytes(report, sample_config)
        assert buffer.tell() == 0
        wb = openpyxl.load_workbook(buffer)
        assert wb.sheetnames == SHEETS


class TestPrintSummary:
    """Résumé console du rapport."""

    def test_summary_format(self, capsys: pytest.CaptureFixture[str], report: Report) -> None:
        """Exercice, écritures par journal et bilan."""
        print_summary(report)
        captured = capsys.readouterr()
        assert "=== Résumé ===" in captured.out
        assert "Exercice : 2024" in captured.out
        assert "Écritures lues : 4" in captured.out
        assert "  VE : 1" in captured.out
        assert "Bilan : actif=100000, passif=100000" in captured.out
        assert "Aucune anomalie détectée" in captured.out

    def test_summary_ventilation_by_type(self, capsys: pytest.CaptureFixture[str], broken_report: Report) -> None:
        """Anomalies ventilées par type."""
        print_summary(broken_report)
        captured = capsys.readouterr()
        assert "Anomalies : 3" in captured.out
        assert "ecriture_desequilibree" in captured.out
        assert "bilan_desequilibre" in captured.out

    def test_summary_lettrage(
        self, capsys: pytest.CaptureFixture[str], sample_config: AppConfig, scenario_entries: list[JournalEntry]
    ) -> None:
        """Bilan du lettrage automatique."""
        report = PipelineOrchestrator().build_report(scenario_entries, sample_config, auto_lettrage=True)
        print_summary(report)
        captured = capsys.readouterr()
        assert "Lettrage automatique : 1 groupes posés, 0 conflits" in captured.out
