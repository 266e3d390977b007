"""Tests pour parsers/journal_csv.py et parsers/base.py — lecture d'un export de journal."""

from __future__ import annotations

import dataclasses
import datetime
from io import BytesIO
from pathlib import Path

import pytest

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.models import LineRef, ParseError
from compta_syscohada.parsers import JournalCsvParser
from compta_syscohada.parsers.base import BaseParser
from compta_syscohada.parsers.journal_csv import parse_date, to_minor_units

HEADER = "ecriture_id;date;journal;piece;compte;libelle;tiers;debit;credit;lettrage\n"


def _csv(*rows: str, header: str = HEADER) -> BytesIO:
    return BytesIO((header + "".join(f"{row}\n" for row in rows)).encode("utf-8"))


class TestToMinorUnits:
    """Conversion des montants texte en unités mineures."""

    def test_integer(self) -> None:
        assert to_minor_units("150000", 0, 2) == 150000

    def test_empty(self) -> None:
        assert to_minor_units("", 0, 2) == 0

    def test_french_format(self) -> None:
        """Virgule décimale et espace de milliers."""
        assert to_minor_units("1 250,50", 2, 2) == 125050

    def test_non_breaking_space(self) -> None:
        """Espaces insécables comme séparateurs de milliers."""
        assert to_minor_units("1\u00a0000", 0, 2) == 1000
        assert to_minor_units("1\u202f000", 0, 2) == 1000

    def test_too_precise(self) -> None:
        """Plus de décimales que la devise : refus, pas d'arrondi."""
        with pytest.raises(ParseError, match="plus précis"):
            to_minor_units("10,5", 0, 4)

    def test_invalid(self) -> None:
        with pytest.raises(ParseError, match="Ligne 3 : montant invalide"):
            to_minor_units("abc", 0, 3)

    @pytest.mark.parametrize("raw", ["Infinity", "-inf", "NaN", "sNaN"])
    def test_non_finite(self, raw: str) -> None:
        """Infini et NaN sont des montants invalides."""
        with pytest.raises(ParseError, match=f"Ligne 4 : montant invalide '{raw}'"):
            to_minor_units(raw, 0, 4)


class TestParseDate:
    """Formats de date acceptés."""

    @pytest.mark.parametrize("raw", ["2024-03-15", "15/03/2024", "20240315"])
    def test_formats(self, raw: str) -> None:
        assert parse_date(raw, 2) == datetime.date(2024, 3, 15)

    def test_invalid(self) -> None:
        with pytest.raises(ParseError, match="date invalide"):
            parse_date("15.03.2024", 2)


class TestDetectSeparator:
    """Détection du séparateur sur la ligne d'en-tête."""

    def test_semicolon(self) -> None:
        assert BaseParser.detect_separator(BytesIO(b"a;b;c\n1;2;3\n")) == ";"

    def test_comma(self) -> None:
        assert BaseParser.detect_separator(BytesIO(b"a,b,c\n")) == ","

    def test_tab(self) -> None:
        assert BaseParser.detect_separator(BytesIO(b"a\tb\tc\n")) == "\t"

    def test_position_restored(self) -> None:
        """La position du flux est restaurée après détection."""
        buffer = BytesIO(b"a;b\n1;2\n")
        BaseParser.detect_separator(buffer)
        assert buffer.tell() == 0


class TestJournalCsvParser:
    """Lecture d'un export de journal en écritures."""

    def test_fixture_file(self, sample_config: AppConfig, fixtures_dir: Path) -> None:
        """Le journal de fixture donne neuf écritures équilibrées."""
        entries = JournalCsvParser().parse(fixtures_dir / "journal" / "journal.csv", sample_config)
        assert len(entries) == 9
        assert all(e.is_balanced for e in entries)
        first = entries[0]
        assert first.id == 1
        assert first.date == datetime.date(2024, 1, 5)
        assert first.journal_code == "OD"
        assert first.piece_ref == "OD001"
        assert [l.account_number for l in first.lines] == ["521", "101"]
        assert len(entries[-1].lines) == 3

    def test_optional_columns(self, sample_config: AppConfig) -> None:
        source = _csv(
            "1;2024-01-15;VE;VE001;411;Facture;C001;1000;;A",
            "1;2024-01-15;VE;VE001;701;Facture;;;1000;",
        )
        entry = JournalCsvParser().parse(source, sample_config)[0]
        assert entry.lines[0].tiers_code == "C001"
        assert entry.lines[0].lettrage_code == "A"
        assert entry.lines[0].label == "Facture"
        assert entry.lines[1].tiers_code is None
        assert entry.lines[1].lettrage_code is None
        assert entry.posted_lines()[1].ref == LineRef(1, 1)

    def test_without_optional_columns(self, sample_config: AppConfig) -> None:
        source = _csv(
            "1,2024-01-15,VE,VE001,411,1000,",
            "1,2024-01-15,VE,VE001,701,,1000",
            header="ecriture_id,date,journal,piece,compte,debit,credit\n",
        )
        entry = JournalCsvParser().parse(source, sample_config)[0]
        assert entry.lines[0].label == ""
        assert entry.lines[0].tiers_code is None

    def test_french_headers(self, sample_config: AppConfig) -> None:
        """En-têtes français reconnus par leurs alias."""
        source = _csv(
            "7;15/01/2024;ve;VE001;411;Facture;1 500;",
            "7;15/01/2024;ve;VE001;701;Facture;;1 500",
            header="N° écriture;Date;Journal;Pièce;Compte;Libellé;Débit;Crédit\n",
        )
        entry = JournalCsvParser().parse(source, sample_config)[0]
        assert entry.id == 7
        assert entry.journal_code == "VE"
        assert entry.total_debit == 1500

    def test_headers_case_insensitive(self, sample_config: AppConfig) -> None:
        source = _csv(
            "1;2024-01-15;VE;VE001;411;250;",
            "1;2024-01-15;VE;VE001;701;;250",
            header="ECRITURE_ID;DATE;JOURNAL;PIECE;COMPTE;DÉBIT;CRÉDIT\n",
        )
        entry = JournalCsvParser().parse(source, sample_config)[0]
        assert entry.total_debit == 250
        assert entry.is_balanced

    def test_entries_in_file_order(self, sample_config: AppConfig) -> None:
        """Les écritures gardent l'ordre de première apparition."""
        source = _csv(
            "2;2024-01-20;BQ;BQ001;521;;;500;;",
            "1;2024-01-10;VE;VE001;411;;;500;;",
            "2;2024-01-20;BQ;BQ001;411;;;;500;",
            "1;2024-01-10;VE;VE001;701;;;;500;",
        )
        entries = JournalCsvParser().parse(source, sample_config)
        assert [e.id for e in entries] == [2, 1]
        assert [l.account_number for l in entries[0].lines] == ["521", "411"]

    def test_unbalanced_entry_is_kept(self, sample_config: AppConfig) -> None:
        """Une écriture déséquilibrée est lue telle quelle."""
        source = _csv("3;2024-03-10;CA;CA001;411;;C001;;40000;")
        entry = JournalCsvParser().parse(source, sample_config)[0]
        assert entry.ecart == -40000

    def test_account_leading_zeros_kept(self, sample_config: AppConfig) -> None:
        source = _csv("1;2024-01-10;OD;OD1;0411;;;10;;", "1;2024-01-10;OD;OD1;701;;;;10;")
        entry = JournalCsvParser().parse(source, sample_config)[0]
        assert entry.lines[0].account_number == "0411"

    def test_empty_file(self, sample_config: AppConfig) -> None:
        assert JournalCsvParser().parse(_csv(), sample_config) == []

    def test_missing_columns(self, sample_config: AppConfig) -> None:
        """Le message liste les colonnes manquantes."""
        source = _csv("1;2024-01-10;411", header="ecriture_id;date;compte\n")
        with pytest.raises(ParseError, match="Colonnes manquantes : journal, piece, debit, credit"):
            JournalCsvParser().parse(source, sample_config)

    def test_missing_file(self, sample_config: AppConfig, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="introuvable"):
            JournalCsvParser().parse(tmp_path / "absent.csv", sample_config)

    def test_unknown_journal(self, sample_config: AppConfig) -> None:
        source = _csv("1;2024-01-10;XX;X1;411;;;10;;", "1;2024-01-10;XX;X1;701;;;;10;")
        with pytest.raises(ParseError, match="journal inconnu 'XX'"):
            JournalCsvParser().parse(source, sample_config)

    def test_inconsistent_header(self, sample_config: AppConfig) -> None:
        """Date différente sur deux lignes d'une même écriture."""
        source = _csv("1;2024-01-10;VE;VE001;411;;;10;;", "1;2024-01-11;VE;VE001;701;;;;10;")
        with pytest.raises(ParseError, match="Ligne 3 : en-tête incohérent"):
            JournalCsvParser().parse(source, sample_config)

    def test_invalid_entry_id(self, sample_config: AppConfig) -> None:
        source = _csv("E1;2024-01-10;VE;VE001;411;;;10;;")
        with pytest.raises(ParseError, match="identifiant d'écriture invalide"):
            JournalCsvParser().parse(source, sample_config)

    def test_line_with_both_amounts(self, sample_config: AppConfig) -> None:
        source = _csv("1;2024-01-10;VE;VE001;411;;;10;10;")
        with pytest.raises(ParseError, match="Ligne 2"):
            JournalCsvParser().parse(source, sample_config)

    def test_amount_with_decimals_config(self, sample_config: AppConfig) -> None:
        config = dataclasses.replace(sample_config, decimals=2)
        source = _csv("1;2024-01-10;VE;VE001;411;;;12,34;;", "1;2024-01-10;VE;VE001;701;;;;12.34;")
        entry = JournalCsvParser().parse(source, config)[0]
        assert entry.total_debit == 1234
        assert entry.is_balanced
