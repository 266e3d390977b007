"""Fixtures pour les tests d'intégration API."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

FIXTURES = Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """TestClient FastAPI avec configuration et journal de test."""
    monkeypatch.setenv("CONFIG_DIR", str(FIXTURES / "config"))
    monkeypatch.setenv("JOURNAL_FILE", str(FIXTURES / "journal" / "journal.csv"))

    from api.app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def empty_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """TestClient FastAPI sans journal chargé."""
    monkeypatch.setenv("CONFIG_DIR", str(FIXTURES / "config"))
    monkeypatch.delenv("JOURNAL_FILE", raising=False)

    from api.app.main import app

    with TestClient(app) as c:
        yield c
