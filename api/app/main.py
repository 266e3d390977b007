"""Application FastAPI — point d'entrée du backend API."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from compta_syscohada.config.loader import load_config
from compta_syscohada.engine import BalanceResolver, LedgerBuilder, LettrageEngine, StatementDeriver
from compta_syscohada.models import JournalEntry
from compta_syscohada.parsers import JournalCsvParser
from compta_syscohada.pipeline import build_store

from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Charge la configuration YAML et le journal au démarrage."""
    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    config = load_config(config_dir)
    logger.info("Configuration chargée depuis %s", config_dir)

    entries: list[JournalEntry] = []
    journal_file = os.getenv("JOURNAL_FILE")
    if journal_file:
        entries = JournalCsvParser().parse(Path(journal_file), config)
        logger.info("Journal chargé depuis %s : %d écritures", journal_file, len(entries))

    store = build_store(entries, config)
    application.state.config = config
    application.state.store = store
    application.state.ledger = LedgerBuilder(store, config)
    application.state.balances = BalanceResolver(store, config)
    application.state.lettrage = LettrageEngine(store, config)
    application.state.statements = StatementDeriver(store, config)
    yield


app = FastAPI(
    title="compta-syscohada API",
    description="API REST du moteur comptable SYSCOHADA : grand livre, balance, lettrage, états financiers.",
    lifespan=lifespan,
)

# CORS
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(router)
