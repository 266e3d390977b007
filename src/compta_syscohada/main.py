"""Point d'entrée CLI de compta-syscohada."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from compta_syscohada.config.loader import load_config
from compta_syscohada.models import ConfigError, ParseError
from compta_syscohada.pipeline import PipelineOrchestrator

logger = logging.getLogger("compta_syscohada.main")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse les arguments CLI."""
    parser = argparse.ArgumentParser(
        prog="compta-syscohada",
        description="Grand livre, balance, lettrage et états financiers SYSCOHADA",
    )
    parser.add_argument("journal_file", help="Export CSV du journal (une ligne par ligne d'écriture)")
    parser.add_argument("output_file", help="Fichier Excel de sortie")
    parser.add_argument(
        "--exercice",
        type=int,
        default=None,
        help="Année de l'exercice (défaut : année de la dernière écriture)",
    )
    parser.add_argument(
        "--config-dir",
        default="./config/",
        help="Répertoire de configuration YAML (défaut : ./config/)",
    )
    parser.add_argument(
        "--auto-lettrage",
        action="store_true",
        help="Lettre automatiquement les comptes de tiers configurés avant les états",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=VALID_LOG_LEVELS,
        help="Niveau de log (défaut : INFO)",
    )
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> None:
    """Point d'entrée principal."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=getattr(logging, parsed.log_level),
        format=LOG_FORMAT,
    )

    config_dir = Path(parsed.config_dir)
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        sys.exit(2)

    try:
        orchestrator = PipelineOrchestrator()
        orchestrator.run(
            journal_path=Path(parsed.journal_file),
            output_path=Path(parsed.output_file),
            config=config,
            exercice_year=parsed.exercice,
            auto_lettrage=parsed.auto_lettrage,
        )
    except ParseError as e:
        print(f"ERREUR : Journal illisible. {e}")
        sys.exit(3)
    except Exception:
        logger.exception("Erreur inattendue")
        sys.exit(1)


if __name__ == "__main__":
    main()
