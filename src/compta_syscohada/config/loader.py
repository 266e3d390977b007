"""Chargement et validation de la configuration YAML."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import yaml

from compta_syscohada.models import ConfigError, Exercice

logger = logging.getLogger(__name__)

REQUIRED_DEFAULT_ACCOUNTS = ("clients", "fournisseurs", "banque", "caisse", "resultat_exercice")


@dataclass(frozen=True)
class JournalConfig:
    """Journal comptable (AC, VE, BQ, CA, OD)."""

    code: str
    label: str
    type: str


@dataclass(frozen=True)
class ClassConfig:
    """Classe du plan comptable (chiffre 1 à 9)."""

    label: str
    type: str


@dataclass(frozen=True)
class LettrageConfig:
    """Bornes de la recherche de lettrage automatique."""

    max_subset_size: int = 4
    max_candidates: int = 40
    comptes: tuple[str, ...] = ("401", "411")


@dataclass(frozen=True)
class AppConfig:
    """Configuration complète, chargée une fois au démarrage puis partagée en lecture."""

    # Entreprise
    company_name: str
    currency: str
    decimals: int

    # Plan comptable
    classes: Mapping[str, ClassConfig]
    libelles: Mapping[str, str]
    comptes_defaut: Mapping[str, str]

    # Journaux
    journaux: Mapping[str, JournalConfig]

    # Exercice
    fiscal_start_month: int = 1
    fiscal_end_month: int = 12

    # TVA
    taux_tva: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))

    # Lettrage
    lettrage: LettrageConfig = LettrageConfig()

    @property
    def compte_resultat(self) -> str:
        return self.comptes_defaut["resultat_exercice"]

    def exercice(self, year: int) -> Exercice:
        """Construit l'exercice ``year`` selon les mois configurés."""
        return Exercice(year, self.fiscal_start_month, self.fiscal_end_month)


def _load_yaml(filepath: Path) -> dict[str, object]:
    """Charge un fichier YAML et retourne son contenu."""
    if not filepath.exists():
        raise ConfigError(f"Fichier de configuration manquant : {filepath}")
    try:
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML malformé dans {filepath} : {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Le fichier {filepath} doit contenir un mapping YAML (reçu : {type(data).__name__})")
    return data


def _require_key(data: dict[str, object], key: str, context: str) -> object:
    """Vérifie qu'une clé existe dans un dictionnaire."""
    if key not in data:
        raise ConfigError(f"Clé obligatoire '{key}' manquante dans {context}")
    return data[key]


def _require_mapping(data: dict[str, object], key: str, context: str) -> dict[str, object]:
    value = _require_key(data, key, context)
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' doit être un mapping dans {context}")
    return value


def _validate_chart(
    data: dict[str, object],
) -> tuple[dict[str, ClassConfig], dict[str, str], dict[str, str]]:
    """Valide et extrait le plan comptable : classes, libellés, comptes par défaut."""
    context = "chart_of_accounts.yaml"

    classes_raw = _require_mapping(data, "classes", context)
    classes: dict[str, ClassConfig] = {}
    for digit, entry in classes_raw.items():
        digit_str = str(digit)
        if len(digit_str) != 1 or not digit_str.isdigit() or digit_str == "0":
            raise ConfigError(f"Classe '{digit_str}' invalide dans {context} : attendu un chiffre de 1 à 9")
        if not isinstance(entry, dict):
            raise ConfigError(f"La classe '{digit_str}' doit être un mapping dans {context}")
        if "label" not in entry:
            raise ConfigError(f"Clé 'label' manquante pour la classe '{digit_str}' dans {context}")
        classes[digit_str] = ClassConfig(label=str(entry["label"]), type=str(entry.get("type", "mixte")))

    libelles_raw = data.get("libelles", {})
    if not isinstance(libelles_raw, dict):
        raise ConfigError(f"'libelles' doit être un mapping dans {context}")
    libelles = {str(k): str(v) for k, v in libelles_raw.items()}

    comptes_raw = _require_mapping(data, "comptes_defaut", context)
    comptes_defaut = {str(k): str(v) for k, v in comptes_raw.items()}
    for key in REQUIRED_DEFAULT_ACCOUNTS:
        if key not in comptes_defaut:
            raise ConfigError(f"Compte par défaut '{key}' manquant dans {context}/comptes_defaut")
        if not comptes_defaut[key].isdigit():
            raise ConfigError(
                f"Compte par défaut '{key}' invalide dans {context} : "
                f"'{comptes_defaut[key]}' n'est pas numérique"
            )

    return classes, libelles, comptes_defaut


def _validate_journals(data: dict[str, object]) -> dict[str, JournalConfig]:
    """Valide et extrait les journaux."""
    context = "journals.yaml"

    journaux_raw = _require_mapping(data, "journaux", context)
    if len(journaux_raw) == 0:
        raise ConfigError(f"'journaux' doit contenir au moins un journal dans {context}")

    journaux: dict[str, JournalConfig] = {}
    for code, entry in journaux_raw.items():
        code_str = str(code)
        if not code_str.isalpha() or not code_str.isupper() or not 2 <= len(code_str) <= 3:
            raise ConfigError(f"Code journal invalide : '{code_str}' dans {context}")
        if not isinstance(entry, dict):
            raise ConfigError(f"Le journal '{code_str}' doit être un mapping dans {context}")
        if "label" not in entry:
            raise ConfigError(f"Clé 'label' manquante pour le journal '{code_str}' dans {context}")
        journaux[code_str] = JournalConfig(
            code=code_str,
            label=str(entry["label"]),
            type=str(entry.get("type", "od")),
        )
    return journaux


def _validate_month(value: object, key: str, context: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 12:
        raise ConfigError(f"'{key}' doit être un mois entre 1 et 12 dans {context} (reçu : {value!r})")
    return value


def _validate_positive_int(value: object, key: str, context: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(f"'{key}' doit être un entier strictement positif dans {context} (reçu : {value!r})")
    return value


def _validate_settings(
    data: dict[str, object],
) -> tuple[str, str, int, int, int, dict[str, float], LettrageConfig]:
    """Valide et extrait les paramètres : entreprise, exercice, TVA, lettrage."""
    context = "settings.yaml"

    entreprise = _require_mapping(data, "entreprise", context)
    decimals = entreprise.get("decimales", 0)
    if not isinstance(decimals, int) or isinstance(decimals, bool) or not 0 <= decimals <= 4:
        raise ConfigError(f"'decimales' doit être un entier entre 0 et 4 dans {context} (reçu : {decimals!r})")

    exercice = data.get("exercice", {})
    if not isinstance(exercice, dict):
        raise ConfigError(f"'exercice' doit être un mapping dans {context}")
    start_month = _validate_month(exercice.get("start_month", 1), "start_month", context)
    end_month = _validate_month(exercice.get("end_month", 12), "end_month", context)
    if start_month > end_month:
        raise ConfigError(
            f"Exercice invalide dans {context} : start_month={start_month} > end_month={end_month}"
        )

    taux_raw = data.get("taux_tva", {})
    if not isinstance(taux_raw, dict):
        raise ConfigError(f"'taux_tva' doit être un mapping dans {context}")
    taux_tva: dict[str, float] = {}
    for name, rate in taux_raw.items():
        if not isinstance(rate, (int, float)) or isinstance(rate, bool):
            raise ConfigError(f"Taux TVA '{name}' invalide dans {context} : doit être un nombre")
        if not 0 <= float(rate) <= 100:
            raise ConfigError(
                f"Taux TVA '{name}' invalide dans {context} : {rate}% (doit être entre 0 et 100)"
            )
        taux_tva[str(name)] = float(rate)

    lettrage_raw = data.get("lettrage", {})
    if not isinstance(lettrage_raw, dict):
        raise ConfigError(f"'lettrage' doit être un mapping dans {context}")
    defaults = LettrageConfig()
    comptes_raw = lettrage_raw.get("comptes", list(defaults.comptes))
    if not isinstance(comptes_raw, list):
        raise ConfigError(f"'lettrage.comptes' doit être une liste dans {context}")
    lettrage = LettrageConfig(
        max_subset_size=_validate_positive_int(
            lettrage_raw.get("max_subset_size", defaults.max_subset_size), "max_subset_size", context
        ),
        max_candidates=_validate_positive_int(
            lettrage_raw.get("max_candidates", defaults.max_candidates), "max_candidates", context
        ),
        comptes=tuple(str(c) for c in comptes_raw),
    )

    return (
        str(_require_key(entreprise, "nom", f"{context}/entreprise")),
        str(entreprise.get("devise", "XOF")),
        decimals,
        start_month,
        end_month,
        taux_tva,
        lettrage,
    )


def load_config(config_dir: Path) -> AppConfig:
    """Charge et valide la configuration complète depuis un répertoire.

    Args:
        config_dir: Répertoire contenant les fichiers YAML de configuration.

    Returns:
        AppConfig validée, non modifiable.

    Raises:
        ConfigError: Si un fichier est manquant, malformé, ou contient des valeurs invalides.
    """
    logger.info("Chargement de la configuration depuis %s", config_dir)

    chart_data = _load_yaml(config_dir / "chart_of_accounts.yaml")
    journals_data = _load_yaml(config_dir / "journals.yaml")
    settings_data = _load_yaml(config_dir / "settings.yaml")

    classes, libelles, comptes_defaut = _validate_chart(chart_data)
    journaux = _validate_journals(journals_data)
    company_name, currency, decimals, start_month, end_month, taux_tva, lettrage = _validate_settings(
        settings_data
    )

    config = AppConfig(
        company_name=company_name,
        currency=currency,
        decimals=decimals,
        classes=MappingProxyType(classes),
        libelles=MappingProxyType(libelles),
        comptes_defaut=MappingProxyType(comptes_defaut),
        journaux=MappingProxyType(journaux),
        fiscal_start_month=start_month,
        fiscal_end_month=end_month,
        taux_tva=MappingProxyType(taux_tva),
        lettrage=lettrage,
    )

    logger.debug(
        "Lettrage : max_subset_size=%d, max_candidates=%d",
        config.lettrage.max_subset_size,
        config.lettrage.max_candidates,
    )

    return config
