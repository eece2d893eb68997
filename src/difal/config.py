from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from importlib.resources import files
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv
from filelock import FileLock

from difal.models.benefit import ItemSettings
from difal.models.jurisdiction import JurisdictionTable
from difal.services.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

APP_NAME = "difal-sped"
JURISDICTIONS_FILE = "jurisdictions.yaml"
BENEFITS_FILE = "benefits.yaml"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Config dir for .env loading, using only sources available before .env is read."""
    from_env = os.environ.get("DIFAL_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def _resolve_dir(env_var: str, default_subdir: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default."""
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/difal/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_config_dir() -> Path:
    """Resolve config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("DIFAL_CONFIG_DIR", "config")


def get_log_level() -> str:
    return os.environ.get("DIFAL_LOG_LEVEL", "WARNING").upper()


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict (empty for an empty file)."""
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


# --- Jurisdiction table ---


def bundled_jurisdictions() -> dict:
    src = files("difal") / "data" / JURISDICTIONS_FILE
    return yaml.safe_load(src.read_text(encoding="utf-8"))


def load_jurisdictions() -> JurisdictionTable:
    """Load the UF table: config dir override when present, else the bundled one."""
    path = get_config_dir() / JURISDICTIONS_FILE
    if path.is_file():
        logger.info("Usando tabela de UFs de %s", path)
        try:
            data = load_yaml(path)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"{path}: YAML inválido: {e}") from e
    else:
        data = bundled_jurisdictions()
    return JurisdictionTable.from_dict(data)


# --- Per-item benefits ---


def _benefits_file() -> Path:
    return get_config_dir() / BENEFITS_FILE


@contextmanager
def _locked() -> Iterator[None]:
    """Hold an exclusive file lock during benefits read-modify-write."""
    bf = _benefits_file()
    bf.parent.mkdir(parents=True, exist_ok=True)
    with FileLock(bf.with_suffix(".lock")):
        yield


def _load_raw() -> dict:
    bf = _benefits_file()
    if not bf.exists():
        return {}
    try:
        data = load_yaml(bf)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{bf}: YAML inválido: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{bf}: esperado um mapeamento código do item -> configuração")
    return data


def _save_raw(data: dict) -> None:
    bf = _benefits_file()
    bf.parent.mkdir(parents=True, exist_ok=True)
    tmp = bf.with_suffix(".tmp")
    tmp.write_text(
        yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=True),
        encoding="utf-8",
    )
    os.replace(tmp, bf)


def load_item_settings() -> dict[str, ItemSettings]:
    """Read benefits.yaml into item code -> ItemSettings."""
    with _locked():
        raw = _load_raw()
    settings: dict[str, ItemSettings] = {}
    for code, entry in raw.items():
        try:
            settings[str(code)] = ItemSettings.from_dict(entry or {})
        except (ValueError, AttributeError) as e:
            raise ConfigurationError(f"Configuração inválida para o item '{code}': {e}") from e
    return settings


def save_item_settings(cod_item: str, settings: ItemSettings) -> Path:
    """Store (or clear, when empty) the settings for one item code."""
    with _locked():
        data = _load_raw()
        if settings.is_empty:
            data.pop(cod_item, None)
        else:
            data[cod_item] = settings.to_dict()
        _save_raw(data)
    return _benefits_file()


def remove_item_settings(cod_item: str) -> bool:
    """Drop an item's settings. Returns False when the item had none."""
    with _locked():
        data = _load_raw()
        if cod_item not in data:
            return False
        del data[cod_item]
        _save_raw(data)
    return True
