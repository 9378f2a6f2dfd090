from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

DEFAULTS: Dict[str, Any] = {
    "app": {
        "title": "Document Generation API",
        "environment": "development",
    },
    "storage": {
        "output_dir": "temp/documents",
    },
    "jobs": {
        "max_age_hours": 24,
        "sweep_interval_minutes": 60,
    },
    "generation": {
        "max_workers": 4,
    },
    "rendering": {
        # TTF used instead of Helvetica, needed for Turkish glyphs
        "font_path": None,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
    },
    "cors": {
        "allow_origins": ["*"],
    },
}

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "DOCGEN_ENV": "app.environment",
    "DOCGEN_OUTPUT_DIR": "storage.output_dir",
    "DOCGEN_JOB_MAX_AGE_HOURS": "jobs.max_age_hours",
    "DOCGEN_SWEEP_INTERVAL_MINUTES": "jobs.sweep_interval_minutes",
    "DOCGEN_MAX_WORKERS": "generation.max_workers",
    "DOCGEN_LOG_LEVEL": "logging.level",
    "DOCGEN_FONT_PATH": "rendering.font_path",
}

_INT_KEYS = {"jobs.max_age_hours", "jobs.sweep_interval_minutes", "generation.max_workers"}


def find_config_file() -> Optional[Path]:
    explicit = os.environ.get("DOCGEN_CONFIG")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"DOCGEN_CONFIG points to a missing file: {path}")
        return path
    return next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)


def _env_overrides() -> Dict[str, Any]:
    load_dotenv()
    dotted: Dict[str, Any] = {}
    for env_name, key in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        dotted[key] = int(raw) if key in _INT_KEYS else raw
    return dotted


@lru_cache(maxsize=1)
def _load_base_config() -> DictConfig:
    base = OmegaConf.create(DEFAULTS)
    config_path = find_config_file()
    if config_path is not None:
        base = OmegaConf.merge(base, OmegaConf.load(config_path))
    return base  # type: ignore[return-value]


def make_runtime_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Build the effective configuration.

    Layers, lowest precedence first: built-in defaults, ``config/config.yaml``
    (or the file named by ``DOCGEN_CONFIG``), environment variables (a ``.env``
    file is honoured), and finally ``overrides`` as a nested mapping.

    Unknown keys are rejected because the result is struct-locked.
    """
    base_container = OmegaConf.to_container(_load_base_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    # Set verbatim: "2025" or "a: b" must stay strings.
    env_config = OmegaConf.create()
    for key, value in _env_overrides().items():
        OmegaConf.update(env_config, key, value, merge=True)
    merged = OmegaConf.merge(base, env_config, OmegaConf.create(overrides or {}))
    return DictConfig(merged)


def is_production(config: DictConfig) -> bool:
    return str(config.app.environment).lower() == "production"


def configure_logging(config: DictConfig) -> None:
    logging.basicConfig(level=str(config.logging.level).upper(), format=config.logging.format)
