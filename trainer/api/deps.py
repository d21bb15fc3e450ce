"""Shared dependencies for the trainer API — catalog snapshots, profile, engine config."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from trainer.engine.catalog_loader import (
    find_by_id,
    load_equipment_definitions,
    load_exercise_catalog,
    load_gear_definitions,
    load_parks,
)
from trainer.engine.config import DEFAULT_CONFIG, EngineConfig, config_from_overrides

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
CATALOG_DIR = REPO_ROOT / "trainer" / "catalog"
EXERCISES_PATH = CATALOG_DIR / "exercises.json"
EQUIPMENT_PATH = CATALOG_DIR / "equipment.json"
GEAR_PATH = CATALOG_DIR / "gear.json"
PARKS_PATH = CATALOG_DIR / "parks.json"

DATA_DIR = REPO_ROOT / "trainer" / "data"
PROFILE_PATH = DATA_DIR / "user_profile.json"
ENGINE_CONFIG_PATH = DATA_DIR / "engine_config.json"


# Catalogs are read-only snapshots: cache per process, keyed by path so tests
# that monkeypatch the path constants get their own copy.
@lru_cache(maxsize=8)
def _exercises(path: str) -> List[Dict[str, Any]]:
    return load_exercise_catalog(path)


@lru_cache(maxsize=8)
def _equipment(path: str) -> List[Dict[str, Any]]:
    return load_equipment_definitions(path)


@lru_cache(maxsize=8)
def _gear(path: str) -> List[Dict[str, Any]]:
    return load_gear_definitions(path)


@lru_cache(maxsize=8)
def _parks(path: str) -> List[Dict[str, Any]]:
    return load_parks(path)


def get_exercise_catalog() -> List[Dict[str, Any]]:
    return _exercises(str(EXERCISES_PATH))


def get_fixed_equipment_definitions() -> List[Dict[str, Any]]:
    return _equipment(str(EQUIPMENT_PATH))


def get_gear_definitions() -> List[Dict[str, Any]]:
    return _gear(str(GEAR_PATH))


def get_parks() -> List[Dict[str, Any]]:
    return _parks(str(PARKS_PATH))


def get_park_by_id(park_id: Optional[str]) -> Optional[Dict[str, Any]]:
    return find_by_id(get_parks(), park_id)


def clear_catalog_cache() -> None:
    for cached in (_exercises, _equipment, _gear, _parks):
        cached.cache_clear()


def load_profile() -> Dict[str, Any]:
    """Load the stored user profile. Returns an empty profile if the file is missing."""
    if PROFILE_PATH.exists():
        return json.loads(PROFILE_PATH.read_text(encoding="utf-8"))
    return {}


def load_engine_config() -> EngineConfig:
    """Engine defaults with the overrides from engine_config.json applied."""
    if not ENGINE_CONFIG_PATH.exists():
        return DEFAULT_CONFIG
    overrides = json.loads(ENGINE_CONFIG_PATH.read_text(encoding="utf-8"))
    overrides = {k: v for k, v in overrides.items() if not k.startswith("_")}
    config = config_from_overrides(overrides)
    if overrides:
        logger.info("Engine config overrides from %s: %s", ENGINE_CONFIG_PATH, sorted(overrides))
    return config
