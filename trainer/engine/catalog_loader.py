"""Catalog loader — JSON snapshots in, validated plain dicts out.

Malformed exercises (schema violations) are logged once here and dropped so the
engine never sees them.  The engine still treats any entry missing a required
field, or carrying a non-numeric level, as infeasible, for catalogs handed to it directly.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "catalog" / "schemas"
EXERCISE_SCHEMA = "exercise.v1.json"

REQUIRED_EXERCISE_FIELDS: Tuple[str, ...] = (
    "id",
    "movement_group",
    "mechanical_type",
    "recommended_level",
    "execution_methods",
)

NUMERIC_EXERCISE_FIELDS: Tuple[str, ...] = ("recommended_level", "sweat_level", "noise_level")


class CatalogError(ValueError):
    pass


# ---------------------------
# IO helpers
# ---------------------------
def load_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def ensure_list(data: Any, *keys: str) -> List[Dict[str, Any]]:
    """
    Supports shapes:
      - [ {entry}, ... ]
      - { "<key>": [ ... ] } for any of *keys*, then "items" / "data"
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in (*keys, "items", "data"):
            if key in data and isinstance(data[key], list):
                return data[key]
    raise CatalogError(f"Unsupported catalog structure (expected a list or one of {list(keys)}).")


def missing_required_fields(exercise: Any) -> List[str]:
    if not isinstance(exercise, dict):
        return list(REQUIRED_EXERCISE_FIELDS)
    missing = [k for k in REQUIRED_EXERCISE_FIELDS if exercise.get(k) in (None, "", [])]
    return missing


def invalid_numeric_fields(exercise: Any) -> List[str]:
    """Numeric fields that are present but not numbers (bools included)."""
    if not isinstance(exercise, dict):
        return []
    return [
        k
        for k in NUMERIC_EXERCISE_FIELDS
        if exercise.get(k) is not None
        and (isinstance(exercise[k], bool) or not isinstance(exercise[k], (int, float)))
    ]


def is_malformed(exercise: Any) -> bool:
    return bool(missing_required_fields(exercise) or invalid_numeric_fields(exercise))


# ---------------------------
# Validation
# ---------------------------
def exercise_validator(schemas_dir: Path = SCHEMAS_DIR) -> jsonschema.Draft7Validator:
    schema = load_json(schemas_dir / EXERCISE_SCHEMA)
    return jsonschema.Draft7Validator(schema)


def validate_exercise(exercise: Any, validator: jsonschema.Draft7Validator) -> List[str]:
    errors: List[str] = []
    for err in sorted(validator.iter_errors(exercise), key=lambda e: list(e.absolute_path)):
        where = ".".join(str(x) for x in err.absolute_path) or "<root>"
        errors.append(f"{where}: {err.message}")
    return errors


def filter_valid_exercises(
    exercises: List[Any],
    validator: Optional[jsonschema.Draft7Validator] = None,
) -> Tuple[List[Dict[str, Any]], Dict[str, List[str]]]:
    """Split a raw list into (valid exercises, {label: errors}) and log each rejection once."""
    validator = validator or exercise_validator()
    valid: List[Dict[str, Any]] = []
    rejected: Dict[str, List[str]] = {}
    seen_ids = set()
    for idx, exercise in enumerate(exercises):
        label = exercise.get("id") if isinstance(exercise, dict) and exercise.get("id") else f"#{idx}"
        errors = validate_exercise(exercise, validator)
        if not errors and label in seen_ids:
            errors = [f"duplicate exercise id '{label}'"]
        if errors:
            rejected[str(label)] = errors
            logger.warning("Dropping malformed exercise %s: %s", label, "; ".join(errors[:3]))
            continue
        seen_ids.add(label)
        valid.append(exercise)
    return valid, rejected


def load_exercise_catalog(path: str | Path, schemas_dir: Path = SCHEMAS_DIR) -> List[Dict[str, Any]]:
    raw = ensure_list(load_json(path), "exercises")
    valid, rejected = filter_valid_exercises(raw, exercise_validator(schemas_dir))
    if rejected:
        logger.info("Exercise catalog %s: %d valid, %d dropped", path, len(valid), len(rejected))
    return valid


def load_equipment_definitions(path: str | Path) -> List[Dict[str, Any]]:
    return ensure_list(load_json(path), "equipment")


def load_gear_definitions(path: str | Path) -> List[Dict[str, Any]]:
    return ensure_list(load_json(path), "gear")


def load_parks(path: str | Path) -> List[Dict[str, Any]]:
    return ensure_list(load_json(path), "parks")


def find_by_id(entries: List[Dict[str, Any]], entry_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not entry_id:
        return None
    target = str(entry_id).strip().lower()
    return next((e for e in entries if str(e.get("id", "")).strip().lower() == target), None)
