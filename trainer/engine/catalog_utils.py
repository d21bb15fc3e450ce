from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional


def norm_str(value: Any) -> str:
    return str(value).strip().lower()


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def norm_list_str(value: Any) -> List[str]:
    return [norm_str(v) for v in as_list(value) if norm_str(v)]


def get_ex_id(exercise: Dict[str, Any]) -> str:
    return exercise.get("id") or exercise.get("exercise_id") or "unknown_exercise"


def localized_name(exercise: Dict[str, Any], lang: str = "en") -> str:
    name = exercise.get("name")
    if isinstance(name, dict):
        return str(name.get(lang) or name.get("en") or next(iter(name.values()), "") or get_ex_id(exercise))
    if name:
        return str(name)
    return get_ex_id(exercise)


def ex_tags(exercise: Dict[str, Any]) -> List[str]:
    return list(dict.fromkeys(norm_list_str(exercise.get("tags"))))


def method_equipment_ids(method: Dict[str, Any]) -> List[str]:
    """Fixed-equipment ids a method references (array field wins over the legacy single field)."""
    ids = norm_list_str(method.get("equipment_ids"))
    if not ids:
        ids = norm_list_str(method.get("equipment_id"))
    return ids


def method_gear_ids(method: Dict[str, Any]) -> List[str]:
    ids = norm_list_str(method.get("gear_ids"))
    if not ids:
        ids = norm_list_str(method.get("gear_id"))
    return ids


def method_video_url(method: Optional[Dict[str, Any]]) -> Optional[str]:
    if not method:
        return None
    media = method.get("media") or {}
    return media.get("main_video_url") or None


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError:
        try:
            return datetime.strptime(raw[:10], "%Y-%m-%d").date()
        except ValueError:
            return None
