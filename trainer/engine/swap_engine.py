"""Swap engine — replace one exercise of a generated workout.

The reason decides the level target and whether the swap sticks:
  equipment / preference : same level, this session only
  too_hard               : one level down, permanent once the movement fails twice in a row
  too_easy               : one level up, this session only
  injury                 : same level, permanent

Candidates come from the same movement group, must pass the same safety and
reachability filters as the contextual engine, and sit within one level of the
target.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from trainer.engine.catalog_loader import is_malformed
from trainer.engine.catalog_utils import (
    get_ex_id,
    localized_name,
    method_equipment_ids,
    method_gear_ids,
    method_video_url,
    norm_str,
)
from trainer.engine.config import DEFAULT_CONFIG, EngineConfig
from trainer.engine.context_builder import GenerationContext
from trainer.engine.contextual_engine import effective_level, passes_environment, passes_injury_shield
from trainer.engine.method_selector import make_selection_request, select_with_request

logger = logging.getLogger(__name__)

SWAP_REASONS = ("equipment", "too_hard", "too_easy", "injury", "preference")

LEVEL_ADJUSTMENTS: Dict[str, int] = {
    "equipment": 0,
    "too_hard": -1,
    "too_easy": 1,
    "injury": 0,
    "preference": 0,
}

REASON_TEXT: Dict[str, str] = {
    "equipment": "Equipment not available.",
    "too_hard": "Exercise too difficult.",
    "too_easy": "Exercise too easy.",
    "injury": "Avoiding injury area.",
    "preference": "User preference.",
}

BASE_MATCH_SCORE = 100
LEVEL_DIFF_PENALTY = 15
SWAP_VIDEO_BONUS = 5
DEFAULT_SWAP_LIMIT = 5


class SwapError(ValueError):
    pass


def swap_persistence(reason: str, failure_streak: int = 0, config: EngineConfig = DEFAULT_CONFIG) -> str:
    if reason == "injury":
        return "permanent"
    if reason == "too_hard" and failure_streak >= config.swap_too_hard_threshold - 1:
        return "permanent"
    return "session_only"


def _occupied_ids(method: Optional[Dict[str, Any]]) -> set:
    if not method or norm_str(method.get("required_gear_type") or "") == "improvised":
        return set()
    return set(method_equipment_ids(method)) | set(method_gear_ids(method))


def suggest_swap(
    current: Dict[str, Any],
    reason: str,
    exercises: List[Dict[str, Any]],
    ctx: GenerationContext,
    *,
    tracking: Optional[Dict[str, Any]] = None,
    injured_area: Optional[str] = None,
    park: Optional[Dict[str, Any]] = None,
    equipment_definitions: Iterable[Dict[str, Any]] = (),
    config: EngineConfig = DEFAULT_CONFIG,
    limit: int = DEFAULT_SWAP_LIMIT,
) -> Dict[str, Any]:
    """Rank replacements for *current* (a workout entry or a bare exercise).

    *tracking* is the per-movement-group record ``{group: {"failure_streak": n, ...}}``.
    """
    if reason not in SWAP_REASONS:
        raise SwapError(f"Unknown swap reason '{reason}'. Allowed: {list(SWAP_REASONS)}")

    exercise = current.get("exercise") if isinstance(current.get("exercise"), dict) else current
    current_id = norm_str(get_ex_id(exercise))
    group = norm_str(exercise.get("movement_group") or "")
    if not current_id or not group:
        raise SwapError("Exercise to swap needs an id and a movement_group")

    movement = (tracking or {}).get(group) or {}
    failure_streak = int(movement.get("failure_streak") or 0)
    persistence = swap_persistence(reason, failure_streak, config)
    level_adjustment = LEVEL_ADJUSTMENTS[reason]

    current_level = effective_level(exercise, ctx)
    target_level = max(1, current_level + level_adjustment)

    injuries = set(ctx.injury_shield)
    if reason == "injury" and injured_area:
        injuries.add(norm_str(injured_area))

    occupied = _occupied_ids(current.get("method")) if reason == "equipment" else set()

    req = make_selection_request(
        ctx.location,
        park=park,
        equipment_definitions=equipment_definitions,
        user_gear=ctx.user_gear,
        available_equipment=ctx.available_equipment,
    )

    candidates = []
    for candidate in exercises:
        if is_malformed(candidate):
            continue
        cand_id = norm_str(get_ex_id(candidate))
        if cand_id == current_id or norm_str(candidate.get("movement_group") or "") != group:
            continue
        level = int(candidate.get("recommended_level") or 1)
        if abs(level - target_level) > 1:
            continue
        if not passes_injury_shield(candidate, injuries) or not passes_environment(candidate, ctx, config):
            continue
        method = select_with_request(candidate, req, config)
        if method is None:
            continue
        if occupied and occupied & _occupied_ids(method):
            continue

        video = method_video_url(method)
        score = BASE_MATCH_SCORE - LEVEL_DIFF_PENALTY * abs(level - target_level)
        if video:
            score += SWAP_VIDEO_BONUS
        candidates.append(
            {
                "exercise_id": get_ex_id(candidate),
                "name": localized_name(candidate),
                "level": level,
                "movement_group": group,
                "method": method,
                "video_url": video,
                "match_score": max(0, score),
            }
        )

    candidates.sort(key=lambda c: (-c["match_score"], norm_str(c["exercise_id"])))
    alternatives = candidates[: max(0, limit)]
    suffix = "Level will be adjusted" if persistence == "permanent" else "This session only"
    logger.debug("swap %s (%s): %d candidates", current_id, reason, len(candidates))

    return {
        "original_id": get_ex_id(exercise),
        "recommended": alternatives[0] if alternatives else None,
        "alternatives": alternatives,
        "persistence": persistence,
        "level_adjustment": level_adjustment,
        "target_level": target_level,
        "reason": f"{REASON_TEXT[reason]} {suffix}",
    }


def apply_permanent_swap(
    tracking: Dict[str, Any],
    movement_group: str,
    level_adjustment: int,
    reason: str,
    *,
    today: Optional[date] = None,
    base_level: int = 1,
) -> Dict[str, Any]:
    """Return a new tracking record with the swap folded in (input left untouched)."""
    group = norm_str(movement_group)
    entry = dict((tracking or {}).get(group) or {})
    current_level = int(entry.get("current_level") or base_level)
    entry["current_level"] = max(1, current_level + level_adjustment)
    entry.setdefault("peak_level", current_level)
    streak = int(entry.get("failure_streak") or 0)
    if reason == "too_hard":
        entry["failure_streak"] = streak + 1
    elif reason == "too_easy":
        entry["failure_streak"] = 0
        entry["peak_level"] = max(int(entry["peak_level"]), entry["current_level"])
    entry["last_trained_at"] = (today or date.today()).isoformat()
    return {**(tracking or {}), group: entry}
