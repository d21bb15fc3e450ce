"""Contextual filter-and-score engine — catalog + context -> ranked, explained candidates.

Stage order is fixed:
  1. hard filters (exclusion, never penalty):
       malformed -> injury shield -> environment (sweat/noise) -> reachability
       -> field mode -> level tolerance
  2. additive scoring of the survivors
  3. straight-arm balancing (separate pass over the scored list)
  4. mechanical balance report

If every exercise is excluded the result carries an empty list plus the
tallies; constraints are never widened here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from trainer.engine.catalog_loader import is_malformed
from trainer.engine.catalog_utils import (
    ex_tags,
    get_ex_id,
    localized_name,
    method_video_url,
    norm_list_str,
    norm_str,
)
from trainer.engine.config import DEFAULT_CONFIG, MECHANICAL_TYPES, EngineConfig
from trainer.engine.context_builder import GenerationContext
from trainer.engine.method_selector import SelectionRequest, make_selection_request, select_with_request

logger = logging.getLogger(__name__)

FILTER_STAGES: Tuple[str, ...] = ("malformed", "injury", "environment", "unreachable", "field_mode", "level")

AI_CUES: Dict[str, str] = {
    "on_the_way": "Done before the office. Heart rate up, zero sweat, productive day ahead.",
    "blast": "BLAST mode. Short rests, maximum intensity. Give it everything.",
    "field": "Field mode. No equipment, tactical execution.",
}


# ---------------------------
# Hard filters
# ---------------------------
def passes_injury_shield(exercise: Dict[str, Any], injuries: Iterable[str]) -> bool:
    """False when the exercise stresses any of the user's injured areas."""
    stressed = set(norm_list_str(exercise.get("injury_shield")))
    if not stressed:
        return True
    return stressed.isdisjoint(norm_list_str(list(injuries)))


def effective_sweat_limit(ctx: GenerationContext, config: EngineConfig = DEFAULT_CONFIG) -> Optional[int]:
    """Sweat limit for this context; None means the sweat check is skipped."""
    sweat_limit, _noise_limit, bypass = config.constraints_for(ctx.location)
    if bypass or ctx.intent_mode == "blast":
        return None
    if ctx.intent_mode == "on_the_way":
        return min(sweat_limit, config.on_the_way_sweat_limit)
    return sweat_limit


def passes_environment(
    exercise: Dict[str, Any],
    ctx: GenerationContext,
    config: EngineConfig = DEFAULT_CONFIG,
) -> bool:
    _sweat_limit, noise_limit, bypass = config.constraints_for(ctx.location)
    if bypass:
        return True
    sweat_limit = effective_sweat_limit(ctx, config)
    if sweat_limit is not None and int(exercise.get("sweat_level") or 1) > sweat_limit:
        return False
    if int(exercise.get("noise_level") or 1) > noise_limit:
        return False
    return True


def passes_field_mode(exercise: Dict[str, Any], method: Dict[str, Any]) -> bool:
    """Field mode keeps field-ready exercises; unset flag means "no gear needed"."""
    if exercise.get("field_ready") is not None:
        return bool(exercise["field_ready"])
    return norm_str(method.get("required_gear_type") or "") == "improvised"


def effective_level(exercise: Dict[str, Any], ctx: GenerationContext) -> int:
    return int(ctx.level_for(exercise.get("movement_group"), exercise.get("primary_muscle")))


def within_level_tolerance(
    exercise: Dict[str, Any],
    level: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> bool:
    return abs(int(exercise.get("recommended_level") or 1) - level) <= config.level_tolerance


# ---------------------------
# Scoring
# ---------------------------
def is_compound(exercise: Dict[str, Any]) -> bool:
    """Compound / time-efficient work that blast mode favours."""
    tags = set(ex_tags(exercise))
    if norm_str(exercise.get("movement_type") or "") == "compound" or "compound" in tags:
        return True
    if norm_str(exercise.get("mechanical_type") or "") == "hybrid":
        return True
    return "hiit_friendly" in tags


def lifestyle_matches(exercise: Dict[str, Any], method: Dict[str, Any], lifestyles: Iterable[str]) -> List[str]:
    offered = set(norm_list_str(method.get("lifestyle_tags"))) | set(norm_list_str(exercise.get("lifestyle_tags")))
    return [tag for tag in lifestyles if tag in offered]


def score_exercise(
    exercise: Dict[str, Any],
    method: Dict[str, Any],
    ctx: GenerationContext,
    level: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    """Additive score with a human-readable trail of every term that applied."""
    score = 0
    reasoning: List[str] = []

    diff = abs(int(exercise.get("recommended_level") or 1) - level)
    proximity = max(0, config.level_proximity_max - diff)
    score += proximity
    reasoning.append(f"level proximity: +{proximity} (diff {diff}, level {level})")

    matches = lifestyle_matches(exercise, method, ctx.lifestyle_tags)
    if matches:
        points = config.lifestyle_match_points * len(matches)
        score += points
        reasoning.append(f"lifestyle match: +{points} ({', '.join(matches)})")

    if ctx.intent_mode == "blast" and is_compound(exercise):
        score += config.blast_compound_bonus
        reasoning.append(f"blast compound: +{config.blast_compound_bonus}")

    if method_video_url(method):
        score += config.video_bonus
        source = "brand video" if method.get("selected_by") == "brand_match" else "video"
        reasoning.append(f"{source}: +{config.video_bonus}")

    return {
        "exercise": exercise,
        "method": method,
        "score": score,
        "reasoning": reasoning,
        "mechanical_type": norm_str(exercise.get("mechanical_type") or "none"),
        "effective_level": level,
    }


def sort_key(scored: Dict[str, Any]) -> Tuple[float, str]:
    return (-scored["score"], norm_str(get_ex_id(scored["exercise"])))


# ---------------------------
# Straight-arm balancing
# ---------------------------
def apply_mechanical_balancing(
    scored: List[Dict[str, Any]],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    """Penalize the 3rd+ straight-arm exercise by 5 x (occurrence - 2), then re-sort.

    Works on copies; the scored input list is left as it was.
    """
    ordered = sorted(scored, key=sort_key)
    out: List[Dict[str, Any]] = []
    straight_arm = 0
    for item in ordered:
        if item["mechanical_type"] == "straight_arm":
            straight_arm += 1
            if straight_arm > config.max_straight_arm_per_session:
                penalty = config.straight_arm_penalty * (straight_arm - config.max_straight_arm_per_session)
                item = {
                    **item,
                    "score": item["score"] - penalty,
                    "reasoning": item["reasoning"]
                    + [f"straight-arm excess: -{penalty} ({straight_arm}/{config.max_straight_arm_per_session})"],
                }
        out.append(item)
    out.sort(key=sort_key)
    return out


def calculate_mechanical_balance(
    items: Iterable[Dict[str, Any]],
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    counts = {t: 0 for t in MECHANICAL_TYPES}
    for item in items:
        mech = item.get("mechanical_type") or "none"
        counts[mech if mech in counts else "none"] += 1

    sa = counts["straight_arm"]
    ba = counts["bent_arm"]
    ratio = f"{sa}:{ba}"
    is_balanced = sa <= config.max_straight_arm_per_session and abs(sa - ba) <= config.max_balance_gap

    warning = None
    if sa > config.max_straight_arm_per_session:
        warning = f"Too much straight-arm work ({sa} of max {config.max_straight_arm_per_session})"
    elif abs(sa - ba) > config.max_balance_gap:
        warning = f"SA:BA imbalance ({ratio})"

    return {
        "straight_arm": sa,
        "bent_arm": ba,
        "hybrid": counts["hybrid"],
        "none": counts["none"],
        "ratio": ratio,
        "is_balanced": is_balanced,
        "warning": warning,
    }


# ---------------------------
# UI descriptors
# ---------------------------
def build_active_filters(ctx: GenerationContext, config: EngineConfig = DEFAULT_CONFIG) -> List[Dict[str, str]]:
    filters = [{"type": "location", "label": "Location", "value": ctx.location}]

    _sweat, noise_limit, bypass = config.constraints_for(ctx.location)
    if bypass:
        filters.append({"type": "equipment", "label": "Park mode", "value": "facility mapping only"})
    else:
        sweat_limit = effective_sweat_limit(ctx, config)
        filters.append({"type": "location", "label": "Sweat limit", "value": "off" if sweat_limit is None else f"<= {sweat_limit}"})
        filters.append({"type": "location", "label": "Noise limit", "value": f"<= {noise_limit}"})

    if ctx.lifestyle_tags:
        filters.append({"type": "lifestyle", "label": "Lifestyle", "value": ", ".join(ctx.lifestyle_tags)})
    if ctx.injury_shield:
        filters.append({"type": "injury", "label": "Injury Shield", "value": f"{len(ctx.injury_shield)} protected areas"})

    if ctx.intent_mode == "blast":
        filters.append({"type": "intent", "label": "Blast", "value": f"rest {config.blast_rest_seconds}s, compound first"})
    elif ctx.intent_mode == "on_the_way":
        filters.append(
            {
                "type": "intent",
                "label": "On the way",
                "value": f"sweat <= {config.on_the_way_sweat_limit}, {config.on_the_way_max_duration} min max",
            }
        )
    elif ctx.intent_mode == "field":
        filters.append({"type": "intent", "label": "Field", "value": "no equipment, field ready"})

    filters.append(
        {"type": "mechanical", "label": "SA limit", "value": f"max {config.max_straight_arm_per_session} straight-arm"}
    )
    return filters


# ---------------------------
# Engine
# ---------------------------
def exclusion_reason(
    exercise: Any,
    ctx: GenerationContext,
    req: SelectionRequest,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Tuple[Optional[str], Optional[Dict[str, Any]], Optional[int]]:
    """Run the hard filters in order.

    Returns (reason, method, level): reason is None when the exercise is
    admissible, otherwise the first filter that rejected it.
    """
    if is_malformed(exercise):
        return "malformed", None, None
    if not passes_injury_shield(exercise, ctx.injury_shield):
        return "injury", None, None
    if not passes_environment(exercise, ctx, config):
        return "environment", None, None
    method = select_with_request(exercise, req, config)
    if method is None:
        return "unreachable", None, None
    if ctx.intent_mode == "field" and not passes_field_mode(exercise, method):
        return "field_mode", method, None
    level = effective_level(exercise, ctx)
    if not within_level_tolerance(exercise, level, config):
        return "level", method, level
    return None, method, level


def filter_and_score(
    exercises: List[Dict[str, Any]],
    ctx: GenerationContext,
    *,
    park: Optional[Dict[str, Any]] = None,
    equipment_definitions: Iterable[Dict[str, Any]] = (),
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    req = make_selection_request(
        ctx.location,
        park=park,
        equipment_definitions=equipment_definitions,
        user_gear=ctx.user_gear,
        available_equipment=ctx.available_equipment,
    )

    excluded_by = {stage: 0 for stage in FILTER_STAGES}
    counts = {"start": len(exercises)}
    scored: List[Dict[str, Any]] = []

    for exercise in exercises:
        reason, method, level = exclusion_reason(exercise, ctx, req, config)
        if reason is not None:
            excluded_by[reason] += 1
            if reason == "malformed":
                logger.debug("Skipping malformed exercise %r", exercise.get("id") if isinstance(exercise, dict) else exercise)
            continue
        scored.append(score_exercise(exercise, method, ctx, level, config))

    remaining = len(exercises)
    for stage in FILTER_STAGES:
        remaining -= excluded_by[stage]
        counts[f"after_{stage}"] = remaining

    balanced = apply_mechanical_balancing(scored, config)
    excluded_count = sum(excluded_by.values())
    logger.debug(
        "filter_and_score location=%s intent=%s: %d admissible, %d excluded %s",
        ctx.location,
        ctx.intent_mode,
        len(balanced),
        excluded_count,
        excluded_by,
    )

    return {
        "exercises": balanced,
        "excluded_count": excluded_count,
        "excluded_by": excluded_by,
        "trace": {"counts": counts},
        "active_filters": build_active_filters(ctx, config),
        "mechanical_balance": calculate_mechanical_balance(balanced, config),
        "ai_cue": AI_CUES.get(ctx.intent_mode),
        "adjusted_rest_seconds": config.blast_rest_seconds if ctx.intent_mode == "blast" else None,
    }


def describe_scored(scored: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-friendly summary of a scored exercise (drops the full catalog entry)."""
    exercise = scored["exercise"]
    method = scored["method"]
    return {
        "exercise_id": get_ex_id(exercise),
        "name": localized_name(exercise),
        "score": scored["score"],
        "reasoning": list(scored["reasoning"]),
        "mechanical_type": scored["mechanical_type"],
        "effective_level": scored["effective_level"],
        "method": {
            "location": method.get("location"),
            "required_gear_type": method.get("required_gear_type"),
            "selected_by": method.get("selected_by"),
            "main_video_url": method_video_url(method),
        },
    }
