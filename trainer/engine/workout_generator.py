"""Workout generator — ranked candidates + context -> finite, playable workout.

Steps:
  1. available time -> exercise-count band (+ accessory flag)
  2. selection: difficulty window, primaries only for short sessions,
     straight-arm deferral
  3. reactivation protocol (set count from level, difficulty, inactivity)
  4. reps / hold per exercise (effective level, authored defaults, guardrails)
  5. rest per exercise
  6. duration, calories, coins
  7. structure + time box

Pure given (scored, ctx, config, rng). With rng=None the lower bound of the
count band is used, so identical inputs give identical workouts.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Any, Dict, List, Optional, Tuple

from trainer.engine.catalog_utils import ex_tags, get_ex_id, localized_name, norm_str
from trainer.engine.config import DEFAULT_CONFIG, EngineConfig
from trainer.engine.context_builder import GenerationContext
from trainer.engine.contextual_engine import AI_CUES, calculate_mechanical_balance, is_compound
from trainer.engine.rest_calculator import compute_rest_seconds

logger = logging.getLogger(__name__)

PRIMARY_SHARE = 0.6
DIFFICULTY_WINDOW_FACTOR = 2
INTENSE_OVER_LEVEL_SHARE = 0.3
INTENSE_MAX_OVER_LEVEL = 2

EMOM_MAX_MINUTES = 20
EMOM_WORK_SECONDS = 40
EMOM_REST_SECONDS = 20
AMRAP_MAX_MINUTES = 15
CIRCUIT_MAX_EXERCISES = 3
CIRCUIT_MAX_MINUTES = 15

REACTIVATION_CUE = "Welcome back! Volume is reduced today so you can ease back in."


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------
# 1. Count band
# ---------------------------
def session_minutes(ctx: GenerationContext, config: EngineConfig = DEFAULT_CONFIG) -> int:
    if ctx.intent_mode == "on_the_way":
        return min(ctx.available_time, config.on_the_way_max_duration)
    return ctx.available_time


def count_band(minutes: int, config: EngineConfig = DEFAULT_CONFIG) -> Tuple[int, int, bool]:
    """(min_count, max_count, include_accessories) for a session length."""
    for max_minutes, lo, hi, accessories in config.duration_bands:
        if minutes <= max_minutes:
            return lo, hi, accessories
    _max, lo, hi, accessories = config.duration_bands[-1]
    return lo, hi, accessories


def target_count(minutes: int, config: EngineConfig = DEFAULT_CONFIG, rng: Optional[random.Random] = None) -> int:
    lo, hi, _accessories = count_band(minutes, config)
    if rng is None:
        return lo
    return rng.randint(lo, hi)


# ---------------------------
# 2. Selection
# ---------------------------
def is_primary(exercise: Dict[str, Any]) -> bool:
    """Skill or compound work; everything else counts as accessory."""
    if "skill" in ex_tags(exercise):
        return True
    if norm_str(exercise.get("movement_type") or "") == "isolation" or "isolation" in ex_tags(exercise):
        return False
    if norm_str(exercise.get("primary_muscle") or "") == "full_body":
        return True
    return is_compound(exercise)


def level_diff(item: Dict[str, Any]) -> int:
    """Exercise level minus the user's effective level for it."""
    level = int(item["effective_level"])
    return int(item["exercise"].get("recommended_level") or level) - level


def select_for_difficulty(scored: List[Dict[str, Any]], count: int, difficulty: int = 2) -> List[Dict[str, Any]]:
    """Difficulty window over the ranked pool, at most *count* candidates.

    Easy keeps work below the user's level (at level when nothing sits below),
    normal keeps work within one level, intense reserves a few slots for work
    one or two levels above and fills the rest at or below level.
    """
    if difficulty == 1:
        below = [s for s in scored if level_diff(s) <= -1]
        if not below:
            below = [s for s in scored if level_diff(s) == 0]
        return below[:count]
    if difficulty == 3:
        over_count = min(INTENSE_MAX_OVER_LEVEL, int(count * INTENSE_OVER_LEVEL_SHARE))
        over = [s for s in scored if 1 <= level_diff(s) <= 2][:over_count]
        at_or_below = [s for s in scored if level_diff(s) <= 0][: count - len(over)]
        return over + at_or_below
    return [s for s in scored if abs(level_diff(s)) <= 1][:count]


def _dedupe(scored: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out = []
    for item in scored:
        ex_id = norm_str(get_ex_id(item["exercise"]))
        if ex_id in seen:
            continue
        seen.add(ex_id)
        out.append(item)
    return out


def candidate_order(scored: List[Dict[str, Any]], count: int, include_accessories: bool) -> List[Dict[str, Any]]:
    """Order in which candidates are offered to the selector.

    Without accessories only primaries are offered. With accessories, about
    60% of the slots go to primaries first, then the remaining candidates in
    their incoming order.
    """
    primaries = [s for s in scored if is_primary(s["exercise"])]
    if not include_accessories:
        return primaries

    quota = math.ceil(count * PRIMARY_SHARE)
    head = primaries[:quota]
    head_ids = {id(s) for s in head}
    return head + [s for s in scored if id(s) not in head_ids]


def select_exercises(
    scored: List[Dict[str, Any]],
    count: int,
    include_accessories: bool,
    config: EngineConfig = DEFAULT_CONFIG,
    difficulty: int = 2,
) -> List[Dict[str, Any]]:
    """Pick *count* candidates, keeping straight-arm work at the session limit.

    Short sessions only consider primaries. Candidates then pass through the
    difficulty window (twice *count* wide).
    Straight-arm candidates beyond ``max_straight_arm_per_session`` are only
    used once every other admissible candidate is already in. The result keeps
    the engine's score order.
    """
    pool = _dedupe(scored)
    if not include_accessories:
        pool = [s for s in pool if is_primary(s["exercise"])]
    window = select_for_difficulty(pool, count * DIFFICULTY_WINDOW_FACTOR, difficulty)
    ordered = candidate_order(window, count, include_accessories)

    picked: List[Dict[str, Any]] = []
    deferred: List[Dict[str, Any]] = []
    straight_arm = 0
    for item in ordered:
        if len(picked) >= count:
            break
        if item["mechanical_type"] == "straight_arm":
            if straight_arm >= config.max_straight_arm_per_session:
                deferred.append(item)
                continue
            straight_arm += 1
        picked.append(item)

    for item in deferred:
        if len(picked) >= count:
            break
        picked.append(item)

    rank = {id(item): idx for idx, item in enumerate(pool)}
    picked.sort(key=lambda item: rank[id(item)])
    return picked


# ---------------------------
# 3. Reactivation protocol
# ---------------------------
def compute_volume_adjustment(
    level: int,
    days_inactive: int,
    difficulty: int = 2,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    base = config.base_sets(level)
    sets = base
    reason = None

    if difficulty == 1 and sets > config.min_sets:
        sets = max(config.min_sets, sets - 1)
        reason = "easy_difficulty"

    badge = None
    if days_inactive > config.inactivity_threshold_days:
        reduced = max(config.min_sets, sets - round_half_up(sets * config.inactivity_volume_reduction))
        if reduced < sets:
            sets = reduced
            reason = "inactivity"
            badge = f"Reactivation: {days_inactive} days off"

    reduction_percent = round_half_up((base - sets) / base * 100) if base else 0
    return {
        "reason": reason,
        "original_sets": base,
        "adjusted_sets": sets,
        "reduction_percent": reduction_percent,
        "badge": badge if reduction_percent else None,
    }


# ---------------------------
# 4. Reps / hold
# ---------------------------
def clamp_hold_seconds(
    exercise: Dict[str, Any],
    hold: int,
    level: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> int:
    tags = ex_tags(exercise)
    if "handstand" in tags:
        hold = min(hold, config.handstand_max_hold)
    elif norm_str(exercise.get("mechanical_type") or "") == "straight_arm":
        hold = min(hold, config.straight_arm_max_hold)
    if norm_str(exercise.get("movement_group") or "") == "core":
        hold = min(hold, 30 + 2 * level)
    return max(hold, config.min_hold_seconds)


def assign_reps_or_hold(
    exercise: Dict[str, Any],
    level: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Tuple[Optional[int], Optional[int]]:
    """(reps, hold_seconds); exactly one of them is set."""
    authored = exercise.get("volume_defaults") or {}
    base_reps, base_hold = config.base_reps(level)
    if exercise.get("is_time_based"):
        hold = int(authored.get("hold_seconds") or base_hold)
        return None, clamp_hold_seconds(exercise, hold, level, config)
    return int(authored.get("reps") or base_reps), None


# ---------------------------
# 6. Stats
# ---------------------------
def exercise_seconds(entry: Dict[str, Any], config: EngineConfig = DEFAULT_CONFIG) -> int:
    if entry["is_time_based"]:
        work = entry["hold_seconds"]
    else:
        work = entry["reps"] * config.seconds_per_rep
    if norm_str(entry["exercise"].get("symmetry") or "") == "unilateral":
        work *= 2
    sets = entry["sets"]
    return work * sets + entry["rest_seconds"] * max(0, sets - 1)


def estimate_duration_minutes(entries: List[Dict[str, Any]], config: EngineConfig = DEFAULT_CONFIG) -> int:
    if not entries:
        return 0
    total = sum(exercise_seconds(e, config) for e in entries)
    total += config.transition_seconds * (len(entries) - 1)
    return int(math.ceil(total / 60))


def compute_stats(
    entries: List[Dict[str, Any]],
    minutes: int,
    ctx: GenerationContext,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    weight = ctx.user_weight or config.default_user_weight
    met = config.met_by_difficulty.get(ctx.difficulty, config.met_by_difficulty[2])
    calories = round_half_up(met * config.met_factor * weight * minutes)
    if entries:
        calories = max(calories, config.min_workout_calories)
    multiplier = config.coin_multiplier_by_difficulty.get(ctx.difficulty, 1.0)

    return {
        "calories": calories,
        "coins": round_half_up(calories * multiplier),
        "total_reps": sum((e["reps"] or 0) * e["sets"] for e in entries),
        "total_hold_seconds": sum((e["hold_seconds"] or 0) * e["sets"] for e in entries),
        "difficulty_multiplier": multiplier,
    }


# ---------------------------
# 7. Structure
# ---------------------------
def choose_structure(
    ctx: GenerationContext,
    n_exercises: int,
    minutes: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Tuple[str, Optional[Dict[str, Any]]]:
    if ctx.intent_mode == "blast":
        if minutes <= AMRAP_MAX_MINUTES:
            return "amrap", {"type": "amrap", "duration_minutes": min(minutes, AMRAP_MAX_MINUTES)}
        return "emom", {
            "type": "emom",
            "duration_minutes": min(minutes, EMOM_MAX_MINUTES),
            "work_seconds": EMOM_WORK_SECONDS,
            "rest_seconds": EMOM_REST_SECONDS,
        }
    if n_exercises <= CIRCUIT_MAX_EXERCISES and minutes <= CIRCUIT_MAX_MINUTES:
        return "circuit", None
    return "standard", None


def workout_title(ctx: GenerationContext) -> str:
    if ctx.intent_mode == "blast":
        return "Blast Workout"
    if ctx.intent_mode == "on_the_way":
        return "On-the-Way Workout"
    if ctx.intent_mode == "field":
        return "Field Workout"
    return f"{ctx.location.capitalize()} Workout"


def build_entry(
    item: Dict[str, Any],
    priority: int,
    sets: int,
    ctx: GenerationContext,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    exercise = item["exercise"]
    level = item["effective_level"]
    reps, hold = assign_reps_or_hold(exercise, level, config)
    is_time_based = hold is not None
    rest = compute_rest_seconds(
        is_time_based,
        hold if is_time_based else reps,
        ctx.intent_mode,
        exercise.get("default_rest_seconds"),
        config,
    )
    return {
        "exercise_id": get_ex_id(exercise),
        "name": localized_name(exercise),
        "exercise": exercise,
        "method": item["method"],
        "mechanical_type": item["mechanical_type"],
        "priority": priority,
        "sets": sets,
        "reps": reps,
        "hold_seconds": hold,
        "is_time_based": is_time_based,
        "rest_seconds": rest,
        "score": item["score"],
        "effective_level": level,
        "reasoning": list(item["reasoning"]),
    }


def generate_workout(
    scored: List[Dict[str, Any]],
    ctx: GenerationContext,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    minutes = session_minutes(ctx, config)
    lo, hi, include_accessories = count_band(minutes, config)
    count = target_count(minutes, config, rng)

    selected = select_exercises(scored, count, include_accessories, config, ctx.difficulty)
    volume = compute_volume_adjustment(ctx.user_level, ctx.days_inactive, ctx.difficulty, config)
    sets = volume["adjusted_sets"]

    entries = [build_entry(item, idx + 1, sets, ctx, config) for idx, item in enumerate(selected)]

    # time box: drop from the tail, never below one exercise
    estimated = estimate_duration_minutes(entries, config)
    while len(entries) > 1 and estimated > minutes:
        dropped = entries.pop()
        logger.debug("Time box %d min: dropping %s (estimated %d min)", minutes, dropped["exercise_id"], estimated)
        estimated = estimate_duration_minutes(entries, config)

    structure, blast_details = choose_structure(ctx, len(entries), minutes, config)
    balance = calculate_mechanical_balance(entries, config)
    stats = compute_stats(entries, estimated, ctx, config)

    ai_cue = AI_CUES.get(ctx.intent_mode)
    if volume["reason"] == "inactivity":
        ai_cue = REACTIVATION_CUE

    return {
        "title": workout_title(ctx),
        "description": f"{len(entries)} exercises, about {estimated} min, {structure}",
        "ai_cue": ai_cue,
        "exercises": entries,
        "volume_adjustment": volume,
        "mechanical_balance": balance,
        "structure": structure,
        "blast_mode": blast_details,
        "difficulty": ctx.difficulty,
        "estimated_duration": estimated,
        "stats": stats,
        "trace": {
            "counts": {
                "candidates": len(scored),
                "band_min": lo,
                "band_max": hi,
                "target": count,
                "selected": len(selected),
                "after_time_box": len(entries),
            },
            "include_accessories": include_accessories,
            "session_minutes": minutes,
        },
    }
