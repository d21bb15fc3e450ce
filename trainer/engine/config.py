"""Engine constants — thresholds, tier tables and per-location limits.

Everything the selector, the contextual engine and the generator tune on lives
in one frozen ``EngineConfig``.  Callers pass it explicitly; tests derive
variants with ``dataclasses.replace`` instead of patching module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Tuple

LOCATIONS: Tuple[str, ...] = ("home", "park", "street", "office", "school", "gym")
INTENT_MODES: Tuple[str, ...] = ("normal", "on_the_way", "blast", "field")
GEAR_TYPES: Tuple[str, ...] = ("fixed_equipment", "user_gear", "improvised")
MECHANICAL_TYPES: Tuple[str, ...] = ("straight_arm", "bent_arm", "hybrid", "none")
MOVEMENT_GROUPS: Tuple[str, ...] = (
    "squat",
    "hinge",
    "horizontal_push",
    "vertical_push",
    "horizontal_pull",
    "vertical_pull",
    "core",
    "isolation",
)
LIFESTYLE_PERSONAS: Tuple[str, ...] = (
    "parent",
    "student",
    "office_worker",
    "home_worker",
    "senior",
    "athlete",
)

# (sweat_limit, noise_limit, bypass_limits)
_LOCATION_CONSTRAINTS: Dict[str, Tuple[int, int, bool]] = {
    "office": (1, 1, False),
    "school": (1, 1, False),
    "home": (3, 2, False),
    "gym": (3, 3, False),
    "street": (3, 3, False),
    "park": (3, 3, True),
}

# Gear-type order tried by the selector after the brand tier.
_LOCATION_GEAR_PRIORITY: Dict[str, Tuple[str, ...]] = {
    "home": ("user_gear", "improvised"),
    "office": ("user_gear", "improvised"),
    "school": ("user_gear", "improvised"),
    "park": ("fixed_equipment", "user_gear", "improvised"),
    "gym": ("fixed_equipment", "user_gear", "improvised"),
    "street": ("fixed_equipment", "user_gear", "improvised"),
}

# (max_minutes, min_count, max_count, include_accessories); last band is open-ended.
_DURATION_BANDS: Tuple[Tuple[int, int, int, bool], ...] = (
    (10, 2, 3, False),
    (30, 4, 5, False),
    (45, 6, 8, True),
    (10_000, 7, 10, True),
)

# (max_level, sets)
_BASE_SETS_BY_LEVEL: Tuple[Tuple[int, int], ...] = (
    (5, 2),
    (12, 3),
    (20, 4),
    (10_000, 5),
)

# level -> (reps, hold_seconds); levels above the table clamp to the last row.
_BASE_REPS_BY_LEVEL: Tuple[Tuple[int, int], ...] = (
    (6, 15), (6, 18), (7, 20), (7, 22), (8, 25),
    (8, 28), (9, 30), (9, 32), (10, 35), (10, 38),
    (11, 40), (11, 42), (12, 45), (12, 47), (13, 50),
    (13, 52), (14, 54), (14, 56), (15, 58), (15, 60),
    (16, 60), (16, 60), (17, 60), (17, 60), (18, 60),
)

# (max_hold_seconds, rest_seconds)
_HOLD_REST_TIERS: Tuple[Tuple[int, int], ...] = ((10, 180), (30, 120))
_HOLD_REST_DEFAULT = 90
# (max_reps, rest_seconds)
_REP_REST_TIERS: Tuple[Tuple[int, int], ...] = ((5, 180), (12, 90))
_REP_REST_DEFAULT = 45

_MET_BY_DIFFICULTY: Dict[int, float] = {1: 3.5, 2: 6.0, 3: 8.0}
_COIN_MULTIPLIER_BY_DIFFICULTY: Dict[int, float] = {1: 0.8, 2: 1.0, 3: 1.5}

# Movement group -> shadow-level domain.  Isolation resolves through the muscle map.
_MOVEMENT_GROUP_DOMAIN: Dict[str, str] = {
    "horizontal_push": "upper_body",
    "vertical_push": "upper_body",
    "horizontal_pull": "upper_body",
    "vertical_pull": "upper_body",
    "squat": "lower_body",
    "hinge": "lower_body",
    "core": "core",
}

_MUSCLE_DOMAIN: Dict[str, str] = {
    "chest": "upper_body",
    "back": "upper_body",
    "lats": "upper_body",
    "shoulders": "upper_body",
    "biceps": "upper_body",
    "triceps": "upper_body",
    "forearms": "upper_body",
    "traps": "upper_body",
    "quads": "lower_body",
    "hamstrings": "lower_body",
    "glutes": "lower_body",
    "calves": "lower_body",
    "adductors": "lower_body",
    "abs": "core",
    "obliques": "core",
    "lower_back": "core",
    "core": "core",
}

_LEVEL_FALLBACK_DOMAINS: Tuple[str, ...] = ("full_body", "upper_body")


@dataclass(frozen=True)
class EngineConfig:
    level_tolerance: int = 3
    level_proximity_max: int = 3
    lifestyle_match_points: int = 2
    blast_compound_bonus: int = 3
    video_bonus: int = 1

    max_straight_arm_per_session: int = 2
    straight_arm_penalty: int = 5
    max_balance_gap: int = 2

    inactivity_threshold_days: int = 3
    inactivity_volume_reduction: float = 0.40
    min_sets: int = 2

    blast_rest_seconds: int = 30
    on_the_way_sweat_limit: int = 1
    on_the_way_max_duration: int = 15

    transition_seconds: int = 30
    seconds_per_rep: int = 3
    default_user_weight: float = 70.0
    min_workout_calories: int = 50
    met_factor: float = 0.0175

    straight_arm_max_hold: int = 15
    handstand_max_hold: int = 60
    min_hold_seconds: int = 5

    swap_too_hard_threshold: int = 2

    location_constraints: Mapping[str, Tuple[int, int, bool]] = field(
        default_factory=lambda: dict(_LOCATION_CONSTRAINTS)
    )
    location_gear_priority: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(_LOCATION_GEAR_PRIORITY)
    )
    duration_bands: Tuple[Tuple[int, int, int, bool], ...] = _DURATION_BANDS
    base_sets_by_level: Tuple[Tuple[int, int], ...] = _BASE_SETS_BY_LEVEL
    base_reps_by_level: Tuple[Tuple[int, int], ...] = _BASE_REPS_BY_LEVEL
    hold_rest_tiers: Tuple[Tuple[int, int], ...] = _HOLD_REST_TIERS
    hold_rest_default: int = _HOLD_REST_DEFAULT
    rep_rest_tiers: Tuple[Tuple[int, int], ...] = _REP_REST_TIERS
    rep_rest_default: int = _REP_REST_DEFAULT
    met_by_difficulty: Mapping[int, float] = field(default_factory=lambda: dict(_MET_BY_DIFFICULTY))
    coin_multiplier_by_difficulty: Mapping[int, float] = field(
        default_factory=lambda: dict(_COIN_MULTIPLIER_BY_DIFFICULTY)
    )
    movement_group_domain: Mapping[str, str] = field(default_factory=lambda: dict(_MOVEMENT_GROUP_DOMAIN))
    muscle_domain: Mapping[str, str] = field(default_factory=lambda: dict(_MUSCLE_DOMAIN))
    level_fallback_domains: Tuple[str, ...] = _LEVEL_FALLBACK_DOMAINS

    def constraints_for(self, location: str) -> Tuple[int, int, bool]:
        return self.location_constraints.get(location) or self.location_constraints["home"]

    def gear_priority_for(self, location: str) -> Tuple[str, ...]:
        return tuple(self.location_gear_priority.get(location) or ("user_gear", "improvised"))

    def base_sets(self, level: int) -> int:
        for max_level, sets in self.base_sets_by_level:
            if level <= max_level:
                return sets
        return self.base_sets_by_level[-1][1]

    def base_reps(self, level: int) -> Tuple[int, int]:
        """Return (reps, hold_seconds) for a level, clamped to the table."""
        idx = min(max(int(level), 1), len(self.base_reps_by_level)) - 1
        return self.base_reps_by_level[idx]


DEFAULT_CONFIG = EngineConfig()

_SCALAR_TYPES = (int, float, str, bool)


def config_from_overrides(overrides: Dict[str, Any], base: EngineConfig = DEFAULT_CONFIG) -> EngineConfig:
    """Apply scalar overrides (e.g. from engine_config.json) on top of *base*.

    Only scalar fields can be overridden this way; unknown keys raise ValueError
    so a typo in the override file does not silently fall back to defaults.
    """
    scalar_fields = {f.name for f in fields(EngineConfig) if isinstance(getattr(base, f.name), _SCALAR_TYPES)}
    unknown = sorted(set(overrides) - scalar_fields)
    if unknown:
        raise ValueError(f"Unknown engine config keys: {unknown}. Allowed: {sorted(scalar_fields)}")
    coerced: Dict[str, Any] = {}
    for key, value in overrides.items():
        current = getattr(base, key)
        coerced[key] = type(current)(value)
    return replace(base, **coerced)
