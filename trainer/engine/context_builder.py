"""Generation context — the per-request facts the engine decides on.

Built once per recommendation from the raw user profile:
- days since the last session (reactivation protocol input)
- injury tags (hard safety filter)
- lifestyle persona mapping (soft scoring)
- personal gear inventory (execution-method selection)
- a per-movement-group level lookup ("shadow tracking")

Invalid numeric input is rejected here, before anything reaches the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from trainer.engine.catalog_utils import norm_list_str, norm_str, parse_date
from trainer.engine.config import (
    DEFAULT_CONFIG,
    INTENT_MODES,
    LIFESTYLE_PERSONAS,
    LOCATIONS,
    EngineConfig,
)

MAX_EXTRA_LIFESTYLES = 3

LevelLookup = Callable[..., int]


class ContextError(ValueError):
    pass


def make_level_lookup(
    domain_levels: Mapping[str, int],
    config: EngineConfig = DEFAULT_CONFIG,
) -> LevelLookup:
    """Return ``level_for(movement_group, primary_muscle=None) -> int``.

    push/pull groups read upper_body, squat/hinge read lower_body, core reads
    core, isolation reads the domain of its primary muscle.  Anything the table
    does not resolve (or a domain the user has no level for) falls back to
    full_body, then upper_body, then 1.
    """
    levels = {norm_str(k): int(v) for k, v in (domain_levels or {}).items() if v is not None}

    def level_for(movement_group: Any, primary_muscle: Any = None) -> int:
        group = norm_str(movement_group) if movement_group else ""
        domain = config.movement_group_domain.get(group)
        if group == "isolation" and primary_muscle:
            domain = config.muscle_domain.get(norm_str(primary_muscle))
        if domain and domain in levels:
            return levels[domain]
        for fallback in config.level_fallback_domains:
            if fallback in levels:
                return levels[fallback]
        return 1

    return level_for


@dataclass(frozen=True)
class GenerationContext:
    location: str
    available_time: int
    days_inactive: int = 0
    intent_mode: str = "normal"
    persona: Optional[str] = None
    lifestyles: Tuple[str, ...] = ()
    injury_shield: FrozenSet[str] = frozenset()
    user_level: int = 1
    user_weight: Optional[float] = None
    user_gear: Tuple[str, ...] = ()
    available_equipment: Tuple[str, ...] = ()
    park_id: Optional[str] = None
    difficulty: int = 2
    level_for: LevelLookup = field(default=None, compare=False, repr=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.location not in LOCATIONS:
            raise ContextError(f"Unknown location '{self.location}'. Allowed: {list(LOCATIONS)}")
        if self.intent_mode not in INTENT_MODES:
            raise ContextError(f"Unknown intent_mode '{self.intent_mode}'. Allowed: {list(INTENT_MODES)}")
        if self.available_time is None or self.available_time <= 0:
            raise ContextError(f"available_time must be > 0 minutes, got {self.available_time}")
        if self.days_inactive is None or self.days_inactive < 0:
            raise ContextError(f"days_inactive must be >= 0, got {self.days_inactive}")
        if self.difficulty not in (1, 2, 3):
            raise ContextError(f"difficulty must be 1, 2 or 3, got {self.difficulty}")
        if self.user_weight is not None and self.user_weight <= 0:
            raise ContextError(f"user_weight must be positive, got {self.user_weight}")
        if len(self.lifestyles) > MAX_EXTRA_LIFESTYLES:
            raise ContextError(f"At most {MAX_EXTRA_LIFESTYLES} lifestyle tags, got {len(self.lifestyles)}")
        if self.level_for is None:
            fixed = max(1, int(self.user_level))
            object.__setattr__(self, "level_for", lambda *_args, **_kw: fixed)

    @property
    def lifestyle_tags(self) -> Tuple[str, ...]:
        """Persona plus extra lifestyle tags, deduplicated in order."""
        tags = ([self.persona] if self.persona else []) + list(self.lifestyles)
        return tuple(dict.fromkeys(tags))


# ---------------------------
# Profile -> context
# ---------------------------
def compute_days_inactive(last_active: Any, today: Optional[date] = None) -> int:
    last = parse_date(last_active)
    if last is None:
        return 0
    today = today or date.today()
    return max(0, (today - last).days)


def infer_lifestyles(profile: Dict[str, Any]) -> Tuple[Optional[str], Tuple[str, ...]]:
    """Map the profile to (persona, extra lifestyle tags).

    Explicit ``lifestyle.personas`` win; the first one is the persona.  Without
    them, tags are inferred from the main goal, commute and schedule.
    """
    lifestyle = profile.get("lifestyle") or {}
    explicit = [p for p in norm_list_str(lifestyle.get("personas") or profile.get("personas")) if p in LIFESTYLE_PERSONAS]
    if explicit:
        explicit = list(dict.fromkeys(explicit))
        return explicit[0], tuple(explicit[1 : 1 + MAX_EXTRA_LIFESTYLES])

    inferred = []
    core = profile.get("core") or {}
    if norm_str(core.get("main_goal") or "") == "healthy_lifestyle":
        inferred.append("athlete")
    commute = norm_str((lifestyle.get("commute") or {}).get("method") or "")
    if commute in {"car", "bus", "train"}:
        inferred.append("office_worker")
    if lifestyle.get("schedule_days"):
        inferred.extend(["student", "parent"])

    inferred = list(dict.fromkeys(inferred))
    if not inferred:
        return None, ()
    return inferred[0], tuple(inferred[1 : 1 + MAX_EXTRA_LIFESTYLES])


def collect_user_gear(profile: Dict[str, Any]) -> Tuple[str, ...]:
    equipment = profile.get("equipment") or {}
    gear = []
    for key in ("home", "office", "outdoor"):
        gear.extend(norm_list_str(equipment.get(key)))
    return tuple(dict.fromkeys(gear))


def collect_domain_levels(profile: Dict[str, Any]) -> Dict[str, int]:
    """Domain levels with hidden sub-levels of the active program taking precedence."""
    progression = profile.get("progression") or {}
    levels: Dict[str, int] = {}
    for domain, entry in (progression.get("domains") or {}).items():
        if isinstance(entry, dict):
            value = entry.get("current_level")
        else:
            value = entry
        if value is not None:
            levels[norm_str(domain)] = int(value)

    sub_levels = progression.get("sub_levels") or {}
    for domain in ("upper_body", "lower_body", "core"):
        value = sub_levels.get(f"{domain}_level")
        if value is not None:
            levels[domain] = int(value)
    return levels


def display_level(domain_levels: Mapping[str, int]) -> int:
    """Single displayed level behind the shadow levels.

    Beginners (average <= 5) see their lowest level, others the rounded average.
    """
    values = [v for v in domain_levels.values() if v is not None]
    if not values:
        return 1
    average = int(round(sum(values) / len(values)))
    return min(values) if average <= 5 else average


def build_generation_context(
    user_profile: Dict[str, Any],
    *,
    today: Optional[date] = None,
    overrides: Optional[Dict[str, Any]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> GenerationContext:
    """Build a GenerationContext from a raw user profile.

    *overrides* carries the per-request choices (location, intent_mode,
    available_time, park_id, difficulty, available_equipment) that the
    "adjust workout" control changes between regenerations.
    """
    profile = user_profile or {}
    opts = dict(profile.get("context") or {})
    opts.update({k: v for k, v in (overrides or {}).items() if v is not None})

    health = profile.get("health") or {}
    injuries = frozenset(norm_list_str(health.get("injuries")))

    domain_levels = collect_domain_levels(profile)
    persona, lifestyles = infer_lifestyles(profile)

    core = profile.get("core") or {}
    weight = opts.get("user_weight", core.get("weight_kg"))

    days_inactive = opts.get("days_inactive")
    if days_inactive is None:
        last_active = (profile.get("activity") or {}).get("last_active_date")
        days_inactive = compute_days_inactive(last_active, today=today)

    try:
        available_time = int(opts.get("available_time", 30))
        difficulty = int(opts.get("difficulty", 2))
        days_inactive = int(days_inactive)
        user_weight = float(weight) if weight is not None else None
    except (TypeError, ValueError) as exc:
        raise ContextError(f"Invalid numeric context value: {exc}") from exc

    return GenerationContext(
        location=norm_str(opts.get("location") or "home"),
        available_time=available_time,
        days_inactive=days_inactive,
        intent_mode=norm_str(opts.get("intent_mode") or "normal"),
        persona=persona,
        lifestyles=lifestyles,
        injury_shield=injuries,
        user_level=display_level(domain_levels),
        user_weight=user_weight,
        user_gear=collect_user_gear(profile),
        available_equipment=tuple(norm_list_str(opts.get("available_equipment"))),
        park_id=opts.get("park_id"),
        difficulty=difficulty,
        level_for=make_level_lookup(domain_levels, config),
    )
