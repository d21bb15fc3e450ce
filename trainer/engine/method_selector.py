"""Execution-method selector — which concrete variant of an exercise to show.

Strict priority cascade, first match wins, no blending across tiers:
  1. brand match      (park only: installed equipment + matching brand + brand video)
  2. fixed_equipment  (equipment id reachable at this location, generic video)
  3. user_gear        (gear id in the personal inventory)
  4. improvised       (any improvised method for the location)

Which of tiers 2-4 a location tries comes from ``EngineConfig.location_gear_priority``.
Returns ``None`` when nothing matches; callers drop the exercise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from trainer.engine.catalog_utils import (
    method_equipment_ids,
    method_gear_ids,
    norm_list_str,
    norm_str,
)
from trainer.engine.config import DEFAULT_CONFIG, EngineConfig


@dataclass(frozen=True)
class SelectionRequest:
    location: str
    park: Optional[Dict[str, Any]] = None
    brand_index: Dict[str, Dict[str, str]] = field(default_factory=dict)
    reachable_equipment: frozenset = frozenset()
    user_gear: frozenset = frozenset()


Resolver = Callable[[List[Dict[str, Any]], SelectionRequest], Optional[Dict[str, Any]]]


# ---------------------------
# Catalog indexes
# ---------------------------
def build_brand_index(equipment_definitions: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, str]]:
    """equipment_id -> {brand_name: video_url} (brands without a video are skipped)."""
    index: Dict[str, Dict[str, str]] = {}
    for definition in equipment_definitions or []:
        eq_id = norm_str(definition.get("id") or "")
        if not eq_id:
            continue
        brands = index.setdefault(eq_id, {})
        for brand in definition.get("brands") or []:
            name = norm_str(brand.get("brand_name") or "")
            video = brand.get("video_url")
            if name and video:
                brands[name] = video
    return index


def park_equipment(park: Optional[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """[(equipment_id, brand_name)] installed in the park."""
    if not park:
        return []
    out = []
    for item in park.get("gym_equipment") or []:
        eq_id = norm_str(item.get("equipment_id") or "")
        if eq_id:
            out.append((eq_id, norm_str(item.get("brand_name") or "")))
    return out


def methods_for_location(exercise: Dict[str, Any], location: str) -> List[Dict[str, Any]]:
    loc = norm_str(location)
    out = []
    for method in exercise.get("execution_methods") or []:
        if not isinstance(method, dict):
            continue
        if norm_str(method.get("location") or "") == loc or loc in norm_list_str(method.get("location_mapping")):
            out.append(method)
    return out


def _of_type(methods: Sequence[Dict[str, Any]], gear_type: str) -> List[Dict[str, Any]]:
    return [m for m in methods if norm_str(m.get("required_gear_type") or "") == gear_type]


def _annotate(method: Dict[str, Any], tier: str, **media_overrides: Any) -> Dict[str, Any]:
    selected = dict(method)
    if media_overrides:
        selected["media"] = {**(method.get("media") or {}), **media_overrides}
    selected["selected_by"] = tier
    return selected


# ---------------------------
# Tier resolvers
# ---------------------------
def resolve_brand_match(methods: List[Dict[str, Any]], req: SelectionRequest) -> Optional[Dict[str, Any]]:
    if req.location != "park" or not req.park:
        return None
    installed = park_equipment(req.park)
    for method in _of_type(methods, "fixed_equipment"):
        for eq_id in method_equipment_ids(method):
            for installed_id, brand_name in installed:
                if installed_id != eq_id or not brand_name:
                    continue
                video = req.brand_index.get(eq_id, {}).get(brand_name)
                if video:
                    return _annotate(method, "brand_match", main_video_url=video, brand_name=brand_name)
    return None


def resolve_fixed_equipment(methods: List[Dict[str, Any]], req: SelectionRequest) -> Optional[Dict[str, Any]]:
    for method in _of_type(methods, "fixed_equipment"):
        if any(eq_id in req.reachable_equipment for eq_id in method_equipment_ids(method)):
            return _annotate(method, "fixed_equipment")
    return None


def resolve_user_gear(methods: List[Dict[str, Any]], req: SelectionRequest) -> Optional[Dict[str, Any]]:
    for method in _of_type(methods, "user_gear"):
        if any(gear_id in req.user_gear for gear_id in method_gear_ids(method)):
            return _annotate(method, "user_gear")
    return None


def resolve_improvised(methods: List[Dict[str, Any]], req: SelectionRequest) -> Optional[Dict[str, Any]]:
    improvised = _of_type(methods, "improvised")
    if improvised:
        return _annotate(improvised[0], "improvised")
    return None


TIER_RESOLVERS: Dict[str, Resolver] = {
    "fixed_equipment": resolve_fixed_equipment,
    "user_gear": resolve_user_gear,
    "improvised": resolve_improvised,
}


def resolver_chain(location: str, config: EngineConfig = DEFAULT_CONFIG) -> List[Tuple[str, Resolver]]:
    chain: List[Tuple[str, Resolver]] = []
    if location == "park":
        chain.append(("brand_match", resolve_brand_match))
    for gear_type in config.gear_priority_for(location):
        resolver = TIER_RESOLVERS.get(gear_type)
        if resolver is not None:
            chain.append((gear_type, resolver))
    return chain


# ---------------------------
# Public API
# ---------------------------
def make_selection_request(
    location: str,
    *,
    park: Optional[Dict[str, Any]] = None,
    equipment_definitions: Iterable[Dict[str, Any]] = (),
    user_gear: Iterable[str] = (),
    available_equipment: Iterable[str] = (),
    brand_index: Optional[Dict[str, Dict[str, str]]] = None,
) -> SelectionRequest:
    """Precompute the lookups once per request, reused for every exercise."""
    reachable = {eq_id for eq_id, _ in park_equipment(park)}
    reachable.update(norm_list_str(list(available_equipment)))
    return SelectionRequest(
        location=norm_str(location),
        park=park,
        brand_index=brand_index if brand_index is not None else build_brand_index(equipment_definitions),
        reachable_equipment=frozenset(reachable),
        user_gear=frozenset(norm_list_str(list(user_gear))),
    )


def select_with_request(
    exercise: Dict[str, Any],
    req: SelectionRequest,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[Dict[str, Any]]:
    methods = methods_for_location(exercise, req.location)
    if not methods:
        return None
    for _tier, resolver in resolver_chain(req.location, config):
        selected = resolver(methods, req)
        if selected is not None:
            return selected
    return None


def select_execution_method(
    exercise: Dict[str, Any],
    location: str,
    *,
    park: Optional[Dict[str, Any]] = None,
    equipment_definitions: Iterable[Dict[str, Any]] = (),
    user_gear: Iterable[str] = (),
    available_equipment: Iterable[str] = (),
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[Dict[str, Any]]:
    """Best execution method for *exercise* at *location*, or None if unreachable.

    The returned dict is a copy of the catalog method with ``selected_by`` set
    to the tier that matched; a brand match also carries the brand video in
    ``media.main_video_url``.  Catalog entries are never mutated.
    """
    req = make_selection_request(
        location,
        park=park,
        equipment_definitions=equipment_definitions,
        user_gear=user_gear,
        available_equipment=available_equipment,
    )
    return select_with_request(exercise, req, config)
