"""Workout router — generate, inspect candidates, swap an exercise."""

from __future__ import annotations

import random
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, HTTPException

from trainer.api import deps
from trainer.api.models import ContextOverrides, GenerateRequest, SwapRequest
from trainer.engine.catalog_loader import find_by_id
from trainer.engine.catalog_utils import parse_date
from trainer.engine.context_builder import ContextError, GenerationContext, build_generation_context
from trainer.engine.contextual_engine import describe_scored, filter_and_score
from trainer.engine.recommend import UnknownParkError, recommend_workout
from trainer.engine.swap_engine import SwapError, apply_permanent_swap, suggest_swap

router = APIRouter(prefix="/api/workout", tags=["workout"])


def _today(raw: Optional[str]):
    if raw is None:
        return None
    parsed = parse_date(raw)
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Invalid date: {raw}")
    return parsed


def _build_context(
    profile: Optional[Dict[str, Any]],
    context: ContextOverrides,
    today: Optional[str],
) -> Tuple[GenerationContext, Optional[Dict[str, Any]]]:
    profile = profile if profile is not None else deps.load_profile()
    try:
        ctx = build_generation_context(
            profile,
            today=_today(today),
            overrides=context.model_dump(exclude_none=True),
            config=deps.load_engine_config(),
        )
    except ContextError as e:
        raise HTTPException(status_code=422, detail=str(e))

    park = None
    if ctx.park_id:
        park = deps.get_park_by_id(ctx.park_id)
        if park is None:
            raise HTTPException(status_code=404, detail=f"Park not found: {ctx.park_id}")
    return ctx, park


@router.post("/generate")
def generate(req: GenerateRequest):
    """Run the full pipeline and return a workout (or a no_candidates result)."""
    profile = req.profile if req.profile is not None else deps.load_profile()
    try:
        return recommend_workout(
            profile,
            deps.get_exercise_catalog(),
            equipment_definitions=deps.get_fixed_equipment_definitions(),
            parks=deps.get_parks(),
            today=_today(req.today),
            overrides=req.context.model_dump(exclude_none=True),
            config=deps.load_engine_config(),
            rng=random.Random(req.seed) if req.seed is not None else None,
        )
    except ContextError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except UnknownParkError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/filter")
def filter_candidates(req: GenerateRequest):
    """Engine-only view: the ranked, explained candidates for a context."""
    ctx, park = _build_context(req.profile, req.context, req.today)
    result = filter_and_score(
        deps.get_exercise_catalog(),
        ctx,
        park=park,
        equipment_definitions=deps.get_fixed_equipment_definitions(),
        config=deps.load_engine_config(),
    )
    return {
        "candidates": [describe_scored(s) for s in result["exercises"]],
        "count": len(result["exercises"]),
        "excluded_count": result["excluded_count"],
        "excluded_by": result["excluded_by"],
        "trace": result["trace"],
        "active_filters": result["active_filters"],
        "mechanical_balance": result["mechanical_balance"],
        "ai_cue": result["ai_cue"],
        "adjusted_rest_seconds": result["adjusted_rest_seconds"],
    }


@router.post("/swap")
def swap(req: SwapRequest):
    """Suggest replacements for one exercise; permanent swaps return the updated tracking."""
    exercises = deps.get_exercise_catalog()
    exercise = find_by_id(exercises, req.exercise_id)
    if exercise is None:
        raise HTTPException(status_code=404, detail=f"Exercise not found: {req.exercise_id}")

    ctx, park = _build_context(req.profile, req.context, req.today)
    config = deps.load_engine_config()
    try:
        result = suggest_swap(
            {"exercise": exercise, "method": req.current_method},
            req.reason,
            exercises,
            ctx,
            tracking=req.tracking,
            injured_area=req.injured_area,
            park=park,
            equipment_definitions=deps.get_fixed_equipment_definitions(),
            config=config,
        )
    except SwapError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if result["persistence"] == "permanent":
        result["tracking"] = apply_permanent_swap(
            req.tracking,
            exercise["movement_group"],
            result["level_adjustment"],
            req.reason,
            today=_today(req.today),
            base_level=ctx.level_for(exercise.get("movement_group"), exercise.get("primary_muscle")),
        )
    return result
