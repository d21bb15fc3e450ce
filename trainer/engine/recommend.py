"""Recommendation pipeline: profile -> context -> filter/score -> workout."""

from __future__ import annotations

import logging
import random
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from trainer.engine.catalog_loader import find_by_id
from trainer.engine.config import DEFAULT_CONFIG, EngineConfig
from trainer.engine.context_builder import build_generation_context
from trainer.engine.contextual_engine import describe_scored, filter_and_score
from trainer.engine.workout_generator import generate_workout

logger = logging.getLogger(__name__)

NO_CANDIDATES_MESSAGE = "No safe exercise found for this context. Try another location or intent."


class UnknownParkError(LookupError):
    pass


def recommend_workout(
    user_profile: Dict[str, Any],
    exercises: List[Dict[str, Any]],
    *,
    equipment_definitions: Iterable[Dict[str, Any]] = (),
    parks: Iterable[Dict[str, Any]] = (),
    today: Optional[date] = None,
    overrides: Optional[Dict[str, Any]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Run the whole pipeline once.

    Raises ContextError for invalid context input and UnknownParkError when a
    park_id is given that is not in *parks*. An empty admissible set is not an
    error: it comes back as ``status == "no_candidates"``.
    """
    ctx = build_generation_context(user_profile, today=today, overrides=overrides, config=config)

    park = None
    if ctx.park_id:
        park = find_by_id(list(parks), ctx.park_id)
        if park is None:
            raise UnknownParkError(f"Unknown park_id: {ctx.park_id}")

    equipment_definitions = list(equipment_definitions)
    engine = filter_and_score(
        exercises,
        ctx,
        park=park,
        equipment_definitions=equipment_definitions,
        config=config,
    )

    engine_summary = {
        "excluded_count": engine["excluded_count"],
        "excluded_by": engine["excluded_by"],
        "trace": engine["trace"],
        "active_filters": engine["active_filters"],
        "mechanical_balance": engine["mechanical_balance"],
        "adjusted_rest_seconds": engine["adjusted_rest_seconds"],
        "candidates": [describe_scored(s) for s in engine["exercises"]],
    }

    if not engine["exercises"]:
        logger.info(
            "No candidates for location=%s intent=%s (excluded %d)",
            ctx.location,
            ctx.intent_mode,
            engine["excluded_count"],
        )
        return {
            "status": "no_candidates",
            "message": NO_CANDIDATES_MESSAGE,
            "excluded_count": engine["excluded_count"],
            "excluded_by": engine["excluded_by"],
            "engine": engine_summary,
        }

    workout = generate_workout(engine["exercises"], ctx, config=config, rng=rng)
    return {"status": "ok", "workout": workout, "engine": engine_summary}
