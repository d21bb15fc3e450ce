"""Small builders for synthetic catalog entries used across the tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from trainer.engine.config import LOCATIONS

ALL_BUT_HOME = [loc for loc in LOCATIONS if loc != "home"]


def improvised_method(location: str = "home", mapping: Optional[List[str]] = None, video: Optional[str] = None, **extra) -> Dict[str, Any]:
    method: Dict[str, Any] = {
        "location": location,
        "location_mapping": list(ALL_BUT_HOME if mapping is None else mapping),
        "required_gear_type": "improvised",
    }
    if video:
        method["media"] = {"main_video_url": video}
    method.update(extra)
    return method


def make_exercise(ex_id: str, **overrides) -> Dict[str, Any]:
    exercise: Dict[str, Any] = {
        "id": ex_id,
        "name": {"en": ex_id.replace("_", " ").title()},
        "movement_group": "horizontal_push",
        "mechanical_type": "bent_arm",
        "primary_muscle": "chest",
        "recommended_level": 1,
        "injury_shield": [],
        "sweat_level": 1,
        "noise_level": 1,
        "is_time_based": False,
        "execution_methods": [improvised_method()],
    }
    exercise.update(overrides)
    return exercise


def make_scored(ex_id: str, mechanical_type: str, score: float, tags=(), **exercise_overrides) -> Dict[str, Any]:
    exercise = make_exercise(ex_id, mechanical_type=mechanical_type, tags=list(tags), **exercise_overrides)
    return {
        "exercise": exercise,
        "method": dict(exercise["execution_methods"][0], selected_by="improvised"),
        "score": score,
        "reasoning": [],
        "mechanical_type": mechanical_type,
        "effective_level": int(exercise["recommended_level"]),
    }
