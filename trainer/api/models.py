"""Pydantic request models for the trainer API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# --------------------------------------------------------------------------- #
# Workout
# --------------------------------------------------------------------------- #

class ContextOverrides(BaseModel):
    """Per-request choices layered over the stored profile context."""
    location: Optional[str] = None
    intent_mode: Optional[str] = None
    available_time: Optional[int] = None
    park_id: Optional[str] = None
    difficulty: Optional[int] = None
    days_inactive: Optional[int] = None
    available_equipment: Optional[List[str]] = None


class GenerateRequest(BaseModel):
    """Body for POST /api/workout/generate and /api/workout/filter.

    Without ``profile`` the stored user profile is used.
    """
    profile: Optional[Dict[str, Any]] = None
    context: ContextOverrides = Field(default_factory=ContextOverrides)
    today: Optional[str] = None
    seed: Optional[int] = None


class SwapRequest(BaseModel):
    """Body for POST /api/workout/swap."""
    exercise_id: str
    reason: str
    profile: Optional[Dict[str, Any]] = None
    context: ContextOverrides = Field(default_factory=ContextOverrides)
    tracking: Dict[str, Any] = Field(default_factory=dict)
    injured_area: Optional[str] = None
    current_method: Optional[Dict[str, Any]] = None
    today: Optional[str] = None
