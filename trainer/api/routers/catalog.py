"""Catalog router — exercises, fixed equipment, gear and parks."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from trainer.api import deps

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("/exercises")
def list_exercises():
    """Return all valid exercises from the catalog."""
    exercises = deps.get_exercise_catalog()
    return {"exercises": exercises, "count": len(exercises)}


@router.get("/equipment")
def list_equipment():
    """Return fixed equipment definitions and personal gear definitions."""
    equipment = deps.get_fixed_equipment_definitions()
    gear = deps.get_gear_definitions()
    return {"equipment": equipment, "gear": gear, "count": len(equipment) + len(gear)}


@router.get("/parks")
def list_parks():
    parks = deps.get_parks()
    return {"parks": parks, "count": len(parks)}


@router.get("/parks/{park_id}")
def get_park(park_id: str):
    park = deps.get_park_by_id(park_id)
    if park is None:
        raise HTTPException(status_code=404, detail=f"Park not found: {park_id}")
    return park
