"""Scenario listing and detail endpoints."""

from fastapi import APIRouter, HTTPException

from backend import storage

from .models import ScenarioSummary

router = APIRouter()


@router.get("/scenario-list", response_model=list[ScenarioSummary])
async def scenario_list():
    """List available scenarios as [{id, title}]."""
    return storage.list_scenarios()


@router.get("/scenarios/{scenario_id}")
async def get_scenario(scenario_id: str):
    """Get the full scenario JSON."""
    scenario = storage.get_scenario(scenario_id)
    if scenario is None:
        raise HTTPException(404, "Scenario not found")
    return scenario
