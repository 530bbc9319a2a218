"""Scenario listing and loading."""

import json
import logging
from typing import Any

from .core import is_valid_scenario_id, scenarios_dir

logger = logging.getLogger(__name__)

SCENARIO_FILE = "scenario.json"


def list_scenarios() -> list[dict[str, str]]:
    """Return [{id, title}] for every directory holding a readable scenario.json.

    Unparseable files are skipped; title falls back to the directory name.
    """
    result: list[dict[str, str]] = []
    for path in sorted(scenarios_dir().iterdir()):
        scenario_file = path / SCENARIO_FILE
        if not scenario_file.is_file():
            continue
        try:
            data = json.loads(scenario_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("skipping unreadable scenario %s: %s", path.name, e)
            continue
        title = data.get("title") if isinstance(data, dict) else None
        if not isinstance(title, str) or not title:
            title = path.name
        result.append({"id": path.name, "title": title})
    return result


def get_scenario(scenario_id: str) -> dict[str, Any] | None:
    if not is_valid_scenario_id(scenario_id):
        return None
    scenario_file = scenarios_dir() / scenario_id / SCENARIO_FILE
    if not scenario_file.is_file():
        return None
    data = json.loads(scenario_file.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data.setdefault("id", scenario_id)
    return data
