"""Storage initialization and path helpers."""

import re
from pathlib import Path

_scenarios_dir: Path | None = None

_SCENARIO_ID = re.compile(r"^[A-Za-z0-9][\w.-]*$")


def init_storage(scenarios_dir: Path) -> None:
    global _scenarios_dir
    _scenarios_dir = scenarios_dir
    _scenarios_dir.mkdir(parents=True, exist_ok=True)


def scenarios_dir() -> Path:
    assert _scenarios_dir is not None, "Call init_storage() before using storage"
    return _scenarios_dir


def is_valid_scenario_id(scenario_id: str) -> bool:
    """Directory names only: no separators, no leading dot."""
    return bool(_SCENARIO_ID.match(scenario_id)) and ".." not in scenario_id
