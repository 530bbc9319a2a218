"""File-based scenario storage.

Data layout:
  scenarios/
    <scenario-id>/
      scenario.json      Scenario JSON (id, title, disclaimer, behavior,
                         members, and any free-form knowledge keys)

Scenarios are read-only: the app lists and serves them, the client sends
the chosen one back with each multi-agent request.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    init_storage,
    is_valid_scenario_id,
    scenarios_dir,
)
from .scenarios import (  # noqa: F401
    get_scenario,
    list_scenarios,
)
