"""Optimistic editing of one loaded scenario.

Local state is provisional until the store confirms the write. On a failed
write the workspace discards it, reloads the stored scenario and re-raises;
there is no retry.
"""

import logging
from typing import Callable, Optional

from data.errors import PersistenceError
from data.repository import ScenarioRepository
from models.scenario import Scenario

logger = logging.getLogger(__name__)


class ScenarioWorkspace:
    """Holds the current copy of a scenario and writes changes back."""

    def __init__(self, repository: ScenarioRepository, scenario_id: str) -> None:
        self.repository = repository
        self.scenario_id = scenario_id
        self.scenario: Scenario = repository.load(scenario_id)

    def reload(self) -> Scenario:
        self.scenario = self.repository.load(self.scenario_id)
        return self.scenario

    def commit(self, updated: Scenario, fields: Optional[list[str]] = None) -> Scenario:
        """Writes updated, either whole or only the named fields.

        fields are snake_case attribute names, e.g. ["teachers", "hour_banks"].
        """
        previous = self.scenario
        self.scenario = updated
        try:
            if fields:
                self.repository.update(
                    self.scenario_id, **{f: getattr(updated, f) for f in fields}
                )
            else:
                self.repository.replace(updated)
        except PersistenceError as e:
            logger.warning(f"Write of scenario {self.scenario_id} failed ({e.code}), reverting")
            try:
                self.reload()
            except PersistenceError:
                self.scenario = previous
            raise
        return self.scenario

    def apply(self, change: Callable[..., Scenario], *args, fields=None, **kwargs) -> Scenario:
        """Runs change(scenario, *args, **kwargs) and commits its result."""
        return self.commit(change(self.scenario, *args, **kwargs), fields=fields)
