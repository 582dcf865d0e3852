"""User-scoped repositories over the TreeStore.

Layout::

    users/{uid}/hourTypes/{id}
    users/{uid}/scenarios/{id}

Documents are stored without their id (the key is the id). Timestamps are
written as SERVER_TIMESTAMP and converted back to datetime on read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from data.errors import PersistenceError, ScenarioNotFound
from data.store import SERVER_TIMESTAMP, StoreError, TreeStore
from models.hour_type import HourType
from models.scenario import Scenario

logger = logging.getLogger(__name__)

_TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


def _to_datetime(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


def _from_store(doc_id: str, raw: dict) -> dict:
    doc = dict(raw)
    doc["id"] = doc_id
    for key in _TIMESTAMP_FIELDS:
        if key in doc:
            doc[key] = _to_datetime(doc[key])
    return doc


def _to_store_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_to_store_value(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _to_store_fields(fields: dict) -> dict:
    """snake_case attribute updates → camelCase document fields."""
    out = {to_camel(k): _to_store_value(v) for k, v in fields.items()}
    out.pop("id", None)
    return out


class _UserRepository:
    collection = ""

    def __init__(self, store: TreeStore, user_id: str) -> None:
        if not user_id:
            raise PersistenceError(StoreError.PERMISSION_DENIED, "no user")
        self.store = store
        self.user_id = user_id

    @property
    def base_path(self) -> str:
        return f"users/{self.user_id}/{self.collection}"

    def _path(self, doc_id: str) -> str:
        return f"{self.base_path}/{doc_id}"

    def _call(self, context: str, fn, *args):
        try:
            return fn(*args)
        except StoreError as e:
            logger.error(f"{context} failed: {e}")
            raise PersistenceError.from_store(e, context) from e


class HourTypeRepository(_UserRepository):
    """The user's global hour-type registry."""

    collection = "hourTypes"

    def list(self) -> list[HourType]:
        """All hour types ordered by name."""
        raw = self._call("load hour types", self.store.get, self.base_path) or {}
        items = [HourType.model_validate(_from_store(k, v)) for k, v in raw.items()
                 if isinstance(v, dict)]
        return sorted(items, key=lambda ht: ht.name)

    def get(self, hour_type_id: str) -> Optional[HourType]:
        raw = self._call("load hour type", self.store.get, self._path(hour_type_id))
        if not isinstance(raw, dict):
            return None
        return HourType.model_validate(_from_store(hour_type_id, raw))

    def create(self, fields: dict) -> str:
        doc = _to_store_fields(fields)
        doc["createdAt"] = SERVER_TIMESTAMP
        doc["updatedAt"] = SERVER_TIMESTAMP
        new_key = self._call("create hour type", self.store.push, self.base_path, doc)
        logger.info(f"Hour type created: {fields.get('name')} ({new_key})")
        return new_key

    def update(self, hour_type_id: str, fields: dict) -> None:
        doc = _to_store_fields(fields)
        doc["updatedAt"] = SERVER_TIMESTAMP
        self._call("update hour type", self.store.update, self._path(hour_type_id), doc)
        logger.info(f"Hour type updated: {hour_type_id} {sorted(fields)}")

    def delete(self, hour_type_id: str) -> None:
        self._call("delete hour type", self.store.remove, self._path(hour_type_id))
        logger.info(f"Hour type deleted: {hour_type_id}")


class ScenarioRepository(_UserRepository):
    """Scenario documents; each embeds its banks, teachers, classes and allocations."""

    collection = "scenarios"

    def list(self) -> list[Scenario]:
        """All scenarios, most recently updated first."""
        raw = self._call("load scenarios", self.store.get, self.base_path) or {}
        items = [Scenario.model_validate(_from_store(k, v)) for k, v in raw.items()
                 if isinstance(v, dict)]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(items, key=lambda s: s.updated_at or epoch, reverse=True)

    def get(self, scenario_id: str) -> Optional[Scenario]:
        raw = self._call("load scenario", self.store.get, self._path(scenario_id))
        if not isinstance(raw, dict):
            return None
        return Scenario.model_validate(_from_store(scenario_id, raw))

    def load(self, scenario_id: str) -> Scenario:
        """Like get, but raises ScenarioNotFound."""
        scenario = self.get(scenario_id)
        if scenario is None:
            raise ScenarioNotFound(scenario_id)
        return scenario

    def create(self, scenario: Scenario) -> str:
        """Pushes a new scenario document; the scenario's own id is ignored."""
        doc = scenario.to_document()
        doc.pop("id", None)
        doc["createdAt"] = SERVER_TIMESTAMP
        doc["updatedAt"] = SERVER_TIMESTAMP
        new_key = self._call("create scenario", self.store.push, self.base_path, doc)
        logger.info(f"Scenario created: {scenario.name} ({new_key})")
        return new_key

    def replace(self, scenario: Scenario) -> None:
        """Full overwrite of an existing scenario document."""
        doc = scenario.to_document()
        doc.pop("id", None)
        doc["updatedAt"] = SERVER_TIMESTAMP
        if scenario.created_at is None:
            doc["createdAt"] = SERVER_TIMESTAMP
        self._call("save scenario", self.store.set, self._path(scenario.id), doc)
        logger.info(f"Scenario saved: {scenario.name} ({scenario.id})")

    def update(self, scenario_id: str, **fields) -> None:
        """Field-level merge, e.g. update(id, teachers=[...], hour_banks=[...])."""
        doc = _to_store_fields(fields)
        doc["updatedAt"] = SERVER_TIMESTAMP
        self._call("update scenario", self.store.update, self._path(scenario_id), doc)
        logger.info(f"Scenario updated: {scenario_id} {sorted(fields)}")

    def delete(self, scenario_id: str) -> None:
        self._call("delete scenario", self.store.remove, self._path(scenario_id))
        logger.info(f"Scenario deleted: {scenario_id}")
