"""Persistence errors and their user-facing (Hebrew) messages."""

from data.store import StoreError

_MESSAGES: dict[str, str] = {
    StoreError.PERMISSION_DENIED: "אין הרשאה לבצע פעולה זו",
    StoreError.NETWORK_ERROR: "שגיאת רשת. בדוק את החיבור לאינטרנט",
    StoreError.UNAVAILABLE: "השירות אינו זמין כרגע. נסה שוב מאוחר יותר",
}

UNKNOWN_DATABASE_ERROR = "שגיאה לא ידועה בבסיס הנתונים"


def describe_error(code: str) -> str:
    """Localized message for a backend error code."""
    return _MESSAGES.get(code, UNKNOWN_DATABASE_ERROR)


class PersistenceError(Exception):
    """A failed read or write at the repository boundary."""

    def __init__(self, code: str, context: str = "") -> None:
        self.code = code
        self.context = context
        self.message = describe_error(code)
        super().__init__(f"{context}: {self.message}" if context else self.message)

    @classmethod
    def from_store(cls, exc: StoreError, context: str = "") -> "PersistenceError":
        return cls(exc.code, context)


class ScenarioNotFound(LookupError):
    """No scenario with the given id for this user."""

    def __init__(self, scenario_id: str) -> None:
        self.scenario_id = scenario_id
        super().__init__(f"תרחיש לא נמצא: {scenario_id}")
