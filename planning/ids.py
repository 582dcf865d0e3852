"""Id generation and old-id → new-id remapping."""

import random
from typing import Iterator, Optional

from models.base import new_id


def generate_id_number(existing: set[str]) -> str:
    """Random 9-digit id number not contained in existing."""
    while True:
        candidate = str(random.randint(100_000_000, 999_999_999))
        if candidate not in existing:
            return candidate


class IdMap:
    """Bidirectional old-id ↔ new-id map for one entity kind.

    >>> teachers = IdMap("teacher")
    >>> new = teachers.assign("t1")
    >>> teachers.old(new)
    't1'
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._forward: dict[str, str] = {}
        self._reverse: dict[str, str] = {}

    def assign(self, old_id: str, new_value: Optional[str] = None) -> str:
        """Maps old_id to new_value (or a freshly generated id) and returns it.

        An old id that is already mapped keeps its first mapping. Several old
        ids may share an explicit new_value; old() then returns the first one.
        Generated ids are always unique within the map.
        """
        if old_id in self._forward:
            return self._forward[old_id]
        new = new_value or new_id()
        while not new_value and new in self._reverse:
            new = new_id()
        self._forward[old_id] = new
        self._reverse.setdefault(new, old_id)
        return new

    def new(self, old_id: str) -> Optional[str]:
        return self._forward.get(old_id)

    def old(self, new: str) -> Optional[str]:
        return self._reverse.get(new)

    def remap(self, old_id: str) -> str:
        """New id for old_id; unmapped ids are returned unchanged."""
        return self._forward.get(old_id, old_id)

    def remap_all(self, old_ids: list[str]) -> list[str]:
        """Remaps a list, dropping ids that have no mapping."""
        return [self._forward[i] for i in old_ids if i in self._forward]

    def __contains__(self, old_id: object) -> bool:
        return old_id in self._forward

    def __len__(self) -> int:
        return len(self._forward)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._forward.items())

    def __repr__(self) -> str:
        return f"IdMap({self.kind}, {len(self)} ids)"
