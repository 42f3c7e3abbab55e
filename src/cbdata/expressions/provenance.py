"""Provenance records: how an evaluated value was derived."""

from __future__ import annotations

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict

PLACEHOLDER_ID = "%d"


class Provenance(BaseModel):
    """One node of a provenance tree.

    Leaves (series, placeholders, literals) have no children and usually an
    ``id``.  Internal nodes carry the operator or function name in
    ``operation`` and list the provenance of their inputs in evaluation order.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    source_info: dict[str, Any] | None = None
    operation: str = ""
    children: tuple[Provenance, ...] = ()
    value: float | str | None = None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator[Provenance]:
        """Yield this node and all descendants, depth-first, pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def series_ids(self) -> list[str]:
        """Ids of every source-backed leaf, left to right."""
        return [
            node.id
            for node in self.walk()
            if node.is_leaf and node.id not in (None, PLACEHOLDER_ID)
        ]

    def operations(self) -> list[str]:
        """Operation names of the internal nodes, pre-order."""
        return [node.operation for node in self.walk() if not node.is_leaf]

    def to_dict(self) -> dict[str, Any]:
        """Plain, JSON-serializable representation."""
        return self.model_dump(mode="json")


def series_leaf(series_id: str, source_info: dict[str, Any] | None = None) -> Provenance:
    """Leaf for a series delivered by a source connector."""
    return Provenance(id=series_id, source_info=source_info or {})


def placeholder_leaf(index: int) -> Provenance:
    """Leaf for the injected table at *index* of the caller's list."""
    return Provenance(id=PLACEHOLDER_ID, source_info={"placeholder": index})


def literal_leaf(value: float | str) -> Provenance:
    """Leaf for a numeric or string literal."""
    return Provenance(value=value)


def combine(operation: str, *children: Provenance) -> Provenance:
    """Build the node for *operation* applied to *children*."""
    return Provenance(operation=operation, children=tuple(children))


Provenance.model_rebuild()
