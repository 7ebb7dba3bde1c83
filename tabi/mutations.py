"""Typed descriptions of writes that can be replayed against the server."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple, Union


class MutationType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    REORDER = "reorder"


class MutationFormatError(ValueError):
    """Raised when a stored mutation record cannot be decoded."""


@dataclass(frozen=True)
class InsertMutation:
    table: str
    record: Dict[str, Any]

    type = MutationType.INSERT

    def payload(self) -> Dict[str, Any]:
        return dict(self.record)


@dataclass(frozen=True)
class UpdateMutation:
    table: str
    record_id: str
    fields: Dict[str, Any]

    type = MutationType.UPDATE

    def payload(self) -> Dict[str, Any]:
        return {"id": self.record_id, **self.fields}


@dataclass(frozen=True)
class DeleteMutation:
    table: str
    record_id: str

    type = MutationType.DELETE

    def payload(self) -> Dict[str, Any]:
        return {"id": self.record_id}


@dataclass(frozen=True)
class ReorderMutation:
    table: str
    positions: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)

    type = MutationType.REORDER

    def payload(self) -> Dict[str, Any]:
        return {
            "items": [
                {"id": record_id, "sort_order": sort_order}
                for record_id, sort_order in self.positions
            ]
        }


Mutation = Union[InsertMutation, UpdateMutation, DeleteMutation, ReorderMutation]


@dataclass(frozen=True)
class QueuedMutation:
    """A mutation together with the identity assigned when it was queued."""

    id: str
    timestamp: int
    mutation: Mutation

    @property
    def type(self) -> MutationType:
        return self.mutation.type

    @property
    def table(self) -> str:
        return self.mutation.table

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "table": self.table,
            "payload": self.mutation.payload(),
            "timestamp": self.timestamp,
        }


def _require_id(payload: Mapping[str, Any], kind: str) -> str:
    record_id = payload.get("id")
    if not record_id:
        raise MutationFormatError(f"{kind} mutation payload is missing 'id'")
    return str(record_id)


def mutation_from_payload(kind: str, table: str, payload: Mapping[str, Any]) -> Mutation:
    """Rebuild a typed mutation from its stored ``type``/``table``/``payload``."""

    try:
        mutation_type = MutationType(kind)
    except ValueError as exc:
        raise MutationFormatError(f"Unknown mutation type: {kind!r}") from exc

    if mutation_type is MutationType.INSERT:
        return InsertMutation(table=table, record=dict(payload))
    if mutation_type is MutationType.UPDATE:
        fields = {key: value for key, value in payload.items() if key != "id"}
        return UpdateMutation(table=table, record_id=_require_id(payload, "update"), fields=fields)
    if mutation_type is MutationType.DELETE:
        return DeleteMutation(table=table, record_id=_require_id(payload, "delete"))

    entries = payload.get("items")
    if not isinstance(entries, list):
        raise MutationFormatError("reorder mutation payload is missing 'items'")
    positions: List[Tuple[str, int]] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise MutationFormatError("reorder entries must be objects")
        try:
            positions.append((_require_id(entry, "reorder"), int(entry.get("sort_order"))))
        except (TypeError, ValueError) as exc:
            raise MutationFormatError(f"Invalid sort_order in reorder entry: {entry!r}") from exc
    return ReorderMutation(table=table, positions=tuple(positions))


def reorder_positions(record_ids: List[str]) -> Tuple[Tuple[str, int], ...]:
    """Return ``(id, sort_order)`` pairs numbering ``record_ids`` from zero."""

    return tuple((record_id, index) for index, record_id in enumerate(record_ids))


__all__ = [
    "DeleteMutation",
    "InsertMutation",
    "Mutation",
    "MutationFormatError",
    "MutationType",
    "QueuedMutation",
    "ReorderMutation",
    "UpdateMutation",
    "mutation_from_payload",
    "reorder_positions",
]
