"""
Explicit in-memory repository of patient snapshots.

Key patterns:
- Protocol-based source so the engine's callers can swap in real storage
- Result type for expected failures (unknown patient) instead of exceptions
- Arena + index layout: snapshots live in a list, a dict maps patient ids
  to slots, and removal frees a slot for reuse
"""

from collections.abc import Mapping
from typing import Any, Generic, Protocol, TypeVar

import structlog

from health_insights.domain.models import ClinicalSnapshot

logger = structlog.get_logger(__name__)

ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Outcome of a record lookup: the snapshot, or the reason it is unavailable.

    A patient id that is not on file is an everyday event for callers of the
    store, so it comes back as an error value they can branch on. Exceptions
    stay reserved for misuse, such as adding a snapshot without an id.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore[return-value]

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class RecordSource(Protocol):
    """Anything that can resolve a patient id to a clinical snapshot."""

    def get_snapshot(self, patient_id: str) -> Result[ClinicalSnapshot, KeyError]: ...


class InMemoryRecordStore:
    """
    Snapshot store for demos and tests.

    Stored snapshots are frozen models, so handing them out needs no copying
    or locking. Re-adding a patient id replaces its snapshot in place.
    """

    def __init__(self) -> None:
        self._arena: list[ClinicalSnapshot | None] = []
        self._index: dict[str, int] = {}
        self._free_slots: list[int] = []
        self.logger = logger.bind(component="record_store")

    def add(self, patient_id: str, snapshot: ClinicalSnapshot | Mapping[str, Any]) -> None:
        if not patient_id:
            raise ValueError("patient_id must be a non-empty string")
        if not isinstance(snapshot, ClinicalSnapshot):
            snapshot = ClinicalSnapshot.model_validate(snapshot)

        slot = self._index.get(patient_id)
        if slot is not None:
            self._arena[slot] = snapshot
            self.logger.info("snapshot_replaced", patient_id=patient_id)
            return

        if self._free_slots:
            slot = self._free_slots.pop()
            self._arena[slot] = snapshot
        else:
            slot = len(self._arena)
            self._arena.append(snapshot)
        self._index[patient_id] = slot
        self.logger.info("snapshot_added", patient_id=patient_id, stored=len(self._index))

    def get_snapshot(self, patient_id: str) -> Result[ClinicalSnapshot, KeyError]:
        slot = self._index.get(patient_id)
        if slot is None:
            self.logger.debug("snapshot_not_found", patient_id=patient_id)
            return Result.err(KeyError(patient_id))
        snapshot = self._arena[slot]
        assert snapshot is not None
        return Result.ok(snapshot)

    def remove(self, patient_id: str) -> Result[ClinicalSnapshot, KeyError]:
        slot = self._index.pop(patient_id, None)
        if slot is None:
            return Result.err(KeyError(patient_id))
        snapshot = self._arena[slot]
        self._arena[slot] = None
        self._free_slots.append(slot)
        self.logger.info("snapshot_removed", patient_id=patient_id, stored=len(self._index))
        assert snapshot is not None
        return Result.ok(snapshot)

    def patient_ids(self) -> list[str]:
        """Stored patient ids in insertion order."""
        return list(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, patient_id: object) -> bool:
        return patient_id in self._index
