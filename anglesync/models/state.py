"""Persisted sync state and end-of-clip policy models."""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class EndPolicy(str, Enum):
    """What happens to the group when one stream reaches its end."""

    STOP_ALL_AT_FIRST_END = "stopAllAtFirstEnd"  # pause every stream
    FREEZE_FINISHED = "freezeFinished"  # pause the finished stream only
    LOOP_FINISHED = "loopFinished"  # restart the finished stream


class SaveSlot(str, Enum):
    """Persistence slots for the sync state."""

    AUTOSAVE = "autosave"
    MANUAL = "manual"


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid time or index
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class PersistedSyncState(BaseModel):
    """
    The persisted subset of the engine state.

    Serialized as ``{"referenceIndex", "endPolicy", "marks"}``. A field set
    to None means "not present", and the engine keeps its own default for it.
    Durations are never persisted; they come back from stream metadata.
    """

    model_config = ConfigDict(populate_by_name=True)

    reference_index: Optional[int] = Field(default=None, alias="referenceIndex")
    end_policy: Optional[EndPolicy] = Field(default=None, alias="endPolicy")
    marks: Optional[list[Optional[float]]] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PersistedSyncState":
        """
        Build a state from a decoded JSON object.

        Each field is validated on its own: a field of the wrong type is
        dropped instead of rejecting the whole object, and unknown fields
        are ignored.
        """
        reference_index = payload.get("referenceIndex")
        if _is_number(reference_index) and float(reference_index).is_integer():
            reference_index = int(reference_index)
        else:
            reference_index = None

        end_policy = payload.get("endPolicy")
        try:
            end_policy = EndPolicy(end_policy) if isinstance(end_policy, str) else None
        except ValueError:
            end_policy = None

        marks = payload.get("marks")
        if isinstance(marks, list) and all(
            m is None or (_is_number(m) and math.isfinite(m)) for m in marks
        ):
            marks = [None if m is None else float(m) for m in marks]
        else:
            marks = None

        return cls(reference_index=reference_index, end_policy=end_policy, marks=marks)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the persisted field names."""
        data = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in data.items() if value is not None}
