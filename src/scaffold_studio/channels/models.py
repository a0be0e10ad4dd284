"""Output event models pushed over log channels."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

OutputKind = Literal["stdout", "stderr", "info", "error"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutputEvent(BaseModel):
    """A single line of process output or an orchestration notice."""

    type: OutputKind = Field(..., description="Origin of the payload.")
    data: str = Field(..., description="Payload text without a trailing newline.")
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def info(cls, data: str) -> "OutputEvent":
        return cls(type="info", data=data)

    @classmethod
    def error(cls, data: str) -> "OutputEvent":
        return cls(type="error", data=data)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp.isoformat()}


__all__ = ["OutputEvent", "OutputKind"]
