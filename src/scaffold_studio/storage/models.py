"""Data models for persistent tracking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class CommandRunRecord:
    run_id: str
    project_id: str
    command: str
    kind: str | None
    status: str
    returncode: int | None
    recorded_at: datetime
    metadata: dict[str, Any]


@dataclass(slots=True)
class ProvisioningRecord:
    project_id: str
    framework: str
    status: str
    strategy: str | None
    error: str | None
    recorded_at: datetime
    metadata: dict[str, Any]


__all__ = ["CommandRunRecord", "ProvisioningRecord"]
