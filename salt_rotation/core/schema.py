"""
Rotation core records.
Snapshots, audit attempts, command results and per-invocation reports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TriggerSource(str, Enum):
    SCHEDULED = "scheduled"
    OVERDUE_FALLBACK = "overdue-fallback"
    MANUAL = "manual"


class RotationStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RotationState(str, Enum):
    """States visited by a single orchestrator invocation."""
    START = "start"
    BACKING_UP = "backing_up"
    BACKUP_FAILED = "backup_failed"
    INVOKING = "invoking"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOGGED = "logged"
    CLEANING_UP = "cleaning_up"
    NOTIFYING_FAILURE = "notifying_failure"
    DONE = "done"


@dataclass(frozen=True)
class SecretSnapshot:
    id: str
    values: Dict[str, str]
    captured_at: datetime


@dataclass
class RotationAttempt:
    timestamp: datetime
    status: RotationStatus
    output: str = ""
    error: str = ""
    snapshot_id: Optional[str] = None
    duration: float = 0.0
    triggered_by: TriggerSource = TriggerSource.MANUAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert attempt to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "snapshot_id": self.snapshot_id,
            "duration": self.duration,
            "triggered_by": self.triggered_by.value,
        }


@dataclass
class CommandResult:
    output: str
    succeeded: bool
    error: str = ""
    error_kind: Optional[str] = None  # exception class name on failure


@dataclass
class RotationReport:
    """Outcome of one orchestrator invocation."""
    triggered_by: TriggerSource
    started_at: datetime
    states: List[RotationState] = field(default_factory=lambda: [RotationState.START])
    attempt: Optional[RotationAttempt] = None
    snapshot_id: Optional[str] = None
    pruned: List[str] = field(default_factory=list)
    notified: bool = False
    logged: bool = False

    def enter(self, state: RotationState):
        self.states.append(state)

    @property
    def state(self) -> RotationState:
        return self.states[-1]

    @property
    def succeeded(self) -> bool:
        return self.attempt is not None and self.attempt.status == RotationStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggered_by": self.triggered_by.value,
            "started_at": self.started_at.isoformat(),
            "states": [s.value for s in self.states],
            "attempt": self.attempt.to_dict() if self.attempt else None,
            "snapshot_id": self.snapshot_id,
            "pruned": self.pruned,
            "notified": self.notified,
            "logged": self.logged,
        }
