# uiflow/core/outcome.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from uiflow.core.errors import ABORT_CLASS
from uiflow.core.workflow_loader import FailurePolicy


class OutcomeKind(str, Enum):
    success = "success"
    soft_fail = "soft_fail"
    hard_fail = "hard_fail"


class StepState(str, Enum):
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    soft_failed = "soft_failed"
    hard_failed = "hard_failed"
    aborted = "aborted"


class RunStatus(str, Enum):
    succeeded = "succeeded"
    hard_failed = "hard_failed"


@dataclass(frozen=True)
class StepOutcome:
    kind: OutcomeKind
    reason: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success(cls) -> "StepOutcome":
        return cls(OutcomeKind.success)

    @classmethod
    def soft_fail(cls, error: BaseException) -> "StepOutcome":
        return cls(OutcomeKind.soft_fail, str(error), type(error).__name__)

    @classmethod
    def hard_fail(cls, error: BaseException) -> "StepOutcome":
        return cls(OutcomeKind.hard_fail, str(error), type(error).__name__)

    @property
    def state(self) -> StepState:
        return {
            OutcomeKind.success: StepState.succeeded,
            OutcomeKind.soft_fail: StepState.soft_failed,
            OutcomeKind.hard_fail: StepState.hard_failed,
        }[self.kind]


def classify(error: Optional[BaseException], policy: FailurePolicy) -> StepOutcome:
    """
    No error is success. Configuration and authentication errors are hard
    failures whatever the policy; anything else follows the step's policy.
    """
    if error is None:
        return StepOutcome.success()
    if isinstance(error, ABORT_CLASS) or policy == FailurePolicy.abort:
        return StepOutcome.hard_fail(error)
    return StepOutcome.soft_fail(error)


@dataclass
class StepRecord:
    index: int
    name: str
    action: str
    state: StepState = StepState.pending
    reason: Optional[str] = None
    error_type: Optional[str] = None
    elapsed_ms: int = 0
    technique: Optional[str] = None

    def apply(self, outcome: StepOutcome) -> None:
        self.state = outcome.state
        self.reason = outcome.reason
        self.error_type = outcome.error_type


@dataclass
class RunReport:
    """Terminal status plus the ordered step records of one run."""

    workflow: str
    status: RunStatus = RunStatus.succeeded
    steps: List[StepRecord] = field(default_factory=list)
    session: Optional[Dict[str, Any]] = None
    started_at: Optional[str] = None
    elapsed_ms: int = 0
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.succeeded

    @property
    def diagnostics(self) -> List[Dict[str, Any]]:
        """Non-fatal records for steps that failed under a continue policy."""
        return [
            {"index": r.index, "step": r.name, "error_type": r.error_type, "reason": r.reason}
            for r in self.steps
            if r.state == StepState.soft_failed
        ]

    def record(self, name: str) -> StepRecord:
        return next(r for r in self.steps if r.name == name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow": self.workflow,
            "ok": self.ok,
            "status": self.status.value,
            "reason": self.reason,
            "started_at": self.started_at,
            "elapsed_ms": self.elapsed_ms,
            "session": self.session,
            "steps": [{**asdict(r), "state": r.state.value} for r in self.steps],
            "diagnostics": self.diagnostics,
        }
