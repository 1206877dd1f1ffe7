"""Run state and installation report models."""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class RunState(str, Enum):
    """Phases of a provisioning run."""
    INIT = "init"
    CHECKING = "checking"
    INSTALLING = "installing"
    CONFIGURING = "configuring"
    ORCHESTRATING = "orchestrating"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


# Legal forward transitions; FAILED is reachable only from the fatal phases.
TRANSITIONS = {
    RunState.INIT: {RunState.CHECKING},
    RunState.CHECKING: {RunState.INSTALLING, RunState.DONE, RunState.FAILED},
    RunState.INSTALLING: {RunState.CONFIGURING, RunState.FAILED},
    RunState.CONFIGURING: {RunState.ORCHESTRATING, RunState.FAILED},
    RunState.ORCHESTRATING: {RunState.VERIFYING, RunState.FAILED},
    RunState.VERIFYING: {RunState.DONE},
    RunState.DONE: set(),
    RunState.FAILED: set(),
}


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    WARNING = "warning"


class StepOutcome(BaseModel):
    """Outcome of one provisioning step."""
    phase: RunState
    step: str
    status: StepStatus
    detail: str = ""


class EndpointOutcome(BaseModel):
    """Outcome of one health check."""
    service: str
    target: str
    ready: bool
    attempts: int = 0
    elapsed: float = 0.0


class FatalError(BaseModel):
    """Summary of the error that aborted the run."""
    phase: RunState
    error: str
    message: str
    hint: str
    exit_code: int


class InstallationReport(BaseModel):
    """Per-step outcomes of a run, used for the summary and exit code."""
    state: RunState = Field(default=RunState.INIT)
    steps: List[StepOutcome] = Field(default_factory=list)
    endpoints: List[EndpointOutcome] = Field(default_factory=list)
    fatal: Optional[FatalError] = None
    access: Dict[str, str] = Field(default_factory=dict)
    dry_run: bool = False

    def transition(self, new_state: RunState) -> None:
        """Move to the next run state, refusing illegal transitions."""
        if new_state not in TRANSITIONS[self.state]:
            raise ValueError(f"Illegal run state transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def record(self, step: str, status: StepStatus, detail: str = "") -> StepOutcome:
        outcome = StepOutcome(phase=self.state, step=step, status=status, detail=detail)
        self.steps.append(outcome)
        return outcome

    @property
    def exit_code(self) -> int:
        return self.fatal.exit_code if self.fatal else 0

    @property
    def failed_endpoints(self) -> List[EndpointOutcome]:
        return [e for e in self.endpoints if not e.ready]

    @property
    def warning_count(self) -> int:
        # Verification steps summarize the endpoints, which are counted one by one
        warnings = sum(
            1 for s in self.steps
            if s.status == StepStatus.WARNING and s.phase != RunState.VERIFYING
        )
        return warnings + len(self.failed_endpoints)
