"""
Workflow State Machine
======================
Legal state changes for a WorkflowRun.

    CREATED → FETCHING → DOWNLOADING → ANALYZING → READY
                  │            │            │
                  └────────────┴────────────┴──→ SKIPPED

Any non-terminal state may move to FAILED. Terminal states never change.
"""
from typing import Dict, FrozenSet, Optional

from loguru import logger

from clip_pipeline.exceptions import InvalidTransitionError
from clip_pipeline.models import RunState, RunStatus, StateTransition, WorkflowRun, utc_now

ALLOWED_TRANSITIONS: Dict[RunState, FrozenSet[RunState]] = {
    RunState.CREATED: frozenset({RunState.FETCHING, RunState.FAILED}),
    RunState.FETCHING: frozenset({RunState.DOWNLOADING, RunState.SKIPPED, RunState.FAILED}),
    RunState.DOWNLOADING: frozenset({RunState.ANALYZING, RunState.SKIPPED, RunState.FAILED}),
    RunState.ANALYZING: frozenset({RunState.READY, RunState.SKIPPED, RunState.FAILED}),
    RunState.READY: frozenset(),
    RunState.SKIPPED: frozenset(),
    RunState.FAILED: frozenset(),
}

TERMINAL_STATUS = {
    RunState.READY: RunStatus.COMPLETED,
    RunState.SKIPPED: RunStatus.COMPLETED,
    RunState.FAILED: RunStatus.FAILED,
}


class WorkflowStateMachine:
    """Drives one run through its states and records every transition."""

    def __init__(self, run: WorkflowRun):
        self.run = run

    @property
    def state(self) -> RunState:
        return self.run.state

    def can_transition(self, target: RunState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.run.state]

    def transition(self, target: RunState, error_message: Optional[str] = None) -> StateTransition:
        """
        Move the run to ``target``.

        Raises:
            InvalidTransitionError: the move is not allowed from the current state
        """
        current = self.run.state
        if not self.can_transition(target):
            raise InvalidTransitionError(current.value, target.value)

        record = StateTransition(from_state=current, to_state=target)
        self.run.transitions.append(record)
        self.run.state = target

        if current == RunState.CREATED and self.run.started_at is None:
            self.run.started_at = record.at

        if target.is_terminal:
            self.run.status = TERMINAL_STATUS[target]
            self.run.completed_at = utc_now()
            if error_message:
                self.run.error_message = error_message

        logger.debug(f"🔁 Run {self.run.run_id[:8]}: {current.value} → {target.value}")
        return record

    def fail(self, error_message: str) -> bool:
        """Move to FAILED unless already terminal. Returns True if the state changed."""
        if self.run.state.is_terminal:
            return False
        self.transition(RunState.FAILED, error_message=error_message)
        return True
