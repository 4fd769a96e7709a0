"""
Workflow
========
State machine, per-clip processing and the run orchestrator.
"""
from .state_machine import WorkflowStateMachine, ALLOWED_TRANSITIONS
from .clip_processor import ClipProcessor, ProcessOutcome
from .orchestrator import PipelineOrchestrator

__all__ = [
    "WorkflowStateMachine",
    "ALLOWED_TRANSITIONS",
    "ClipProcessor",
    "ProcessOutcome",
    "PipelineOrchestrator",
]
