from .quality_gate import GateResult, GateStatus, QualityThresholds, evaluate, passes

__all__ = ["GateResult", "GateStatus", "QualityThresholds", "evaluate", "passes"]
