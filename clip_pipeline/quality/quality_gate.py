"""
Quality Gate
============
Decides whether an analyzed clip is publish-ready.

Checks, in order (the first failure decides):
- Viral score at or above the minimum
- Duration within [min, max] seconds
- Source view count at or above the minimum, when known
- No disallowed term in the optimized title or description
- Enough tags
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from clip_pipeline.models import AnalysisResult, DownloadedClip

logger = logging.getLogger(__name__)


class GateStatus(str, Enum):
    """Quality gate status."""
    PASS = "pass"
    FAIL = "fail"


@dataclass
class GateResult:
    """Quality gate result."""
    status: GateStatus
    gate_name: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.status == GateStatus.PASS


@dataclass
class QualityThresholds:
    """Thresholds applied by the gate."""
    min_viral_score: float = 6.0
    min_duration: float = 10.0
    max_duration: float = 180.0
    min_views: int = 100
    min_tags: int = 3
    disallowed_terms: List[str] = field(default_factory=lambda: [
        "hack", "cheat", "exploit", "bug abuse", "toxic", "rage quit",
    ])

    @classmethod
    def from_settings(cls, settings: Any) -> "QualityThresholds":
        return cls(
            min_viral_score=settings.min_viral_score,
            min_duration=settings.min_duration,
            max_duration=settings.max_duration,
            min_views=settings.min_views,
            min_tags=settings.min_tags,
            disallowed_terms=list(settings.disallowed_terms),
        )


def evaluate(
    analysis: AnalysisResult,
    clip: DownloadedClip,
    thresholds: Optional[QualityThresholds] = None,
) -> GateResult:
    """Run the checks and report the first one that fails."""
    t = thresholds or QualityThresholds()

    if analysis.viral_score < t.min_viral_score:
        return GateResult(
            status=GateStatus.FAIL,
            gate_name="viral_score",
            message=f"Viral score {analysis.viral_score:.1f} below {t.min_viral_score:.1f}",
            details={"viral_score": analysis.viral_score, "minimum": t.min_viral_score},
        )

    if clip.duration < t.min_duration or clip.duration > t.max_duration:
        return GateResult(
            status=GateStatus.FAIL,
            gate_name="duration",
            message=f"Duration {clip.duration:.0f}s outside {t.min_duration:.0f}-{t.max_duration:.0f}s",
            details={"duration": clip.duration},
        )

    if clip.view_count is not None and clip.view_count < t.min_views:
        return GateResult(
            status=GateStatus.FAIL,
            gate_name="views",
            message=f"{clip.view_count} views below {t.min_views}",
            details={"view_count": clip.view_count, "minimum": t.min_views},
        )

    text = f"{analysis.optimized_title} {analysis.optimized_description}".lower()
    for term in t.disallowed_terms:
        if term.lower() in text:
            return GateResult(
                status=GateStatus.FAIL,
                gate_name="content",
                message=f"Contains disallowed term '{term}'",
                details={"term": term},
            )

    if len(analysis.tags) < t.min_tags:
        return GateResult(
            status=GateStatus.FAIL,
            gate_name="tags",
            message=f"{len(analysis.tags)} tags, need at least {t.min_tags}",
            details={"tags": len(analysis.tags)},
        )

    return GateResult(status=GateStatus.PASS, gate_name="all", message="Clip is publish-ready")


def passes(
    analysis: AnalysisResult,
    clip: DownloadedClip,
    thresholds: Optional[QualityThresholds] = None,
) -> bool:
    result = evaluate(analysis, clip, thresholds)
    if not result.passed:
        logger.info(f"🚫 Clip {clip.clip_id} rejected by {result.gate_name} gate: {result.message}")
    return result.passed
