"""
Event Topics
============
Topic names for clip pipeline events.

Topic Naming Convention:
    {domain}.{entity}.{action}

Examples:
    - clip.downloaded
    - clip.analysis.completed
    - workflow.completed
"""


class Topics:
    """
    Centralized topic registry.

    Usage:
        from clip_pipeline.event_bus import Topics

        await bus.publish(Topics.CLIP_DOWNLOADED, {...})
        bus.subscribe(Topics.CLIP_READY, handler)
    """

    # =========================================================================
    # CLIP LIFECYCLE
    # =========================================================================
    CLIP_DOWNLOADED = "clip.downloaded"                   # Clip persisted after download
    CLIP_DOWNLOAD_FAILED = "clip.download.failed"         # Fetch tool failed for one clip
    CLIP_ANALYSIS_STARTED = "clip.analysis.started"       # Clip moved to ANALYZING
    CLIP_ANALYSIS_COMPLETED = "clip.analysis.completed"   # Analysis attached to clip
    CLIP_ANALYSIS_FAILED = "clip.analysis.failed"         # Primary analysis call failed
    CLIP_READY = "clip.ready"                             # Passed quality gate
    CLIP_SKIPPED = "clip.skipped"                         # Rejected by quality gate
    CLIP_RETRY = "clip.retry"                             # Failed clip queued for retry
    CLIP_DELETED = "clip.deleted"                         # Removed by retention cleanup
    CLIP_SWEEP_COMPLETED = "clip.sweep.completed"         # Periodic pending-clip sweep finished

    # =========================================================================
    # WORKFLOW RUNS
    # =========================================================================
    WORKFLOW_STARTED = "workflow.started"                 # Run created for a channel
    WORKFLOW_STATE_CHANGED = "workflow.state.changed"     # State machine transition
    WORKFLOW_COMPLETED = "workflow.completed"             # Run reached READY or SKIPPED
    WORKFLOW_FAILED = "workflow.failed"                   # Run reached FAILED

    # =========================================================================
    # SYSTEM
    # =========================================================================
    SYSTEM_SHUTDOWN = "system.shutdown"
    WORKER_STARTED = "worker.started"
    WORKER_STOPPED = "worker.stopped"

    @classmethod
    def all_topics(cls) -> list:
        """Return all defined topic strings."""
        return [
            value for name, value in vars(cls).items()
            if name.isupper() and isinstance(value, str)
        ]

    @classmethod
    def matches_pattern(cls, pattern: str, topic: str) -> bool:
        """
        Check if topic matches pattern with wildcard support.

        Patterns:
            - "clip.*" matches "clip.downloaded", "clip.analysis.completed"
            - "*.completed" matches "workflow.completed", "clip.analysis.completed"
            - "*" matches everything
        """
        if pattern == "*":
            return True

        if "*" not in pattern:
            return pattern == topic

        if pattern.endswith('.*'):
            prefix = pattern[:-2]
            return topic.startswith(prefix + '.')

        if pattern.startswith('*.'):
            suffix = pattern[2:]
            return topic.endswith('.' + suffix) or topic == suffix

        return False
