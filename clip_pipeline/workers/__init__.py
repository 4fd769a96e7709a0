"""
Workers Module
==============
Event-driven workers attached to the pipeline's EventBus, plus the periodic
pending-clip sweep.

Usage:
    from clip_pipeline.workers import start_analysis_worker, start_notification_worker

    analysis_worker = await start_analysis_worker(bus, processor, clip_repository)
    notification_worker = await start_notification_worker(bus, sinks)
"""

from .base import BaseWorker
from .analysis_worker import AnalysisWorker, start_analysis_worker
from .notification_worker import NotificationWorker, start_notification_worker
from .sweep_worker import SweepWorker

__all__ = [
    'BaseWorker',
    'AnalysisWorker',
    'start_analysis_worker',
    'NotificationWorker',
    'start_notification_worker',
    'SweepWorker',
]
