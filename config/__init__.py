"""
Configuration Module
"""
from .settings import (
    SERVICE_NAME,
    SERVICE_VERSION,
    DEFAULT_RATE_LIMITS,
    Settings,
    DatabaseSettings,
    DownloadSettings,
    QualitySettings,
    AnalysisSettings,
    TwitchSettings,
    WebhookSettings,
    WorkflowSettings,
    LogSettings,
    get_settings,
)

__all__ = [
    "SERVICE_NAME",
    "SERVICE_VERSION",
    "DEFAULT_RATE_LIMITS",
    "Settings",
    "DatabaseSettings",
    "DownloadSettings",
    "QualitySettings",
    "AnalysisSettings",
    "TwitchSettings",
    "WebhookSettings",
    "WorkflowSettings",
    "LogSettings",
    "get_settings",
]
