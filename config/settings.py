"""
Clip Pipeline configuration.

Settings groups are read from the environment (and an optional .env file)
with one prefix per concern.
"""
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Service settings
SERVICE_NAME = "clip-pipeline"
SERVICE_VERSION = "1.0.0"

# Paths
BASE_DIR = Path(__file__).parent.parent

# Default rate limits: key -> (max permits, interval in seconds)
DEFAULT_RATE_LIMITS: Dict[str, Tuple[int, float]] = {
    "twitch-api": (100, 60.0),
    "clip-download": (10, 60.0),
    "analysis-primary": (15, 60.0),
    "analysis-enriched": (10, 60.0),
    "webhook": (10, 60.0),
}

DEFAULT_DISALLOWED_TERMS = [
    "hack", "cheat", "exploit", "bug abuse", "toxic", "rage quit",
]


class DatabaseSettings(BaseSettings):
    """Persistence settings."""
    url: str = Field(default="sqlite:///./clip_pipeline.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Log SQL statements")

    model_config = SettingsConfigDict(env_prefix="CLIP_DB_")


class DownloadSettings(BaseSettings):
    """Download stage settings."""
    path: Path = Field(default=Path("./downloads"), description="Local clip storage directory")
    timeout_seconds: float = Field(default=300.0, gt=0, description="Hard per-clip download timeout")
    ytdlp_path: str = Field(default="yt-dlp", description="yt-dlp executable")
    ytdlp_format: str = Field(
        default="bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best",
        description="yt-dlp format selector",
    )

    model_config = SettingsConfigDict(env_prefix="CLIP_DOWNLOAD_")


class QualitySettings(BaseSettings):
    """Quality gate thresholds."""
    min_viral_score: float = Field(default=6.0, ge=0.0, le=10.0)
    min_duration: float = Field(default=10.0, ge=0.0)
    max_duration: float = Field(default=180.0, gt=0.0)
    min_views: int = Field(default=100, ge=0)
    min_tags: int = Field(default=3, ge=0)
    disallowed_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_DISALLOWED_TERMS))

    model_config = SettingsConfigDict(env_prefix="CLIP_QUALITY_")


class AnalysisSettings(BaseSettings):
    """AI analysis provider settings."""
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    enrichment_enabled: bool = Field(default=True, description="Attempt the secondary enrichment call")

    model_config = SettingsConfigDict(env_prefix="CLIP_ANALYSIS_")


class TwitchSettings(BaseSettings):
    """Twitch Helix API settings."""
    client_id: Optional[str] = Field(default=None)
    access_token: Optional[str] = Field(default=None, description="App access token (acquired elsewhere)")
    base_url: str = Field(default="https://api.twitch.tv/helix")
    page_size: int = Field(default=100, ge=1, le=100)

    model_config = SettingsConfigDict(env_prefix="TWITCH_")


class WebhookSettings(BaseSettings):
    """Outbound notification webhook."""
    url: Optional[str] = Field(default=None)
    enabled: bool = Field(default=False)
    timeout_seconds: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="CLIP_WEBHOOK_")


class WorkflowSettings(BaseSettings):
    """Orchestration settings."""
    launch_delay_seconds: float = Field(default=2.0, ge=0.0, description="Delay between multi-channel launches")
    run_timeout_seconds: Optional[float] = Field(default=1800.0, description="Safety-net timeout per run")
    pending_min_age_seconds: float = Field(default=120.0, ge=0.0)
    sweep_interval_seconds: float = Field(default=300.0, ge=0.0, description="Pending-clip sweep period, 0 disables")
    retention_days: int = Field(default=30, ge=0)
    cleanup_remove_files: bool = Field(default=True)
    default_clip_limit: int = Field(default=5, ge=1)
    default_days_back: int = Field(default=7, ge=1)
    rate_limits: Dict[str, Tuple[int, float]] = Field(default_factory=lambda: dict(DEFAULT_RATE_LIMITS))

    model_config = SettingsConfigDict(env_prefix="CLIP_WORKFLOW_")


class LogSettings(BaseSettings):
    """Logging settings."""
    level: str = Field(default="INFO")
    file: Optional[str] = Field(default=None, description="Optional log file name under ./logs")

    model_config = SettingsConfigDict(env_prefix="CLIP_LOG_")


class Settings(BaseSettings):
    """Aggregated settings."""
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    download: DownloadSettings = Field(default_factory=DownloadSettings)
    quality: QualitySettings = Field(default_factory=QualitySettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    twitch: TwitchSettings = Field(default_factory=TwitchSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading a .env file first when one exists."""
        if env_path is None:
            env_path = BASE_DIR / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            database=DatabaseSettings(),
            download=DownloadSettings(),
            quality=QualitySettings(),
            analysis=AnalysisSettings(),
            twitch=TwitchSettings(),
            webhook=WebhookSettings(),
            workflow=WorkflowSettings(),
            log=LogSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings.load_from_env_file()
