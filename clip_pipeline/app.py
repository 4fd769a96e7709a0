"""
Pipeline wiring.

Builds every component from ``config.Settings`` and hands back one object that
owns them. Collaborators can be swapped out (tests pass fakes).

Usage:
    pipeline = build_pipeline(get_settings())
    await pipeline.start()
    run = await pipeline.orchestrator.run_channel("some_streamer")
    await pipeline.close()
"""
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from config import SERVICE_NAME, Settings
from clip_pipeline.analysis import AnalysisService, OpenAIContentAnalyzer
from clip_pipeline.content_download import ClipDownloader, YtDlpFetcher
from clip_pipeline.event_bus import EventBus
from clip_pipeline.exceptions import ConfigurationError
from clip_pipeline.interfaces import ClipSource, ContentAnalyzer, EventSink, VideoFetcher
from clip_pipeline.notifications import LoggingEventSink, WebhookEventSink
from clip_pipeline.quality import QualityThresholds
from clip_pipeline.rate_limit import RateLimiterRegistry
from clip_pipeline.sources import TwitchClipSource
from clip_pipeline.storage import ClipRepository, Database, RunRepository
from clip_pipeline.workers import AnalysisWorker, BaseWorker, NotificationWorker, SweepWorker
from clip_pipeline.workflow import ClipProcessor, PipelineOrchestrator


@dataclass
class ClipPipeline:
    """Every wired component of a running pipeline."""
    settings: Settings
    database: Database
    rate_limiter: RateLimiterRegistry
    event_bus: EventBus
    clip_repository: ClipRepository
    run_repository: RunRepository
    downloader: ClipDownloader
    processor: ClipProcessor
    orchestrator: PipelineOrchestrator
    sinks: List[EventSink] = field(default_factory=list)
    workers: List[BaseWorker] = field(default_factory=list)

    async def start(self) -> None:
        """Start the event-driven workers and the sweep loop."""
        for worker in self.workers:
            await worker.start()

    async def close(self) -> None:
        for worker in reversed(self.workers):
            if worker.is_running:
                await worker.stop()
        await self.event_bus.shutdown()
        self.database.dispose()
        logger.info("👋 Clip pipeline closed")


def build_source(settings: Settings, rate_limiter: RateLimiterRegistry) -> ClipSource:
    twitch = settings.twitch
    if not twitch.client_id or not twitch.access_token:
        raise ConfigurationError(
            "Twitch credentials are not configured",
            {"required": ["TWITCH_CLIENT_ID", "TWITCH_ACCESS_TOKEN"]},
        )
    return TwitchClipSource(
        client_id=twitch.client_id,
        access_token=twitch.access_token,
        rate_limiter=rate_limiter,
        base_url=twitch.base_url,
        page_size=twitch.page_size,
    )


def build_analyzer(settings: Settings) -> ContentAnalyzer:
    analysis = settings.analysis
    if not analysis.openai_api_key:
        raise ConfigurationError(
            "OpenAI API key is not configured",
            {"required": ["CLIP_ANALYSIS_OPENAI_API_KEY"]},
        )
    return OpenAIContentAnalyzer(
        api_key=analysis.openai_api_key,
        model=analysis.model,
        temperature=analysis.temperature,
    )


def build_sinks(settings: Settings, rate_limiter: RateLimiterRegistry) -> List[EventSink]:
    sinks: List[EventSink] = [LoggingEventSink()]
    webhook = settings.webhook
    if webhook.enabled:
        if not webhook.url:
            raise ConfigurationError("Webhook is enabled but CLIP_WEBHOOK_URL is empty")
        sinks.append(WebhookEventSink(webhook.url, rate_limiter, timeout=webhook.timeout_seconds))
    return sinks


def build_pipeline(
    settings: Settings,
    source: Optional[ClipSource] = None,
    fetcher: Optional[VideoFetcher] = None,
    analyzer: Optional[ContentAnalyzer] = None,
    database: Optional[Database] = None,
) -> ClipPipeline:
    """
    Wire the pipeline.

    Raises:
        ConfigurationError: a required credential is missing for a
            collaborator that was not passed in
    """
    database = database or Database(settings.database.url, echo=settings.database.echo)
    database.create_all()

    clip_repository = ClipRepository(database)
    run_repository = RunRepository(database)
    rate_limiter = RateLimiterRegistry(settings.workflow.rate_limits)
    event_bus = EventBus(source=SERVICE_NAME)

    source = source or build_source(settings, rate_limiter)
    fetcher = fetcher or YtDlpFetcher(
        executable=settings.download.ytdlp_path,
        video_format=settings.download.ytdlp_format,
    )
    analyzer = analyzer or build_analyzer(settings)

    downloader = ClipDownloader(
        repository=clip_repository,
        fetcher=fetcher,
        rate_limiter=rate_limiter,
        download_dir=settings.download.path,
        timeout=settings.download.timeout_seconds,
        event_bus=event_bus,
    )
    analysis_service = AnalysisService(
        analyzer,
        rate_limiter,
        enrichment_enabled=settings.analysis.enrichment_enabled,
    )
    processor = ClipProcessor(
        repository=clip_repository,
        analysis_service=analysis_service,
        thresholds=QualityThresholds.from_settings(settings.quality),
        event_bus=event_bus,
        pending_min_age_seconds=settings.workflow.pending_min_age_seconds,
    )
    workflow = settings.workflow
    orchestrator = PipelineOrchestrator(
        source=source,
        downloader=downloader,
        processor=processor,
        clip_repository=clip_repository,
        run_repository=run_repository,
        event_bus=event_bus,
        launch_delay_seconds=workflow.launch_delay_seconds,
        run_timeout_seconds=workflow.run_timeout_seconds,
        default_clip_limit=workflow.default_clip_limit,
        default_days_back=workflow.default_days_back,
        retention_days=workflow.retention_days,
        cleanup_remove_files=workflow.cleanup_remove_files,
    )

    sinks = build_sinks(settings, rate_limiter)
    workers: List[BaseWorker] = [
        AnalysisWorker(event_bus, processor, clip_repository),
        NotificationWorker(event_bus, sinks),
    ]
    if workflow.sweep_interval_seconds > 0:
        workers.append(SweepWorker(event_bus, orchestrator, interval=workflow.sweep_interval_seconds))

    logger.success(f"✓ Clip pipeline wired ({len(sinks)} sink(s), {len(workers)} worker(s))")
    return ClipPipeline(
        settings=settings,
        database=database,
        rate_limiter=rate_limiter,
        event_bus=event_bus,
        clip_repository=clip_repository,
        run_repository=run_repository,
        downloader=downloader,
        processor=processor,
        orchestrator=orchestrator,
        sinks=sinks,
        workers=workers,
    )
