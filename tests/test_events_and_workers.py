"""
Tests for the event bus, the event-driven workers and notification sinks.
"""
import asyncio
import json

import httpx
import pytest

from conftest import (
    FakeClipSource,
    RecordingSink,
    build_orchestrator,
    days_ago,
    make_clip,
    make_downloaded,
)

from clip_pipeline.event_bus import Event, EventBus, Topics
from clip_pipeline.models import ClipStatus, DownloadSource, RunState
from clip_pipeline.notifications import LoggingEventSink, WebhookEventSink
from clip_pipeline.rate_limit import RateLimiterRegistry
from clip_pipeline.workers import AnalysisWorker, NotificationWorker, SweepWorker


class TestTopics:
    def test_pattern_matching(self):
        assert Topics.matches_pattern("clip.*", Topics.CLIP_ANALYSIS_COMPLETED)
        assert Topics.matches_pattern("*.completed", Topics.WORKFLOW_COMPLETED)
        assert Topics.matches_pattern("*", Topics.CLIP_READY)
        assert not Topics.matches_pattern("workflow.*", Topics.CLIP_READY)

    def test_all_topics(self):
        topics = Topics.all_topics()
        assert Topics.CLIP_DOWNLOADED in topics
        assert Topics.WORKFLOW_FAILED in topics


class TestEventBus:
    """Publish, subscribe and dead-lettering."""

    @pytest.mark.asyncio
    async def test_publish_and_subscribe(self):
        bus = EventBus()
        received = []

        async def handler(event: Event):
            received.append(event)

        bus.subscribe("clip.*", handler)
        event_id = await bus.publish(Topics.CLIP_READY, {"clip_id": "a"}, correlation_id="run-1")

        assert len(received) == 1
        assert received[0].id == event_id
        assert received[0].correlation_id == "run-1"
        assert received[0].source == "clip-pipeline"
        assert json.loads(received[0].to_json())["payload"] == {"clip_id": "a"}

        assert bus.unsubscribe("clip.*", handler)
        await bus.publish(Topics.CLIP_READY, {"clip_id": "b"})
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_failing_handler_is_dead_lettered(self):
        bus = EventBus()
        received = []

        async def broken(event: Event):
            raise RuntimeError("nope")

        async def healthy(event: Event):
            received.append(event)

        bus.subscribe(Topics.CLIP_READY, broken)
        bus.subscribe(Topics.CLIP_READY, healthy)
        await bus.publish(Topics.CLIP_READY, {})

        assert len(received) == 1
        dead = bus.get_dead_letter_queue()
        assert len(dead) == 1
        assert dead[0][1] == "nope"
        assert bus.get_stats()["dead_letter_count"] == 1

    @pytest.mark.asyncio
    async def test_event_log_is_bounded(self):
        bus = EventBus(max_log_size=3)
        for i in range(5):
            await bus.publish(Topics.CLIP_READY, {"i": i})
        events = bus.get_recent_events()
        assert [e.payload["i"] for e in events] == [4, 3, 2]


class TestAnalysisWorker:
    """Analysis of clips downloaded outside a run."""

    @pytest.mark.asyncio
    async def test_manual_download_is_analyzed(self, bus, downloader, processor, clip_repo):
        worker = AnalysisWorker(bus, processor, clip_repo)
        await worker.start()

        await downloader.download(make_clip("a"), source=DownloadSource.MANUAL)

        stored = clip_repo.get("a")
        assert stored.processed is True
        assert stored.processing_status == ClipStatus.READY_FOR_UPLOAD.value
        assert worker.get_stats()["events_processed"] == 1

        await worker.stop()
        assert not worker.is_running

    @pytest.mark.asyncio
    async def test_automated_download_is_ignored(self, bus, downloader, processor, clip_repo):
        AnalysisWorker(bus, processor, clip_repo)

        await downloader.download(make_clip("a"), run_id="run-1", source=DownloadSource.AUTOMATED)

        assert clip_repo.get("a").processed is False

    @pytest.mark.asyncio
    async def test_missing_clip_is_ignored(self, bus, processor, clip_repo):
        worker = AnalysisWorker(bus, processor, clip_repo)
        await bus.publish(Topics.CLIP_DOWNLOADED, {"clip_id": "ghost", "source": "MANUAL"})
        assert worker.get_stats()["events_failed"] == 0


class TestNotificationWorker:
    """Routing bus events to sinks."""

    @pytest.mark.asyncio
    async def test_events_are_forwarded_with_names(self, bus):
        sink = RecordingSink()
        worker = NotificationWorker(bus, [sink])

        await bus.publish(Topics.CLIP_DOWNLOADED, {"clip_id": "a"}, correlation_id="run-1")
        await bus.publish(Topics.WORKFLOW_FAILED, {"run_id": "run-1"})
        await bus.publish(Topics.CLIP_READY, {"clip_id": "a"})
        await worker.drain()

        names = [name for name, _ in sink.received]
        assert names == ["clip_downloaded", "error"]
        assert sink.received[0][1]["correlation_id"] == "run-1"
        assert sink.received[0][1]["topic"] == Topics.CLIP_DOWNLOADED

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_block_others(self, bus):
        broken = RecordingSink(fail=True)
        healthy = RecordingSink()
        worker = NotificationWorker(bus, [broken, healthy])

        await bus.publish(Topics.WORKFLOW_COMPLETED, {"run_id": "r"})
        await worker.drain()

        assert [name for name, _ in healthy.received] == ["workflow_completed"]
        assert bus.get_dead_letter_queue() == []

    @pytest.mark.asyncio
    async def test_slow_sink_does_not_delay_run(self, bus, downloader, processor, clip_repo, run_repo):
        sink = RecordingSink(delay=0.5)
        worker = NotificationWorker(bus, [sink])
        source = FakeClipSource({"streamer": [make_clip("a")]})
        orchestrator = build_orchestrator(source, downloader, processor, clip_repo, run_repo, bus)

        loop = asyncio.get_running_loop()
        started = loop.time()
        run = await orchestrator.run_channel("streamer")
        elapsed = loop.time() - started

        assert run.state == RunState.READY
        assert elapsed < 0.4
        assert worker.pending_deliveries > 0

        await worker.stop()
        assert worker.pending_deliveries == 0
        names = [name for name, _ in sink.received]
        assert "clip_downloaded" in names
        assert "workflow_completed" in names


class TestSweepWorker:
    """Periodic pending-clip sweep."""

    @pytest.mark.asyncio
    async def test_sweep_loop_processes_pending(self, bus, downloader, processor, clip_repo, run_repo):
        clip_repo.add(make_downloaded("manual", download_date=days_ago(1)))
        orchestrator = build_orchestrator(FakeClipSource({}), downloader, processor, clip_repo, run_repo, bus)
        worker = SweepWorker(bus, orchestrator, interval=0.05)

        await worker.start()
        for _ in range(40):
            if worker.sweep_count:
                break
            await asyncio.sleep(0.05)
        await worker.stop()

        assert worker.sweep_count >= 1
        assert clip_repo.get("manual").processed is True

        first_sweep = bus.get_recent_events(Topics.CLIP_SWEEP_COMPLETED)[-1]
        assert first_sweep.payload["processed"] == 1
        assert first_sweep.payload["status"]["total_clips_ready"] == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_loop(self, bus, downloader, processor, clip_repo, run_repo):
        orchestrator = build_orchestrator(FakeClipSource({}), downloader, processor, clip_repo, run_repo, bus)
        worker = SweepWorker(bus, orchestrator, interval=60.0)

        await worker.start()
        await worker.stop()

        assert worker.sweep_count == 0
        assert not worker.is_running
        assert bus.get_recent_events(Topics.CLIP_SWEEP_COMPLETED) == []


class TestSinks:
    """Logging and webhook sinks."""

    @pytest.mark.asyncio
    async def test_logging_sink_keeps_history(self):
        sink = LoggingEventSink(history_size=2)
        for i in range(3):
            await sink.notify("clip_downloaded", {"clip_id": str(i)})
        assert [h["payload"]["clip_id"] for h in sink.history] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_webhook_posts_flat_body(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(204)

        limiter = RateLimiterRegistry({"webhook": (10, 60.0)})
        sink = WebhookEventSink("https://hooks.example/x", limiter, transport=httpx.MockTransport(handler))

        await sink.notify("workflow_completed", {"run_id": "r", "clips_ready": 2})

        assert sink.sent == 1
        assert bodies[0]["event"] == "workflow_completed"
        assert bodies[0]["run_id"] == "r"
        assert bodies[0]["clips_ready"] == 2
        assert "timestamp" in bodies[0]

    @pytest.mark.asyncio
    async def test_webhook_drops_when_rate_limited(self):
        limiter = RateLimiterRegistry({"webhook": (1, 60.0)})
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        sink = WebhookEventSink("https://hooks.example/x", limiter, transport=transport)

        await sink.notify("error", {"run_id": "r"})
        await sink.notify("error", {"run_id": "r"})

        assert sink.sent == 1
        assert sink.dropped == 1

    @pytest.mark.asyncio
    async def test_webhook_errors_are_swallowed(self):
        limiter = RateLimiterRegistry({"webhook": (10, 60.0)})
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        sink = WebhookEventSink("https://hooks.example/x", limiter, transport=transport)

        await sink.notify("error", {"run_id": "r"})

        assert sink.sent == 0
        assert sink.dropped == 1
