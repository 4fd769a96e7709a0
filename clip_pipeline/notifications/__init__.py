from .sinks import LoggingEventSink, WebhookEventSink

__all__ = ["LoggingEventSink", "WebhookEventSink"]
