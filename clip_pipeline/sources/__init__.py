from .twitch_source import TwitchClipSource

__all__ = ["TwitchClipSource"]
