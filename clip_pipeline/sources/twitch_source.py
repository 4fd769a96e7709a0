"""
Twitch Clip Source
Discovers clips through the Twitch Helix API.

Every HTTP request takes a permit from the ``twitch-api`` rate limiter.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx

from clip_pipeline.interfaces import ClipSource
from clip_pipeline.models import ChannelRef, Clip, TimeWindow
from clip_pipeline.rate_limit import RateLimiterRegistry

logger = logging.getLogger(__name__)

TWITCH_RATE_KEY = "twitch-api"
MAX_PAGES = 50
GAMES_BATCH = 100


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class TwitchClipSource(ClipSource):
    """
    Twitch Helix clip discovery.

    Features:
    - Channel resolution by login name
    - Cursor pagination over /clips
    - Game name lookup for discovered clips
    """

    def __init__(
        self,
        client_id: str,
        access_token: str,
        rate_limiter: RateLimiterRegistry,
        base_url: str = "https://api.twitch.tv/helix",
        page_size: int = 100,
        rate_limit_key: str = TWITCH_RATE_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.rate_limiter = rate_limiter
        self.rate_limit_key = rate_limit_key
        self.transport = transport
        self.timeout = timeout
        self.headers = {
            "Client-Id": client_id,
            "Authorization": f"Bearer {access_token}",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get(self, client: httpx.AsyncClient, path: str, params: Any) -> Dict[str, Any]:
        async with self.rate_limiter.permit(self.rate_limit_key):
            response = await client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def resolve_channel(self, name: str) -> Optional[ChannelRef]:
        """Look up a channel by login name."""
        async with self._client() as client:
            data = await self._get(client, "/users", {"login": name.lower()})

        users = data.get("data") or []
        if not users:
            logger.warning(f"Twitch channel not found: {name}")
            return None

        user = users[0]
        return ChannelRef(
            channel_id=str(user["id"]),
            name=user.get("login", name),
            display_name=user.get("display_name"),
        )

    async def fetch(self, channel: ChannelRef, window: TimeWindow) -> List[Clip]:
        """All clips for ``channel`` created inside ``window``."""
        raw_clips: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        seen_cursors = set()

        async with self._client() as client:
            for _ in range(MAX_PAGES):
                params = {
                    "broadcaster_id": channel.channel_id,
                    "started_at": _rfc3339(window.started_at),
                    "ended_at": _rfc3339(window.ended_at),
                    "first": self.page_size,
                }
                if cursor:
                    params["after"] = cursor

                data = await self._get(client, "/clips", params)
                raw_clips.extend(data.get("data") or [])

                cursor = (data.get("pagination") or {}).get("cursor")
                if not cursor or cursor in seen_cursors:
                    break
                seen_cursors.add(cursor)
            else:
                logger.warning(f"Stopped paginating clips for {channel.name} after {MAX_PAGES} pages")

            game_names = await self._game_names(client, (c.get("game_id") for c in raw_clips))

        logger.info(f"Fetched {len(raw_clips)} clips for {channel.name}")
        return [self._to_clip(raw, game_names) for raw in raw_clips]

    async def _game_names(self, client: httpx.AsyncClient, game_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        ids = sorted({g for g in game_ids if g})
        names: Dict[str, str] = {}
        for start in range(0, len(ids), GAMES_BATCH):
            batch = ids[start:start + GAMES_BATCH]
            try:
                data = await self._get(client, "/games", [("id", g) for g in batch])
            except httpx.HTTPError as e:
                logger.warning(f"Game lookup failed, leaving game names empty: {e}")
                return names
            for game in data.get("data") or []:
                names[str(game["id"])] = game.get("name", "")
        return names

    @staticmethod
    def _to_clip(raw: Dict[str, Any], game_names: Dict[str, str]) -> Clip:
        view_count = raw.get("view_count")
        return Clip(
            clip_id=str(raw["id"]),
            title=raw.get("title") or "",
            url=raw.get("url") or "",
            creator_name=raw.get("creator_name") or "",
            broadcaster_name=raw.get("broadcaster_name") or "",
            game_name=game_names.get(str(raw.get("game_id") or ""), ""),
            view_count=int(view_count) if view_count is not None else None,
            duration=float(raw.get("duration") or 0.0),
            created_at=_parse_time(raw.get("created_at")),
            thumbnail_url=raw.get("thumbnail_url"),
        )
