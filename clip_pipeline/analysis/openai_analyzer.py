"""
OpenAI Content Analyzer
=======================
ContentAnalyzer backed by the OpenAI chat completions API.

The primary call asks for a JSON object; the enrichment call asks for free
text with trend context and is parsed heuristically.
"""
import json
from typing import Optional

from loguru import logger
from openai import AsyncOpenAI

from clip_pipeline.interfaces import ContentAnalyzer, ProviderResponse

SYSTEM_PROMPT = (
    "You are a short-form video strategist for gaming content. "
    "You rate Twitch clips for viral potential and write titles, descriptions and tags."
)

PRIMARY_PROMPT = """Analyze this Twitch clip and return a JSON object.

Title: {title}
Context: {description}
Streamer: {creator}
Game: {game}

Return JSON with:
{{
  "title": "optimized title",
  "description": "optimized description",
  "tags": ["tag", "..."],
  "category": "EPIC | FUNNY | FAIL | IMPRESSIVE | EDUCATIONAL | GENERAL",
  "viral_score": 0-10,
  "sentiment": "POSITIVE | NEUTRAL | NEGATIVE",
  "estimated_views": integer,
  "best_upload_time": "HH:MM",
  "social_hashtags": ["#tag", "..."],
  "thumbnail_suggestion": "what frame to use"
}}"""

ENRICHED_PROMPT = """Given current trends for {game} and the streamer {creator}, suggest how to
package this clip: "{title}" ({description}).

Answer in plain text. Include a line starting with "Score:" (0-10), a line
starting with "Tags:" (comma separated) and mention the best upload time."""


class OpenAIContentAnalyzer(ContentAnalyzer):
    """
    Usage:
        analyzer = OpenAIContentAnalyzer(api_key="sk-...", model="gpt-4o-mini")
        response = await analyzer.analyze(title, description, creator, game)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def analyze(self, title: str, description: str, creator: str, game: str) -> ProviderResponse:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": PRIMARY_PROMPT.format(
                        title=title, description=description, creator=creator, game=game
                    ),
                },
            ],
            response_format={"type": "json_object"},
            temperature=self.temperature,
        )
        content = response.choices[0].message.content or ""
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("⚠️ Provider returned invalid JSON, parsing as text")
            return ProviderResponse(text=content)

        if isinstance(data, dict):
            return ProviderResponse(structured=data)
        return ProviderResponse(text=content)

    async def analyze_enriched(
        self, title: str, description: str, creator: str, game: str
    ) -> Optional[ProviderResponse]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": ENRICHED_PROMPT.format(
                        title=title, description=description, creator=creator, game=game
                    ),
                },
            ],
            temperature=self.temperature,
        )
        return ProviderResponse(text=response.choices[0].message.content or "")
