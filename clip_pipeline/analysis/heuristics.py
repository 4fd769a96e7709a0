"""
Analysis Parsing
================
Turns provider responses into AnalysisResult.

Structured responses are read field by field with defaults. Free-text
responses go through keyword and regex rules: a score after "score",
a category keyword and tags after "tags:".
"""
import re
from typing import Any, Dict, List, Optional

from loguru import logger

from clip_pipeline.models import AnalysisResult, MAX_VIRAL_SCORE, build_hashtags

DEFAULT_SCORE = 5.0
DEFAULT_SENTIMENT = "NEUTRAL"
DEFAULT_ESTIMATED_VIEWS = 1000
DEFAULT_UPLOAD_TIME = "18:00"
DEFAULT_CATEGORY = "IMPRESSIVE"

# Views estimated from a heuristic score (0-10)
VIEWS_PER_SCORE_POINT = 200

MIN_TEXT_TAGS = 5
MAX_TEXT_TAGS = 8
FILLER_TAGS = ["gaming", "twitch", "clip", "gameplay", "moments", "highlights"]

SCORE_PATTERN = re.compile(r"(?:score|pontua[cç][aã]o)\D*?(\d+(?:\.\d+)?)", re.IGNORECASE | re.DOTALL)
TAG_SECTION_PATTERN = re.compile(r"tags\s*:(.*)", re.IGNORECASE)

# Checked in order; first hit wins.
CATEGORY_KEYWORDS = [
    ("IMPRESSIVE", ("impressive",)),
    ("EPIC", ("epic",)),
    ("FUNNY", ("funny", "humor", "hilarious")),
    ("FAIL", ("fail",)),
    ("EDUCATIONAL", ("educational", "tutorial")),
]


def _present(value: Optional[str]) -> bool:
    return bool(value) and value != "null"


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def extract_score(text: str) -> float:
    """
    Score mentioned in the text, on a 0-10 scale.

    Numbers above 10 are read as a 0-100 score.
    """
    match = SCORE_PATTERN.search(text)
    if not match:
        return DEFAULT_SCORE
    score = float(match.group(1))
    if score > MAX_VIRAL_SCORE:
        score = score / 10.0
    return min(score, MAX_VIRAL_SCORE)


def detect_category(text: str) -> str:
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def extract_tags(text: str, creator: str, game: str) -> List[str]:
    """Creator and game first, then tags listed after "tags:", padded with filler tags."""
    tags: List[str] = []
    for name in (creator, game):
        if _present(name) and name not in tags:
            tags.append(name)

    match = TAG_SECTION_PATTERN.search(text)
    if match:
        for raw in re.split(r"[,\s]+", match.group(1)):
            tag = re.sub(r"[^a-zA-Z0-9]", "", raw).lower()
            if len(tag) > 2 and tag not in tags:
                tags.append(tag)

    if len(tags) < MIN_TEXT_TAGS:
        for tag in FILLER_TAGS:
            if len(tags) >= MAX_TEXT_TAGS:
                break
            if tag not in tags:
                tags.append(tag)
    return tags


def build_title(original: str, category: str, creator: str, game: str) -> str:
    if len(original) < 10:
        title = f"{category.title()} Moment"
        if _present(creator):
            title += f" - {creator}"
        if _present(game):
            title += f" {game}"
        return title

    title = f"{original} - {category} CLIP"
    if _present(creator):
        title += f" | {creator}"
    return title


def analysis_from_text(text: str, title: str, description: str, creator: str, game: str) -> AnalysisResult:
    """Heuristic analysis of a free-text provider response."""
    score = extract_score(text)
    category = detect_category(text)
    tags = extract_tags(text, creator, game)

    summary = f"{category.title()} clip from {creator if _present(creator) else 'gaming'}"
    if _present(game):
        summary += f" playing {game}"
    summary += f". Viral score {score:.1f}."
    if description:
        summary += f" {description}"
    if len(text) > 100:
        summary += " " + re.sub(r"\s+", " ", text[:200]).strip()

    return AnalysisResult(
        optimized_title=build_title(title, category, creator, game),
        optimized_description=summary,
        tags=tags,
        category=category,
        viral_score=score,
        sentiment="POSITIVE",
        estimated_views=int(score * VIEWS_PER_SCORE_POINT),
        best_upload_time=DEFAULT_UPLOAD_TIME,
        social_hashtags=build_hashtags(tags, limit=4),
        thumbnail_suggestion=f"Frame that shows the {category.lower()} moment",
        source="heuristic",
    )


def analysis_from_structured(data: Dict[str, Any], title: str, description: str) -> AnalysisResult:
    """Read a structured provider response, filling gaps with defaults."""
    tags = data.get("tags")
    if not isinstance(tags, list) or not tags:
        tags = ["gaming", "twitch", "clip", "highlight"]
    tags = [str(t) for t in tags]

    hashtags = data.get("social_hashtags")
    if not isinstance(hashtags, list) or not hashtags:
        hashtags = build_hashtags(tags, limit=4)

    try:
        score = float(data.get("viral_score", DEFAULT_SCORE))
    except (TypeError, ValueError):
        logger.warning(f"Unreadable viral_score {data.get('viral_score')!r}, using {DEFAULT_SCORE}")
        score = DEFAULT_SCORE

    try:
        views = int(data.get("estimated_views", DEFAULT_ESTIMATED_VIEWS))
    except (TypeError, ValueError, OverflowError):
        views = DEFAULT_ESTIMATED_VIEWS

    return AnalysisResult(
        optimized_title=str(data.get("title") or title),
        optimized_description=str(data.get("description") or description),
        tags=tags,
        category=str(data.get("category") or "GENERAL"),
        viral_score=score,
        sentiment=str(data.get("sentiment") or DEFAULT_SENTIMENT),
        estimated_views=views,
        best_upload_time=str(data.get("best_upload_time") or DEFAULT_UPLOAD_TIME),
        social_hashtags=[str(h) for h in hashtags],
        thumbnail_suggestion=_optional_str(data.get("thumbnail_suggestion")),
        source="structured",
    )


def fallback_analysis(title: str, description: str, creator: str, game: str) -> AnalysisResult:
    """Neutral analysis used when a response carries nothing usable."""
    tags = [t for t in (creator, game) if _present(t)] + ["gaming", "twitch", "clip"]
    body = description or "Gameplay highlight."
    return AnalysisResult(
        optimized_title=f"{title} - {creator}" if _present(creator) else title,
        optimized_description=f"{creator or 'Streamer'} playing {game or 'a game'}. {body}",
        tags=tags,
        category="GAMING",
        viral_score=DEFAULT_SCORE,
        sentiment=DEFAULT_SENTIMENT,
        estimated_views=DEFAULT_ESTIMATED_VIEWS,
        best_upload_time=DEFAULT_UPLOAD_TIME,
        social_hashtags=build_hashtags(tags, limit=4),
        thumbnail_suggestion="Frame from the best moment",
        source="fallback",
    )
