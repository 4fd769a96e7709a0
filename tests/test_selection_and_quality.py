"""
Tests for clip selection and the quality gate.
"""
from datetime import timedelta

from conftest import make_clip, make_downloaded

from clip_pipeline.extraction import select_top
from clip_pipeline.models import AnalysisResult, utc_now
from clip_pipeline.quality import QualityThresholds, evaluate, passes


def analysis(**overrides) -> AnalysisResult:
    data = {
        "optimized_title": "Great play",
        "optimized_description": "A clean round win.",
        "tags": ["fps", "clutch", "gaming"],
        "viral_score": 7.0,
    }
    data.update(overrides)
    return AnalysisResult(**data)


class TestSelectTop:
    """Ranking and de-duplication of discovered clips."""

    def test_ranks_by_views(self):
        views = [50, 10, 200, 5, 30]
        clips = [make_clip(f"c{i}", views=v) for i, v in enumerate(views)]

        selected = select_top(clips, set(), 3)

        assert [c.view_count for c in selected] == [200, 50, 30]

    def test_drops_already_downloaded_by_id_or_url(self):
        clips = [make_clip("a", views=100), make_clip("b", views=90), make_clip("c", views=80)]
        already = {"a", "https://clips.twitch.tv/b"}

        selected = select_top(clips, already, 5)

        assert [c.clip_id for c in selected] == ["c"]

    def test_duplicates_in_input_are_collapsed(self):
        clips = [make_clip("a", views=100), make_clip("a", views=100), make_clip("b", views=10)]
        assert [c.clip_id for c in select_top(clips, set(), 5)] == ["a", "b"]

    def test_unknown_views_are_excluded_when_any_are_known(self):
        clips = [make_clip("a", views=None), make_clip("b", views=3), make_clip("c", views=None)]
        assert [c.clip_id for c in select_top(clips, set(), 5)] == ["b"]

    def test_recency_fallback_without_view_counts(self):
        now = utc_now()
        clips = [
            make_clip("old", views=None, created_at=now - timedelta(days=3)),
            make_clip("new", views=None, created_at=now),
            make_clip("mid", views=None, created_at=now - timedelta(days=1)),
        ]
        assert [c.clip_id for c in select_top(clips, set(), 2)] == ["new", "mid"]

    def test_ties_break_on_id(self):
        clips = [make_clip("z", views=10), make_clip("a", views=10), make_clip("m", views=10)]
        assert [c.clip_id for c in select_top(clips, set(), 3)] == ["a", "m", "z"]

    def test_idempotent(self):
        clips = [make_clip(f"c{i}", views=v) for i, v in enumerate([5, 9, 1, 7])]
        first = select_top(clips, set(), 3)
        assert select_top(list(reversed(clips)), set(), 3) == first

    def test_empty_and_zero_limit(self):
        assert select_top([], set(), 5) == []
        assert select_top([make_clip("a")], set(), 0) == []


class TestQualityGate:
    """Publish-readiness checks."""

    def test_passes_at_exact_thresholds(self):
        clip = make_downloaded("a", duration=10.0, view_count=100)
        result = evaluate(analysis(viral_score=6.0), clip, QualityThresholds())
        assert result.passed
        assert result.gate_name == "all"

        clip = make_downloaded("b", duration=180.0, view_count=100)
        assert passes(analysis(viral_score=6.0), clip)

    def test_low_score_rejected(self):
        result = evaluate(analysis(viral_score=5.9), make_downloaded("a"))
        assert not result.passed
        assert result.gate_name == "viral_score"

    def test_duration_out_of_range_rejected(self):
        assert evaluate(analysis(), make_downloaded("a", duration=5.0)).gate_name == "duration"
        assert evaluate(analysis(), make_downloaded("b", duration=181.0)).gate_name == "duration"

    def test_low_views_rejected_unknown_views_allowed(self):
        assert evaluate(analysis(), make_downloaded("a", view_count=99)).gate_name == "views"
        assert evaluate(analysis(), make_downloaded("b", view_count=None)).passed

    def test_disallowed_terms_case_insensitive(self):
        result = evaluate(analysis(optimized_title="Huge RAGE QUIT moment"), make_downloaded("a"))
        assert result.gate_name == "content"
        assert result.details["term"] == "rage quit"

        result = evaluate(analysis(optimized_description="using a wall hack"), make_downloaded("b"))
        assert result.gate_name == "content"

    def test_too_few_tags_rejected(self):
        result = evaluate(analysis(tags=["one", "two"]), make_downloaded("a"))
        assert result.gate_name == "tags"

    def test_custom_thresholds(self):
        thresholds = QualityThresholds(min_viral_score=9.0, disallowed_terms=[])
        assert not passes(analysis(viral_score=8.5), make_downloaded("a"), thresholds)
        assert passes(analysis(viral_score=9.0, optimized_title="hack"), make_downloaded("b"), thresholds)

    def test_from_settings(self):
        from config import QualitySettings

        settings = QualitySettings(min_viral_score=7.5, min_tags=1, disallowed_terms=["spoiler"])
        thresholds = QualityThresholds.from_settings(settings)
        assert thresholds.min_viral_score == 7.5
        assert thresholds.min_tags == 1
        assert thresholds.disallowed_terms == ["spoiler"]
