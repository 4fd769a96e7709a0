"""
Analysis
========
AI analysis stage for downloaded clips.
"""
from .analysis_service import AnalysisService, merge_analyses
from .openai_analyzer import OpenAIContentAnalyzer

__all__ = ["AnalysisService", "merge_analyses", "OpenAIContentAnalyzer"]
