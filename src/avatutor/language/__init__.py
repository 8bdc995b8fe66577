"""Language-mix analysis for learner messages."""

from avatutor.language.analyzer import LanguageMixAnalyzer, analyze, needs_feedback

__all__ = ["LanguageMixAnalyzer", "analyze", "needs_feedback"]
