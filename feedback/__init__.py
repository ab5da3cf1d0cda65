"""Feedback collection for rejected checkpoints."""

from .collector import CATEGORY_LABELS, FeedbackCollector

__all__ = ["CATEGORY_LABELS", "FeedbackCollector"]
