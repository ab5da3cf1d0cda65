"""Pre-flight clarification interview."""

from .manager import PreFlightManager
from .questions import QUESTION_TEMPLATE, build_questions

__all__ = ["PreFlightManager", "QUESTION_TEMPLATE", "build_questions"]
