"""Checkpoint QA: interactive checkpoint-based feature testing."""

__version__ = "0.1.0"
