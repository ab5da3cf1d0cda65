"""Helpers shared by the schema modules."""

from uuid import uuid4


def new_id() -> str:
    """Generate a fresh record identifier."""
    return str(uuid4())
