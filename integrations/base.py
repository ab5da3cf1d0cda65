"""Base classes for issue tracker integrations."""

from abc import ABC, abstractmethod

from schemas.checkpoint import Checkpoint
from schemas.feedback import Feedback, IssueReference


class IssueTracker(ABC):
    """Base class for issue tracker clients.

    Subclasses file feedback as issues in a specific tracker and return a
    reference the caller attaches to the feedback record. The session
    engine never calls a tracker itself.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Tracker name (e.g., 'github')."""
        ...

    @abstractmethod
    def create_issue(
        self,
        feedback: Feedback,
        checkpoint: Checkpoint | None,
        feature_name: str,
    ) -> IssueReference:
        """File one feedback item as an issue.

        Args:
            feedback: The rejection to report
            checkpoint: Checkpoint the feedback was recorded against
            feature_name: Feature under test

        Returns:
            Reference to the created issue

        Raises:
            ValueError: If the tracker is not configured
            ConnectionError: If the tracker is unavailable or refuses the request
        """
        ...

    @abstractmethod
    def validate_connection(self) -> bool:
        """Check if connection to tracker is valid.

        Returns:
            True if connection works, False otherwise
        """
        ...
