"""Issue tracker integrations.

Trackers turn feedback into issues; the returned reference is attached with
FeedbackCollector.attach_external_issue.
"""

from .base import IssueTracker
from .github_issues import GitHubIssuesClient

__all__ = ["IssueTracker", "GitHubIssuesClient"]
