"""GitHub Issues tracker client."""

import os
from datetime import datetime

import httpx

from schemas.checkpoint import Checkpoint
from schemas.feedback import Feedback, FeedbackPriority, IssueReference

from .base import IssueTracker

# Keyword -> area label, first match wins
AREA_LABELS = [
    (("login", "auth"), "area:authentication"),
    (("patient",), "area:patient-management"),
    (("appointment", "schedul"), "area:scheduling"),
    (("billing", "claim"), "area:billing"),
]


class GitHubIssuesClient(IssueTracker):
    """Client for filing feedback as GitHub issues.

    Authentication via environment variables:
        GITHUB_TOKEN: Personal access token (or GH_TOKEN)
            Create at https://github.com/settings/tokens

    Usage:
        client = GitHubIssuesClient("owner/repo")
        ref = client.create_issue(feedback, checkpoint, "Patient intake")
    """

    def __init__(
        self,
        repo: str | None = None,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize GitHub Issues client.

        Args:
            repo: Repository in "owner/repo" format
            token: GitHub personal access token (or GITHUB_TOKEN/GH_TOKEN env var)
            transport: Optional httpx transport (used by tests)
        """
        self.repo = repo
        self.token = token or os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN", "")
        self.base_url = "https://api.github.com"
        self._transport = transport

        self._headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        if self.token:
            self._headers["Authorization"] = f"Bearer {self.token}"

    @property
    def name(self) -> str:
        return "github"

    def _client(self, timeout: int = 30) -> httpx.Client:
        return httpx.Client(timeout=timeout, transport=self._transport)

    def create_issue(
        self,
        feedback: Feedback,
        checkpoint: Checkpoint | None,
        feature_name: str,
        repo: str | None = None,
    ) -> IssueReference:
        """Create a GitHub issue for a feedback item.

        Args:
            feedback: The rejection to report
            checkpoint: Checkpoint the feedback belongs to
            feature_name: Feature under test
            repo: Optional repo override in "owner/repo" format

        Returns:
            IssueReference for the new issue
        """
        target_repo = repo or self.repo
        if not target_repo:
            raise ValueError(
                "Repository not specified. Pass repo to constructor or create_issue()."
            )
        if not self.token:
            raise ValueError(
                "GitHub token not set. Set GITHUB_TOKEN or GH_TOKEN environment variable."
            )

        payload = {
            "title": self.build_title(feedback, checkpoint),
            "body": self.build_body(feedback, checkpoint, feature_name),
            "labels": self.build_labels(feedback, checkpoint),
        }
        url = f"{self.base_url}/repos/{target_repo}/issues"

        try:
            with self._client() as client:
                response = client.post(url, headers=self._headers, json=payload)
        except httpx.RequestError as e:
            raise ConnectionError(f"Failed to connect to GitHub: {e}")

        if response.status_code == 401:
            raise ConnectionError(
                "GitHub authentication failed. "
                "Set GITHUB_TOKEN or GH_TOKEN environment variable."
            )
        elif response.status_code == 403:
            # Could be rate limiting or missing scope
            if "rate limit" in response.text.lower():
                raise ConnectionError(
                    "GitHub API rate limit exceeded. Try again later."
                )
            raise ConnectionError(
                "Access denied. The token needs permission to create issues."
            )
        elif response.status_code == 404:
            raise ValueError(f"Repository not found: {target_repo}")
        elif response.status_code != 201:
            raise ConnectionError(
                f"GitHub API error: {response.status_code} - {response.text}"
            )

        data = response.json()
        return IssueReference(
            tracker=self.name,
            id=str(data["number"]),
            url=data.get("html_url", f"https://github.com/{target_repo}/issues/{data['number']}"),
        )

    def validate_connection(self) -> bool:
        """Check if GitHub connection works."""
        url = f"{self.base_url}/user"
        try:
            with self._client(timeout=10) as client:
                response = client.get(url, headers=self._headers)
                # 200 = authenticated, 401 = unauthenticated (still "connected")
                return response.status_code in (200, 401)
        except httpx.RequestError:
            return False

    @staticmethod
    def build_title(feedback: Feedback, checkpoint: Checkpoint | None) -> str:
        prefix = "BUG" if feedback.is_blocker else "ENHANCEMENT"
        issue = feedback.issue if len(feedback.issue) <= 60 else feedback.issue[:57] + "..."
        if checkpoint is None:
            return f"{prefix}: {issue}"
        return f"{prefix} [{checkpoint.index}] {checkpoint.action}: {issue}"

    @staticmethod
    def build_labels(feedback: Feedback, checkpoint: Checkpoint | None) -> list[str]:
        """Labels for the issue.

        Priority decides bug vs enhancement; the checkpoint action adds at
        most one area label.
        """
        labels = ["tf-feedback"]

        if feedback.priority == FeedbackPriority.BLOCKER:
            labels.extend(["priority:critical", "bug"])
        else:
            labels.extend(["priority:low", "enhancement", "future-release"])

        labels.append(f"category:{feedback.category.value}")

        action = (checkpoint.action if checkpoint else "").lower()
        for keywords, label in AREA_LABELS:
            if any(k in action for k in keywords):
                labels.append(label)
                break

        return labels

    @staticmethod
    def build_body(feedback: Feedback, checkpoint: Checkpoint | None, feature_name: str) -> str:
        sections = [
            "## Testing Feedback Report",
            "",
            f"**Feature:** {feature_name}",
            f"**Date:** {datetime.now().isoformat()}",
            "",
        ]

        if checkpoint is not None:
            sections.extend([
                "## Checkpoint",
                "| Field | Value |",
                "|-------|-------|",
                f"| **Index** | {checkpoint.index} |",
                f"| **Action** | {checkpoint.action} |",
                f"| **Expected** | {checkpoint.expected_result} |",
                "",
            ])

        sections.extend([
            "## Problem",
            f"**Priority:** {feedback.priority.value}",
            f"**Category:** {feedback.category.value}",
        ])
        if feedback.field:
            sections.append(f"**Field/Element:** {feedback.field}")
        sections.extend([
            "",
            "### What's wrong",
            feedback.issue,
            "",
            "### Expected behavior",
            feedback.expected,
            "",
        ])
        if feedback.screenshot:
            sections.extend([f"**Screenshot:** {feedback.screenshot}", ""])

        sections.extend(["---", f"*Feedback ID: {feedback.id}*"])
        return "\n".join(sections)
