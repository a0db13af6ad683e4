"""
GitHub REST client for milestones, issues and the repository README.
"""

from typing import Any, Optional

import httpx

from epic_bot.core.config import GitHubSettings
from epic_bot.core.constants import MAX_TRACKER_PAGE_SIZE
from epic_bot.core.exceptions import ExternalServiceError, TrackerError
from epic_bot.core.http_client import BaseHTTPClient
from epic_bot.core.logging import get_logger

logger = get_logger(__name__)


class GitHubClient(BaseHTTPClient):
    """
    Client for the subset of the GitHub Issues API used for publishing.

    All paths are scoped to the configured owner/repo.
    """

    def __init__(
        self,
        config: GitHubSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url=config.api_url, timeout=config.timeout, transport=transport)
        self.config = config
        self._repo_path = f"/repos/{config.owner}/{config.repo}"

    @property
    def service_name(self) -> str:
        return "github"

    def _default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _error(self, message: str, details: dict[str, Any]) -> ExternalServiceError:
        return TrackerError(message, details=details)

    # Milestones

    async def create_milestone(self, title: str, description: str) -> dict[str, Any]:
        return await self._post(
            f"{self._repo_path}/milestones",
            data={"title": title, "description": description},
        )

    async def update_milestone(self, number: int, **fields: Any) -> dict[str, Any]:
        return await self._patch(f"{self._repo_path}/milestones/{number}", data=fields)

    async def get_milestone(self, number: int) -> dict[str, Any]:
        return await self._get(f"{self._repo_path}/milestones/{number}")

    async def list_milestones(self, state: str = "open") -> list[dict[str, Any]]:
        return await self._get(
            f"{self._repo_path}/milestones",
            params={
                "state": state,
                "sort": "created",
                "direction": "desc",
                "per_page": MAX_TRACKER_PAGE_SIZE,
            },
        )

    # Issues

    async def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str],
        milestone: Optional[int] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "body": body, "labels": labels}
        if milestone is not None:
            payload["milestone"] = milestone
        return await self._post(f"{self._repo_path}/issues", data=payload)

    async def update_issue(self, number: int, **fields: Any) -> dict[str, Any]:
        return await self._patch(f"{self._repo_path}/issues/{number}", data=fields)

    async def list_milestone_issues(self, milestone: int, state: str = "all") -> list[dict[str, Any]]:
        """
        All issues assigned to a milestone, following pagination.

        Pull requests share the issues endpoint and are filtered out.
        """
        issues: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._get(
                f"{self._repo_path}/issues",
                params={
                    "milestone": milestone,
                    "state": state,
                    "per_page": MAX_TRACKER_PAGE_SIZE,
                    "page": page,
                },
            )
            batch = batch or []
            issues.extend(item for item in batch if "pull_request" not in item)
            if len(batch) < MAX_TRACKER_PAGE_SIZE:
                break
            page += 1

        logger.debug("Milestone issues listed", milestone=milestone, count=len(issues))
        return issues

    # Repository

    async def get_readme(self) -> dict[str, Any]:
        return await self._get(f"{self._repo_path}/readme")
