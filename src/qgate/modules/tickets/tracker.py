"""Azure Boards client used for vulnerability work items."""

from __future__ import annotations

import logging
from types import TracebackType
from urllib.parse import quote

import httpx

from qgate.errors import ErrorCode, NetworkError
from qgate.utils.retry import RetryPolicy, with_retry

from .mapper import TicketDraft

logger = logging.getLogger(__name__)

API_VERSION = "7.0"


class AzureBoardsTracker:
    """Query and create Bug work items through the Azure DevOps REST API."""

    def __init__(
        self,
        organization_url: str,
        project: str,
        access_token: str,
        area_path: str | None = None,
        work_item_type: str = "Bug",
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
    ):
        self.organization_url = organization_url.rstrip("/")
        self.project = project
        self.area_path = area_path
        self.work_item_type = work_item_type
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = httpx.AsyncClient(
            auth=("", access_token),
            timeout=timeout,
        )

    async def __aenter__(self) -> AzureBoardsTracker:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @property
    def _project_url(self) -> str:
        return f"{self.organization_url}/{quote(self.project)}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self.client.request(method, url, **kwargs)
        if not response.is_success:
            raise NetworkError(
                ErrorCode.TRACKER_FAILED,
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    async def find_existing(self, tag: str) -> bool:
        """Return True when a work item in the project already carries ``tag``."""
        project = self.project.replace("'", "''")
        escaped_tag = tag.replace("'", "''")
        query = (
            "SELECT [System.Id] FROM WorkItems "
            f"WHERE [System.TeamProject] = '{project}' "
            f"AND [System.Tags] CONTAINS '{escaped_tag}' "
            "AND [System.State] <> 'Closed'"
        )
        response = await with_retry(
            lambda: self._request(
                "POST",
                f"{self._project_url}/_apis/wit/wiql",
                params={"api-version": API_VERSION},
                json={"query": query},
            ),
            self.retry_policy,
        )
        return bool(response.json().get("workItems"))

    async def create(self, draft: TicketDraft) -> int:
        """Create a work item from ``draft`` and return its id. Never retried."""
        operations = [
            {"op": "add", "path": "/fields/System.Title", "value": draft.title},
            {"op": "add", "path": "/fields/System.Description", "value": draft.description},
            {
                "op": "add",
                "path": "/fields/Microsoft.VSTS.Common.Priority",
                "value": draft.priority,
            },
            {"op": "add", "path": "/fields/System.Tags", "value": "; ".join(draft.tags)},
        ]
        if self.area_path:
            operations.append(
                {"op": "add", "path": "/fields/System.AreaPath", "value": self.area_path}
            )
        response = await self._request(
            "POST",
            f"{self._project_url}/_apis/wit/workitems/${quote(self.work_item_type)}",
            params={"api-version": API_VERSION},
            json=operations,
            headers={"Content-Type": "application/json-patch+json"},
        )
        return int(response.json()["id"])
