"""
GitHub Actions pipeline client.

Dispatches the ad-hoc build workflow with the build and tester ids as inputs;
the workflow echoes them back to POST /build-completed when the IPA is ready.

See: https://docs.github.com/en/rest/actions/workflows#create-a-workflow-dispatch-event
"""

from typing import Any

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
REQUEST_TIMEOUT = 30  # seconds


class BuildTriggerError(Exception):
    """
    Pipeline dispatch failure.

    `reason` is one of "not_found" (wrong owner/repo/workflow, or the workflow
    lacks a workflow_dispatch trigger), "unauthorized" (bad or expired token)
    or "other".
    """

    def __init__(
        self,
        message: str,
        reason: str = "other",
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code
        self.response_body = response_body


class GitHubActionsClient:
    """Workflow dispatch and run lookup for the build repository."""

    def __init__(
        self,
        owner: str | None = None,
        repo: str | None = None,
        workflow_id: str | None = None,
        token: str | None = None,
        ref: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.owner = owner if owner is not None else settings.GITHUB_OWNER
        self.repo = repo if repo is not None else settings.GITHUB_REPO
        self.workflow_id = workflow_id or settings.GITHUB_WORKFLOW_ID
        self.ref = ref or settings.GITHUB_REF
        self._token = token if token is not None else settings.GITHUB_TOKEN
        self._client = httpx.AsyncClient(
            base_url=GITHUB_API_BASE_URL,
            timeout=httpx.Timeout(REQUEST_TIMEOUT),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _get_headers(self) -> dict:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    async def trigger_build(self, build_id: str, tester_id: str) -> None:
        """
        Dispatch the build workflow.

        Args:
            build_id: Build record id, echoed back on completion
            tester_id: Tester id, echoed back for the download email

        Raises:
            BuildTriggerError: For any response other than 204 No Content
        """
        url = f"/repos/{self.owner}/{self.repo}/actions/workflows/{self.workflow_id}/dispatches"
        body = {
            "ref": self.ref,
            "inputs": {"buildId": build_id, "testerId": tester_id},
        }

        logger.info(
            "Triggering build workflow",
            repository=f"{self.owner}/{self.repo}",
            workflow=self.workflow_id,
            ref=self.ref,
            build_id=build_id,
            tester_id=tester_id,
        )

        try:
            response = await self._client.post(url, json=body, headers=self._get_headers())
        except httpx.HTTPError as e:
            raise BuildTriggerError(f"GitHub API request failed: {e}") from e

        if response.status_code == 204:
            logger.info("Build workflow dispatched", build_id=build_id)
            return

        response_body = response.text
        if response.status_code == 404:
            raise BuildTriggerError(
                f"Workflow not found: {self.owner}/{self.repo} {self.workflow_id}. "
                "Check GITHUB_OWNER, GITHUB_REPO, GITHUB_WORKFLOW_ID and that the "
                "workflow has a workflow_dispatch trigger",
                reason="not_found",
                status_code=404,
                response_body=response_body,
            )

        if response.status_code in (401, 403):
            raise BuildTriggerError(
                "GitHub authorization failed. Check that GITHUB_TOKEN is valid and "
                "has actions:write and repo permissions",
                reason="unauthorized",
                status_code=response.status_code,
                response_body=response_body,
            )

        raise BuildTriggerError(
            f"GitHub API error (HTTP {response.status_code}): {response_body[:500]}",
            status_code=response.status_code,
            response_body=response_body,
        )

    async def get_workflow_run_status(self, run_id: str) -> dict[str, Any]:
        """Fetch a workflow run, for diagnostics."""
        url = f"/repos/{self.owner}/{self.repo}/actions/runs/{run_id}"
        try:
            response = await self._client.get(url, headers=self._get_headers())
        except httpx.HTTPError as e:
            raise BuildTriggerError(f"GitHub API request failed: {e}") from e

        if not response.is_success:
            reason = {404: "not_found", 401: "unauthorized", 403: "unauthorized"}.get(
                response.status_code, "other"
            )
            raise BuildTriggerError(
                f"GitHub API error (HTTP {response.status_code})",
                reason=reason,
                status_code=response.status_code,
                response_body=response.text,
            )

        return response.json()
