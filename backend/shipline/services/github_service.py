"""Pull request lookup and PR comments against the GitHub REST API."""

import logging
from typing import Any, Protocol

import httpx

from shipline.config.settings import GitHubConfig
from shipline.exceptions import ExternalServiceError, NotifyError
from shipline.models.trigger import PullRequest, TriggerContext

logger = logging.getLogger(__name__)


class PullRequestLookup(Protocol):
    async def find_pull_requests(self, branch: str, state: str = "open") -> list[PullRequest]:
        ...


class InMemoryPullRequests:
    """Local lookup over a fixed list of pull requests (dry runs, tests)."""

    def __init__(self, pull_requests: list[PullRequest] | None = None) -> None:
        self.pull_requests = list(pull_requests or [])
        self.queries: list[tuple[str, str]] = []

    async def find_pull_requests(self, branch: str, state: str = "open") -> list[PullRequest]:
        self.queries.append((branch, state))
        return [
            pr
            for pr in self.pull_requests
            if pr.head == branch and (state == "all" or pr.state == state)
        ]


class GitHubService:
    """Finds pull requests by head branch and comments on the originating PR."""

    def __init__(
        self,
        config: GitHubConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.repository or "/" not in config.repository:
            raise ValueError("GitHub repository must be given as 'owner/name'")
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GitHubService":
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            headers=headers,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GitHubService must be used as async context manager")
        return self._client

    @property
    def owner(self) -> str:
        return self.config.repository.split("/", 1)[0]

    async def find_pull_requests(self, branch: str, state: str = "open") -> list[PullRequest]:
        """Return pull requests whose head is ``branch`` in ``state``."""
        endpoint = f"/repos/{self.config.repository}/pulls"
        params = {"head": f"{self.owner}:{branch}", "state": state, "per_page": 100}
        try:
            response = await self.client.get(endpoint, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"Pull request lookup failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Pull request lookup failed: {exc}") from exc

        pulls = [
            PullRequest(
                number=item["number"],
                title=item.get("title", ""),
                head=item.get("head", {}).get("ref", ""),
                base=item.get("base", {}).get("ref", ""),
                state=item.get("state", state),
                url=item.get("html_url", ""),
            )
            for item in response.json()
        ]
        logger.info("Found %d %s pull request(s) from %s", len(pulls), state, branch)
        return pulls

    async def post(self, trigger: TriggerContext, message: str) -> None:
        """Comment ``message`` on the trigger's originating pull request."""
        if trigger.pull_request is None:
            raise NotifyError(f"No originating pull request for {trigger.describe()}")
        endpoint = f"/repos/{self.config.repository}/issues/{trigger.pull_request}/comments"
        try:
            response = await self.client.post(endpoint, json={"body": message})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotifyError(
                f"Commenting on pull request #{trigger.pull_request} failed: {exc}"
            ) from exc
        logger.info("Commented on pull request #%d", trigger.pull_request)
