"""GitHub adapters built on the ``gh`` CLI.

``gh api`` handles authentication and host resolution; when no repo is
configured the ``{owner}/{repo}`` placeholders resolve to the repository
of the current directory.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..constants import GH_TIMEOUT
from ..errors import CommandError, TransportError
from ..models import CheckRun, CommitStatus, PullRequestInfo, PullRequestRef, PullRequestSpec
from .process import run_command

logger = logging.getLogger(__name__)

DEFAULT_REPO = "{owner}/{repo}"
PER_PAGE = 100


class GhClient:
    """Thin JSON wrapper around ``gh api``."""

    def __init__(
        self,
        exec_path: str = "gh",
        repo: str | None = None,
        cwd: Path | None = None,
        timeout: float = GH_TIMEOUT,
    ) -> None:
        self.exec_path = exec_path
        self.repo = repo or DEFAULT_REPO
        self.cwd = cwd
        self.timeout = timeout

    def path(self, suffix: str) -> str:
        return f"repos/{self.repo}/{suffix}"

    async def api(
        self,
        endpoint: str,
        method: str = "GET",
        fields: dict[str, str] | None = None,
        typed_fields: dict[str, str] | None = None,
    ) -> Any:
        """Call ``gh api`` and decode the JSON response.

        Args:
            endpoint: API path relative to the host
            method: HTTP method
            fields: String parameters (``-f``)
            typed_fields: Parameters gh converts to JSON literals (``-F``)

        Raises:
            TransportError: If gh fails or returns something that is not JSON
        """
        args = [self.exec_path, "api", "--method", method, endpoint]
        for key, value in (fields or {}).items():
            args.extend(["-f", f"{key}={value}"])
        for key, value in (typed_fields or {}).items():
            args.extend(["-F", f"{key}={value}"])

        try:
            result = await run_command(args, cwd=self.cwd, timeout=self.timeout)
        except CommandError as e:
            raise TransportError(f"gh api {endpoint} failed: {e}") from e
        if not result.ok:
            raise TransportError(
                f"gh api {endpoint} exited with {result.exit_code}: {result.stderr.strip()}"
            )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise TransportError(f"gh api {endpoint} returned invalid JSON: {e}") from e


class GhCheckStatusProvider:
    """Check status provider reading check runs and commit statuses."""

    def __init__(self, client: GhClient) -> None:
        self.client = client

    async def pull_request(self, number: int) -> PullRequestInfo:
        data = await self.client.api(self.client.path(f"pulls/{number}"))
        try:
            return PullRequestInfo(
                number=data["number"],
                head_sha=data["head"]["sha"],
                head_ref=data["head"].get("ref", ""),
                base_ref=data["base"].get("ref", ""),
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise TransportError(f"Unexpected pull request payload for #{number}: {e}") from e

    async def check_runs_for_commit(self, sha: str) -> list[CheckRun]:
        data = await self.client.api(self.client.path(f"commits/{sha}/check-runs?per_page={PER_PAGE}"))
        try:
            return [CheckRun.model_validate(run) for run in data.get("check_runs", [])]
        except (AttributeError, ValidationError) as e:
            raise TransportError(f"Unexpected check-runs payload for {sha[:12]}: {e}") from e

    async def combined_status_for_ref(self, sha: str) -> list[CommitStatus]:
        data = await self.client.api(self.client.path(f"commits/{sha}/status"))
        try:
            return [CommitStatus.model_validate(status) for status in data.get("statuses", [])]
        except (AttributeError, ValidationError) as e:
            raise TransportError(f"Unexpected status payload for {sha[:12]}: {e}") from e


class GhPullRequests:
    """Pull request creator using the REST endpoint through gh."""

    def __init__(self, client: GhClient) -> None:
        self.client = client

    async def create_pull_request(self, spec: PullRequestSpec) -> PullRequestRef:
        data = await self.client.api(
            self.client.path("pulls"),
            method="POST",
            fields={"title": spec.title, "body": spec.body, "head": spec.head, "base": spec.base},
            typed_fields={"draft": "true" if spec.draft else "false"},
        )
        try:
            ref = PullRequestRef(number=data["number"], url=data.get("html_url", ""), branch=spec.head)
        except (KeyError, TypeError, ValidationError) as e:
            raise TransportError(f"Unexpected pull request creation payload: {e}") from e
        logger.info(f"Opened PR #{ref.number} from {spec.head} into {spec.base}")
        return ref
