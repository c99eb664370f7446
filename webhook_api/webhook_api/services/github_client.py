"""GitHub App client for the host API.

Generates the RS256 app JWT, exchanges an installation id for an
installation access token, and exposes the two REST operations the
pipeline needs on behalf of that installation: listing a pull request's
changed files and posting an issue comment.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Protocol

import httpx
import jwt
from diff_engine.models.files import ChangedFile
from pydantic import ValidationError

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

# Connect timeout: 10s, everything else: 30s.
DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

_FILES_PER_PAGE = 100
# The host API stops listing pull request files after 3000 entries.
_MAX_FILE_PAGES = 30


class GitHubAppError(Exception):
    """Raised when the GitHub App is not configured."""


class PullRequestHost(Protocol):
    """The host-API operations the pipeline relies on."""

    async def list_files(self, owner: str, repo: str, pull_number: int) -> list[ChangedFile]: ...

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> dict[str, Any]: ...


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


class InstallationClient:
    """Host-API handle authenticated as one GitHub App installation."""

    def __init__(self, http: httpx.AsyncClient, token: str, *, api_url: str = GITHUB_API_BASE) -> None:
        self._http = http
        self._token = token
        self._api_url = api_url.rstrip("/")

    async def list_files(self, owner: str, repo: str, pull_number: int) -> list[ChangedFile]:
        """Return every changed file of pull request *pull_number*.

        Raises
        ------
        httpx.HTTPStatusError
            If the API request fails.
        """
        files: list[ChangedFile] = []
        for page in range(1, _MAX_FILE_PAGES + 1):
            response = await self._http.get(
                f"{self._api_url}/repos/{owner}/{repo}/pulls/{pull_number}/files",
                params={"per_page": _FILES_PER_PAGE, "page": page},
                headers=_headers(self._token),
            )
            response.raise_for_status()
            data = response.json()
            for item in data:
                try:
                    files.append(ChangedFile.model_validate(item))
                except ValidationError:
                    logger.warning("Skipping unparseable file entry in %s/%s#%d", owner, repo, pull_number)
            if len(data) < _FILES_PER_PAGE:
                break

        logger.info("Fetched %d changed file(s) for %s/%s#%d", len(files), owner, repo, pull_number)
        return files

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> dict[str, Any]:
        """Post *body* as a comment on issue or pull request *issue_number*."""
        response = await self._http.post(
            f"{self._api_url}/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
            headers=_headers(self._token),
        )
        response.raise_for_status()
        logger.info("Comment added to %s/%s#%d", owner, repo, issue_number)
        return response.json()


class GitHubAppClient:
    """Client for GitHub App authentication.

    Usage::

        client = GitHubAppClient(app_id, private_key)
        host = await client.for_installation(12345)
        files = await host.list_files("octo", "repo", 7)

    Parameters
    ----------
    app_id:
        GitHub App ID.
    private_key:
        PEM-encoded RSA private key of the app.  Escaped ``\\n`` sequences
        are converted to newlines.
    api_url:
        Base URL of the REST API.
    http_client:
        Shared ``httpx.AsyncClient``; one is created when omitted.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        *,
        api_url: str = GITHUB_API_BASE,
        http_client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
    ) -> None:
        self._app_id = app_id
        self._private_key = private_key.replace("\\n", "\n") if "\\n" in private_key else private_key
        self._api_url = api_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self._app_id and self._private_key)

    def generate_jwt(self) -> str:
        """Generate a JWT for GitHub App authentication (valid 10 minutes)."""
        if not self.configured:
            raise GitHubAppError("GitHub App id and private key must be configured")
        now = int(time.time())
        payload = {
            "iat": now - 60,  # clock skew tolerance
            "exp": now + 600,
            "iss": self._app_id,
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    async def get_installation_token(self, installation_id: int) -> tuple[str, datetime]:
        """Exchange *installation_id* for an access token.

        Returns
        -------
        tuple[str, datetime]
            The access token and its expiry.

        Raises
        ------
        httpx.HTTPStatusError
            If the API request fails.
        """
        response = await self._http.post(
            f"{self._api_url}/app/installations/{installation_id}/access_tokens",
            headers=_headers(self.generate_jwt()),
        )
        response.raise_for_status()
        data = response.json()
        expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
        logger.info("Obtained installation token for %d", installation_id)
        return data["token"], expires_at

    async def for_installation(self, installation_id: int) -> InstallationClient:
        """Return a host-API handle authenticated as *installation_id*."""
        token, _ = await self.get_installation_token(installation_id)
        return InstallationClient(self._http, token, api_url=self._api_url)

    async def close(self) -> None:
        await self._http.aclose()
