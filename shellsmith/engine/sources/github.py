"""GitHub input source.

Locators look like ``github:owner/repo`` or ``github:owner/repo/ref``.
"Latest" is the commit the ref currently points to (``HEAD`` when the ref
is omitted); a pinned revision is a full commit SHA that must still be
reachable through the commits API.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from shellsmith.engine.sources.base import SourceLookupError, SourceRevision, content_handle, split_locator

logger = logging.getLogger(__name__)


class GitHubSource:
    """``InputSource`` backed by the GitHub REST API."""

    def __init__(
        self,
        *,
        api_url: str = "https://api.github.com",
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def resolve(self, locator: str, revision: str | None = None) -> SourceRevision:
        owner, repo, ref = parse_github_locator(locator)
        target = revision or ref or "HEAD"
        url = f"{self._api_url}/repos/{owner}/{repo}/commits/{target}"

        payload = await self._get_json(url, locator=locator, target=target)
        sha = payload.get("sha")
        if not isinstance(sha, str) or not sha:
            msg = f"unexpected response for {owner}/{repo}@{target}: missing commit sha"
            raise SourceLookupError(msg)

        if revision is not None and sha != revision:
            # Abbreviated pins resolve to the full SHA; anything else is a mismatch.
            if not sha.startswith(revision):
                msg = f"revision '{revision}' resolved to unrelated commit '{sha}'"
                raise SourceLookupError(msg)
            sha = revision

        logger.debug("Resolved %s -> %s", locator, sha)
        return SourceRevision(revision=sha, handle=content_handle(locator, sha))

    async def _get_json(self, url: str, *, locator: str, target: str) -> dict[str, Any]:
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=self._headers())
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            msg = f"request to {url} failed: {exc}"
            raise SourceLookupError(msg) from exc

        if response.status_code in (404, 422):
            msg = f"revision '{target}' does not exist in {locator}"
            raise SourceLookupError(msg)
        if response.status_code >= 400:
            msg = f"GitHub API returned {response.status_code} for {url}"
            raise SourceLookupError(msg)
        try:
            payload = response.json()
        except ValueError as exc:
            msg = f"GitHub API returned a non-JSON body for {url}"
            raise SourceLookupError(msg) from exc
        if not isinstance(payload, dict):
            msg = f"GitHub API returned an unexpected body for {url}"
            raise SourceLookupError(msg)
        return payload


def parse_github_locator(locator: str) -> tuple[str, str, str | None]:
    """Split ``github:owner/repo[/ref]`` into ``(owner, repo, ref)``."""
    _, rest = split_locator(locator)
    parts = rest.strip("/").split("/", 2)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        msg = f"malformed GitHub locator '{locator}' (expected github:owner/repo[/ref])"
        raise SourceLookupError(msg)
    owner, repo = parts[0], parts[1]
    ref = parts[2] if len(parts) == 3 and parts[2] else None
    return owner, repo, ref
