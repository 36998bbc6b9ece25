"""GitHub repository collector.

Searches repositories via GitHub REST API (sorted by stars) and pulls each
repository's README as the body text.
GitHub API 免费 5000 req/h (with token), 60 req/h (anonymous).
"""

import base64
import logging
from datetime import datetime

import httpx

from ..errors import AdapterError
from ..models import ContentItem
from .base import BaseCollector

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"

# Warn when fewer requests than this remain / 剩余额度低于此值时告警
RATE_LIMIT_WARNING = 10


def _get_headers(token: str) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GithubCollector(BaseCollector):
    """GitHub collector (code repositories)."""

    name = "github"
    display_name = "GitHub"

    def __init__(
        self,
        token: str = "",
        max_results: int = 5,
        timeout: float = 30.0,
    ) -> None:
        self.token = token
        self.max_results = max_results
        self.timeout = timeout

    def _check_rate_limit(self, resp: httpx.Response) -> None:
        remaining = resp.headers.get("x-ratelimit-remaining")
        if resp.status_code == 403 and remaining == "0":
            raise AdapterError("GitHub API rate limit exceeded")
        if remaining is not None and remaining.isdigit() and int(remaining) < RATE_LIMIT_WARNING:
            logger.warning(
                "GitHub API rate limit running low: %s/%s remaining",
                remaining, resp.headers.get("x-ratelimit-limit", "?"),
            )

    def _search(self, client: httpx.Client, keyword: str) -> list[dict]:
        resp = client.get(
            f"{GITHUB_API}/search/repositories",
            params={
                "q": keyword,
                "sort": "stars",
                "order": "desc",
                "per_page": self.max_results,
            },
        )
        self._check_rate_limit(resp)
        resp.raise_for_status()
        return resp.json().get("items", []) or []

    def _readme(self, client: httpx.Client, full_name: str) -> str:
        """Decoded README text, or "" when the repository has none."""
        resp = client.get(f"{GITHUB_API}/repos/{full_name}/readme")
        if resp.status_code == 404:
            return ""
        self._check_rate_limit(resp)
        resp.raise_for_status()
        data = resp.json()
        if data.get("encoding") != "base64":
            return data.get("content", "") or ""
        return base64.b64decode(data.get("content", "")).decode("utf-8", errors="replace")

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        items: list[ContentItem] = []
        failures: list[Exception] = []
        headers = _get_headers(self.token)

        with httpx.Client(timeout=self.timeout, headers=headers, follow_redirects=True) as client:
            for keyword in keywords:
                logger.info("GitHub repository search: %s", keyword)
                try:
                    repos = self._search(client, keyword)
                except Exception as e:
                    logger.exception("GitHub search failed for %r", keyword)
                    failures.append(e)
                    continue

                for repo in repos:
                    full_name = repo.get("full_name", "")
                    description = repo.get("description") or ""
                    try:
                        readme = self._readme(client, full_name)
                    except Exception:
                        logger.exception("Failed to fetch README for %s", full_name)
                        readme = ""

                    try:
                        items.append(ContentItem(
                            id=f"github:{repo.get('id', full_name)}",
                            title=f"{repo.get('name', full_name)} - GitHub Repository",
                            author=(repo.get("owner") or {}).get("login") or "Unknown",
                            source_url=repo.get("html_url", ""),
                            source_name=self.display_name,
                            summary=description or f"GitHub repository {full_name}",
                            body=readme or description,
                            tags=[keyword, "github", "repository", "code"],
                            published_at=_parse_date(repo.get("updated_at") or ""),
                            category="code",
                            metadata={
                                "full_name": full_name,
                                "stars": repo.get("stargazers_count", 0),
                                "forks": repo.get("forks_count", 0),
                                "language": repo.get("language"),
                                "description": description,
                            },
                        ))
                    except ValueError:
                        logger.debug("Skipping repository with invalid data: %s", full_name)

        self._raise_if_all_failed(items, failures, len(keywords))
        logger.info("GitHub: collected %d repositories", len(items))
        return items
