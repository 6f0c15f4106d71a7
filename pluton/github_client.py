"""GitHub API integration for analyzing remote repositories."""

import base64
import logging
import os
import time
from typing import Optional

import requests

from pluton import __version__
from pluton.config import AnalyzerConfig
from pluton.errors import SourceFetchError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15
MAX_RATE_LIMIT_WAIT = 60


def is_github_url(target: str) -> bool:
    return target.startswith(("https://github.com/", "http://github.com/", "github.com/"))


class GitHubClient:
    """Client for fetching the source files of a repository."""

    API_BASE = "https://api.github.com"

    def __init__(self, token: Optional[str] = None, session: Optional[requests.Session] = None):
        self.token = token or os.environ.get("GITHUB_TOKEN", "")
        self.session = session or requests.Session()
        if self.token:
            self.session.headers["Authorization"] = f"token {self.token}"
        self.session.headers["Accept"] = "application/vnd.github.v3+json"
        self.session.headers["User-Agent"] = f"pluton/{__version__}"
        self._rate_limit_remaining = 60
        self._rate_limit_reset = 0

    @staticmethod
    def parse_repo_url(url: str) -> tuple[str, str]:
        """Parse a GitHub URL (or ``owner/repo``) to ``(owner, repo)``."""
        url = url.rstrip("/")
        for prefix in ("https://github.com/", "http://github.com/", "github.com/"):
            if url.startswith(prefix):
                parts = url[len(prefix):].split("/")
                if len(parts) >= 2 and parts[0] and parts[1]:
                    return parts[0], parts[1].removesuffix(".git")
        parts = url.split("/")
        if len(parts) == 2 and all(parts):
            return parts[0], parts[1]
        raise SourceFetchError(f"Cannot parse GitHub URL: {url}")

    def fetch_repo_files(
        self,
        repo_url: str,
        config: Optional[AnalyzerConfig] = None,
        max_files: int = 500,
    ) -> dict[str, str]:
        """Fetch source files from a GitHub repository's default branch.

        Returns dict of {filepath: content}, sorted by path.

        Raises:
            SourceFetchError: If the repository or its file tree is unreachable.
        """
        config = config or AnalyzerConfig()
        owner, repo = self.parse_repo_url(repo_url)

        repo_info = self._api_get(f"/repos/{owner}/{repo}")
        if not repo_info:
            raise SourceFetchError(f"Could not access repository: {owner}/{repo}")
        default_branch = repo_info.get("default_branch", "main")

        tree = self._api_get(
            f"/repos/{owner}/{repo}/git/trees/{default_branch}",
            params={"recursive": "1"},
        )
        if not tree or "tree" not in tree:
            raise SourceFetchError(f"Could not fetch file tree for {owner}/{repo}")
        if tree.get("truncated"):
            logger.warning("File tree of %s/%s is truncated; some files are missing", owner, repo)

        target_files = sorted(
            item["path"] for item in tree["tree"]
            if item.get("type") == "blob" and self._wanted(item["path"], config)
        )
        if len(target_files) > max_files:
            logger.warning("Fetching the first %d of %d files", max_files, len(target_files))
            target_files = target_files[:max_files]

        files = {}
        for filepath in target_files:
            content = self._fetch_file_content(owner, repo, filepath, default_branch)
            if content is None:
                logger.warning("Skipping %s: could not fetch content", filepath)
            else:
                files[filepath] = content
            self._respect_rate_limit()
        return files

    @staticmethod
    def _wanted(path: str, config: AnalyzerConfig) -> bool:
        if any(part in config.excluded_dirs for part in path.split("/")[:-1]):
            return False
        return path.endswith(tuple(config.extensions))

    def _fetch_file_content(
        self, owner: str, repo: str, path: str, branch: str
    ) -> Optional[str]:
        """Fetch raw file content from GitHub."""
        result = self._api_get(
            f"/repos/{owner}/{repo}/contents/{path}",
            params={"ref": branch},
        )
        if result and "content" in result:
            return base64.b64decode(result["content"]).decode("utf-8", errors="replace")
        return None

    def _api_get(self, endpoint: str, params: Optional[dict] = None) -> Optional[dict]:
        """Make a GET request to the GitHub API with rate limit handling."""
        url = f"{self.API_BASE}{endpoint}"
        try:
            resp = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT)
        except requests.exceptions.RequestException as exc:
            raise SourceFetchError(f"GitHub request failed: {exc}") from exc

        self._rate_limit_remaining = int(resp.headers.get("X-RateLimit-Remaining", 60))
        self._rate_limit_reset = int(resp.headers.get("X-RateLimit-Reset", 0))

        if resp.status_code == 200:
            return resp.json()
        if resp.status_code == 403 and self._rate_limit_remaining == 0:
            wait = max(0, self._rate_limit_reset - int(time.time())) + 1
            if wait <= MAX_RATE_LIMIT_WAIT:
                logger.info("GitHub rate limit reached, waiting %ds", wait)
                time.sleep(wait)
                return self._api_get(endpoint, params)
            raise SourceFetchError("GitHub API rate limit exceeded; set GITHUB_TOKEN")
        logger.debug("GET %s returned HTTP %d", endpoint, resp.status_code)
        return None

    def _respect_rate_limit(self):
        """Sleep if approaching rate limit."""
        if self._rate_limit_remaining < 5:
            wait = max(0, self._rate_limit_reset - int(time.time())) + 1
            if wait <= MAX_RATE_LIMIT_WAIT:
                time.sleep(wait)
