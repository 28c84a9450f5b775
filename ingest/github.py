"""
Minimal GitHub client for the tracked repository: open pull requests and branches.
Provides a safe default (empty lists) when the API answers with an error while paging.
"""
import logging
from typing import List, Dict, Any, Optional

import requests

from config import GitHubConfig
from normalize.models import PullRequest
from normalize.util import normalize_pull_request

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class GitHubClient:
    """Simple GitHub client to fetch pull requests and branches of one repository."""

    def __init__(self, config: GitHubConfig):
        self._config = config
        self.base_url = config.api_url
        self.repo = config.repo
        self.headers = {"Accept": "application/vnd.github+json"}
        if config.token:
            self.headers["Authorization"] = f"Bearer {config.token}"

    def config(self) -> GitHubConfig:
        return self._config

    def git_branch_prefix(self) -> str:
        return self._config.branch_prefix

    def _fetch_pages(self, url: str, params: Dict[str, Any], per_page: int = 100) -> List[Dict[str, Any]]:
        page = 1
        items: List[Dict[str, Any]] = []
        while True:
            page_params = dict(params)
            page_params.update({"page": page, "per_page": per_page})
            resp = requests.get(url, headers=self.headers, params=page_params, timeout=REQUEST_TIMEOUT)
            if resp.status_code != 200:
                logger.warning("GitHub request %s failed with status %s", url, resp.status_code)
                break
            data = resp.json()
            items.extend(data)
            if len(data) < per_page:
                break
            page += 1
        return items

    def list_pull_requests(self) -> List[PullRequest]:
        """Open pull requests of the repository."""
        url = f"{self.base_url}/repos/{self.repo}/pulls"
        return [normalize_pull_request(pr) for pr in self._fetch_pages(url, {"state": "open"})]

    def get_pull_request(self, number: int) -> Optional[PullRequest]:
        """Single pull request by number, None when it does not exist."""
        url = f"{self.base_url}/repos/{self.repo}/pulls/{int(number)}"
        resp = requests.get(url, headers=self.headers, timeout=REQUEST_TIMEOUT)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return normalize_pull_request(resp.json())

    def list_branches(self) -> List[str]:
        url = f"{self.base_url}/repos/{self.repo}/branches"
        return [b.get('name') for b in self._fetch_pages(url, {}) if b.get('name')]
