"""
Simple Jira client used for ticket lookup and visa comments.
Ticket listing is paged through the search API; posting a comment raises on any HTTP error
so the caller can turn it into a failed visa.
"""

import logging
from typing import List, Dict, Any

import requests

from config import JiraConfig
from normalize.models import Ticket
from normalize.util import normalize_ticket

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class JiraClient:
    """Minimal Jira client for a single project."""

    def __init__(self, config: JiraConfig):
        self._config = config
        self.base_url = config.url or ''
        self.headers = {"Accept": "application/json"}
        if config.token:
            self.headers["Authorization"] = f"Bearer {config.token}"

    def config(self) -> JiraConfig:
        return self._config

    def list_tickets(self) -> List[Ticket]:
        """Return unresolved tickets of the configured project."""
        if not self.base_url:
            return []
        jql = f'project = {self._config.project_code} AND resolution = Unresolved ORDER BY updated DESC'
        url = f"{self.base_url}/rest/api/2/search"
        issues: List[Dict[str, Any]] = []
        start_at = 0
        max_results = 100
        while True:
            params = {"jql": jql, "startAt": start_at, "maxResults": max_results, "fields": "summary,status,updated"}
            resp = requests.get(url, headers=self.headers, params=params, timeout=REQUEST_TIMEOUT)
            if resp.status_code != 200:
                logger.warning("Jira search failed with status %s", resp.status_code)
                break
            data = resp.json()
            page = data.get('issues', [])
            issues.extend(page)
            if len(page) < max_results:
                break
            start_at += max_results
        return [normalize_ticket(i) for i in issues]

    def ticket_url(self, key: str) -> str:
        """Browse URL of a ticket; with an empty key this is the browse URL prefix."""
        return f"{self.base_url}/browse/{key}"

    def comment_url(self, ticket: str, comment_id: str) -> str:
        return (
            f"{self.ticket_url(ticket)}?focusedCommentId={comment_id}"
            f"&page=com.atlassian.jira.plugin.system.issuetabpanels%3Acomment-tabpanel#comment-{comment_id}"
        )

    def post_comment(self, ticket: str, body: str) -> str:
        """Add a comment to the ticket and return the new comment id."""
        url = f"{self.base_url}/rest/api/2/issue/{ticket}/comment"
        headers = dict(self.headers)
        headers["Content-Type"] = "application/json"
        resp = requests.post(url, headers=headers, json={"body": body}, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        comment_id = resp.json().get('id')
        if not comment_id:
            raise ValueError(f"Jira response has no comment id for {ticket}")
        return str(comment_id)
