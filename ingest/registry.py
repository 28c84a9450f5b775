"""
Server registry: maps a server id to the collaborators configured for it.
"""

import threading
from typing import Dict, Optional

from config import BotConfig, ServerConfig
from ingest.github import GitHubClient
from ingest.jira import JiraClient
from ingest.teamcity import TeamcityClient


class UnknownServerError(KeyError):
    """Raised when a server id has no configuration."""


class ServerConnection:
    """CI server, source host and issue tracker clients of one server id."""

    def __init__(self, config: ServerConfig, teamcity, github, jira):
        self.config = config
        self.server_id = config.code
        self.teamcity = teamcity
        self.github = github
        self.jira = jira


class ServerRegistry:
    """Lazily builds and caches one ServerConnection per configured server id."""

    def __init__(self, config: BotConfig):
        self._config = config
        self._connections: Dict[str, ServerConnection] = {}
        self._lock = threading.Lock()

    def lookup(self, server_id: Optional[str]) -> ServerConnection:
        code = server_id or self._config.default_server
        with self._lock:
            conn = self._connections.get(code)
            if conn is None:
                if code not in self._config.servers:
                    raise UnknownServerError(code)
                srv = self._config.servers[code]
                conn = ServerConnection(srv, TeamcityClient(srv.teamcity), GitHubClient(srv.github), JiraClient(srv.jira))
                self._connections[code] = conn
        return conn

    def register(self, connection: ServerConnection) -> None:
        """Install a pre-built connection (e.g. with alternative clients)."""
        with self._lock:
            self._connections[connection.server_id] = connection
