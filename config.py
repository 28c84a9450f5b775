"""
Configuration loading for the visa bot.

Settings come from a JSON file with a handful of environment overrides, named with a short prefix to be easy to set in CI/containers:
- VISA_BOT_CONFIG: path to the JSON config file
- VISA_POLL_INTERVAL: float (seconds) between observer polls
- VISA_HISTORY_DB: path to the SQLite visa history
- VISA_FLAKY_THRESHOLD: float (percent); tests failing more often in the base branch are not blockers
API tokens fall back to TEAMCITY_TOKEN, GITHUB_TOKEN and JIRA_TOKEN.
"""

import json
import os
from typing import Any, Dict, List, Optional

DEFAULT_CONFIG_PATH = 'visa_bot.json'
DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_MAX_WORKERS = 4
DEFAULT_FLAKY_THRESHOLD = 4.0
DEFAULT_HISTORY_RUNS = 50
DEFAULT_HISTORY_DB = 'visas.db'
DEFAULT_ACTIVE_STATUSES = ['Patch Available']


class ConfigError(ValueError):
    """Raised for a missing or malformed configuration."""


class TeamcityConfig:
    def __init__(self, host: str, token: Optional[str] = None):
        # host always ends with '/', links are built as host + 'viewLog.html?...'
        self.host = host if host.endswith('/') else host + '/'
        self.token = token


class GitHubConfig:
    def __init__(self, repo: str, api_url: str = 'https://api.github.com', branch_prefix: str = 'ignite-', prefer_branches: bool = False, token: Optional[str] = None):
        self.repo = repo
        self.api_url = api_url.rstrip('/')
        self.branch_prefix = branch_prefix
        self.prefer_branches = prefer_branches
        self.token = token


class JiraConfig:
    def __init__(self, url: Optional[str], project_code: str, active_statuses: Optional[List[str]] = None, token: Optional[str] = None):
        self.url = url.rstrip('/') if url else None
        self.project_code = project_code
        self.active_statuses = list(active_statuses or DEFAULT_ACTIVE_STATUSES)
        self.token = token


class ServerConfig:
    """Settings of one CI server together with its source host and issue tracker."""

    def __init__(self, code: str, teamcity: TeamcityConfig, github: GitHubConfig, jira: JiraConfig, default_build_type: str = ''):
        self.code = code
        self.teamcity = teamcity
        self.github = github
        self.jira = jira
        self.default_build_type = default_build_type


class BotConfig:
    def __init__(
        self,
        servers: Dict[str, ServerConfig],
        default_server: Optional[str] = None,
        history_db: str = DEFAULT_HISTORY_DB,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_workers: int = DEFAULT_MAX_WORKERS,
        flaky_rate_threshold: float = DEFAULT_FLAKY_THRESHOLD,
        history_runs: int = DEFAULT_HISTORY_RUNS,
    ):
        self.servers = servers
        self.default_server = default_server or (next(iter(servers)) if servers else None)
        self.history_db = history_db
        self.poll_interval = poll_interval
        self.max_workers = max_workers
        self.flaky_rate_threshold = flaky_rate_threshold
        self.history_runs = history_runs

    def server(self, server_id: Optional[str]) -> ServerConfig:
        code = server_id or self.default_server
        if not code or code not in self.servers:
            raise ConfigError(f"Server is not configured: {code!r}")
        return self.servers[code]


def _require(section: Dict[str, Any], key: str, where: str):
    value = section.get(key)
    if not value:
        raise ConfigError(f"Missing '{key}' in {where}")
    return value


def _server_from_dict(code: str, data: Dict[str, Any]) -> ServerConfig:
    tc = data.get('teamcity') or {}
    gh = data.get('github') or {}
    jira = data.get('jira') or {}
    return ServerConfig(
        code=code,
        teamcity=TeamcityConfig(
            host=_require(tc, 'host', f"servers.{code}.teamcity"),
            token=tc.get('token') or os.getenv('TEAMCITY_TOKEN'),
        ),
        github=GitHubConfig(
            repo=_require(gh, 'repo', f"servers.{code}.github"),
            api_url=gh.get('api_url') or 'https://api.github.com',
            branch_prefix=gh.get('branch_prefix', 'ignite-'),
            prefer_branches=bool(gh.get('prefer_branches', False)),
            token=gh.get('token') or os.getenv('GITHUB_TOKEN'),
        ),
        jira=JiraConfig(
            url=jira.get('url'),
            project_code=_require(jira, 'project_code', f"servers.{code}.jira"),
            active_statuses=jira.get('active_statuses'),
            token=jira.get('token') or os.getenv('JIRA_TOKEN'),
        ),
        default_build_type=data.get('default_build_type') or '',
    )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def config_from_dict(data: Dict[str, Any]) -> BotConfig:
    """Build a BotConfig from a parsed config document, applying environment overrides."""
    if not isinstance(data, dict):
        raise ConfigError('Config root must be a JSON object')
    servers_raw = data.get('servers') or {}
    if not isinstance(servers_raw, dict) or not servers_raw:
        raise ConfigError("Config must define at least one entry under 'servers'")
    servers = {code: _server_from_dict(code, section or {}) for code, section in servers_raw.items()}
    observer = data.get('observer') or {}
    return BotConfig(
        servers=servers,
        default_server=data.get('default_server'),
        history_db=os.getenv('VISA_HISTORY_DB') or data.get('history_db') or DEFAULT_HISTORY_DB,
        poll_interval=_env_float('VISA_POLL_INTERVAL', observer.get('poll_interval', DEFAULT_POLL_INTERVAL)),
        max_workers=int(observer.get('max_workers', DEFAULT_MAX_WORKERS)),
        flaky_rate_threshold=_env_float('VISA_FLAKY_THRESHOLD', data.get('flaky_rate_threshold', DEFAULT_FLAKY_THRESHOLD)),
        history_runs=int(data.get('history_runs', DEFAULT_HISTORY_RUNS)),
    )


def load_config(path: Optional[str] = None) -> BotConfig:
    """Load configuration from a JSON file. The path defaults to VISA_BOT_CONFIG or visa_bot.json."""
    path = path or os.getenv('VISA_BOT_CONFIG') or DEFAULT_CONFIG_PATH
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}")
    return config_from_dict(data)
