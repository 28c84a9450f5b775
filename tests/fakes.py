"""
In-memory collaborators for tests: TeamCity, GitHub and Jira clients without network access.
"""

from config import BotConfig, GitHubConfig, JiraConfig, ServerConfig, TeamcityConfig
from ingest.github import GitHubClient
from ingest.jira import JiraClient
from ingest.registry import ServerConnection, ServerRegistry
from normalize.models import BuildRef, BuildState
from normalize.util import normalize_build_ref

TC_HOST = 'https://tc.example.org/'
JIRA_URL = 'https://issues.example.org/jira'


def build_ref(build_id, state=BuildState.FINISHED, branch='pull/1/head', build_type_id='RunAll', status='FAILURE'):
    return BuildRef(build_id, build_type_id, branch, state, status)


def raw_build(build_id, build_type_id='RunAll', branch='pull/1/head', state='finished', status='FAILURE', **extra):
    raw = {'id': build_id, 'buildTypeId': build_type_id, 'branchName': branch, 'state': state, 'status': status}
    raw.update(extra)
    return raw


class FakeTeamcity:
    def __init__(self, host=TC_HOST):
        self._host = host
        self.builds = {}          # (build_type_id, branch) -> [BuildRef]
        self.details = {}         # build id -> raw build dict
        self.finished = {}        # (build_type_id, branch) -> [build id]
        self.build_types = {}     # build type id -> {'id', 'name', 'projectId'}
        self.composites = {}      # project id -> [build type id]
        self.failed_tests = {}    # build id -> [TestFailure]
        self.history = {}         # test id -> FailureSummary
        self.mutes = {}           # project id -> [MuteInfo]
        self.list_calls = []
        self.triggered = []
        self._next_id = 1000

    def host(self):
        return self._host

    def trigger_build(self, build_type_id, branch, clean_rebuild=False, queue_at_top=False):
        self._next_id += 1
        self.triggered.append((build_type_id, branch, queue_at_top))
        self.details[self._next_id] = raw_build(self._next_id, build_type_id, branch, state='queued', status=None)
        return self._next_id

    def list_builds(self, build_type_id, branch):
        self.list_calls.append((build_type_id, branch))
        return list(self.builds.get((build_type_id, branch), []))

    def get_build(self, build_id):
        return self.details[build_id]

    def find_build_ref(self, build_id):
        raw = self.details.get(build_id)
        return normalize_build_ref(raw) if raw is not None else None

    def get_last_finished_build_ids(self, build_type_id, branch, limit=1):
        return list(self.finished.get((build_type_id, branch), []))[:limit]

    def get_build_type(self, build_type_id):
        return self.build_types.get(build_type_id)

    def get_build_type_name(self, build_type_id):
        return (self.build_types.get(build_type_id) or {}).get('name') or build_type_id

    def list_composite_build_types(self, project_id):
        return list(self.composites.get(project_id, []))

    def get_failed_tests(self, build_id):
        return list(self.failed_tests.get(build_id, []))

    def get_test_history(self, test_id, branch=None, count=50):
        return self.history.get(test_id)

    def get_mutes(self, project_id):
        return list(self.mutes.get(project_id, []))


class FakeGitHub(GitHubClient):
    def __init__(self, config, prs=None, branches=None):
        super().__init__(config)
        self.prs = {pr.number: pr for pr in (prs or [])}
        self.branches = list(branches or [])
        self.calls = 0

    def list_pull_requests(self):
        self.calls += 1
        return list(self.prs.values())

    def get_pull_request(self, number):
        self.calls += 1
        return self.prs.get(int(number))

    def list_branches(self):
        self.calls += 1
        return list(self.branches)


class FakeJira(JiraClient):
    def __init__(self, config, tickets=None):
        super().__init__(config)
        self.tickets = list(tickets or [])
        self.posted = []
        self.error = None
        self._next_comment = 500

    def list_tickets(self):
        return list(self.tickets)

    def post_comment(self, ticket, body):
        if self.error is not None:
            raise self.error
        self._next_comment += 1
        self.posted.append((ticket, body))
        return str(self._next_comment)


def server_config(prefer_branches=False, default_build_type='RunAll', jira_url=JIRA_URL):
    return ServerConfig(
        code='apache',
        teamcity=TeamcityConfig(TC_HOST),
        github=GitHubConfig('apache/ignite', branch_prefix='ignite-', prefer_branches=prefer_branches),
        jira=JiraConfig(jira_url, 'IGNITE'),
        default_build_type=default_build_type,
    )


def make_registry(teamcity=None, github=None, jira=None, srv=None, **bot_kwargs):
    """BotConfig and ServerRegistry with one 'apache' server backed by fakes."""
    srv = srv or server_config()
    bot_kwargs.setdefault('poll_interval', 0.01)
    bot_kwargs.setdefault('max_workers', 2)
    bot = BotConfig({srv.code: srv}, **bot_kwargs)
    registry = ServerRegistry(bot)
    conn = ServerConnection(
        srv,
        teamcity if teamcity is not None else FakeTeamcity(),
        github if github is not None else FakeGitHub(srv.github),
        jira if jira is not None else FakeJira(srv.jira),
    )
    registry.register(conn)
    return bot, registry, conn
