"""
Data models for contribution check statuses, visa requests and visa results.
"""
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from normalize.models import TestFailure


@dataclass(frozen=True)
class ContributionKey:
    """Identity of a unit of work being observed."""

    server_id: str
    branch: str


class ObservationPhase:
    OBSERVING = 'observing'
    FINISHED = 'finished'
    CANCELLED = 'cancelled'


class ContributionToCheck:
    """
    A pull request or a PR-less (ticket driven) contribution with its current CI branch.
    Negative pr_number encodes the branch suffix of a PR-less contribution.
    """

    def __init__(self, pr_number: Optional[int] = None):
        self.pr_number = pr_number
        self.pr_title = ''
        self.pr_html_url = ''
        self.pr_head_commit = ''
        self.pr_time_update = ''
        self.pr_author = ''
        self.pr_author_avatar_url = ''
        self.jira_issue_id: Optional[str] = None
        self.jira_status_name: Optional[str] = None
        self.jira_issue_url: Optional[str] = None
        self.tc_branch_name: Optional[str] = None

    def to_dict(self):
        return dict(vars(self))


class ContributionCheckStatus:
    """
    Current CI state of a contribution for one build type. Recomputed on every query.
    """

    def __init__(self, suite_id: str, resolved_branch: Optional[str] = None):
        self.suite_id = suite_id
        self.resolved_branch = resolved_branch
        self.branch_with_finished_suite: Optional[str] = None
        self.suite_is_finished = False
        self.finished_suite_commit: Optional[str] = None
        self.queued_builds = 0
        self.running_builds = 0
        self.web_links_queued_suites: List[str] = []
        self.observations_status: Optional[str] = None

    def to_dict(self):
        d = dict(vars(self))
        d['web_links_queued_suites'] = ' '.join(self.web_links_queued_suites)
        return d


class SuiteStatus:
    """
    Failure snapshot of one suite of a build chain.
    """

    def __init__(self, name: str, suite_id: str, failed_tests: int = 0, result: str = '', web_to_build: str = '', test_failures: Optional[List[TestFailure]] = None):
        self.name = name
        self.suite_id = suite_id
        self.failed_tests = failed_tests
        self.result = result
        self.web_to_build = web_to_build
        self.test_failures = test_failures or []


@dataclass(frozen=True)
class Visa:
    """Terminal outcome of one sign-off attempt."""

    status: str
    jira_comment_id: Optional[str] = None
    blockers: int = 0

    JIRA_COMMENTED = 'JIRA commented'

    def __post_init__(self):
        if self.blockers < 0:
            raise ValueError(f"blockers must be non-negative: {self.blockers}")

    @property
    def is_success(self) -> bool:
        return self.jira_comment_id is not None

    def to_dict(self):
        return {'status': self.status, 'jira_comment_id': self.jira_comment_id, 'blockers': self.blockers}

    @classmethod
    def from_dict(cls, data):
        return cls(status=data.get('status') or '', jira_comment_id=data.get('jira_comment_id'), blockers=int(data.get('blockers') or 0))


class VisaRequest:
    """
    One requested sign-off for a branch. observing stays True until a result is set or the
    observation is cancelled; after a result is set the request no longer changes.
    """

    def __init__(self, server_id: str, branch: str, build_type_id: str, ticket: Optional[str] = None, user_name: str = '', build_ids: Optional[List[int]] = None, date: Optional[float] = None, observing: bool = False, request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex
        self.server_id = server_id
        self.branch = branch
        self.build_type_id = build_type_id
        self.ticket = ticket
        self.user_name = user_name
        self.build_ids = list(build_ids or [])
        self.date = date if date is not None else time.time()
        self.observing = observing
        self.result: Optional[Visa] = None

    @property
    def key(self) -> ContributionKey:
        return ContributionKey(self.server_id, self.branch)

    def set_result(self, visa: Visa) -> 'VisaRequest':
        if self.result is not None:
            raise ValueError(f"Visa result already recorded for {self.request_id}")
        self.result = visa
        self.observing = False
        return self

    def cancel(self) -> None:
        if self.result is not None:
            raise ValueError(f"Visa request {self.request_id} is already complete")
        self.observing = False

    def to_dict(self):
        return {
            'request_id': self.request_id,
            'server_id': self.server_id,
            'branch': self.branch,
            'build_type_id': self.build_type_id,
            'ticket': self.ticket,
            'user_name': self.user_name,
            'build_ids': self.build_ids,
            'date': self.date,
            'observing': self.observing,
            'result': self.result.to_dict() if self.result else None,
        }

    @classmethod
    def from_dict(cls, data):
        req = cls(
            server_id=data['server_id'],
            branch=data['branch'],
            build_type_id=data.get('build_type_id') or '',
            ticket=data.get('ticket'),
            user_name=data.get('user_name') or '',
            build_ids=data.get('build_ids') or [],
            date=data.get('date'),
            observing=bool(data.get('observing')),
            request_id=data.get('request_id'),
        )
        if data.get('result'):
            req.result = Visa.from_dict(data['result'])
        return req


class VisaStatus:
    """
    A row of the visa history listing.
    """

    def __init__(self):
        self.date = ''
        self.branch_name = ''
        self.user_name = ''
        self.ticket: Optional[str] = None
        self.build_type_id = ''
        self.build_type_name = ''
        self.status = ''
        self.comment_url: Optional[str] = None
        self.blockers: Optional[int] = None
        self.observing = False

    def to_dict(self):
        return dict(vars(self))


class CurrentVisaStatus:
    def __init__(self, blockers: int = 0):
        self.blockers = blockers

    def to_dict(self):
        return {'blockers': self.blockers}


class FailuresMode:
    """How many finished chains a failures report covers."""

    HISTORY = 'History'
    LATEST = 'Latest'
    CHAIN = 'Chain'

    ALL = (HISTORY, LATEST, CHAIN)


class ChainFailures:
    """
    Possible blockers of the finished chain builds of a branch, newest build first.
    build_not_found is set when the branch has no finished build of the build type.
    """

    def __init__(self, server_id: str, build_type_id: str, branch: str, mode: str = FailuresMode.LATEST):
        self.server_id = server_id
        self.build_type_id = build_type_id
        self.branch = branch
        self.mode = mode
        self.build_not_found = False
        self.chains: List[Tuple[int, List[SuiteStatus]]] = []

    def add_chain(self, build_id: int, suites: List[SuiteStatus]) -> None:
        self.chains.append((build_id, suites))

    @property
    def failed_suites(self) -> int:
        return sum(len(suites) for _, suites in self.chains)

    def to_rows(self):
        rows = []
        for build_id, suites in self.chains:
            for suite in suites:
                rows.append({
                    'build_id': build_id,
                    'suite_id': suite.suite_id,
                    'suite_name': suite.name,
                    'result': suite.result,
                    'failed_tests': suite.failed_tests,
                    'blockers': ', '.join(f.name for f in suite.test_failures),
                    'web_to_build': suite.web_to_build,
                })
        return rows
