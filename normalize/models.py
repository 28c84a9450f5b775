"""
Entities returned by the CI server, source host and issue tracker, normalized from raw JSON.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

# length of a short commit id, e.g. 'a1b2c3d'
SHORT_COMMIT_LEN = 7


class BuildState(Enum):
    QUEUED = 'queued'
    RUNNING = 'running'
    FINISHED = 'finished'
    CANCELLED = 'cancelled'


class BuildRef:
    """
    Reference to a single build on the CI server. Read-only to the rest of the system.
    """

    def __init__(self, build_id: int, build_type_id: str, branch_name: Optional[str], state: BuildState, status: Optional[str] = None, web_url: Optional[str] = None):
        self.id = build_id
        self.build_type_id = build_type_id
        self.branch_name = branch_name
        self.state = state
        self.status = status
        self.web_url = web_url

    def is_finished(self) -> bool:
        """Finished or cancelled."""
        return self.state in (BuildState.FINISHED, BuildState.CANCELLED)

    def is_cancelled(self) -> bool:
        return self.state is BuildState.CANCELLED

    def is_queued(self) -> bool:
        return self.state is BuildState.QUEUED

    def is_running(self) -> bool:
        return self.state is BuildState.RUNNING

    def __repr__(self):
        return f"BuildRef(id={self.id!r}, build_type_id={self.build_type_id!r}, branch_name={self.branch_name!r}, state={self.state.value})"


class PullRequest:
    """
    Open pull request on the source host.
    """

    def __init__(self, number: int, title: str, html_url: str = '', head_sha: Optional[str] = None, head_ref: Optional[str] = None, author: Optional[str] = None, author_avatar_url: Optional[str] = None, updated_at: Optional[str] = None):
        self.number = number
        self.title = title
        self.html_url = html_url
        self.head_sha = head_sha
        self.head_ref = head_ref
        self.author = author
        self.author_avatar_url = author_avatar_url
        self.updated_at = updated_at

    def last_commit_sha_short(self) -> Optional[str]:
        if not self.head_sha or len(self.head_sha) < SHORT_COMMIT_LEN:
            return None
        return self.head_sha[:SHORT_COMMIT_LEN]


class Ticket:
    """
    Issue tracker ticket, e.g. IGNITE-10930.
    """

    def __init__(self, key: str, status_name: Optional[str] = None, summary: str = '', updated: Optional[str] = None):
        self.key = key
        self.status_name = status_name
        self.summary = summary
        self.updated = updated

    def status(self) -> Optional[str]:
        return self.status_name

    def is_active_contribution(self, active_statuses: List[str]) -> bool:
        return bool(self.status_name) and self.status_name in active_statuses


@dataclass(frozen=True)
class FailureSummary:
    """Recent history of a test in the base branch. failure_rate is a percentage."""

    runs: Optional[int] = None
    failures: Optional[int] = None
    failure_rate: Optional[float] = None


class TestFailure:
    """
    A failed test occurrence within a suite, with optional base branch history.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, name: str, suite_name: Optional[str] = None, test_name: Optional[str] = None, recent: Optional[FailureSummary] = None, test_id: Optional[str] = None):
        self.name = name
        self.suite_name = suite_name
        self.test_name = test_name
        self.recent = recent
        self.test_id = test_id


class MuteInfo:
    """
    Muted test assignment on the CI server.
    """

    def __init__(self, mute_id: int, text: str = '', timestamp: Optional[float] = None, tests: Optional[List[str]] = None):
        self.id = mute_id
        self.text = text
        self.timestamp = timestamp
        self.tests = tests or []
        self.ticket_status: Optional[str] = None
        self.mute_date: Optional[str] = None

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'tests': ', '.join(self.tests),
            'ticket_status': self.ticket_status,
            'mute_date': self.mute_date,
        }
