"""
Normalization utility helpers.
Small helpers to normalize raw TeamCity / GitHub / Jira payloads into normalize.models entities.
"""
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
from normalize.models import BuildRef, BuildState, PullRequest, Ticket, MuteInfo, TestFailure, SHORT_COMMIT_LEN

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

# TeamCity typical: 20251204T141343+0000
TEAMCITY_DATE_FORMAT = '%Y%m%dT%H%M%S%z'


def format_timestamp(ts: Optional[float]) -> str:
    """Format epoch seconds as a local 'YYYY-MM-DD HH:MM:SS' string. Empty string for None."""
    if ts is None:
        return ''
    return datetime.fromtimestamp(float(ts)).strftime(TIMESTAMP_FORMAT)


def parse_teamcity_date(value: Optional[str]) -> Optional[float]:
    """Parse a TeamCity date into epoch seconds, or None when absent/unparseable."""
    if not value:
        return None
    try:
        dt = datetime.strptime(value, TEAMCITY_DATE_FORMAT)
    except ValueError:
        return None
    return dt.astimezone(timezone.utc).timestamp()


def _build_state(raw: Dict[str, Any]) -> BuildState:
    state = (raw.get('state') or '').lower()
    if state == 'queued':
        return BuildState.QUEUED
    if state == 'running':
        return BuildState.RUNNING
    if raw.get('canceledInfo') or (raw.get('status') or '').upper() == 'UNKNOWN':
        return BuildState.CANCELLED
    return BuildState.FINISHED


def normalize_build_ref(raw: Dict[str, Any]) -> BuildRef:
    """Create a BuildRef from a TeamCity build (or queued build) dict."""
    return BuildRef(
        build_id=int(raw.get('id')),
        build_type_id=raw.get('buildTypeId') or (raw.get('buildType') or {}).get('id') or '',
        branch_name=raw.get('branchName'),
        state=_build_state(raw),
        status=raw.get('status'),
        web_url=raw.get('webUrl'),
    )


def latest_commit_version(build: Dict[str, Any]) -> Optional[str]:
    """Return the most recent VCS revision of a full build, or None."""
    revisions = (build.get('revisions') or {}).get('revision') or []
    for rev in revisions:
        if rev.get('version'):
            return rev['version']
    changes = (build.get('lastChanges') or {}).get('change') or []
    for change in changes:
        if change.get('version'):
            return change['version']
    return None


def short_commit(commit: Optional[str]) -> Optional[str]:
    """First 7 characters of a commit id, lower-cased; None if the id is missing or too short."""
    if not commit or len(commit) <= SHORT_COMMIT_LEN:
        return None
    return commit[:SHORT_COMMIT_LEN].lower()


def normalize_pull_request(raw: Dict[str, Any]) -> PullRequest:
    """Create a PullRequest from a GitHub pulls API dict."""
    head = raw.get('head') or {}
    user = raw.get('user') or {}
    return PullRequest(
        number=int(raw.get('number')),
        title=raw.get('title') or '',
        html_url=raw.get('html_url') or '',
        head_sha=head.get('sha'),
        head_ref=head.get('ref'),
        author=user.get('login'),
        author_avatar_url=user.get('avatar_url'),
        updated_at=raw.get('updated_at'),
    )


def normalize_ticket(raw: Dict[str, Any]) -> Ticket:
    """Create a Ticket from a raw Jira issue dict."""
    fields = raw.get('fields') or {}
    status = fields.get('status')
    status_name = status.get('name') if isinstance(status, dict) else status
    return Ticket(key=raw.get('key') or '', status_name=status_name, summary=fields.get('summary') or '', updated=fields.get('updated'))


def normalize_test_failure(raw: Dict[str, Any]) -> TestFailure:
    """Create a TestFailure from a TeamCity test occurrence.
    Names like 'IgniteCacheTestSuite: GridCacheTest.testPut' are split into suite and test parts.
    """
    name = raw.get('name') or ''
    suite_name = test_name = None
    if ': ' in name:
        suite_name, test_name = name.split(': ', 1)
    test_id = (raw.get('test') or {}).get('id')
    return TestFailure(name=name, suite_name=suite_name, test_name=test_name, test_id=str(test_id) if test_id is not None else None)


def normalize_mute(raw: Dict[str, Any]) -> MuteInfo:
    """Create a MuteInfo from a TeamCity mute dict."""
    assignment = raw.get('assignment') or {}
    tests: List[str] = [t.get('name') for t in ((raw.get('target') or {}).get('tests') or {}).get('test', []) if t.get('name')]
    return MuteInfo(
        mute_id=int(raw.get('id') or 0),
        text=assignment.get('text') or '',
        timestamp=parse_teamcity_date(assignment.get('timestamp')),
        tests=tests,
    )
