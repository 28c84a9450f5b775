"""
TeamCity REST client: build history, build details, test occurrences, mutes and the build queue.
"""

import logging
from typing import List, Dict, Any, Optional

import requests

from config import TeamcityConfig
from normalize.models import BuildRef, FailureSummary, MuteInfo, TestFailure
from normalize.util import normalize_build_ref, normalize_mute, normalize_test_failure

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
DEFAULT_BRANCH = '<default>'

BUILD_REF_FIELDS = 'build(id,buildTypeId,branchName,state,status,webUrl,canceledInfo)'
BUILD_FIELDS = ','.join([
    'id',
    'buildTypeId',
    'branchName',
    'state',
    'status',
    'statusText',
    'webUrl',
    'canceledInfo',
    'revisions(revision(version))',
    'lastChanges(change(version))',
    'snapshot-dependencies(build(id,buildTypeId,branchName,state,status,webUrl,canceledInfo))',
])


def branch_locator(branch: Optional[str]) -> str:
    if not branch or branch == DEFAULT_BRANCH:
        return 'branch:(default:true)'
    return f"branch:(name:{branch})"


class TeamcityClient:
    """Minimal TeamCity client. Read calls raise requests.HTTPError on unexpected responses."""

    def __init__(self, config: TeamcityConfig):
        self.base_url = config.host
        self.rest_url = self.base_url + 'app/rest'
        self.headers = {
            "Authorization": f"Bearer {config.token}" if config.token else "",
            "Accept": "application/json",
        }

    def host(self) -> str:
        return self.base_url

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        resp = requests.get(f"{self.rest_url}{path}", headers=self.headers, params=params or {}, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json() or {}

    def trigger_build(self, build_type_id: str, branch: Optional[str], clean_rebuild: bool = False, queue_at_top: bool = False) -> int:
        """Put a build of build_type_id for branch into the queue and return the queued build id."""
        payload: Dict[str, Any] = {
            "buildType": {"id": build_type_id},
            "triggeringOptions": {"cleanBuild": clean_rebuild, "queueAtTop": queue_at_top},
        }
        if branch:
            payload["branchName"] = branch
        headers = dict(self.headers)
        headers["Content-Type"] = "application/json"
        resp = requests.post(f"{self.rest_url}/buildQueue", headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        build_id = int(resp.json()['id'])
        logger.info("Triggered build %s of %s on branch %s", build_id, build_type_id, branch)
        return build_id

    def list_builds(self, build_type_id: str, branch: Optional[str]) -> List[BuildRef]:
        """All builds (queued, running, finished) of a build type in a branch, newest first."""
        locator = f"buildType:(id:{build_type_id}),{branch_locator(branch)},defaultFilter:false,state:any"
        data = self._get('/builds', {'locator': locator, 'fields': BUILD_REF_FIELDS})
        return [normalize_build_ref(b) for b in data.get('build') or []]

    def get_build(self, build_id: int) -> Dict[str, Any]:
        """Full build detail as returned by TeamCity."""
        return self._get(f"/builds/id:{build_id}", {'fields': BUILD_FIELDS})

    def find_build_ref(self, build_id: int) -> Optional[BuildRef]:
        """State of a build, None when TeamCity no longer knows it (removed from queue or cleaned up)."""
        resp = requests.get(f"{self.rest_url}/builds/id:{build_id}", headers=self.headers, params={'fields': BUILD_FIELDS}, timeout=REQUEST_TIMEOUT)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return normalize_build_ref(resp.json() or {})

    def get_last_finished_build_ids(self, build_type_id: str, branch: Optional[str], limit: int = 1) -> List[int]:
        locator = f"buildType:(id:{build_type_id}),{branch_locator(branch)},state:finished,canceled:false,count:{int(limit)}"
        data = self._get('/builds', {'locator': locator, 'fields': 'build(id)'})
        return [int(b['id']) for b in data.get('build') or []]

    def get_build_type(self, build_type_id: str) -> Optional[Dict[str, Any]]:
        if not build_type_id:
            return None
        resp = requests.get(f"{self.rest_url}/buildTypes/id:{build_type_id}", headers=self.headers, params={'fields': 'id,name,projectId'}, timeout=REQUEST_TIMEOUT)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def get_build_type_name(self, build_type_id: str) -> str:
        bt = self.get_build_type(build_type_id)
        return (bt or {}).get('name') or build_type_id

    def list_composite_build_types(self, project_id: str) -> List[str]:
        """Ids of composite build types in a project (including subprojects)."""
        data = self._get('/buildTypes', {'locator': f"affectedProject:(id:{project_id})", 'fields': 'buildType(id,projectId,type)'})
        return [bt['id'] for bt in data.get('buildType') or [] if (bt.get('type') or '').lower() == 'composite']

    def get_failed_tests(self, build_id: int) -> List[TestFailure]:
        """Failed tests of a build, excluding muted and ignored ones."""
        locator = f"build:(id:{build_id}),status:FAILURE,muted:false,ignored:false,count:10000"
        data = self._get('/testOccurrences', {'locator': locator, 'fields': 'testOccurrence(id,name,status,test(id))'})
        return [normalize_test_failure(t) for t in data.get('testOccurrence') or []]

    def get_test_history(self, test_id: str, branch: Optional[str] = None, count: int = 50) -> Optional[FailureSummary]:
        """Recent runs of a test in a branch (default branch when omitted); None if it never ran."""
        locator = f"test:(id:{test_id}),{branch_locator(branch)},count:{int(count)}"
        data = self._get('/testOccurrences', {'locator': locator, 'fields': 'testOccurrence(status)'})
        occurrences = data.get('testOccurrence') or []
        runs = len(occurrences)
        if runs == 0:
            return None
        failures = sum(1 for t in occurrences if (t.get('status') or '').upper() == 'FAILURE')
        return FailureSummary(runs=runs, failures=failures, failure_rate=round(failures * 100.0 / runs, 1))

    def get_mutes(self, project_id: str) -> List[MuteInfo]:
        locator = f"project:(id:{project_id})"
        data = self._get('/mutes', {'locator': locator, 'fields': 'mute(id,assignment(text,timestamp),target(tests(test(name))))'})
        return [normalize_mute(m) for m in data.get('mute') or []]
