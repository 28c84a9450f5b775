"""
Blocker analysis of a finished build chain.

A suite of the chain is reported when it failed or was cancelled. Its failed tests are possible
blockers unless they fail often in the base branch (flaky); a failed suite whose failed tests
are all flaky is not reported, a failed suite without failed tests is reported on its own.
"""
import logging
from typing import Any, Dict, List, Optional

from models import SuiteStatus
from normalize.models import BuildRef, TestFailure
from normalize.util import normalize_build_ref

logger = logging.getLogger(__name__)


def count_blockers(suites: List[SuiteStatus]) -> int:
    """Each failing test is a blocker; a suite without listed failing tests counts once."""
    return sum(max(1, len(suite.test_failures)) for suite in suites)


def build_web_url(host: str, build_id: int, build_type_id: str) -> str:
    return f"{host}viewLog.html?buildId={build_id}&buildTypeId={build_type_id}"


class BlockerAnalyzer:
    def __init__(self, teamcity, flaky_rate_threshold: float = 4.0, history_runs: int = 50, base_branch: Optional[str] = None):
        self.teamcity = teamcity
        self.flaky_rate_threshold = flaky_rate_threshold
        self.history_runs = history_runs
        # None means the default (master) branch of the build configuration
        self.base_branch = base_branch

    def is_possible_blocker(self, failure: TestFailure) -> bool:
        recent = failure.recent
        if recent is None or recent.failure_rate is None:
            return True
        return recent.failure_rate < self.flaky_rate_threshold

    def _with_history(self, failure: TestFailure) -> TestFailure:
        if failure.test_id:
            failure.recent = self.teamcity.get_test_history(failure.test_id, self.base_branch, self.history_runs)
        return failure

    def _suite_status(self, ref: BuildRef) -> Optional[SuiteStatus]:
        if not ref.is_finished():
            return None
        cancelled = ref.is_cancelled()
        if not cancelled and (ref.status or '').upper() == 'SUCCESS':
            return None

        failed = [] if cancelled else self.teamcity.get_failed_tests(ref.id)
        failed = [self._with_history(f) for f in failed]
        blockers = [f for f in failed if self.is_possible_blocker(f)]
        if failed and not blockers:
            logger.debug("Suite %s has only flaky failures", ref.build_type_id)
            return None

        if cancelled:
            result = 'CANCELLED'
        elif failed:
            result = ''
        else:
            result = self.teamcity.get_build(ref.id).get('statusText') or ''

        return SuiteStatus(
            name=self.teamcity.get_build_type_name(ref.build_type_id),
            suite_id=ref.build_type_id,
            failed_tests=len(failed),
            result=result,
            web_to_build=build_web_url(self.teamcity.host(), ref.id, ref.build_type_id),
            test_failures=blockers,
        )

    def suite_statuses_for_build(self, build: Dict[str, Any]) -> List[SuiteStatus]:
        """Reported suites of a chain build; a build without snapshot dependencies is its own suite."""
        deps = (build.get('snapshot-dependencies') or {}).get('build') or []
        refs = [normalize_build_ref(d) for d in deps] or [normalize_build_ref(build)]
        suites = []
        for ref in refs:
            suite = self._suite_status(ref)
            if suite is not None:
                suites.append(suite)
        return suites

    def blockers_suite_statuses(self, build_type_id: str, branch: str) -> Optional[List[SuiteStatus]]:
        """Reported suites of the latest finished build, None when there is no finished build."""
        build_ids = self.teamcity.get_last_finished_build_ids(build_type_id, branch, 1)
        if not build_ids:
            return None
        return self.suite_statuses_for_build(self.teamcity.get_build(build_ids[0]))
