import re
from unittest.mock import Mock

from models import ContributionKey, ObservationPhase
from normalize.models import BuildState
from scoring.build_status import BuildStatusAggregator, web_link_to_queued
from storage.observations import ObservationRegistry

from fakes import FakeTeamcity, TC_HOST, build_ref, raw_build


def _aggregator(tc, observations=None, default_branch='pull/1/head'):
    resolver = Mock()
    resolver.default_branch.return_value = default_branch
    return BuildStatusAggregator(tc, resolver, observations or ObservationRegistry())


def test_finished_representative_gives_short_commit():
    tc = FakeTeamcity()
    tc.details[10] = raw_build(10, revisions={'revision': [{'version': 'ABCDEF0123456789ABCDEF0123456789ABCDEF01'}]})
    builds = [build_ref(11, BuildState.RUNNING), build_ref(10, BuildState.FINISHED)]

    status = _aggregator(tc).classify('apache', 'RunAll', builds, 1)

    assert status.suite_is_finished is True
    assert status.branch_with_finished_suite == 'pull/1/head'
    assert status.resolved_branch == 'pull/1/head'
    assert status.finished_suite_commit == 'abcdef0'
    assert re.fullmatch(r'[0-9a-f]{7}', status.finished_suite_commit)


def test_short_commit_absent_for_short_revision():
    tc = FakeTeamcity()
    tc.details[10] = raw_build(10, lastChanges={'change': [{'version': 'abc'}]})

    status = _aggregator(tc).classify('apache', 'RunAll', [build_ref(10)], 1)

    assert status.finished_suite_commit is None


def test_cancelled_representative_is_not_finished():
    tc = FakeTeamcity()
    tc.details[7] = raw_build(7, status='UNKNOWN')
    builds = [build_ref(7, BuildState.CANCELLED, branch='pull/1/merge')]

    status = _aggregator(tc).classify('apache', 'RunAll', builds, 1)

    assert status.suite_is_finished is False
    assert status.branch_with_finished_suite == 'pull/1/merge'
    assert status.resolved_branch == 'pull/1/merge'


def test_queued_and_running_links_queued_first():
    tc = FakeTeamcity()
    builds = [
        build_ref(3, BuildState.RUNNING),
        build_ref(4, BuildState.QUEUED),
        build_ref(5, BuildState.QUEUED),
    ]

    status = _aggregator(tc).classify('apache', 'RunAll', builds, 1)

    assert status.queued_builds == 2
    assert status.running_builds == 1
    assert status.web_links_queued_suites == [
        TC_HOST + 'viewQueued.html?itemId=4',
        TC_HOST + 'viewQueued.html?itemId=5',
        TC_HOST + 'viewQueued.html?itemId=3',
    ]
    assert status.suite_is_finished is False
    assert status.finished_suite_commit is None
    assert status.resolved_branch == 'pull/1/head'


def test_resolved_branch_falls_back_to_default():
    tc = FakeTeamcity()
    builds = [build_ref(3, BuildState.QUEUED, branch=None)]

    status = _aggregator(tc, default_branch='ignite-10930').classify('apache', 'RunAll', builds, -10930)

    assert status.resolved_branch == 'ignite-10930'


def test_observation_phase_is_reported():
    tc = FakeTeamcity()
    observations = ObservationRegistry()
    observations.try_begin(ContributionKey('apache', 'pull/1/head'))

    status = _aggregator(tc, observations).classify('apache', 'RunAll', [build_ref(3, BuildState.RUNNING)], 1)

    assert status.observations_status == ObservationPhase.OBSERVING


def test_web_link_to_queued():
    assert web_link_to_queued('http://tc/', build_ref(42)) == 'http://tc/viewQueued.html?itemId=42'
