"""
Build status aggregation: classifies the builds of a contribution branch and picks the
representative finished build.
"""
from typing import List

from models import ContributionCheckStatus, ContributionKey
from normalize.models import BuildRef
from normalize.util import latest_commit_version, short_commit


def web_link_to_queued(host: str, ref: BuildRef) -> str:
    return host + "viewQueued.html?itemId=" + str(ref.id)


class BuildStatusAggregator:
    """Computes ContributionCheckStatus for one build type from a list of build references."""

    def __init__(self, teamcity, branch_resolver, observations):
        self.teamcity = teamcity
        self.branch_resolver = branch_resolver
        self.observations = observations

    def classify(self, server_id: str, suite_id: str, builds: List[BuildRef], pr_id: int) -> ContributionCheckStatus:
        status = ContributionCheckStatus(suite_id)

        finished_or_cancelled = [b for b in builds if b.is_finished()]
        if finished_or_cancelled:
            representative = finished_or_cancelled[0]
            status.suite_is_finished = not representative.is_cancelled()
            status.branch_with_finished_suite = representative.branch_name

            build = self.teamcity.get_build(representative.id)
            status.finished_suite_commit = short_commit(latest_commit_version(build))

        if status.branch_with_finished_suite is not None:
            status.resolved_branch = status.branch_with_finished_suite
        elif builds and builds[0].branch_name:
            status.resolved_branch = builds[0].branch_name
        else:
            status.resolved_branch = self.branch_resolver.default_branch(pr_id)

        status.observations_status = self.observations.status(ContributionKey(server_id, status.resolved_branch))

        active = [b for b in builds if not b.is_cancelled()]
        queued = [b for b in active if b.is_queued()]
        running = [b for b in active if b.is_running()]

        status.queued_builds = len(queued)
        status.running_builds = len(running)

        host = self.teamcity.host()
        status.web_links_queued_suites = [web_link_to_queued(host, ref) for ref in queued + running]

        return status
