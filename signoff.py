"""
Visa (sign-off) service: triggers builds, observes them, comments Jira tickets with possible
blockers and answers status queries about contributions and visas.
"""

import logging
import re
from typing import Dict, List, Optional

import requests

from config import BotConfig
from correlate.branches import BranchResolver
from correlate.catalog import ContributionCatalog
from correlate.linker import TicketMatcher, TicketNotFoundError
from models import (
    ChainFailures,
    ContributionCheckStatus,
    ContributionKey,
    ContributionToCheck,
    CurrentVisaStatus,
    FailuresMode,
    Visa,
    VisaRequest,
    VisaStatus,
)
from normalize.models import MuteInfo, Ticket
from normalize.util import format_timestamp
from observer import BuildObserver
from report.jira_comment import generate_jira_comment
from scoring.blockers import BlockerAnalyzer, build_web_url, count_blockers
from scoring.build_status import BuildStatusAggregator

logger = logging.getLogger(__name__)

FINISHED_STATUS = 'finished'
RUNNING_STATUS = 'running'
CANCELLED_STATUS = 'cancelled'
WAITING_RESULTS_STATUS = 'waiting results'
UNKNOWN_STATUS = 'unknown'

NO_FINISHED_BUILDS = "JIRA wasn't commented - no finished builds to analyze."
NOT_COMMENTED_STATUS = "JIRA wasn't commented."

DEFAULT_HISTORY_CHAINS = 10

TICKET_KEY_RE = re.compile(r"[A-Za-z][A-Za-z0-9]+-\d+")


def builds_status(teamcity, build_ids: List[int]) -> str:
    """cancelled if any build was cancelled, finished if all are finished or gone, otherwise running."""
    refs = [teamcity.find_build_ref(build_id) for build_id in build_ids]
    refs = [ref for ref in refs if ref is not None]
    if any(ref.is_cancelled() for ref in refs):
        return CANCELLED_STATUS
    if all(ref.is_finished() for ref in refs):
        return FINISHED_STATUS
    return RUNNING_STATUS


def insert_ticket_status(mutes: List[MuteInfo], tickets: List[Ticket], browse_url: str) -> None:
    """Attach the ticket status to mutes whose text links a known ticket, e.g. .../browse/IGNITE-1."""
    by_key: Dict[str, Ticket] = {t.key: t for t in tickets}
    for mute in mutes:
        if not mute.text:
            continue
        pos = mute.text.find(browse_url)
        if pos == -1:
            continue
        m = TICKET_KEY_RE.match(mute.text, pos + len(browse_url))
        if m is None:
            continue
        ticket = by_key.get(m.group(0))
        if ticket is not None:
            mute.ticket_status = ticket.status()


class VisaService:
    def __init__(self, registry, history, observations, config: BotConfig, observer: Optional[BuildObserver] = None, ticket_matcher: Optional[TicketMatcher] = None):
        self.registry = registry
        self.history = history
        self.observations = observations
        self.config = config
        self.ticket_matcher = ticket_matcher or TicketMatcher(registry)
        self.observer = observer or BuildObserver(
            registry,
            history,
            observations,
            self.notify_jira,
            poll_interval=config.poll_interval,
            max_workers=config.max_workers,
        )

    # per-server helpers

    def _branch_resolver(self, conn) -> BranchResolver:
        return BranchResolver(conn.config.github, conn.github, conn.teamcity)

    def _blocker_analyzer(self, conn) -> BlockerAnalyzer:
        return BlockerAnalyzer(conn.teamcity, self.config.flaky_rate_threshold, self.config.history_runs)

    # visa listing

    def get_visas_status(self, server_id: Optional[str]) -> List[VisaStatus]:
        conn = self.registry.lookup(server_id)
        teamcity = conn.teamcity
        jira = conn.jira

        statuses = []
        for request in self.history.list_all():
            if request.server_id != conn.server_id:
                continue

            status = VisaStatus()
            status.date = format_timestamp(request.date)
            status.branch_name = request.branch
            status.user_name = request.user_name
            status.ticket = request.ticket
            status.build_type_id = request.build_type_id
            status.build_type_name = teamcity.get_build_type_name(request.build_type_id)
            status.observing = request.observing

            visa = request.result
            try:
                current = builds_status(teamcity, request.build_ids)
            except requests.RequestException as e:
                logger.warning("Can't get builds %s of branch %s: %s", request.build_ids, request.branch, e)
                current = UNKNOWN_STATUS

            if current == FINISHED_STATUS:
                if visa is not None and visa.is_success:
                    status.comment_url = jira.comment_url(request.ticket, visa.jira_comment_id)
                    status.blockers = visa.blockers
                    status.status = FINISHED_STATUS
                else:
                    status.status = WAITING_RESULTS_STATUS if request.observing else CANCELLED_STATUS
            elif current == RUNNING_STATUS:
                status.status = RUNNING_STATUS if request.observing else CANCELLED_STATUS
            else:
                status.status = current

            statuses.append(status)

        return statuses

    def get_mutes(self, server_id: Optional[str], project_id: str) -> List[MuteInfo]:
        conn = self.registry.lookup(server_id)
        mutes = conn.teamcity.get_mutes(project_id)

        insert_ticket_status(mutes, conn.jira.list_tickets(), conn.jira.ticket_url(''))

        for mute in mutes:
            mute.mute_date = format_timestamp(mute.timestamp)

        return mutes

    # triggering and commenting

    def trigger_builds_and_observe(
        self,
        server_id: Optional[str],
        branch: str,
        parent_suite_id: str,
        suite_ids: str,
        top: bool = False,
        observe: bool = False,
        ticket_id: Optional[str] = None,
        pr_num=None,
        user_name: str = '',
    ) -> str:
        """Trigger every suite of a comma separated list on a branch and optionally observe them.

        Returns a message for the user. Trigger failures propagate.
        """
        conn = self.registry.lookup(server_id)
        res = ''

        if pr_num is not None and str(pr_num).strip():
            try:
                pr = conn.github.get_pull_request(int(pr_num))
            except ValueError:
                logger.error("PR & TC state checking failed [pr=%s]", pr_num, exc_info=True)
            else:
                sha_short = pr.last_commit_sha_short() if pr is not None else None
                if sha_short is not None:
                    res = f"Actual commit: {sha_short}. "

        build_ids = [
            conn.teamcity.trigger_build(suite_id.strip(), branch, False, bool(top))
            for suite_id in suite_ids.split(',')
            if suite_id.strip()
        ]

        if observe:
            res += self._observe_jira(conn.server_id, branch, ticket_id, parent_suite_id, build_ids, user_name)

        return res

    def _observe_jira(self, server_id: str, branch: str, ticket_id: Optional[str], parent_suite_id: str, build_ids: List[int], user_name: str) -> str:
        try:
            ticket = self.ticket_matcher.resolve_ticket_from_branch(server_id, ticket_id, branch)
        except TicketNotFoundError as e:
            logger.info("Ticket not found for branch %s: %s", branch, e)
            return ("JIRA ticket will not be notified after the tests are completed - "
                    f"exception happened when server tried to get ticket ID from Pull Request [errMsg={e}]")

        key = ContributionKey(server_id, branch)
        if not self.observations.try_begin(key):
            return f"JIRA ticket {ticket} will not be notified - builds of branch {branch} are already being observed."

        request = VisaRequest(server_id, branch, parent_suite_id, ticket=ticket, user_name=user_name, build_ids=build_ids, observing=True)
        try:
            self.history.append(request)
        except Exception:
            self.observations.rollback(key)
            raise

        if self.observer.observe(request) is None:
            return f"JIRA ticket {ticket} will not be notified - observation of builds could not be started."

        return f"JIRA ticket {ticket} will be notified after the tests are completed."

    def notify_jira(self, server_id: Optional[str], build_type_id: str, branch: str, ticket: str) -> Visa:
        """Comment the ticket with possible blockers of the latest finished build. Never raises."""
        build_id = None
        try:
            conn = self.registry.lookup(server_id)
            teamcity = conn.teamcity

            build_ids = teamcity.get_last_finished_build_ids(build_type_id, branch, 1)
            if not build_ids:
                return Visa(NO_FINISHED_BUILDS)

            build_id = build_ids[0]
            build = teamcity.get_build(build_id)
            web_url = build_web_url(teamcity.host(), build_id, build.get('buildTypeId') or build_type_id)

            suites = self._blocker_analyzer(conn).suite_statuses_for_build(build)
            comment = generate_jira_comment(suites, web_url, teamcity.get_build_type_name(build_type_id))
            blockers = count_blockers(suites)

            comment_id = conn.jira.post_comment(ticket, comment)
        except Exception as e:
            err_msg = f"Exception happened during commenting JIRA ticket [build={build_id}, errMsg={e}]"
            logger.error(err_msg)
            return Visa("JIRA wasn't commented - " + err_msg)

        logger.info("Commented %s for build %s, blockers: %s", ticket, build_id, blockers)
        return Visa(Visa.JIRA_COMMENTED, comment_id, blockers)

    def comment_jira(self, server_id: Optional[str], branch: str, suite_id: str, ticket_id: Optional[str] = None, user_name: str = '') -> str:
        """Comment the ticket for the latest finished build right away and record the visa."""
        server_id = self.registry.lookup(server_id).server_id
        try:
            ticket = self.ticket_matcher.resolve_ticket_from_branch(server_id, ticket_id, branch)
        except TicketNotFoundError as e:
            logger.info("Ticket not found for branch %s: %s", branch, e)
            return f"JIRA wasn't commented. {e}"

        key = ContributionKey(server_id, branch)
        refused = ("JIRA wasn't commented. \"Re-run possible blockers & Comment JIRA\" was triggered for current branch."
                   " Wait for the end or cancel existing observing.")
        # the key is held while commenting so a concurrent observation can't start
        if not self.observations.try_begin(key):
            return refused

        visa = Visa(NOT_COMMENTED_STATUS)
        try:
            last = self.history.get_last(key)
            if last is not None and last.observing:
                self.observations.rollback(key)
                return refused

            visa = self.notify_jira(server_id, suite_id, branch, ticket)
            self.history.append(VisaRequest(server_id, branch, suite_id, ticket=ticket, user_name=user_name).set_result(visa))
        finally:
            self.observations.end(key, visa)
        return visa.status

    def cancel_observation(self, server_id: Optional[str], branch: str) -> str:
        server_id = self.registry.lookup(server_id).server_id
        key = ContributionKey(server_id, branch)

        if self.observations.cancel(key):
            return f"Observation of branch {branch} was cancelled."

        last = self.history.get_last(key)
        if last is not None and last.observing and last.result is None:
            # left observing by a process that has exited
            last.cancel()
            self.history.put(last)
            return f"Observation of branch {branch} was cancelled."

        return f"No active observation for branch {branch}."

    # contributions

    def get_contributions_to_check(self, server_id: Optional[str]) -> List[ContributionToCheck]:
        conn = self.registry.lookup(server_id)
        catalog = ContributionCatalog(conn, self._branch_resolver(conn), conn.config.default_build_type)
        return catalog.list_contributions()

    def find_applicable_build_types(self, server_id: Optional[str]) -> List[str]:
        """Composite build types of the default build type's project, else the default build type."""
        conn = self.registry.lookup(server_id)
        default_bt = conn.config.default_build_type

        build_type = conn.teamcity.get_build_type(default_bt) if default_bt else None
        if build_type is not None and build_type.get('projectId'):
            return conn.teamcity.list_composite_build_types(build_type['projectId'])

        return [default_bt] if default_bt else []

    def contribution_statuses(self, server_id: Optional[str], pr_id) -> List[ContributionCheckStatus]:
        conn = self.registry.lookup(server_id)
        resolver = self._branch_resolver(conn)
        aggregator = BuildStatusAggregator(conn.teamcity, resolver, self.observations)

        statuses = []
        for bt in self.find_applicable_build_types(conn.server_id):
            builds = resolver.find_builds(bt, pr_id)
            if builds:
                statuses.append(aggregator.classify(conn.server_id, bt, builds, pr_id))
            else:
                statuses.append(ContributionCheckStatus(bt, resolver.default_branch(pr_id)))
        return statuses

    def current_visa_status(self, server_id: Optional[str], build_type_id: str, branch: str) -> CurrentVisaStatus:
        conn = self.registry.lookup(server_id)
        suites = self._blocker_analyzer(conn).blockers_suite_statuses(build_type_id, branch)
        if suites is None:
            return CurrentVisaStatus()
        return CurrentVisaStatus(count_blockers(suites))

    def get_pr_failures(self, server_id: Optional[str], build_type_id: str, branch: str, action: str = FailuresMode.LATEST, count: Optional[int] = None) -> ChainFailures:
        """Failed suites and possible blockers of finished chain builds of a branch.

        History covers the last count chains (DEFAULT_HISTORY_CHAINS when not given), Latest and
        Chain the latest one. Unknown actions are treated as Latest.
        """
        conn = self.registry.lookup(server_id)
        teamcity = conn.teamcity
        mode = action if action in FailuresMode.ALL else FailuresMode.LATEST
        limit = (count or DEFAULT_HISTORY_CHAINS) if mode == FailuresMode.HISTORY else 1

        report = ChainFailures(conn.server_id, build_type_id, branch, mode)
        build_ids = teamcity.get_last_finished_build_ids(build_type_id, branch, limit)
        if not build_ids:
            report.build_not_found = True
            return report

        analyzer = self._blocker_analyzer(conn)
        for build_id in sorted(build_ids, reverse=True)[:limit]:
            report.add_chain(build_id, analyzer.suite_statuses_for_build(teamcity.get_build(build_id)))

        logger.debug("Failures of %s in branch %s: %s chain(s), %s failed suite(s)", build_type_id, branch, len(report.chains), report.failed_suites)
        return report
