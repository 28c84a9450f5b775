"""
Contribution catalog: open pull requests plus active PR-less tickets, each with its CI branch.
"""
import logging
from typing import List

from correlate.branches import BranchResolver
from correlate.linker import resolve_branch_for_prless, resolve_ticket_for_pr
from models import ContributionToCheck
from normalize.models import PullRequest, Ticket

logger = logging.getLogger(__name__)


class ContributionCatalog:
    """Lists contributions of one server. Source data is fetched once per listing."""

    def __init__(self, connection, branch_resolver: BranchResolver, default_build_type: str):
        self.connection = connection
        self.branch_resolver = branch_resolver
        self.default_build_type = default_build_type

    def _pr_contribution(self, pr: PullRequest, tickets: List[Ticket]) -> ContributionToCheck:
        jira = self.connection.jira
        jira_cfg = jira.config()

        c = ContributionToCheck(pr.number)
        c.pr_title = pr.title
        c.pr_html_url = pr.html_url
        c.pr_head_commit = pr.last_commit_sha_short() or ''
        c.pr_time_update = pr.updated_at or ''
        c.pr_author = pr.author or ''
        c.pr_author_avatar_url = pr.author_avatar_url or ''

        ticket = resolve_ticket_for_pr(tickets, pr, jira_cfg)
        c.jira_issue_id = ticket.key if ticket else None
        c.jira_status_name = ticket.status() if ticket else None
        if c.jira_issue_id and jira_cfg.url:
            c.jira_issue_url = jira.ticket_url(c.jira_issue_id)

        if self.default_build_type:
            builds = self.branch_resolver.find_builds(self.default_build_type, pr.number)
            branch = next((b.branch_name for b in builds if b.branch_name), None)
            if branch is not None:
                c.tc_branch_name = branch
        return c

    def _prless_contribution(self, ticket: Ticket, branch: str) -> ContributionToCheck:
        gh_prefix = self.connection.config.github.branch_prefix

        c = ContributionToCheck()
        c.jira_issue_id = ticket.key
        c.jira_status_name = ticket.status()
        c.jira_issue_url = self.connection.jira.ticket_url(ticket.key)
        c.tc_branch_name = branch

        if branch.startswith(gh_prefix):
            suffix = branch[len(gh_prefix):]
            try:
                c.pr_number = -int(suffix)
            except ValueError:
                logger.error("PR less contribution has invalid branch name: %s", branch, exc_info=True)

        c.pr_title = ticket.summary
        c.pr_time_update = ticket.updated or ''
        return c

    def list_contributions(self) -> List[ContributionToCheck]:
        github = self.connection.github
        teamcity = self.connection.teamcity
        jira_cfg = self.connection.jira.config()
        gh_cfg = self.connection.config.github

        prs = github.list_pull_requests()
        tickets = self.connection.jira.list_tickets()

        contributions: List[ContributionToCheck] = []
        pr_ticket_keys = set()
        for pr in prs:
            c = self._pr_contribution(pr, tickets)
            if c.jira_issue_id:
                pr_ticket_keys.add(c.jira_issue_id)
            contributions.append(c)

        branches = set(github.list_branches())

        for ticket in tickets:
            if not ticket.is_active_contribution(jira_cfg.active_statuses):
                continue
            if ticket.key in pr_ticket_keys:
                continue

            branch = resolve_branch_for_prless(ticket, jira_cfg, gh_cfg)
            if not branch:
                continue

            if branch not in branches and not (self.default_build_type and teamcity.list_builds(self.default_build_type, branch)):
                # no CI footprint for this ticket
                continue

            contributions.append(self._prless_contribution(ticket, branch))

        return contributions
