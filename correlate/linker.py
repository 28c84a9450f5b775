"""
Linker heuristics to associate pull requests and branches with Jira tickets.
Simple, dependency-free heuristics:
- explicit ticket key in PR title, then in the PR head branch
- PR-less branches named <branch prefix><ticket number>, e.g. ignite-10930 for IGNITE-10930
"""
import logging
import re
from typing import Iterable, List, Optional

from config import GitHubConfig, JiraConfig
from normalize.models import PullRequest, Ticket

logger = logging.getLogger(__name__)

PR_BRANCH_RE = re.compile(r"^pull/(\d+)/(head|merge)$")


class TicketNotFoundError(Exception):
    """The ticket to notify cannot be determined for a branch."""


def find_issue_keys_in_text(text: Optional[str], key_pattern: Optional[str] = r"[A-Z][A-Z0-9]+-\d+", flags: int = 0) -> List[str]:
    """Issue keys found in text, in order of appearance, without duplicates."""
    if not text:
        return []
    pattern = re.compile(key_pattern, flags)
    keys: List[str] = []
    for m in pattern.finditer(text):
        if m.group(0) not in keys:
            keys.append(m.group(0))
    return keys


def find_ticket_key(text: Optional[str], project_code: str) -> Optional[str]:
    """First key of the project mentioned in text (case-insensitive), upper-cased."""
    keys = find_issue_keys_in_text(text, rf"\b{re.escape(project_code)}-\d+", re.IGNORECASE)
    return keys[0].upper() if keys else None


def resolve_ticket_for_pr(tickets: Iterable[Ticket], pr: PullRequest, jira_cfg: JiraConfig) -> Optional[Ticket]:
    """Ticket of a pull request: key in the title first, then key in the head branch name."""
    by_key = {t.key.upper(): t for t in tickets}
    for text in (pr.title, pr.head_ref):
        key = find_ticket_key(text, jira_cfg.project_code)
        if key and key in by_key:
            return by_key[key]
    return None


def resolve_branch_for_prless(ticket: Ticket, jira_cfg: JiraConfig, gh_cfg: GitHubConfig) -> Optional[str]:
    """CI branch of a ticket-driven contribution, e.g. IGNITE-10930 -> ignite-10930."""
    prefix = jira_cfg.project_code.upper() + '-'
    if not ticket.key or not ticket.key.upper().startswith(prefix):
        return None
    suffix = ticket.key[len(prefix):]
    if not suffix:
        return None
    return gh_cfg.branch_prefix + suffix


def normalize_ticket_id(ticket_id: str, project_code: str) -> str:
    """'10930' -> 'IGNITE-10930'; full keys are upper-cased."""
    ticket_id = ticket_id.strip()
    if ticket_id.isdigit():
        return f"{project_code.upper()}-{ticket_id}"
    return ticket_id.upper()


class TicketMatcher:
    """Resolves the ticket to comment for a server/branch pair."""

    def __init__(self, registry):
        self.registry = registry

    def resolve_ticket_from_branch(self, server_id: str, ticket_id: Optional[str], branch: Optional[str]) -> str:
        """Return the full ticket key, raising TicketNotFoundError when it cannot be determined.

        An explicit ticket id wins. Otherwise the ticket is derived from the branch: for
        pull/<n>/head|merge from the PR title, for <prefix><number> from the number.
        """
        conn = self.registry.lookup(server_id)
        code = conn.jira.config().project_code

        if ticket_id and ticket_id.strip():
            return normalize_ticket_id(ticket_id, code)

        if not branch:
            raise TicketNotFoundError("Branch is not specified")

        m = PR_BRANCH_RE.match(branch)
        if m:
            pr_num = int(m.group(1))
            pr = conn.github.get_pull_request(pr_num)
            if pr is None:
                raise TicketNotFoundError(f"Pull request not found [pr={pr_num}]")
            key = find_ticket_key(pr.title, code) or find_ticket_key(pr.head_ref, code)
            if key is None:
                raise TicketNotFoundError(f"Can't find ticket ID in PR title [pr={pr_num}, title={pr.title}]")
            return key

        prefix = conn.github.git_branch_prefix()
        if prefix and branch.lower().startswith(prefix.lower()):
            suffix = branch[len(prefix):]
            if suffix.isdigit():
                return f"{code.upper()}-{suffix}"

        key = find_ticket_key(branch, code)
        if key is not None:
            return key

        raise TicketNotFoundError(f"Can't determine ticket for branch [branch={branch}]")
