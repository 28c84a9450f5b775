import unittest

from config import GitHubConfig, JiraConfig
from correlate.linker import (
    TicketMatcher,
    TicketNotFoundError,
    find_issue_keys_in_text,
    find_ticket_key,
    normalize_ticket_id,
    resolve_branch_for_prless,
    resolve_ticket_for_pr,
)
from normalize.models import PullRequest, Ticket

from fakes import FakeGitHub, make_registry, server_config

JIRA_CFG = JiraConfig('https://issues.example.org/jira', 'IGNITE')
GH_CFG = GitHubConfig('apache/ignite', branch_prefix='ignite-')


class TestLinker(unittest.TestCase):
    def test_find_keys(self):
        text = "Fixed PROJ-123 and addressed PROJ-456 in this change, see PROJ-123"
        keys = find_issue_keys_in_text(text)
        self.assertEqual(keys, ['PROJ-123', 'PROJ-456'])

    def test_find_ticket_key_case_insensitive(self):
        self.assertEqual(find_ticket_key('ignite-10930 fix', 'IGNITE'), 'IGNITE-10930')
        self.assertIsNone(find_ticket_key('PROJ-1', 'IGNITE'))
        self.assertIsNone(find_ticket_key(None, 'IGNITE'))

    def test_ticket_for_pr_title_then_head_ref(self):
        tickets = [Ticket('IGNITE-1', 'Open'), Ticket('IGNITE-2', 'Open')]
        by_title = PullRequest(10, 'IGNITE-1: fix', head_ref='ignite-2')
        by_branch = PullRequest(11, 'fix', head_ref='ignite-2')
        unknown = PullRequest(12, 'IGNITE-3 fix')

        self.assertEqual(resolve_ticket_for_pr(tickets, by_title, JIRA_CFG).key, 'IGNITE-1')
        self.assertEqual(resolve_ticket_for_pr(tickets, by_branch, JIRA_CFG).key, 'IGNITE-2')
        self.assertIsNone(resolve_ticket_for_pr(tickets, unknown, JIRA_CFG))

    def test_branch_for_prless(self):
        self.assertEqual(resolve_branch_for_prless(Ticket('IGNITE-10930'), JIRA_CFG, GH_CFG), 'ignite-10930')
        self.assertIsNone(resolve_branch_for_prless(Ticket('OTHER-1'), JIRA_CFG, GH_CFG))

    def test_normalize_ticket_id(self):
        self.assertEqual(normalize_ticket_id('10930', 'IGNITE'), 'IGNITE-10930')
        self.assertEqual(normalize_ticket_id(' ignite-5 ', 'IGNITE'), 'IGNITE-5')


class TestTicketMatcher(unittest.TestCase):
    def setUp(self):
        srv = server_config()
        github = FakeGitHub(srv.github, prs=[
            PullRequest(6224, 'IGNITE-6224 Fix cache'),
            PullRequest(6225, 'No key', head_ref='ignite-6225-wip'),
            PullRequest(6226, 'No key at all', head_ref='wip'),
        ])
        _, registry, _ = make_registry(github=github, srv=srv)
        self.matcher = TicketMatcher(registry)

    def test_explicit_ticket_wins(self):
        self.assertEqual(self.matcher.resolve_ticket_from_branch('apache', '77', 'pull/6224/head'), 'IGNITE-77')

    def test_from_pull_request(self):
        self.assertEqual(self.matcher.resolve_ticket_from_branch('apache', None, 'pull/6224/head'), 'IGNITE-6224')
        self.assertEqual(self.matcher.resolve_ticket_from_branch('apache', '', 'pull/6225/merge'), 'IGNITE-6225')

    def test_from_prless_branch(self):
        self.assertEqual(self.matcher.resolve_ticket_from_branch('apache', None, 'ignite-10930'), 'IGNITE-10930')
        self.assertEqual(self.matcher.resolve_ticket_from_branch('apache', None, 'feature/IGNITE-42-x'), 'IGNITE-42')

    def test_not_found(self):
        for branch in ('pull/1/head', 'pull/6226/head', 'master', None):
            with self.assertRaises(TicketNotFoundError):
                self.matcher.resolve_ticket_from_branch('apache', None, branch)


if __name__ == '__main__':
    unittest.main()
