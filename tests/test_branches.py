import unittest
from unittest.mock import Mock

from config import GitHubConfig
from correlate.branches import BranchResolver, head_branch, merge_branch
from normalize.models import PullRequest

from fakes import FakeTeamcity, build_ref


class TestDefaultBranch(unittest.TestCase):
    def test_prless_branch_makes_no_github_calls(self):
        github = Mock()
        resolver = BranchResolver(GitHubConfig('apache/ignite', branch_prefix='ignite-'), github, FakeTeamcity())
        self.assertEqual(resolver.default_branch(-10930), 'ignite-10930')
        self.assertEqual(github.mock_calls, [])

    def test_prless_branch_ignores_prefer_branches(self):
        github = Mock()
        cfg = GitHubConfig('apache/ignite', branch_prefix='ignite-', prefer_branches=True)
        resolver = BranchResolver(cfg, github, FakeTeamcity())
        self.assertEqual(resolver.default_branch(-1), 'ignite-1')
        github.get_pull_request.assert_not_called()

    def test_pr_head_branch(self):
        resolver = BranchResolver(GitHubConfig('apache/ignite'), Mock(), FakeTeamcity())
        self.assertEqual(resolver.default_branch(6224), 'pull/6224/head')

    def test_prefer_branches_uses_head_ref(self):
        github = Mock()
        github.get_pull_request.return_value = PullRequest(7, 'IGNITE-7 fix', head_ref='ignite-7-fix')
        resolver = BranchResolver(GitHubConfig('apache/ignite', prefer_branches=True), github, FakeTeamcity())
        self.assertEqual(resolver.default_branch(7), 'ignite-7-fix')

    def test_prefer_branches_unknown_pr_falls_back(self):
        github = Mock()
        github.get_pull_request.return_value = None
        resolver = BranchResolver(GitHubConfig('apache/ignite', prefer_branches=True), github, FakeTeamcity())
        self.assertEqual(resolver.default_branch(7), head_branch(7))


class TestFindBuilds(unittest.TestCase):
    def test_merge_branch_when_head_has_no_builds(self):
        tc = FakeTeamcity()
        merged = [build_ref(1, branch='pull/6224/merge')]
        tc.builds[('RunAll', 'pull/6224/merge')] = merged
        resolver = BranchResolver(GitHubConfig('apache/ignite'), Mock(), tc)

        builds = resolver.find_builds('RunAll', 6224)

        self.assertEqual([b.branch_name for b in builds], ['pull/6224/merge'])
        self.assertEqual(tc.list_calls, [('RunAll', 'pull/6224/head'), ('RunAll', 'pull/6224/merge')])

    def test_first_candidate_with_history_wins(self):
        tc = FakeTeamcity()
        tc.builds[('RunAll', 'pull/5/head')] = [build_ref(1, branch='pull/5/head')]
        tc.builds[('RunAll', 'pull/5/merge')] = [build_ref(2, branch='pull/5/merge')]
        resolver = BranchResolver(GitHubConfig('apache/ignite'), Mock(), tc)

        builds = resolver.find_builds('RunAll', 5)

        self.assertEqual(builds[0].id, 1)
        self.assertEqual(len(tc.list_calls), 1)

    def test_prless_stops_after_default(self):
        github = Mock()
        tc = FakeTeamcity()
        resolver = BranchResolver(GitHubConfig('apache/ignite', branch_prefix='ignite-'), github, tc)

        self.assertEqual(resolver.find_builds('RunAll', -10930), [])
        self.assertEqual(tc.list_calls, [('RunAll', 'ignite-10930')])
        self.assertEqual(github.mock_calls, [])

    def test_head_ref_is_tertiary_candidate(self):
        github = Mock()
        github.get_pull_request.return_value = PullRequest(9, 'title', head_ref='feature-9')
        tc = FakeTeamcity()
        tc.builds[('RunAll', 'feature-9')] = [build_ref(3, branch='feature-9')]
        resolver = BranchResolver(GitHubConfig('apache/ignite'), github, tc)

        builds = resolver.find_builds('RunAll', 9)

        self.assertEqual(builds[0].branch_name, 'feature-9')
        self.assertEqual(tc.list_calls[-1], ('RunAll', 'feature-9'))

    def test_prefer_branches_tertiary_is_pull_head(self):
        github = Mock()
        github.get_pull_request.return_value = PullRequest(9, 'title', head_ref='feature-9')
        tc = FakeTeamcity()
        resolver = BranchResolver(GitHubConfig('apache/ignite', prefer_branches=True), github, tc)

        self.assertEqual(resolver.find_builds('RunAll', 9), [])
        self.assertEqual(tc.list_calls, [('RunAll', 'feature-9'), ('RunAll', merge_branch(9)), ('RunAll', head_branch(9))])

    def test_unknown_pr_is_unresolved(self):
        github = Mock()
        github.get_pull_request.return_value = None
        tc = FakeTeamcity()
        resolver = BranchResolver(GitHubConfig('apache/ignite'), github, tc)

        self.assertEqual(resolver.find_builds('RunAll', 11), [])
        self.assertEqual(len(tc.list_calls), 2)


if __name__ == '__main__':
    unittest.main()
