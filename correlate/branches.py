"""
Branch resolution: maps a contribution id to the CI branch its builds run in.

Contribution ids are pull request numbers; a negative id is the number suffix of a PR-less
branch (e.g. -10930 -> ignite-10930). Candidates are tried in order and the first one with any
build history wins, however old that history is.
"""

import logging
from typing import List, Optional

from config import GitHubConfig
from normalize.models import BuildRef

logger = logging.getLogger(__name__)


def head_branch(pr_id) -> str:
    return f"pull/{pr_id}/head"


def merge_branch(pr_id) -> str:
    return f"pull/{pr_id}/merge"


class BranchResolver:
    def __init__(self, gh_config: GitHubConfig, github, teamcity):
        self.gh_config = gh_config
        self.github = github
        self.teamcity = teamcity

    def pr_head_ref(self, pr_num: int) -> Optional[str]:
        pr = self.github.get_pull_request(pr_num)
        if pr is None:
            return None
        return pr.head_ref or None

    def default_branch(self, pr_id: int) -> str:
        pr_id = int(pr_id)
        if pr_id < 0:
            # PR-less contribution, e.g. "ignite-10930"
            return self.gh_config.branch_prefix + str(-pr_id)

        if self.gh_config.prefer_branches:
            ref = self.pr_head_ref(pr_id)
            if ref is not None:
                return ref

        return head_branch(pr_id)

    def find_builds(self, build_type_id: str, pr_id: int) -> List[BuildRef]:
        """Builds of the first branch candidate that has any. Empty if none has, or the PR is unknown."""
        pr_id = int(pr_id)
        builds = self.teamcity.list_builds(build_type_id, self.default_branch(pr_id))
        if builds:
            return builds

        if pr_id < 0:
            return builds

        builds = self.teamcity.list_builds(build_type_id, merge_branch(pr_id))
        if builds:
            return builds

        if self.gh_config.prefer_branches:
            # head ref was already checked as the default
            branch = head_branch(pr_id)
        else:
            branch = self.pr_head_ref(pr_id)

        if branch is None:
            logger.debug("No branch with builds for PR %s and build type %s", pr_id, build_type_id)
            return []

        return self.teamcity.list_builds(build_type_id, branch)
