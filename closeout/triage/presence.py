# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Confirm that a merged PR's change is still present on the default branch."""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Protocol

import bittensor as bt

from closeout.classes import CheckOutcome, PullRequest
from closeout.utils.github_api_tools import (
    ForgeDataError,
    is_commit_on_branch,
    list_branch_commits_since,
    path_exists_on_branch,
)

PRESENCE_MAX_FILES = 20


@dataclass
class PresenceReport:
    outcome: CheckOutcome
    detail: str
    missing_paths: List[str] = field(default_factory=list)


class PresenceProbe(Protocol):
    def __call__(self, pr: PullRequest) -> PresenceReport: ...


def is_revert_of(message: str, pr: PullRequest) -> bool:
    """True if a commit message reverts the given PR (by merge sha, PR reference or revert title)."""
    lowered = message.lower()
    if pr.merge_commit_sha and re.search(r'this reverts commit ' + re.escape(pr.merge_commit_sha[:7].lower()), lowered):
        return True
    if re.search(r'reverts ' + re.escape(f'{pr.repository_full_name.lower()}#{pr.number}') + r'\b', lowered):
        return True
    if pr.title and lowered.startswith(f'revert "{pr.title.lower()}"'):
        return True
    return False


def find_reverting_commits(commits: List[Dict], pr: PullRequest) -> List[str]:
    reverting = []
    for commit in commits:
        message = (commit.get('commit') or {}).get('message') or ''
        if is_revert_of(message, pr):
            reverting.append(commit.get('sha', '')[:7])
    return reverting


class DefaultBranchPresenceProbe:
    """
    Presence probe backed by the GitHub REST API.

    Fails when the PR targeted another branch, its merge commit is not reachable
    from the default branch, or a later default-branch commit reverts it. Files the
    PR touched that are gone from the default branch make the result ambiguous, or
    a failure when all of them are gone.

    Raises ForgeDataError when the forge cannot answer.
    """

    def __init__(self, token: str, max_files: int = PRESENCE_MAX_FILES):
        self.token = token
        self.max_files = max_files

    def __call__(self, pr: PullRequest) -> PresenceReport:
        repository = pr.repository_full_name
        default_branch = pr.default_branch
        if not default_branch:
            raise ForgeDataError(f"No default branch known for {repository}")

        if pr.base_ref and pr.base_ref != default_branch:
            return PresenceReport(
                CheckOutcome.FAIL, f"merged into '{pr.base_ref}', not default branch '{default_branch}'"
            )

        if not pr.merge_commit_sha or not pr.merged_at:
            raise ForgeDataError(f"PR #{pr.number} has no merge commit")

        reachable = is_commit_on_branch(repository, pr.merge_commit_sha, default_branch, self.token)
        if reachable is None:
            raise ForgeDataError(f"Could not compare {pr.merge_commit_sha[:7]} against {default_branch}")
        if not reachable:
            return PresenceReport(
                CheckOutcome.FAIL, f"merge commit {pr.merge_commit_sha[:7]} is not on '{default_branch}'"
            )

        commits = list_branch_commits_since(repository, default_branch, pr.merged_at, self.token)
        if commits is None:
            raise ForgeDataError(f"Could not list commits on {default_branch} since PR #{pr.number} merged")
        reverts = find_reverting_commits(commits, pr)
        if reverts:
            return PresenceReport(CheckOutcome.FAIL, f"reverted on '{default_branch}' by {', '.join(reverts)}")

        paths = [f.path for f in pr.changed_files if not f.is_deletion][: self.max_files]
        if not paths:
            return PresenceReport(CheckOutcome.PASS, f"merge commit on '{default_branch}', not reverted")

        missing = []
        for path in paths:
            exists = path_exists_on_branch(repository, path, default_branch, self.token)
            if exists is None:
                raise ForgeDataError(f"Could not look up {path} on {default_branch}")
            if not exists:
                missing.append(path)

        if not missing:
            return PresenceReport(
                CheckOutcome.PASS, f"merge commit on '{default_branch}', not reverted, {len(paths)} file(s) present"
            )

        bt.logging.debug(f"PR #{pr.number}: {len(missing)}/{len(paths)} touched files missing on {default_branch}")
        if len(missing) == len(paths):
            return PresenceReport(
                CheckOutcome.FAIL, f"all {len(paths)} touched file(s) gone from '{default_branch}'", missing
            )
        return PresenceReport(
            CheckOutcome.AMBIGUOUS,
            f"{len(missing)}/{len(paths)} touched file(s) gone from '{default_branch}' (refactored?)",
            missing,
        )
