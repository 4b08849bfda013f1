# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Exclusion of issues that a merged PR already closed once and a maintainer reopened."""

from typing import Iterable, Set

import bittensor as bt

from closeout.classes import Issue, PullRequest
from closeout.utils.github_api_tools import list_merged_prs_with_closing_refs


def find_reopened_after_fix(merged_prs: Iterable[PullRequest], open_issue_numbers: Iterable[int]) -> Set[int]:
    """
    Issues referenced by a merged PR's closing keyword that are nevertheless open.

    The merge auto-closed them, so being open now means a maintainer reopened them
    and judged the fix insufficient. Members of the returned set are never proposed
    in this run.

    Args:
        merged_prs: Merged PRs with closing issue references
        open_issue_numbers: Issues currently open

    Returns:
        Set[int]: Excluded issue numbers
    """
    open_numbers = set(open_issue_numbers)
    excluded: Set[int] = set()

    for pr in merged_prs:
        if not pr.is_merged:
            continue
        for issue_number in pr.closing_issue_numbers:
            if issue_number in open_numbers and issue_number not in excluded:
                bt.logging.debug(f"Excluding issue #{issue_number}: reopened after merged PR #{pr.number} closed it")
                excluded.add(issue_number)

    return excluded


def reopened_after_auto_close(issue: Issue) -> bool:
    """Single-issue form of the exclusion rule, read from the issue's own timeline."""
    closer_prs = {event.closer_pr for event in issue.close_history if event.closer_pr is not None}
    return any(issue.was_reopened_after_close_by(pr_number) for pr_number in closer_prs)


def build_exclusion_set(repository: str, open_issue_numbers: Iterable[int], token: str, max_prs: int) -> Set[int]:
    """Fetch merged PRs with closing references and compute the exclusion set."""
    merged_prs = list_merged_prs_with_closing_refs(repository, token, max_prs=max_prs)
    excluded = find_reopened_after_fix(merged_prs, open_issue_numbers)
    bt.logging.info(f"✓ {len(excluded)} open issues excluded (reopened after a merged fix)")
    return excluded
