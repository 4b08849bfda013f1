# Entrius 2025

"""The five candidate checks, each returning a CheckResult."""

from typing import Optional

from closeout.classes import CheckName, CheckOutcome, CheckResult, Issue, PullRequest
from closeout.triage.content_match import ContentScorer
from closeout.triage.presence import PresenceProbe


def check_merged(pr: PullRequest) -> CheckResult:
    """PR must be merged; closed-unmerged fails regardless of any other evidence."""
    if pr.is_merged:
        return CheckResult(CheckName.MERGE, CheckOutcome.PASS, f'PR #{pr.number} merged')
    return CheckResult(CheckName.MERGE, CheckOutcome.FAIL, f'PR #{pr.number} is {pr.merge_state.value.lower()}')


def check_ordering(issue: Issue, pr: PullRequest) -> CheckResult:
    """PR must be merged strictly after the issue was created."""
    if pr.merged_at is None:
        return CheckResult(CheckName.ORDERING, CheckOutcome.FAIL, f'PR #{pr.number} has no merge time')

    if pr.merged_at > issue.created_at:
        return CheckResult(
            CheckName.ORDERING,
            CheckOutcome.PASS,
            f'merged {pr.merged_at.isoformat()} after issue opened {issue.created_at.isoformat()}',
        )
    return CheckResult(
        CheckName.ORDERING,
        CheckOutcome.FAIL,
        f'merged {pr.merged_at.isoformat()}, not after issue opened {issue.created_at.isoformat()}',
    )


def check_not_reopened(issue: Issue, pr: PullRequest) -> CheckResult:
    """A maintainer reopening the issue after this PR auto-closed it overrides the PR."""
    if issue.was_reopened_after_close_by(pr.number):
        return CheckResult(
            CheckName.REOPEN, CheckOutcome.FAIL, f'reopened after PR #{pr.number} auto-closed it'
        )
    return CheckResult(CheckName.REOPEN, CheckOutcome.PASS, f'no reopen after a close by PR #{pr.number}')


def check_content_match(
    issue: Issue,
    pr: PullRequest,
    scorer: ContentScorer,
    pass_threshold: float,
    fail_threshold: Optional[float] = None,
) -> CheckResult:
    """
    Score how well the PR text addresses the issue.

    Partial-fix wording is always ambiguous. Otherwise the score passes at or above
    pass_threshold, fails at or below fail_threshold when one is set, and is
    ambiguous in between.
    """
    match = scorer(issue, pr)

    if match.is_partial:
        outcome = CheckOutcome.AMBIGUOUS
    elif match.score >= pass_threshold:
        outcome = CheckOutcome.PASS
    elif fail_threshold is not None and match.score <= fail_threshold:
        outcome = CheckOutcome.FAIL
    else:
        outcome = CheckOutcome.AMBIGUOUS

    return CheckResult(CheckName.CONTENT_MATCH, outcome, match.rationale, score=match.score)


def check_codebase_presence(pr: PullRequest, probe: PresenceProbe) -> CheckResult:
    report = probe(pr)
    return CheckResult(CheckName.CODEBASE_PRESENCE, report.outcome, report.detail)
