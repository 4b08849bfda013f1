# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Candidate validation: run the checks in fixed order and classify the pair."""

from typing import Callable, Iterable, List, Optional

import bittensor as bt

from closeout.classes import (
    CandidateVerdict,
    CheckOutcome,
    CheckResult,
    ConfidenceTier,
    Issue,
    PullRequest,
)
from closeout.constants import DEFAULT_CONTENT_PASS_THRESHOLD
from closeout.triage.checks import (
    check_codebase_presence,
    check_content_match,
    check_merged,
    check_not_reopened,
    check_ordering,
)
from closeout.triage.content_match import ContentScorer, HeuristicContentScorer
from closeout.triage.presence import PresenceProbe

EXCLUDED_JUSTIFICATION = 'reopened by a maintainer after a merged PR closed it; excluded from proposal'


def tier_for(checks: List[CheckResult]) -> ConfidenceTier:
    """HIGH when every check passed, MEDIUM when the worst is ambiguous, REJECT on any failure."""
    outcomes = {check.outcome for check in checks}
    if not checks or CheckOutcome.FAIL in outcomes:
        return ConfidenceTier.REJECT
    if CheckOutcome.AMBIGUOUS in outcomes:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.HIGH


class CandidateValidator:
    """
    Validates (issue, PR) candidates. Reads only; never writes to the forge.

    Checks run in order: merge, ordering, reopen, content match, codebase presence.
    The first failing check rejects the pair and later checks are not run.
    An ambiguous content match does not stop the pipeline, it caps the tier at MEDIUM.
    """

    def __init__(
        self,
        presence_probe: PresenceProbe,
        content_scorer: Optional[ContentScorer] = None,
        pass_threshold: float = DEFAULT_CONTENT_PASS_THRESHOLD,
        fail_threshold: Optional[float] = None,
        excluded_issues: Iterable[int] = (),
    ):
        self.presence_probe = presence_probe
        self.content_scorer = content_scorer or HeuristicContentScorer()
        self.pass_threshold = pass_threshold
        self.fail_threshold = fail_threshold
        self.excluded_issues = set(excluded_issues)

    def _steps(self, issue: Issue, pr: PullRequest) -> List[Callable[[], CheckResult]]:
        return [
            lambda: check_merged(pr),
            lambda: check_ordering(issue, pr),
            lambda: check_not_reopened(issue, pr),
            lambda: check_content_match(issue, pr, self.content_scorer, self.pass_threshold, self.fail_threshold),
            lambda: check_codebase_presence(pr, self.presence_probe),
        ]

    def validate(self, issue: Issue, pr: PullRequest) -> CandidateVerdict:
        """
        Validate one candidate pair.

        Raises:
            ForgeDataError: propagated from the presence probe when the forge cannot answer
        """
        verdict = CandidateVerdict(issue_number=issue.number, pr_numbers=[pr.number])

        if issue.number in self.excluded_issues:
            verdict.justification = EXCLUDED_JUSTIFICATION
            return verdict

        for step in self._steps(issue, pr):
            result = step()
            verdict.checks.append(result)
            if result.outcome == CheckOutcome.FAIL:
                bt.logging.debug(f"Issue #{issue.number} / PR #{pr.number}: {result.name.value} check failed")
                break

        verdict.tier = tier_for(verdict.checks)
        verdict.justification = self._justify(verdict, pr)
        return verdict

    @staticmethod
    def _justify(verdict: CandidateVerdict, pr: PullRequest) -> str:
        failed = [c for c in verdict.checks if c.outcome == CheckOutcome.FAIL]
        if failed:
            return f'{failed[0].name.value} check failed: {failed[0].detail}'

        ambiguous = [c for c in verdict.checks if c.outcome == CheckOutcome.AMBIGUOUS]
        if ambiguous:
            details = '; '.join(f'{c.name.value}: {c.detail}' for c in ambiguous)
            return f'PR #{pr.number} merged and present, needs review ({details})'

        return f'PR #{pr.number} merged after the issue was opened, matches it and is still on the default branch'


def summarize_issue(issue_number: int, pair_verdicts: List[CandidateVerdict]) -> CandidateVerdict:
    """
    Fold the per-PR verdicts of one issue into a single issue verdict.

    PRs sharing the best non-reject tier are proposed together. If every pair was
    rejected the issue is rejected with all of the pair justifications.
    """
    if not pair_verdicts:
        return CandidateVerdict(
            issue_number=issue_number, pr_numbers=[], justification='no closed PR cross-references this issue'
        )

    best_rank = max(v.tier.rank for v in pair_verdicts)
    best = [v for v in pair_verdicts if v.tier.rank == best_rank]

    if best[0].tier == ConfidenceTier.REJECT:
        return CandidateVerdict(
            issue_number=issue_number,
            pr_numbers=[n for v in pair_verdicts for n in v.pr_numbers],
            checks=[c for v in pair_verdicts for c in v.checks],
            tier=ConfidenceTier.REJECT,
            justification=' | '.join(f'#{v.pr_numbers[0]}: {v.justification}' for v in pair_verdicts),
        )

    return CandidateVerdict(
        issue_number=issue_number,
        pr_numbers=[n for v in best for n in v.pr_numbers],
        checks=[c for v in best for c in v.checks],
        tier=best[0].tier,
        justification=' | '.join(v.justification for v in best),
    )
