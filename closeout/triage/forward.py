# The MIT License (MIT)
# Copyright © 2025 Entrius

import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import bittensor as bt

from closeout.classes import CandidateVerdict, ConfidenceTier, PullRequest
from closeout.triage.collector import collect_all
from closeout.triage.content_match import ContentScorer
from closeout.triage.exclusion import build_exclusion_set, reopened_after_auto_close
from closeout.triage.presence import DefaultBranchPresenceProbe, PresenceProbe
from closeout.triage.validator import EXCLUDED_JUSTIFICATION, CandidateValidator, summarize_issue
from closeout.utils.config import TriageConfig
from closeout.utils.github_api_tools import (
    ForgeDataError,
    fetch_issue,
    fetch_pull_request,
    list_open_issue_numbers,
)
from closeout.utils.logging import log_verdict


@dataclass
class TriageReport:
    repository: str
    verdicts: List[CandidateVerdict] = field(default_factory=list)
    excluded: Set[int] = field(default_factory=set)
    skipped: Dict[int, str] = field(default_factory=dict)
    issue_urls: Dict[int, str] = field(default_factory=dict)

    def by_tier(self, tier: ConfidenceTier) -> List[CandidateVerdict]:
        return [v for v in self.verdicts if v.tier == tier]

    @property
    def proposals(self) -> List[CandidateVerdict]:
        return self.by_tier(ConfidenceTier.HIGH)

    @property
    def needs_review(self) -> List[CandidateVerdict]:
        return self.by_tier(ConfidenceTier.MEDIUM)


def run_triage(
    repository: str,
    token: str,
    config: Optional[TriageConfig] = None,
    issue_numbers: Optional[Iterable[int]] = None,
    presence_probe: Optional[PresenceProbe] = None,
    content_scorer: Optional[ContentScorer] = None,
) -> TriageReport:
    """Execute one read-only triage pass over a repository.

    1. List open issues (or use the given issue numbers)
    2. Exclude issues reopened after a merged PR closed them
    3. Collect closed-PR cross-references per issue, concurrently
    4. Validate every (issue, PR) pair and fold the results per issue

    Missing or malformed data for one issue skips that issue only.

    Args:
        repository: Repository in "owner/repo" format
        token: GitHub PAT
        config: Run options; defaults come from the environment
        issue_numbers: Restrict the run to these issues
        presence_probe: Replaces the default-branch presence probe
        content_scorer: Replaces the heuristic content scorer

    Returns:
        TriageReport with one verdict per triaged issue
    """
    config = config or TriageConfig.from_environment()
    round_start_time = time.time()

    bt.logging.info("=" * 70)
    bt.logging.info(f"***** Starting triage of {repository} *****")
    bt.logging.info("=" * 70)

    report = TriageReport(repository=repository)

    all_open = list_open_issue_numbers(repository, token, max_issues=config.max_open_issues)
    if issue_numbers is not None:
        requested = list(dict.fromkeys(issue_numbers))
        open_set = set(all_open)
        for number in requested:
            if number not in open_set:
                report.skipped[number] = 'not an open issue'
        targets = [n for n in requested if n in open_set]
    else:
        targets = all_open
    bt.logging.info(f"✓ {len(targets)} open issues to triage")

    if not targets:
        bt.logging.warning("No open issues to triage.")
        return report

    report.excluded = build_exclusion_set(repository, all_open, token, max_prs=config.max_merged_prs)

    validator = CandidateValidator(
        presence_probe=presence_probe or DefaultBranchPresenceProbe(token),
        content_scorer=content_scorer,
        pass_threshold=config.content_pass_threshold,
        fail_threshold=config.content_fail_threshold,
        excluded_issues=report.excluded,
    )

    collection = collect_all(repository, targets, token, max_workers=config.max_workers)
    report.skipped.update(collection.errors)

    pr_cache: Dict[int, PullRequest] = {}
    for number in targets:
        issue = collection.issues.get(number)
        if issue is None:
            continue
        report.issue_urls[number] = issue.url

        # The merged-PR listing is capped; the issue's own timeline also shows a reopen after a fix
        if number not in report.excluded and reopened_after_auto_close(issue):
            report.excluded.add(number)

        if number in report.excluded:
            verdict = CandidateVerdict(
                issue_number=number,
                pr_numbers=[c.pr_number for c in collection.candidates.get(number, [])],
                justification=EXCLUDED_JUSTIFICATION,
            )
            report.verdicts.append(verdict)
            log_verdict(verdict)
            continue

        try:
            pair_verdicts = []
            for candidate in collection.candidates.get(number, []):
                pr = pr_cache.get(candidate.pr_number)
                if pr is None:
                    pr = fetch_pull_request(repository, candidate.pr_number, token)
                    pr_cache[candidate.pr_number] = pr
                pair_verdicts.append(validator.validate(issue, pr))
        except ForgeDataError as e:
            bt.logging.warning(f"Skipping issue #{number}: {e}")
            report.skipped[number] = str(e)
            continue

        verdict = summarize_issue(number, pair_verdicts)
        report.verdicts.append(verdict)
        log_verdict(verdict)

    elapsed = time.time() - round_start_time
    bt.logging.info(f"✓ Triage completed in {elapsed:.2f}s")
    bt.logging.info(f"  - Proposed: {len(report.proposals)}")
    bt.logging.info(f"  - Needs human judgment: {len(report.needs_review)}")
    bt.logging.info(f"  - Rejected: {len(report.by_tier(ConfidenceTier.REJECT))}")
    bt.logging.info(f"  - Excluded (reopened after fix): {len(report.excluded)}")
    bt.logging.info(f"  - Skipped: {len(report.skipped)}")
    return report


def check_pair(
    repository: str,
    issue_number: int,
    pr_number: int,
    token: str,
    config: Optional[TriageConfig] = None,
    presence_probe: Optional[PresenceProbe] = None,
) -> CandidateVerdict:
    """Validate a single (issue, PR) pair, applying the exclusion rule for that issue.

    Raises:
        ForgeDataError: if either snapshot cannot be fetched
    """
    config = config or TriageConfig.from_environment()
    issue = fetch_issue(repository, issue_number, token)
    pr = fetch_pull_request(repository, pr_number, token)

    excluded = {issue_number} if issue.is_open and reopened_after_auto_close(issue) else set()

    validator = CandidateValidator(
        presence_probe=presence_probe or DefaultBranchPresenceProbe(token),
        pass_threshold=config.content_pass_threshold,
        fail_threshold=config.content_fail_threshold,
        excluded_issues=excluded,
    )
    verdict = validator.validate(issue, pr)
    log_verdict(verdict)
    return verdict
