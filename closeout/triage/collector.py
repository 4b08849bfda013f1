# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Candidate collection: closed PRs cross-referenced on an open issue's timeline."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

import bittensor as bt

from closeout.classes import CrossReference, DiscoveryKind, Issue
from closeout.utils.github_api_tools import ForgeDataError, fetch_issue


@dataclass
class CollectionResult:
    issues: Dict[int, Issue] = field(default_factory=dict)
    candidates: Dict[int, List[CrossReference]] = field(default_factory=dict)
    errors: Dict[int, str] = field(default_factory=dict)


def collect_candidates(issue: Issue) -> List[CrossReference]:
    """
    Cross-references on the issue timeline whose source PR is closed (merged or not).

    One entry per PR. A PR seen both as a mention and with a closing keyword keeps
    the closing keyword tag. This is a superset; nothing here is validated.
    """
    by_pr: Dict[int, CrossReference] = {}

    for ref in issue.cross_references:
        if not ref.is_closed_pr:
            continue
        existing = by_pr.get(ref.pr_number)
        if existing is None or (
            existing.kind == DiscoveryKind.MENTION and ref.kind == DiscoveryKind.CLOSING_KEYWORD
        ):
            by_pr[ref.pr_number] = ref

    return sorted(by_pr.values(), key=lambda r: r.pr_number)


def _fetch_and_collect(repository: str, issue_number: int, token: str):
    issue = fetch_issue(repository, issue_number, token)
    return issue, collect_candidates(issue)


def collect_all(repository: str, issue_numbers: Iterable[int], token: str, max_workers: int = 8) -> CollectionResult:
    """
    Fetch issue snapshots concurrently and collect their candidates.

    A failed fetch is logged and recorded in ``errors``; it never aborts the batch.
    """
    result = CollectionResult()
    numbers = list(dict.fromkeys(issue_numbers))
    if not numbers:
        return result

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {executor.submit(_fetch_and_collect, repository, number, token): number for number in numbers}
        for future in as_completed(futures):
            number = futures[future]
            try:
                issue, candidates = future.result()
            except ForgeDataError as e:
                bt.logging.warning(f"Skipping issue #{number}: {e}")
                result.errors[number] = str(e)
                continue
            except Exception as e:
                bt.logging.error(f"Unexpected error collecting issue #{number}: {e}")
                result.errors[number] = str(e)
                continue

            result.issues[number] = issue
            result.candidates[number] = candidates
            bt.logging.debug(f"Issue #{number}: {len(candidates)} closed PR candidate(s)")

    bt.logging.info(
        f"✓ Collected {sum(len(c) for c in result.candidates.values())} candidates "
        f"across {len(result.issues)} issues ({len(result.errors)} skipped)"
    )
    return result
