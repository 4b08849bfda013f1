# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Content matching between an issue and a candidate PR.

The check is judgment-based, so scorers return a confidence value instead of a
boolean. Any callable matching ``ContentScorer`` can replace the heuristic one,
including a human-in-the-loop reviewer.
"""

import re
from dataclasses import dataclass, field
from typing import List, Protocol, Set

from closeout.classes import Issue, PullRequest
from closeout.constants import (
    CLOSING_KEYWORD_SCORE,
    CLOSING_KEYWORDS,
    MAX_OVERLAP_SCORE,
    MIN_SIGNIFICANT_WORD_LENGTH,
    PARTIAL_FIX_MARKERS,
    STOP_WORDS,
)

WORD_PATTERN = re.compile(r'[a-z][a-z0-9_]+')
CLOSING_REFERENCE_PATTERN = re.compile(
    r'\b(?:' + '|'.join(CLOSING_KEYWORDS) + r')\b\s*:?\s+(?:([\w.-]+/[\w.-]+))?#(\d+)\b',
    re.IGNORECASE,
)
CLOSING_URL_PATTERN = re.compile(
    r'\b(?:' + '|'.join(CLOSING_KEYWORDS) + r')\b\s*:?\s+https://github\.com/([\w.-]+/[\w.-]+)/issues/(\d+)\b',
    re.IGNORECASE,
)


@dataclass
class ContentMatch:
    score: float
    partial_fix_markers: List[str] = field(default_factory=list)
    rationale: str = ''

    @property
    def is_partial(self) -> bool:
        return bool(self.partial_fix_markers)


class ContentScorer(Protocol):
    def __call__(self, issue: Issue, pr: PullRequest) -> ContentMatch: ...


def find_partial_fix_markers(text: str) -> List[str]:
    """Partial-fix phrases ("partially", "part of", ...) present in text, in marker order."""
    lowered = text.lower()
    return [marker for marker in PARTIAL_FIX_MARKERS if re.search(r'\b' + re.escape(marker) + r'\b', lowered)]


def references_issue_with_closing_keyword(text: str, issue_number: int, repository_full_name: str) -> bool:
    """True if text says e.g. "fixes #12", "closes owner/repo#12" or "resolves <issue url>" for this issue."""
    for pattern in (CLOSING_REFERENCE_PATTERN, CLOSING_URL_PATTERN):
        for match in pattern.finditer(text):
            repository, number = match.groups()
            # a bare "#N" refers to this repository
            if repository and repository.lower() != repository_full_name.lower():
                continue
            if int(number) == issue_number:
                return True
    return False


def significant_words(text: str) -> Set[str]:
    return {
        word
        for word in WORD_PATTERN.findall(text.lower())
        if len(word) >= MIN_SIGNIFICANT_WORD_LENGTH and word not in STOP_WORDS
    }


class HeuristicContentScorer:
    """
    Default scorer: an explicit closing reference plus vocabulary overlap.

    An explicit "fixes #N" contributes CLOSING_KEYWORD_SCORE; the share of the
    issue's significant words that reappear in the PR contributes up to
    MAX_OVERLAP_SCORE. A passive mention alone therefore never reaches the
    default pass threshold.
    """

    def __call__(self, issue: Issue, pr: PullRequest) -> ContentMatch:
        pr_text = f'{pr.title}\n{pr.body}'
        markers = find_partial_fix_markers(pr_text)

        score = 0.0
        reasons = []
        if references_issue_with_closing_keyword(pr_text, issue.number, issue.repository_full_name):
            score += CLOSING_KEYWORD_SCORE
            reasons.append(f'PR text closes #{issue.number}')

        issue_words = significant_words(f'{issue.title}\n{issue.body}')
        if issue_words:
            shared = issue_words & significant_words(pr_text)
            overlap = len(shared) / len(issue_words)
            score += MAX_OVERLAP_SCORE * overlap
            reasons.append(f'{len(shared)}/{len(issue_words)} issue terms in PR')
        else:
            reasons.append('issue has no descriptive text')

        if markers:
            reasons.append(f'partial-fix wording: {", ".join(repr(m) for m in markers)}')

        return ContentMatch(score=min(score, 1.0), partial_fix_markers=markers, rationale='; '.join(reasons))
