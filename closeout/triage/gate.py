# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Presentation gate: the only path from verdicts to forge writes.

Proposed and needs-review verdicts wait in PENDING_APPROVAL until the operator
decides. Nothing is written without an Approval; attempting it raises
UnapprovedWriteError, which callers must treat as a programming error.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

import bittensor as bt

from closeout.classes import Candidate, CandidateState, CandidateVerdict, ConfidenceTier
from closeout.constants import DEFAULT_COMMENT_TEMPLATE, DEFAULT_RESOLVED_LABEL
from closeout.utils import github_api_tools

SUPPORTED_ACTIONS = ('comment', 'label', 'close')


class UnapprovedWriteError(Exception):
    """A forge write was attempted for an issue the operator did not approve."""


class DecisionKind(Enum):
    APPROVE_ALL = "approve_all"
    APPROVE_SUBSET = "approve_subset"
    REJECT_ALL = "reject_all"
    EDIT_WORDING = "edit_wording"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    issue_numbers: FrozenSet[int] = frozenset()
    comment_template: Optional[str] = None

    @classmethod
    def approve_all(cls) -> 'Decision':
        return cls(DecisionKind.APPROVE_ALL)

    @classmethod
    def approve_subset(cls, issue_numbers: Iterable[int]) -> 'Decision':
        return cls(DecisionKind.APPROVE_SUBSET, issue_numbers=frozenset(issue_numbers))

    @classmethod
    def reject_all(cls) -> 'Decision':
        return cls(DecisionKind.REJECT_ALL)

    @classmethod
    def edit_wording(cls, comment_template: str) -> 'Decision':
        return cls(DecisionKind.EDIT_WORDING, comment_template=comment_template)


@dataclass(frozen=True)
class Approval:
    """Receipt of an operator approval; only issues it covers may be written to."""

    issue_numbers: FrozenSet[int]

    def covers(self, issue_number: int) -> bool:
        return issue_number in self.issue_numbers


@dataclass
class Finding:
    issue_number: int
    pr_numbers: List[int]
    rationale: str
    confidence: str
    classification: str
    issue_url: str = ''


@dataclass
class ActionReport:
    acted: List[int] = field(default_factory=list)
    discarded: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)


def render_comment(template: str, issue_number: int, pr_numbers: List[int]) -> str:
    """Fill a comment template; ``{pr_refs}`` and ``{issue}`` are available."""
    pr_refs = ', '.join(f'#{n}' for n in pr_numbers)
    return template.format(pr_refs=pr_refs, issue=f'#{issue_number}')


def validate_comment_template(template: str) -> None:
    """Raise ValueError if the template is empty or uses placeholders other than {pr_refs} and {issue}."""
    if not template or not template.strip():
        raise ValueError('Comment wording cannot be empty')
    try:
        render_comment(template, 0, [0])
    except (KeyError, IndexError, ValueError) as e:
        raise ValueError(f'Invalid comment wording ({e}); use {{pr_refs}} and {{issue}} placeholders') from e


class ForgeWriter:
    """Gated forge writes. Every method requires an Approval covering the issue."""

    def __init__(self, repository: str, token: str, actions_logger=None):
        self.repository = repository
        self.token = token
        self.actions_logger = actions_logger

    def _require(self, approval: Optional[Approval], issue_number: int) -> None:
        if approval is None or not approval.covers(issue_number):
            raise UnapprovedWriteError(f'Refusing to write to issue #{issue_number} without operator approval')

    def _audit(self, message: str) -> None:
        if self.actions_logger is not None:
            self.actions_logger.action(f'{self.repository} {message}')

    def comment(self, issue_number: int, body: str, approval: Optional[Approval]) -> bool:
        self._require(approval, issue_number)
        ok = github_api_tools.post_issue_comment(self.repository, issue_number, body, self.token)
        if ok:
            self._audit(f'commented on #{issue_number}')
        return ok

    def label(self, issue_number: int, label: str, approval: Optional[Approval]) -> bool:
        self._require(approval, issue_number)
        ok = github_api_tools.add_issue_labels(self.repository, issue_number, [label], self.token)
        if ok:
            self._audit(f'labelled #{issue_number} with {label}')
        return ok

    def close(self, issue_number: int, approval: Optional[Approval]) -> bool:
        self._require(approval, issue_number)
        ok = github_api_tools.close_issue(self.repository, issue_number, self.token)
        if ok:
            self._audit(f'closed #{issue_number} as completed')
        return ok


class PresentationGate:
    """Holds checked candidates and turns an operator decision into forge writes."""

    def __init__(
        self,
        verdicts: Iterable[CandidateVerdict],
        comment_template: str = DEFAULT_COMMENT_TEMPLATE,
        label: str = DEFAULT_RESOLVED_LABEL,
        actions: Iterable[str] = SUPPORTED_ACTIONS,
        issue_urls: Optional[Dict[int, str]] = None,
    ):
        validate_comment_template(comment_template)
        self.comment_template = comment_template
        self.label = label
        self.actions = [a for a in actions if a in SUPPORTED_ACTIONS]
        self.issue_urls = issue_urls or {}
        self.candidates: Dict[int, Candidate] = {}
        for verdict in verdicts:
            self.candidates[verdict.issue_number] = Candidate.from_verdict(verdict)

    def pending(self) -> List[Candidate]:
        return [c for c in self.candidates.values() if c.state == CandidateState.PENDING_APPROVAL]

    def findings(self) -> List[Finding]:
        """Rows for the operator: proposals first, then needs-review, by issue number."""
        rows = [
            Finding(
                issue_number=c.issue_number,
                pr_numbers=list(c.verdict.pr_numbers),
                rationale=c.verdict.justification,
                confidence=c.verdict.tier.value,
                classification=c.verdict.classification,
                issue_url=self.issue_urls.get(c.issue_number, ''),
            )
            for c in self.pending()
        ]
        rows.sort(key=lambda f: (f.confidence != ConfidenceTier.HIGH.value, f.issue_number))
        return rows

    def decide(self, decision: Decision) -> Optional[Approval]:
        """
        Record the operator's decision.

        Returns an Approval for APPROVE_ALL / APPROVE_SUBSET. REJECT_ALL discards every
        pending candidate. EDIT_WORDING changes the comment and leaves everything pending.
        """
        pending_numbers = {c.issue_number for c in self.pending()}

        if decision.kind == DecisionKind.EDIT_WORDING:
            validate_comment_template(decision.comment_template or '')
            self.comment_template = decision.comment_template
            bt.logging.info('Comment wording updated; candidates remain pending approval')
            return None

        if decision.kind == DecisionKind.REJECT_ALL:
            for candidate in self.pending():
                candidate.advance(CandidateState.DISCARDED)
            bt.logging.info(f'Operator rejected all {len(pending_numbers)} pending candidates')
            return None

        if decision.kind == DecisionKind.APPROVE_ALL:
            return Approval(frozenset(pending_numbers))

        unknown = set(decision.issue_numbers) - pending_numbers
        if unknown:
            raise ValueError(f'Not pending approval: {", ".join(f"#{n}" for n in sorted(unknown))}')
        return Approval(frozenset(decision.issue_numbers))

    def apply(self, approval: Optional[Approval], writer: ForgeWriter) -> ActionReport:
        """
        Perform the configured writes for approved candidates; discard the rest.

        A candidate whose writes fail stays pending with its error recorded.
        """
        if approval is None:
            raise UnapprovedWriteError('No operator approval; nothing may be written')

        report = ActionReport()
        for candidate in self.pending():
            number = candidate.issue_number
            if not approval.covers(number):
                candidate.advance(CandidateState.DISCARDED)
                report.discarded.append(number)
                continue

            error = self._act(candidate, approval, writer)
            if error:
                candidate.error = error
                report.failed[number] = error
                bt.logging.error(f'Issue #{number}: {error}')
                continue

            candidate.advance(CandidateState.ACTED)
            report.acted.append(number)
            bt.logging.info(f'Issue #{number}: {", ".join(self.actions)} done')

        return report

    def _act(self, candidate: Candidate, approval: Approval, writer: ForgeWriter) -> Optional[str]:
        number = candidate.issue_number
        # Comment and label before closing so a closed issue always carries its explanation
        if 'comment' in self.actions:
            body = render_comment(self.comment_template, number, candidate.verdict.pr_numbers)
            if not writer.comment(number, body, approval):
                return 'failed to post comment'
        if 'label' in self.actions and self.label:
            if not writer.label(number, self.label, approval):
                return f'failed to apply label {self.label}'
        if 'close' in self.actions:
            if not writer.close(number, approval):
                return 'failed to close issue'
        return None
