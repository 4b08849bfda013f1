# The MIT License (MIT)
# Copyright © 2025 Entrius

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from closeout.constants import GITHUB_DOMAIN
from closeout.utils.utils import parse_github_timestamp


def _require_timestamp(node: Dict, what: str) -> datetime:
    """Parse node['createdAt'], raising ValueError when it is absent."""
    created_at = parse_github_timestamp(node.get('createdAt'))
    if created_at is None:
        raise ValueError(f"missing createdAt on {what}")
    return created_at


def _same_repository(name_with_owner: Optional[str], repository_full_name: str) -> bool:
    """True when an optional nameWithOwner is absent or names the same repository."""
    return not name_with_owner or name_with_owner.lower() == repository_full_name.lower()


class IssueState(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class MergeState(Enum):
    """Merge state of a pull request"""

    MERGED = "MERGED"
    CLOSED_UNMERGED = "CLOSED_UNMERGED"
    OPEN = "OPEN"

    @classmethod
    def from_graphql(cls, state: str, merged: bool) -> 'MergeState':
        if merged or state == 'MERGED':
            return cls.MERGED
        if state == 'CLOSED':
            return cls.CLOSED_UNMERGED
        return cls.OPEN


class DiscoveryKind(Enum):
    """How a PR was linked to an issue on the issue's timeline."""

    CLOSING_KEYWORD = "closing_keyword"
    MENTION = "mention"


class CheckName(Enum):
    MERGE = "merge"
    ORDERING = "ordering"
    REOPEN = "reopen"
    CONTENT_MATCH = "content_match"
    CODEBASE_PRESENCE = "codebase_presence"


class CheckOutcome(Enum):
    PASS = "pass"
    FAIL = "fail"
    AMBIGUOUS = "ambiguous"


class ConfidenceTier(Enum):
    """Evidence strength of a candidate, as presented to the operator."""

    HIGH = "high"
    MEDIUM = "medium"
    REJECT = "reject"

    @property
    def classification(self) -> str:
        return {
            ConfidenceTier.HIGH: 'propose',
            ConfidenceTier.MEDIUM: 'needs-human-judgment',
            ConfidenceTier.REJECT: 'reject',
        }[self]

    @property
    def rank(self) -> int:
        return {ConfidenceTier.HIGH: 2, ConfidenceTier.MEDIUM: 1, ConfidenceTier.REJECT: 0}[self]


@dataclass(frozen=True)
class ReopenEvent:
    actor: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class CloseEvent:
    """A close on the issue timeline; closer_pr is set when a merged PR's closing keyword closed it."""

    actor: Optional[str]
    created_at: datetime
    closer_pr: Optional[int] = None


@dataclass(frozen=True)
class CrossReference:
    """Link between an issue and a PR discovered on the issue timeline"""

    issue_number: int
    pr_number: int
    kind: DiscoveryKind
    pr_state: Optional[MergeState] = None

    @property
    def is_closed_pr(self) -> bool:
        return self.pr_state in (MergeState.MERGED, MergeState.CLOSED_UNMERGED)


@dataclass(frozen=True)
class ChangedFile:
    path: str
    change_type: str  # ADDED, MODIFIED, DELETED, RENAMED, ...

    @property
    def is_deletion(self) -> bool:
        return self.change_type == 'DELETED'


@dataclass
class Issue:
    """Read-only snapshot of an issue fetched for this run"""

    number: int
    repository_full_name: str
    title: str
    body: str
    created_at: datetime
    state: IssueState
    reopen_history: List[ReopenEvent] = field(default_factory=list)
    close_history: List[CloseEvent] = field(default_factory=list)
    cross_references: List[CrossReference] = field(default_factory=list)

    @property
    def url(self) -> str:
        return f"{GITHUB_DOMAIN}{self.repository_full_name}/issues/{self.number}"

    @property
    def is_open(self) -> bool:
        return self.state == IssueState.OPEN

    def was_reopened_after_close_by(self, pr_number: int) -> bool:
        """True if the issue was auto-closed by pr_number and reopened at or after that close."""
        auto_closes = [event.created_at for event in self.close_history if event.closer_pr == pr_number]
        if not auto_closes:
            return False
        first_close = min(auto_closes)
        return any(reopen.created_at >= first_close for reopen in self.reopen_history)

    @classmethod
    def from_graphql_response(cls, issue_data: Dict, repository_full_name: str) -> 'Issue':
        """Create Issue from a GraphQL issue node including its timelineItems."""
        number = issue_data['number']
        reopen_history: List[ReopenEvent] = []
        close_history: List[CloseEvent] = []
        cross_references: List[CrossReference] = []

        for item in issue_data.get('timelineItems', {}).get('nodes', []) or []:
            if not item:
                continue
            typename = item.get('__typename')
            actor = (item.get('actor') or {}).get('login')

            if typename == 'ReopenedEvent':
                reopened_at = _require_timestamp(item, f'reopen event on issue #{number}')
                reopen_history.append(ReopenEvent(actor=actor, created_at=reopened_at))

            elif typename == 'ClosedEvent':
                closer = item.get('closer') or {}
                closer_pr = None
                if closer.get('__typename') == 'PullRequest':
                    closer_repo = (closer.get('repository') or {}).get('nameWithOwner')
                    if _same_repository(closer_repo, repository_full_name):
                        closer_pr = closer.get('number')
                closed_at = _require_timestamp(item, f'close event on issue #{number}')
                close_history.append(CloseEvent(actor=actor, created_at=closed_at, closer_pr=closer_pr))

            elif typename == 'CrossReferencedEvent':
                source = item.get('source') or {}
                if source.get('__typename') != 'PullRequest' or not source.get('number'):
                    continue
                # PR numbers from another repository name different pull requests
                source_repo = (source.get('repository') or {}).get('nameWithOwner')
                if item.get('isCrossRepository') or not _same_repository(source_repo, repository_full_name):
                    continue
                cross_references.append(
                    CrossReference(
                        issue_number=number,
                        pr_number=source['number'],
                        kind=DiscoveryKind.CLOSING_KEYWORD if item.get('willCloseTarget') else DiscoveryKind.MENTION,
                        pr_state=MergeState.from_graphql(source.get('state', ''), bool(source.get('merged'))),
                    )
                )

        reopen_history.sort(key=lambda e: e.created_at)
        close_history.sort(key=lambda e: e.created_at)

        return cls(
            number=number,
            repository_full_name=repository_full_name,
            title=issue_data.get('title') or '',
            body=issue_data.get('body') or '',
            created_at=_require_timestamp(issue_data, f'issue #{number}'),
            state=IssueState(issue_data['state']),
            reopen_history=reopen_history,
            close_history=close_history,
            cross_references=cross_references,
        )


@dataclass
class PullRequest:
    """Read-only snapshot of a pull request fetched for this run"""

    number: int
    repository_full_name: str
    title: str
    body: str
    merge_state: MergeState
    merged_at: Optional[datetime] = None
    changed_files: List[ChangedFile] = field(default_factory=list)
    closing_issue_numbers: List[int] = field(default_factory=list)
    base_ref: Optional[str] = None
    default_branch: Optional[str] = None
    merge_commit_sha: Optional[str] = None

    @property
    def url(self) -> str:
        return f"{GITHUB_DOMAIN}{self.repository_full_name}/pull/{self.number}"

    @property
    def is_merged(self) -> bool:
        return self.merge_state == MergeState.MERGED

    @property
    def changed_paths(self) -> List[str]:
        return [f.path for f in self.changed_files]

    @classmethod
    def from_graphql_response(cls, pr_data: Dict, repository_full_name: str) -> 'PullRequest':
        """Create PullRequest from a GraphQL pullRequest node."""
        merge_state = MergeState.from_graphql(pr_data.get('state', ''), bool(pr_data.get('merged')))
        closing = pr_data.get('closingIssuesReferences') or {}
        files = pr_data.get('files') or {}
        default_branch_ref = (pr_data.get('repository') or {}).get('defaultBranchRef') or {}
        merge_commit = pr_data.get('mergeCommit') or {}

        return cls(
            number=pr_data['number'],
            repository_full_name=repository_full_name,
            title=pr_data.get('title') or '',
            body=pr_data.get('body') or '',
            merge_state=merge_state,
            # mergedAt is only meaningful for merged PRs
            merged_at=parse_github_timestamp(pr_data.get('mergedAt')) if merge_state == MergeState.MERGED else None,
            changed_files=[
                ChangedFile(path=node['path'], change_type=node.get('changeType', 'MODIFIED'))
                for node in files.get('nodes', []) or []
                if node and node.get('path')
            ],
            closing_issue_numbers=[
                node['number']
                for node in closing.get('nodes', []) or []
                if node and _same_repository((node.get('repository') or {}).get('nameWithOwner'), repository_full_name)
            ],
            base_ref=pr_data.get('baseRefName'),
            default_branch=default_branch_ref.get('name'),
            merge_commit_sha=merge_commit.get('oid'),
        )


@dataclass(frozen=True)
class CheckResult:
    name: CheckName
    outcome: CheckOutcome
    detail: str
    score: Optional[float] = None

    @property
    def passed(self) -> bool:
        return self.outcome == CheckOutcome.PASS


@dataclass
class CandidateVerdict:
    """Derived, never persisted: the outcome of validating one issue against its candidate PR(s)."""

    issue_number: int
    pr_numbers: List[int]
    checks: List[CheckResult] = field(default_factory=list)
    tier: ConfidenceTier = ConfidenceTier.REJECT
    justification: str = ''

    @property
    def classification(self) -> str:
        return self.tier.classification

    @property
    def is_proposal(self) -> bool:
        return self.tier == ConfidenceTier.HIGH

    @property
    def needs_review(self) -> bool:
        return self.tier == ConfidenceTier.MEDIUM

    def outcome_of(self, name: CheckName) -> Optional[CheckOutcome]:
        for check in self.checks:
            if check.name == name:
                return check.outcome
        return None

    def __str__(self) -> str:
        prs = ', '.join(f'#{n}' for n in self.pr_numbers) or '-'
        return f"Verdict(issue=#{self.issue_number}, prs={prs}, tier={self.tier.value})"


class InvalidTransitionError(Exception):
    """Raised when a candidate is moved along an edge its lifecycle does not allow."""


class CandidateState(Enum):
    COLLECTED = "collected"
    CHECKED = "checked"
    REJECTED = "rejected"
    PENDING_APPROVAL = "pending_approval"
    ACTED = "acted"
    DISCARDED = "discarded"


ALLOWED_TRANSITIONS = {
    CandidateState.COLLECTED: {CandidateState.CHECKED},
    CandidateState.CHECKED: {CandidateState.REJECTED, CandidateState.PENDING_APPROVAL},
    CandidateState.PENDING_APPROVAL: {CandidateState.ACTED, CandidateState.DISCARDED},
    CandidateState.REJECTED: set(),
    CandidateState.ACTED: set(),
    CandidateState.DISCARDED: set(),
}


@dataclass
class Candidate:
    """An issue verdict moving through collected -> checked -> {rejected | pending_approval} -> {acted | discarded}"""

    verdict: CandidateVerdict
    state: CandidateState = CandidateState.COLLECTED
    error: Optional[str] = None

    @property
    def issue_number(self) -> int:
        return self.verdict.issue_number

    def advance(self, new_state: CandidateState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Issue #{self.issue_number}: cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    @classmethod
    def from_verdict(cls, verdict: CandidateVerdict) -> 'Candidate':
        """Move a freshly checked verdict to rejected or pending_approval."""
        candidate = cls(verdict=verdict)
        candidate.advance(CandidateState.CHECKED)

        if verdict.tier == ConfidenceTier.REJECT:
            candidate.advance(CandidateState.REJECTED)
            return candidate

        evaluated = {check.name for check in verdict.checks}
        if evaluated != set(CheckName) or any(c.outcome == CheckOutcome.FAIL for c in verdict.checks):
            raise InvalidTransitionError(
                f"Issue #{verdict.issue_number}: {verdict.tier.value} verdict without every check passing or ambiguous"
            )
        candidate.advance(CandidateState.PENDING_APPROVAL)
        return candidate
