# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Shared fixtures: issue/PR snapshot factories and fake forge collaborators."""

from datetime import datetime, timedelta, timezone

import pytest

from closeout.classes import (
    ChangedFile,
    CheckOutcome,
    CloseEvent,
    CrossReference,
    Issue,
    IssueState,
    MergeState,
    PullRequest,
    ReopenEvent,
)
from closeout.triage.presence import PresenceReport

REPO = 'owner/repo'
T0 = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class StaticPresenceProbe:
    """Presence probe returning a fixed report and recording the PRs it was asked about."""

    def __init__(self, outcome=CheckOutcome.PASS, detail='still on main'):
        self.report = PresenceReport(outcome, detail)
        self.calls = []

    def __call__(self, pr):
        self.calls.append(pr.number)
        return self.report


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_issue():
    def _make(
        number=10,
        title='Crash when parsing empty config file',
        body='Parsing an empty config file raises a KeyError in the loader.',
        created_at=T0,
        state=IssueState.OPEN,
        reopens=(),
        closes=(),
        refs=(),
    ):
        return Issue(
            number=number,
            repository_full_name=REPO,
            title=title,
            body=body,
            created_at=created_at,
            state=state,
            reopen_history=[ReopenEvent(actor='maintainer', created_at=ts) for ts in reopens],
            close_history=[CloseEvent(actor='bot', created_at=ts, closer_pr=pr) for ts, pr in closes],
            cross_references=[
                CrossReference(issue_number=number, pr_number=pr, kind=kind, pr_state=pr_state)
                for pr, kind, pr_state in refs
            ],
        )

    return _make


@pytest.fixture
def make_pr():
    def _make(
        number=55,
        title='Handle empty config files in the loader',
        body='Fixes #10. The config loader now handles an empty config file instead of raising KeyError.',
        merge_state=MergeState.MERGED,
        merged_at=T0 + timedelta(days=2),
        files=('closeout/loader.py',),
        closing=(10,),
        base_ref='main',
        default_branch='main',
        merge_commit_sha='a1b2c3d4e5f60718293a4b5c6d7e8f9012345678',
    ):
        return PullRequest(
            number=number,
            repository_full_name=REPO,
            title=title,
            body=body,
            merge_state=merge_state,
            merged_at=merged_at if merge_state == MergeState.MERGED else None,
            changed_files=[ChangedFile(path=path, change_type='MODIFIED') for path in files],
            closing_issue_numbers=list(closing),
            base_ref=base_ref,
            default_branch=default_branch,
            merge_commit_sha=merge_commit_sha,
        )

    return _make


@pytest.fixture
def passing_probe():
    return StaticPresenceProbe()


@pytest.fixture
def failing_probe():
    return StaticPresenceProbe(CheckOutcome.FAIL, 'reverted on main by 9f8e7d6')


@pytest.fixture
def make_probe():
    return StaticPresenceProbe
