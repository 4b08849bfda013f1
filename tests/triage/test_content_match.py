# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Tests for the heuristic content scorer and its text helpers."""

import pytest

from closeout.constants import DEFAULT_CONTENT_PASS_THRESHOLD
from closeout.triage.content_match import (
    HeuristicContentScorer,
    find_partial_fix_markers,
    references_issue_with_closing_keyword,
    significant_words,
)


class TestClosingReferences:
    @pytest.mark.parametrize(
        'text',
        [
            'Fixes #12',
            'this closes #12.',
            'Resolved: #12',
            'fix owner/repo#12',
            'fix Owner/Repo#12',
            'Resolves https://github.com/owner/repo/issues/12',
        ],
    )
    def test_recognized(self, text):
        assert references_issue_with_closing_keyword(text, 12, 'owner/repo')

    @pytest.mark.parametrize(
        'text',
        [
            'Fixes #123',
            'See #12',
            'prefix #12',
            'Resolves https://github.com/other/repo/issues/12',
            'Fixes upstream/lib#12',
            'closes owner/repository#12',
        ],
    )
    def test_not_recognized(self, text):
        assert not references_issue_with_closing_keyword(text, 12, 'owner/repo')


class TestPartialFixMarkers:
    def test_finds_markers(self):
        assert find_partial_fix_markers('Partially resolves #30, part of the cleanup') == ['partially', 'part of']

    def test_whole_words_only(self):
        assert find_partial_fix_markers('Refactor the counterpart of the parser') == []


def test_significant_words_drop_short_and_stop_words():
    assert significant_words('This issue: the Loader crashes with KeyError') == {'loader', 'crashes', 'keyerror'}


class TestHeuristicContentScorer:
    scorer = HeuristicContentScorer()

    def test_closing_reference_with_overlap_passes(self, make_issue, make_pr):
        match = self.scorer(make_issue(), make_pr())

        assert match.score == pytest.approx(1.0)
        assert match.score >= DEFAULT_CONTENT_PASS_THRESHOLD
        assert not match.is_partial
        assert 'PR text closes #10' in match.rationale

    def test_mention_alone_stays_below_threshold(self, make_issue, make_pr):
        pr = make_pr(
            title='Loader crash on empty config file',
            body='Crash when parsing empty config file raises KeyError in the loader, related to #10',
        )

        match = self.scorer(make_issue(), pr)

        assert match.score == pytest.approx(0.5)
        assert match.score < DEFAULT_CONTENT_PASS_THRESHOLD

    def test_unrelated_pr_scores_low(self, make_issue, make_pr):
        pr = make_pr(title='Bump dependency versions', body='Routine dependency update.')

        assert self.scorer(make_issue(), pr).score == pytest.approx(0.0)

    def test_partial_fix_wording_is_reported(self, make_issue, make_pr):
        pr = make_pr(body='Partially resolves #10 by handling the empty config file in the loader.')

        match = self.scorer(make_issue(), pr)

        assert match.is_partial
        assert match.partial_fix_markers == ['partially']
        assert 'partial-fix wording' in match.rationale

    def test_issue_without_text(self, make_issue, make_pr):
        match = self.scorer(make_issue(title='', body=''), make_pr())

        assert match.score == pytest.approx(0.7)
        assert 'issue has no descriptive text' in match.rationale

    def test_closing_reference_to_another_repository_earns_no_bonus(self, make_issue, make_pr):
        pr = make_pr(body='Fixes upstream/lib#10. Handle empty config files in the loader, no KeyError.', closing=())

        match = self.scorer(make_issue(), pr)

        assert 'PR text closes #10' not in match.rationale
        assert match.score < DEFAULT_CONTENT_PASS_THRESHOLD
