# The MIT License (MIT)
# Copyright © 2025 Entrius

"""End-to-end triage runs against a patched forge."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from closeout.classes import CheckName, ConfidenceTier, DiscoveryKind, MergeState
from closeout.triage.forward import check_pair, run_triage
from closeout.utils.config import TriageConfig
from closeout.utils.github_api_tools import ForgeDataError

KW = DiscoveryKind.CLOSING_KEYWORD


@pytest.fixture
def forge(make_issue, make_pr, t0):
    """
    A small repository:

    #10  opened after PR #50 merged         -> rejected (ordering)
    #20  auto-closed by PR #60, reopened     -> excluded
    #30  PR #70 'partially resolves #30'     -> needs human judgment
    #40  PR #80 fixes it                     -> proposed
    #45  no closed PR references it          -> rejected
    """
    issues = {
        10: make_issue(number=10, created_at=t0 + timedelta(days=10), refs=((50, KW, MergeState.MERGED),)),
        20: make_issue(
            number=20,
            refs=((60, KW, MergeState.MERGED),),
            closes=((t0 + timedelta(days=2), 60),),
            reopens=(t0 + timedelta(days=3),),
        ),
        30: make_issue(number=30, refs=((70, KW, MergeState.MERGED),)),
        40: make_issue(number=40, refs=((80, KW, MergeState.MERGED), (81, KW, MergeState.OPEN))),
        45: make_issue(number=45),
    }
    prs = {
        50: make_pr(number=50, closing=(10,)),
        60: make_pr(number=60, body='Fixes #20. Handles an empty config file in the loader.', closing=(20,)),
        70: make_pr(number=70, body='Partially resolves #30: empty config file handling in the loader.', closing=(30,)),
        80: make_pr(number=80, body='Fixes #40. The config loader handles an empty config file without KeyError.', closing=(40,)),
    }

    def fetch_issue(repository, number, token):
        if number not in issues:
            raise ForgeDataError(f'Issue #{number} not found in {repository}')
        return issues[number]

    def fetch_pull_request(repository, number, token):
        if number not in prs:
            raise ForgeDataError(f'PR #{number} not found in {repository}')
        return prs[number]

    with patch('closeout.triage.forward.list_open_issue_numbers', return_value=sorted(issues)) as list_open, patch(
        'closeout.triage.forward.build_exclusion_set', return_value=set()
    ) as exclusion, patch('closeout.triage.collector.fetch_issue', side_effect=fetch_issue), patch(
        'closeout.triage.forward.fetch_issue', side_effect=fetch_issue
    ), patch(
        'closeout.triage.forward.fetch_pull_request', side_effect=fetch_pull_request
    ) as fetch_pr:
        yield {'issues': issues, 'prs': prs, 'list_open': list_open, 'exclusion': exclusion, 'fetch_pr': fetch_pr}


@pytest.fixture
def config():
    return TriageConfig(max_workers=2)


def _by_issue(report):
    return {v.issue_number: v for v in report.verdicts}


class TestRunTriage:
    def test_classifies_every_open_issue(self, forge, config, passing_probe):
        report = run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)
        verdicts = _by_issue(report)

        assert sorted(verdicts) == [10, 20, 30, 40, 45]
        assert verdicts[10].tier == ConfidenceTier.REJECT
        assert verdicts[10].justification.startswith('#50: ordering check failed')
        assert verdicts[20].tier == ConfidenceTier.REJECT
        assert verdicts[20].checks == []
        assert verdicts[30].tier == ConfidenceTier.MEDIUM
        assert verdicts[40].tier == ConfidenceTier.HIGH
        assert verdicts[40].pr_numbers == [80]
        assert verdicts[45].tier == ConfidenceTier.REJECT
        assert [v.issue_number for v in report.proposals] == [40]
        assert [v.issue_number for v in report.needs_review] == [30]

    def test_reopened_issue_is_excluded_from_its_timeline(self, forge, config, passing_probe):
        report = run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        assert report.excluded == {20}
        # Excluded issues never reach validation, so PR #60 is never fetched
        assert all(call.args[1] != 60 for call in forge['fetch_pr'].call_args_list)

    def test_exclusion_set_from_merged_prs_is_applied(self, forge, config, passing_probe):
        forge['exclusion'].return_value = {40}

        report = run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        assert report.excluded == {20, 40}
        assert report.proposals == []
        forge['exclusion'].assert_called_once_with('owner/repo', [10, 20, 30, 40, 45], 'tok', max_prs=config.max_merged_prs)

    def test_presence_failure_rejects(self, forge, config, failing_probe):
        report = run_triage('owner/repo', 'tok', config=config, issue_numbers=[40], presence_probe=failing_probe)

        verdict = _by_issue(report)[40]
        assert verdict.tier == ConfidenceTier.REJECT
        assert verdict.checks[-1].name == CheckName.CODEBASE_PRESENCE

    def test_requested_issues_that_are_not_open_are_skipped(self, forge, config, passing_probe):
        report = run_triage('owner/repo', 'tok', config=config, issue_numbers=[40, 99], presence_probe=passing_probe)

        assert [v.issue_number for v in report.verdicts] == [40]
        assert report.skipped == {99: 'not an open issue'}

    def test_forge_error_skips_only_that_issue(self, forge, config, passing_probe):
        del forge['prs'][70]

        report = run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        assert 30 in report.skipped
        assert 30 not in _by_issue(report)
        assert _by_issue(report)[40].tier == ConfidenceTier.HIGH

    def test_issue_fetch_failure_is_skipped(self, forge, config, passing_probe):
        forge['list_open'].return_value = [40, 46]

        report = run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        assert report.skipped == {46: 'Issue #46 not found in owner/repo'}
        assert [v.issue_number for v in report.verdicts] == [40]

    def test_shared_pr_is_fetched_once(self, forge, config, passing_probe, make_issue):
        forge['issues'][41] = make_issue(number=41, refs=((80, KW, MergeState.MERGED),))
        forge['list_open'].return_value = [40, 41]

        run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        assert [call.args[1] for call in forge['fetch_pr'].call_args_list] == [80]

    def test_no_open_issues(self, forge, config, passing_probe):
        forge['list_open'].return_value = []

        report = run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        assert report.verdicts == []
        forge['exclusion'].assert_not_called()

    def test_run_never_writes(self, forge, config, passing_probe):
        with patch('closeout.utils.github_api_tools.requests.post') as post, patch(
            'closeout.utils.github_api_tools.requests.patch'
        ) as patch_:
            run_triage('owner/repo', 'tok', config=config, presence_probe=passing_probe)

        post.assert_not_called()
        patch_.assert_not_called()


class TestCheckPair:
    def test_single_pair(self, forge, config, passing_probe):
        verdict = check_pair('owner/repo', 40, 80, 'tok', config=config, presence_probe=passing_probe)

        assert verdict.tier == ConfidenceTier.HIGH
        assert verdict.pr_numbers == [80]

    def test_reopened_issue_is_excluded(self, forge, config, passing_probe):
        verdict = check_pair('owner/repo', 20, 60, 'tok', config=config, presence_probe=passing_probe)

        assert verdict.tier == ConfidenceTier.REJECT
        assert verdict.checks == []
        assert passing_probe.calls == []

    def test_missing_pr_raises(self, forge, config, passing_probe):
        with pytest.raises(ForgeDataError):
            check_pair('owner/repo', 40, 999, 'tok', config=config, presence_probe=passing_probe)
