# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Tests for the default-branch presence probe."""

from unittest.mock import patch

import pytest

from closeout.classes import ChangedFile, CheckOutcome
from closeout.triage.presence import DefaultBranchPresenceProbe, find_reverting_commits, is_revert_of
from closeout.utils.github_api_tools import ForgeDataError

SHA = 'a1b2c3d4e5f60718293a4b5c6d7e8f9012345678'


def _commit(sha, message):
    return {'sha': sha, 'commit': {'message': message}}


class TestRevertDetection:
    def test_revert_by_merge_sha(self, make_pr):
        assert is_revert_of(f'Revert change\n\nThis reverts commit {SHA[:12]}.', make_pr(merge_commit_sha=SHA))

    def test_revert_by_pr_reference(self, make_pr):
        assert is_revert_of('Merge pull request #70\n\nReverts owner/repo#55', make_pr(number=55))

    def test_revert_by_title(self, make_pr):
        pr = make_pr(title='Handle empty config files in the loader')
        assert is_revert_of('Revert "Handle empty config files in the loader"', pr)

    def test_unrelated_commit(self, make_pr):
        assert not is_revert_of('Update README', make_pr())

    def test_longer_pr_number_is_not_a_revert(self, make_pr):
        assert not is_revert_of('Reverts owner/repo#555', make_pr(number=55))

    def test_find_reverting_commits(self, make_pr):
        commits = [_commit('1111111aaaa', 'Update README'), _commit('9f8e7d6cccc', f'This reverts commit {SHA}')]

        assert find_reverting_commits(commits, make_pr(merge_commit_sha=SHA)) == ['9f8e7d6']


@patch('closeout.triage.presence.bt.logging')
@patch('closeout.triage.presence.path_exists_on_branch')
@patch('closeout.triage.presence.list_branch_commits_since')
@patch('closeout.triage.presence.is_commit_on_branch')
class TestDefaultBranchPresenceProbe:
    probe = DefaultBranchPresenceProbe('tok')

    def test_present_and_not_reverted(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = True
        mock_commits.return_value = [_commit('1111111aaaa', 'Update README')]
        mock_exists.return_value = True

        report = self.probe(make_pr(files=('a.py', 'b.py')))

        assert report.outcome == CheckOutcome.PASS
        assert mock_exists.call_count == 2

    def test_merged_into_other_branch(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        report = self.probe(make_pr(base_ref='release-1.x'))

        assert report.outcome == CheckOutcome.FAIL
        assert 'release-1.x' in report.detail
        mock_on_branch.assert_not_called()

    def test_merge_commit_not_reachable(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = False

        assert self.probe(make_pr()).outcome == CheckOutcome.FAIL

    def test_reverted(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = True
        mock_commits.return_value = [_commit('9f8e7d6cccc', f'Revert\n\nThis reverts commit {SHA}.')]

        report = self.probe(make_pr(merge_commit_sha=SHA))

        assert report.outcome == CheckOutcome.FAIL
        assert '9f8e7d6' in report.detail
        mock_exists.assert_not_called()

    def test_some_files_missing_is_ambiguous(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = True
        mock_commits.return_value = []
        mock_exists.side_effect = [True, False]

        report = self.probe(make_pr(files=('a.py', 'b.py')))

        assert report.outcome == CheckOutcome.AMBIGUOUS
        assert report.missing_paths == ['b.py']

    def test_all_files_missing_fails(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = True
        mock_commits.return_value = []
        mock_exists.return_value = False

        report = self.probe(make_pr(files=('a.py',)))

        assert report.outcome == CheckOutcome.FAIL
        assert report.missing_paths == ['a.py']

    def test_deleted_files_are_not_looked_up(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = True
        mock_commits.return_value = []
        pr = make_pr(files=())
        pr.changed_files.append(ChangedFile(path='legacy.py', change_type='DELETED'))

        assert self.probe(pr).outcome == CheckOutcome.PASS
        mock_exists.assert_not_called()

    def test_forge_unanswerable_raises(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        mock_on_branch.return_value = None

        with pytest.raises(ForgeDataError):
            self.probe(make_pr())

    def test_missing_default_branch_raises(self, mock_on_branch, mock_commits, mock_exists, mock_logging, make_pr):
        with pytest.raises(ForgeDataError):
            self.probe(make_pr(default_branch=None))
