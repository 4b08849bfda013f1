# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Shared fixtures for CLI tests."""

from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from closeout.classes import CandidateVerdict, CheckName, CheckOutcome, CheckResult, ConfidenceTier
from closeout.triage.forward import TriageReport


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the CLI at an empty config dir and a fake token."""
    monkeypatch.setenv('CLOSEOUT_GITHUB_PAT', 'token')
    config_file = tmp_path / 'config.json'
    with (
        patch('closeout.utils.config.CLOSEOUT_DIR', tmp_path),
        patch('closeout.utils.config.CONFIG_FILE', config_file),
        patch('closeout.cli.main.CONFIG_FILE', config_file),
        patch('closeout.cli.triage_commands.scan.CLOSEOUT_DIR', tmp_path),
    ):
        yield tmp_path


@pytest.fixture
def cli_root():
    from closeout.cli.main import cli

    return cli


@pytest.fixture
def runner():
    return CliRunner()


def _verdict(issue, prs, tier, justification):
    if tier == ConfidenceTier.REJECT:
        checks = [CheckResult(CheckName.MERGE, CheckOutcome.FAIL, f'PR #{prs[0]} is closed_unmerged')]
    else:
        outcome = CheckOutcome.PASS if tier == ConfidenceTier.HIGH else CheckOutcome.AMBIGUOUS
        checks = [CheckResult(name, outcome, 'ok') for name in CheckName]
    return CandidateVerdict(issue, prs, checks=checks, tier=tier, justification=justification)


@pytest.fixture
def triage_report():
    return TriageReport(
        repository='owner/repo',
        verdicts=[
            _verdict(10, [50], ConfidenceTier.REJECT, 'merge check failed: PR #50 is closed_unmerged'),
            _verdict(30, [70], ConfidenceTier.MEDIUM, "PR #70 merged and present, needs review (content_match: partial)"),
            _verdict(40, [80], ConfidenceTier.HIGH, 'PR #80 merged after the issue was opened'),
        ],
        excluded={20},
        skipped={99: 'not an open issue'},
        issue_urls={30: 'https://github.com/owner/repo/issues/30', 40: 'https://github.com/owner/repo/issues/40'},
    )


@pytest.fixture
def forge_writes():
    """Patch raw forge writes; each returns success unless changed by the test."""
    with (
        patch('closeout.triage.gate.github_api_tools.post_issue_comment', return_value=True) as comment,
        patch('closeout.triage.gate.github_api_tools.add_issue_labels', return_value=True) as label,
        patch('closeout.triage.gate.github_api_tools.close_issue', return_value=True) as close,
        patch('closeout.triage.gate.bt.logging'),
        patch('closeout.cli.triage_commands.scan.setup_actions_logger', return_value=Mock()),
    ):
        yield Mock(comment=comment, label=label, close=close)
