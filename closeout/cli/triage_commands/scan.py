# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Scan command: triage open issues, present findings, apply the operator's decision.

    closeout scan --repo owner/repo
    closeout scan --repo owner/repo --issue 12 --issue 15
    closeout scan --repo owner/repo --json
    closeout scan --repo owner/repo --approve 12,15
"""

from typing import List, Optional

import click

from closeout.triage.forward import TriageReport, run_triage
from closeout.triage.gate import (
    ActionReport,
    Decision,
    ForgeWriter,
    PresentationGate,
    UnapprovedWriteError,
)
from closeout.utils.config import CLOSEOUT_DIR, TriageConfig
from closeout.utils.logging import setup_actions_logger

from .helpers import (
    _is_interactive,
    console,
    emit_json,
    handle_exception,
    parse_issue_numbers,
    print_success,
    resolve_repository,
    resolve_token,
)
from .tables import build_findings_table

DECISION_CHOICES = ['all', 'subset', 'reject', 'edit']


def parse_approval(value: str) -> Decision:
    """'all' approves every pending finding; otherwise a list of issue numbers."""
    if value.strip().lower() == 'all':
        return Decision.approve_all()
    return Decision.approve_subset(parse_issue_numbers(value, param_hint='--approve'))


def prompt_decision(gate: PresentationGate) -> Optional[Decision]:
    """Ask the operator until they approve something or reject everything.

    Editing the wording re-displays the findings and asks again. A subset naming
    issues that are not pending approval is refused and asked again.
    """
    while True:
        choice = click.prompt(
            '\nDecision [all = approve all, subset = approve some, reject = reject all, edit = edit comment]',
            type=click.Choice(DECISION_CHOICES, case_sensitive=False),
        ).lower()

        if choice == 'all':
            return Decision.approve_all()
        if choice == 'reject':
            return Decision.reject_all()
        if choice == 'subset':
            raw = click.prompt('Issue numbers to approve (e.g. 12, 15)', type=str)
            try:
                decision = Decision.approve_subset(parse_issue_numbers(raw))
                gate.decide(decision)
            except click.BadParameter as e:
                console.print(f'[red]{e.message}[/red]')
                continue
            except ValueError as e:
                console.print(f'[red]{e}[/red]')
                continue
            return decision

        console.print(f'[dim]Current wording:[/dim] {gate.comment_template}')
        wording = click.prompt('New comment wording ({pr_refs} and {issue} are filled in)', type=str)
        try:
            gate.decide(Decision.edit_wording(wording))
        except ValueError as e:
            console.print(f'[red]{e}[/red]')
            continue
        console.print(build_findings_table(gate.findings()))


def _report_payload(report: TriageReport, gate: PresentationGate) -> dict:
    return {
        'success': True,
        'repository': report.repository,
        'findings': [
            {
                'issue': f.issue_number,
                'prs': f.pr_numbers,
                'rationale': f.rationale,
                'confidence': f.confidence,
                'classification': f.classification,
                'url': f.issue_url,
            }
            for f in gate.findings()
        ],
        'rejected': sorted(v.issue_number for v in report.verdicts if v.classification == 'reject'),
        'excluded': sorted(report.excluded),
        'skipped': {str(k): v for k, v in sorted(report.skipped.items())},
    }


def _print_summary(report: TriageReport) -> None:
    rejected = len([v for v in report.verdicts if v.classification == 'reject'])
    console.print(
        f'[dim]{len(report.proposals)} proposed • {len(report.needs_review)} need review • '
        f'{rejected} rejected • {len(report.excluded)} excluded • {len(report.skipped)} skipped[/dim]'
    )
    for number, reason in sorted(report.skipped.items()):
        console.print(f'[yellow]  skipped #{number}: {reason}[/yellow]')


def _performed_actions(gate: PresentationGate) -> List[str]:
    """The writes apply() performs for each approved issue, in order."""
    return [a for a in gate.actions if a != 'label' or gate.label]


def _print_actions(actions: ActionReport, performed: List[str]) -> None:
    if actions.acted:
        verb = 'Closed' if 'close' in performed else 'Updated'
        print_success(
            f'{verb} {len(actions.acted)} issue(s) ({", ".join(performed)}): '
            f'{", ".join(f"#{n}" for n in actions.acted)}'
        )
    if actions.discarded:
        console.print(f'[dim]Discarded: {", ".join(f"#{n}" for n in actions.discarded)}[/dim]')
    for number, error in sorted(actions.failed.items()):
        console.print(f'[red]  #{number}: {error}[/red]')


@click.command('scan')
@click.option('--repo', 'repo', default=None, help='Repository in owner/repo format (defaults to config)')
@click.option('--issue', 'issues', multiple=True, type=int, help='Only triage these issue numbers (repeatable)')
@click.option(
    '--approve',
    default=None,
    help="Approve without prompting: 'all' or comma-separated issue numbers",
)
@click.option('--no-input', is_flag=True, help='Never prompt; without --approve nothing is written')
@click.option('--json', 'as_json', is_flag=True, help='Output findings as JSON for scripting')
def triage_scan(repo: Optional[str], issues: tuple, approve: Optional[str], no_input: bool, as_json: bool):
    """Find open issues already resolved by merged PRs and propose closing them.

    Every candidate goes through the merge, ordering, reopen, content-match and
    codebase-presence checks. Proposals and needs-review findings are shown in
    a table; nothing is commented, labelled or closed until you approve.

    \b
    Examples:
        closeout scan --repo owner/repo
        closeout s --repo owner/repo --issue 42
        closeout scan --repo owner/repo --json
        closeout scan --repo owner/repo --approve 42,57
    """
    try:
        repository = resolve_repository(repo)
        token = resolve_token()
        decision = parse_approval(approve) if approve else None
    except click.BadParameter as e:
        handle_exception(as_json, e.format_message(), 'bad_parameter')
    except click.UsageError as e:
        handle_exception(as_json, e.format_message(), 'usage')

    config = TriageConfig.from_environment()

    if not as_json:
        console.print(f'\n[bold cyan]Triaging open issues in {repository}[/bold cyan]\n')

    report = run_triage(repository, token, config=config, issue_numbers=list(issues) or None)
    gate = PresentationGate(
        report.verdicts,
        comment_template=config.comment_template,
        label=config.label,
        actions=config.actions,
        issue_urls=report.issue_urls,
    )
    findings = gate.findings()
    payload = _report_payload(report, gate)

    if not as_json:
        _print_summary(report)
        if findings:
            console.print(build_findings_table(findings))

    if not findings:
        if as_json:
            emit_json(payload, pretty=True)
        else:
            console.print('[yellow]No issues to propose for closure.[/yellow]')
        return

    if decision is None and not as_json and not no_input and _is_interactive():
        decision = prompt_decision(gate)

    if decision is None:
        if as_json:
            emit_json(payload, pretty=True)
        else:
            console.print('[yellow]No approval given; nothing was written.[/yellow]')
        return

    try:
        approval = gate.decide(decision)
    except ValueError as e:
        handle_exception(as_json, str(e), 'bad_parameter')

    if approval is None:
        if as_json:
            emit_json(payload, pretty=True)
        else:
            console.print('[yellow]All findings rejected; nothing was written.[/yellow]')
        return

    log_dir = config.actions_log_dir or str(CLOSEOUT_DIR / 'logs')
    writer = ForgeWriter(repository, token, actions_logger=setup_actions_logger(log_dir, config.actions_log_retention))
    try:
        actions = gate.apply(approval, writer)
    except UnapprovedWriteError as e:
        handle_exception(as_json, str(e), 'unapproved_write')

    if as_json:
        payload['success'] = not actions.failed
        payload['actions'] = {
            'performed': _performed_actions(gate),
            'acted': actions.acted,
            'discarded': actions.discarded,
            'failed': {str(k): v for k, v in sorted(actions.failed.items())},
        }
        emit_json(payload, pretty=True)
    else:
        _print_actions(actions, _performed_actions(gate))

    if actions.failed:
        raise SystemExit(1)
