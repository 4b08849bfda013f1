# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Check command: validate a single (issue, PR) pair and show the per-check breakdown."""

from typing import Optional

import click

from closeout.triage.forward import check_pair
from closeout.utils.config import TriageConfig
from closeout.utils.github_api_tools import ForgeDataError

from .helpers import colorize_tier, console, emit_json, handle_exception, resolve_repository, resolve_token
from .tables import build_checks_table


@click.command('check')
@click.option('--repo', 'repo', default=None, help='Repository in owner/repo format (defaults to config)')
@click.option('--issue', 'issue_number', required=True, type=click.IntRange(min=1), help='Issue number')
@click.option('--pr', 'pr_number', required=True, type=click.IntRange(min=1), help='Candidate PR number')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON for scripting')
def triage_check(repo: Optional[str], issue_number: int, pr_number: int, as_json: bool):
    """Validate one issue against one candidate PR (read-only).

    \b
    Examples:
        closeout check --repo owner/repo --issue 42 --pr 57
        closeout c --issue 42 --pr 57 --json
    """
    try:
        repository = resolve_repository(repo)
        token = resolve_token()
    except click.BadParameter as e:
        handle_exception(as_json, e.format_message(), 'bad_parameter')
    except click.UsageError as e:
        handle_exception(as_json, e.format_message(), 'usage')

    try:
        verdict = check_pair(repository, issue_number, pr_number, token, config=TriageConfig.from_environment())
    except ForgeDataError as e:
        handle_exception(as_json, str(e), 'forge_data')

    if as_json:
        emit_json(
            {
                'success': True,
                'issue': verdict.issue_number,
                'prs': verdict.pr_numbers,
                'tier': verdict.tier.value,
                'classification': verdict.classification,
                'justification': verdict.justification,
                'checks': [
                    {'name': c.name.value, 'outcome': c.outcome.value, 'detail': c.detail, 'score': c.score}
                    for c in verdict.checks
                ],
            },
            pretty=True,
        )
        return

    console.print(f'\n[bold cyan]{repository}#{issue_number} vs PR #{pr_number}[/bold cyan]\n')
    if verdict.checks:
        console.print(build_checks_table(verdict))
    console.print(f'\n{colorize_tier(verdict.tier.value)} ({verdict.classification}): {verdict.justification}\n')
