# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Shared helper functions for triage commands
"""

import json
import re
import sys
from typing import Any, List, NoReturn, Optional

import click
from rich.console import Console

from closeout.utils.config import get_github_token, load_config

REPO_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+/[a-zA-Z0-9._-]+$')
ISSUE_NUMBER_PATTERN = re.compile(r'#?(\d+)')

# Tier display colors
TIER_COLORS = {
    'high': 'green',
    'medium': 'yellow',
    'reject': 'dim',
}

console = Console()


def colorize_tier(tier: str) -> str:
    """Wrap tier text with the appropriate Rich color tag."""
    color = TIER_COLORS.get(tier, 'white')
    return f'[{color}]{tier}[/{color}]'


def print_success(message: str) -> None:
    """Print a standardized success message."""
    console.print(f'\n  [green]✓[/green] {message}\n')


def print_error(message: str) -> None:
    """Print a standardized error message."""
    console.print(f'\n  [red]✗[/red] {message}\n')


def _is_interactive() -> bool:
    """Return True if stdin is a TTY (interactive session)."""
    return getattr(sys.stdin, 'isatty', lambda: False)()


def emit_json(payload: Any, pretty: bool = False) -> None:
    click.echo(json.dumps(payload, indent=2 if pretty else None, default=str))


def handle_exception(as_json: bool, message: str, error_type: str = 'error') -> NoReturn:
    """Report an error in the active output mode and exit non-zero."""
    if as_json:
        emit_json({'success': False, 'error': {'type': error_type, 'message': message}})
    else:
        print_error(message)
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def validate_repository(repo: str) -> str:
    """Validate owner/repo format.

    Raises click.BadParameter on failure.
    """
    repo = repo.strip()
    if not REPO_PATTERN.match(repo):
        raise click.BadParameter(
            f'Repository must be in owner/repo format with alphanumeric characters, '
            f"hyphens, underscores, or dots (got '{repo}')",
            param_hint='--repo',
        )
    return repo


def resolve_repository(repo: Optional[str]) -> str:
    """Use --repo, else the `repository` key from the CLI config."""
    if repo:
        return validate_repository(repo)
    configured = load_config().get('repository')
    if not configured:
        raise click.UsageError('No repository given. Pass --repo owner/repo or run: closeout config set repository owner/repo')
    return validate_repository(str(configured))


def resolve_token() -> str:
    token = get_github_token()
    if not token:
        raise click.UsageError('No GitHub token found. Set CLOSEOUT_GITHUB_PAT or GITHUB_TOKEN.')
    return token


def parse_issue_numbers(text: str, param_hint: str = 'issues') -> List[int]:
    """Parse "12, #15 18" into [12, 15, 18].

    Raises click.BadParameter on anything that is not an issue number.
    """
    tokens = [t for t in re.split(r'[\s,]+', text.strip()) if t]
    if not tokens:
        raise click.BadParameter('No issue numbers given', param_hint=param_hint)

    numbers = []
    for token in tokens:
        match = ISSUE_NUMBER_PATTERN.fullmatch(token)
        if not match or int(match.group(1)) <= 0:
            raise click.BadParameter(f'Invalid issue number: {token}', param_hint=param_hint)
        number = int(match.group(1))
        if number not in numbers:
            numbers.append(number)
    return numbers
