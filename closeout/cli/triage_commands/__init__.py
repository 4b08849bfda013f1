# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
CLI commands for resolved-issue triage

Command structure:
    closeout scan (alias: s)     Triage open issues and act on approved findings
    closeout check (alias: c)    Validate one issue against one PR (read-only)
"""

from .check import triage_check
from .helpers import console, parse_issue_numbers, resolve_repository, resolve_token
from .scan import triage_scan


def register_commands(cli):
    """Register all triage commands with the root CLI group."""
    cli.add_command(triage_scan, name='scan')
    cli.add_alias('scan', 's')

    cli.add_command(triage_check, name='check')
    cli.add_alias('check', 'c')


__all__ = [
    'register_commands',
    'triage_scan',
    'triage_check',
    # Helpers
    'console',
    'parse_issue_numbers',
    'resolve_repository',
    'resolve_token',
]
