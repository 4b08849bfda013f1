# The MIT License (MIT)
# Copyright © 2025 Entrius

"""Reusable Rich table presets."""

from dataclasses import dataclass
from typing import List

from rich import box
from rich.table import Table

from closeout.classes import CandidateVerdict
from closeout.triage.gate import Finding
from closeout.utils.logging import OUTCOME_MARKS

from .helpers import colorize_tier


@dataclass(frozen=True)
class TableTheme:
    box_style: box.Box
    header_style: str
    border_style: str
    show_lines: bool
    pad_edge: bool


TABLE_THEMES = {
    # Full wrapped grid
    'square': TableTheme(
        box_style=box.SQUARE,
        header_style='bold magenta',
        border_style='grey35',
        show_lines=True,
        pad_edge=True,
    ),

    # Minimal separators with a heavier header rule
    'minimal': TableTheme(
        box_style=box.MINIMAL_HEAVY_HEAD,
        header_style='bold white',
        border_style='grey50',
        show_lines=False,
        pad_edge=False,
    ),
}

DEFAULT_TABLE_THEME = 'minimal'

OUTCOME_STYLES = {
    'pass': 'green',
    'fail': 'red',
    'ambiguous': 'yellow',
}


def build_table(theme: str = DEFAULT_TABLE_THEME, **kwargs) -> Table:
    """Create a Rich table using a named visual theme."""
    preset = TABLE_THEMES.get(theme, TABLE_THEMES[DEFAULT_TABLE_THEME])
    params = {
        'box': preset.box_style,
        'header_style': preset.header_style,
        'border_style': preset.border_style,
        'show_lines': preset.show_lines,
        'pad_edge': preset.pad_edge,
    }
    params.update(kwargs)
    return Table(**params)


def build_findings_table(findings: List[Finding]) -> Table:
    """Findings awaiting the operator's decision: issue, proposed PR(s), rationale, confidence."""
    table = build_table(theme='square', show_header=True)
    table.add_column('Issue', style='cyan', justify='right')
    table.add_column('Proposed PR(s)', style='green')
    table.add_column('Rationale', style='white', max_width=70)
    table.add_column('Confidence', justify='center')

    for finding in findings:
        table.add_row(
            f'#{finding.issue_number}',
            ', '.join(f'#{n}' for n in finding.pr_numbers) or 'N/A',
            finding.rationale,
            colorize_tier(finding.confidence),
        )

    return table


def build_checks_table(verdict: CandidateVerdict) -> Table:
    """Per-check breakdown of one verdict."""
    table = build_table(show_header=True)
    table.add_column('Check', style='cyan')
    table.add_column('Outcome', justify='center')
    table.add_column('Score', justify='right')
    table.add_column('Detail', style='white', max_width=80)

    for check in verdict.checks:
        style = OUTCOME_STYLES.get(check.outcome.value, 'white')
        mark = OUTCOME_MARKS.get(check.outcome.value, '')
        table.add_row(
            check.name.value,
            f'[{style}]{mark} {check.outcome.value}[/{style}]',
            f'{check.score:.2f}' if check.score is not None else '',
            check.detail,
        )

    return table
