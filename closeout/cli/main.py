# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Closeout CLI - Main entry point

Usage:
    closeout config              - Show/set CLI configuration
    closeout scan ...            - Triage open issues (alias: s)
    closeout check ...           - Validate one issue/PR pair (alias: c)
"""

import bittensor as bt
import click
from rich.console import Console
from rich.table import Table

from closeout.cli.triage_commands import register_commands
from closeout.utils.config import CONFIG_FILE, CONFIG_KEYS, __version__, load_config, save_config

console = Console()


class AliasGroup(click.Group):
    """Click Group that supports command aliases without duplicate help entries."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._aliases = {}  # alias -> canonical name

    def add_alias(self, name, alias):
        """Register an alias for an existing command."""
        self._aliases[alias] = name

    def get_command(self, ctx, cmd_name):
        canonical = self._aliases.get(cmd_name, cmd_name)
        return super().get_command(ctx, canonical)

    def format_commands(self, ctx, formatter):
        """Write the help text, appending aliases to command descriptions."""
        alias_map = {}
        for alias, canonical in self._aliases.items():
            alias_map.setdefault(canonical, []).append(alias)

        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.commands.get(subcommand)
            if cmd is None or cmd.hidden:
                continue
            help_text = cmd.get_short_help_str(limit=150)
            aliases = alias_map.get(subcommand)
            if aliases:
                subcommand = f'{subcommand}, {", ".join(sorted(aliases))}'
            commands.append((subcommand, help_text))

        if commands:
            with formatter.section('Commands'):
                formatter.write_dl(commands)


@click.group(cls=AliasGroup)
@click.version_option(version=__version__, prog_name='closeout')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def cli(debug: bool):
    """Closeout CLI - Propose closing issues already resolved by merged PRs"""
    if debug:
        bt.logging.set_debug(True)


@click.group(name='config', invoke_without_command=True)
@click.pass_context
def config_group(ctx):
    """CLI configuration management.

    Show current configuration (default) or set config values.

    \b
    Subcommands:
        set <key> <value>    Set a config value
    """
    if ctx.invoked_subcommand is None:
        show_config()


def show_config():
    """Show current CLI configuration"""
    console.print('\n[bold]Closeout CLI Configuration[/bold]\n')

    if not CONFIG_FILE.exists():
        console.print(f'[yellow]No config file found at {CONFIG_FILE}[/yellow]')
        console.print('[dim]Run: closeout config set repository owner/repo[/dim]')
        return

    config = load_config()

    table = Table(show_header=True)
    table.add_column('Setting', style='cyan')
    table.add_column('Value', style='green')
    for key, value in config.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print(f'\n[dim]Config file: {CONFIG_FILE}[/dim]\n')


@config_group.command('set')
@click.argument('key', type=click.Choice(sorted(CONFIG_KEYS)))
@click.argument('value', type=str)
def config_set(key: str, value: str):
    """Set a configuration value.

    \b
    Keys:
        repository              Default owner/repo to triage
        label                   Label applied to closed issues
        actions_log_dir         Directory for the approved-actions audit log
        content_pass_threshold  Minimum content-match score (0-1)
        max_workers             Concurrent issue fetches

    \b
    Examples:
        closeout config set repository owner/repo
        closeout config set content_pass_threshold 0.7
    """
    if key == 'content_pass_threshold':
        try:
            threshold = float(value)
        except ValueError:
            raise click.BadParameter(f'Must be a number (got {value})', param_hint='value')
        if not 0.0 <= threshold <= 1.0:
            raise click.BadParameter(f'Must be between 0 and 1 (got {value})', param_hint='value')
    if key == 'max_workers' and (not value.isdigit() or int(value) < 1):
        raise click.BadParameter(f'Must be a positive integer (got {value})', param_hint='value')

    config = load_config()
    old_value = config.get(key)
    config[key] = value
    save_config(config)

    if old_value is not None:
        console.print(f'[green]Updated {key}:[/green] {old_value} → {value}')
    else:
        console.print(f'[green]Set {key}:[/green] {value}')


cli.add_command(config_group)

register_commands(cli)


def main():
    """Main entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
