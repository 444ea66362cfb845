"""Mnemo CLI - memory record engine command line interface

Command groups are organized into separate modules:
- config.py: init, config set, get, show
- memory.py: store, recall, search, analyze
- graph.py: connect, related, merge
- monitoring.py: stats
- common.py: shared utilities
"""
from pathlib import Path
import click

from .. import __version__
from .common import get_base_path, VERBOSITY_QUIET, VERBOSITY_NORMAL, VERBOSITY_VERBOSE
from .config import config_group, init
from .memory import memory_group
from .graph import graph_group
from .monitoring import monitoring_group


@click.group()
@click.version_option(version=__version__, prog_name="mnemo")
@click.option('--data-dir', type=click.Path(), default=None, envvar='MNEMO_BASE_PATH',
              help='Base directory for Mnemo data (default: ~/.mnemo)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, data_dir, verbose, quiet):
    """Mnemo - memory record engine

    Deduplicated memories, concepts, relationships and merges.

    \b
    Key Commands:
        init              Initialize the memory store
        store             Store a memory
        recall            List memories (optionally by similarity)
        search            Similarity search
        analyze           Analyze text without storing it
        connect           Connect two memories
        related           Show related memories
        merge             Merge memories
        stats             Store statistics
        config            Configuration management

    \b
    Examples:
        mnemo init
        mnemo store "Fixed the auth bug" -i 3 -u alice
        mnemo search "auth bug"
        mnemo merge <primary> <secondary> --strategy combine
    """
    ctx.ensure_object(dict)

    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if quiet:
        ctx.obj['verbosity'] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj['verbosity'] = VERBOSITY_VERBOSE
    else:
        ctx.obj['verbosity'] = VERBOSITY_NORMAL

    ctx.obj['data_dir'] = Path(data_dir) if data_dir else None


cli.add_command(init)

# Register memory commands (store, recall, search, analyze)
cli.add_command(memory_group.commands['store'])
cli.add_command(memory_group.commands['recall'])
cli.add_command(memory_group.commands['search'])
cli.add_command(memory_group.commands['analyze'])

# Register graph commands (connect, related, merge)
cli.add_command(graph_group.commands['connect'])
cli.add_command(graph_group.commands['related'])
cli.add_command(graph_group.commands['merge'])

# Register monitoring commands (stats)
cli.add_command(monitoring_group.commands['stats'])

# Register config command group (config set, get, show)
cli.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    '__version__',
    'cli',
    'main',
    'get_base_path',
]
