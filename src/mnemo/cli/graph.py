"""Relationship graph commands for Mnemo CLI: connect, related, merge."""
from typing import Optional, Tuple
import click

from ..models import MERGE_STRATEGIES, RELATIONSHIP_TYPES
from .common import (
    VERBOSITY_NORMAL,
    echo_json,
    echo_normal,
    echo_verbose,
    require_initialized,
    run_service_call,
    truncate,
)


@click.group()
def graph_group():
    """Relationship graph commands."""
    pass


@graph_group.command("connect")
@click.argument('source_id')
@click.argument('target_id')
@click.option('--type', 'relationship_type', default='conceptual',
              type=click.Choice(sorted(RELATIONSHIP_TYPES)),
              help='Relationship type (default: conceptual)')
@click.option('--strength', '-s', type=click.FloatRange(0.0, 1.0), default=1.0,
              help='Relationship strength (0.0-1.0)')
@click.option('--bidirectional', '-b', is_flag=True, help='Relationship applies both ways')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def connect(ctx, source_id: str, target_id: str, relationship_type: str, strength: float,
            bidirectional: bool, json_output: bool) -> None:
    """Connect two memories.

    Examples:
        mnemo connect 1a2b... 3c4d... --type causal --strength 0.9
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    relationship = run_service_call(
        ctx, base_path, "create connection",
        lambda service: service.create_connection(
            source_id, target_id, relationship_type,
            strength=strength, bidirectional=bidirectional,
        ),
    )

    if json_output:
        echo_json(relationship.to_dict())
        return

    arrow = "<->" if relationship.bidirectional else "->"
    echo_normal(click.style("✓ Connection created", fg="green", bold=True), verbosity)
    echo_normal(f"  {source_id} {arrow} {target_id}", verbosity)
    echo_normal(f"  Type: {relationship_type}  Strength: {strength:.2f}", verbosity)
    echo_verbose(f"  ID: {relationship.id}", verbosity)


@graph_group.command("related")
@click.argument('memory_id')
@click.option('--depth', '-d', type=click.IntRange(1, 5), default=1,
              help='Hops to traverse (default: 1)')
@click.option('--min-strength', type=click.FloatRange(0.0, 1.0), default=0.0,
              help='Ignore relationships weaker than this')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def related(ctx, memory_id: str, depth: int, min_strength: float, json_output: bool) -> None:
    """Show memories related to MEMORY_ID.

    Examples:
        mnemo related 1a2b...
        mnemo related 1a2b... --depth 2 --min-strength 0.5
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    result = run_service_call(
        ctx, base_path, "get related memories",
        lambda service: service.get_related_memories(memory_id, max_depth=depth, min_strength=min_strength),
    )

    if json_output:
        echo_json(result.to_dict())
        return

    center = result.center_memory
    click.echo(click.style(f"Related to {center.id[:8]}", fg="cyan", bold=True))
    click.echo(f"  {truncate(center.content)}")
    if result.concepts:
        click.echo(f"  Concepts: {', '.join(c.name for c in result.concepts)}")
    click.echo("=" * 60)

    for node in result.related_nodes:
        rel = node.relationship
        click.echo(
            f"\n[{node.distance}] {click.style(node.memory.id[:8], fg='cyan')} "
            f"{click.style(rel.relationship_type, fg='magenta')} ({rel.strength:.2f})"
        )
        click.echo(f"    {truncate(node.memory.content, 76)}")
        if rel.metadata.get("auto_generated"):
            echo_verbose("    auto-generated", verbosity)

    if not result.related_nodes:
        click.echo(click.style("No related memories.", fg="yellow"))


@graph_group.command("merge")
@click.argument('primary_id')
@click.argument('secondary_ids', nargs=-1, required=True)
@click.option('--strategy', '-s', required=True, type=click.Choice(MERGE_STRATEGIES),
              help='combine | replace | append')
@click.option('--actor', default=None, help='User recorded in the merge audit trail')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def merge(ctx, primary_id: str, secondary_ids: Tuple[str, ...], strategy: str,
          actor: Optional[str], json_output: bool) -> None:
    """Merge SECONDARY_IDS into PRIMARY_ID.

    Secondaries are kept but marked merged; their relationships move to
    the primary.

    Examples:
        mnemo merge 1a2b... 3c4d... 5e6f... --strategy combine
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    node = run_service_call(
        ctx, base_path, "merge memories",
        lambda service: service.merge_memories(primary_id, list(secondary_ids), strategy, actor=actor),
    )

    if json_output:
        echo_json(node.to_dict())
        return

    echo_normal(click.style(f"✓ Merged {len(secondary_ids)} memories", fg="green", bold=True), verbosity)
    echo_normal(f"  Primary: {click.style(node.id, fg='cyan')}", verbosity)
    echo_normal(f"  Strategy: {strategy}  Importance: {node.importance}", verbosity)
    echo_normal(f"  Concepts: {len(node.concepts)}", verbosity)
    echo_verbose(f"  Content: {truncate(node.content)}", verbosity)
