"""Monitoring commands for Mnemo CLI."""
import click

from .common import (
    VERBOSITY_NORMAL,
    echo_json,
    echo_normal,
    echo_verbose,
    require_initialized,
    run_service_call,
)


@click.group()
def monitoring_group():
    """Monitoring commands."""
    pass


@monitoring_group.command("stats")
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def stats(ctx, json_output: bool) -> None:
    """Show memory store statistics."""
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    result = run_service_call(ctx, base_path, "get stats", lambda service: service.get_stats())

    if json_output:
        echo_json(result.to_dict())
        return

    echo_normal(click.style("Mnemo Statistics", fg="cyan", bold=True), verbosity)
    echo_normal("=" * 50, verbosity)
    click.echo(f"  Memories:       {result.total_memories}")
    click.echo(f"  Relationships:  {result.total_relationships}")
    click.echo(f"  Concepts:       {result.total_concepts}")
    click.echo(f"  Avg importance: {result.average_importance:.2f}")

    if result.most_active_users:
        echo_normal("\nMost active users:", verbosity)
        for entry in result.most_active_users:
            echo_normal(f"  {entry['user_id']:20} {entry['count']}", verbosity)

    if result.top_projects:
        echo_normal("\nTop projects:", verbosity)
        for entry in result.top_projects:
            echo_normal(f"  {entry['project_name']:20} {entry['count']}", verbosity)

    if result.concept_distribution:
        echo_verbose("\nConcept types:", verbosity)
        for concept_type, count in sorted(result.concept_distribution.items()):
            echo_verbose(f"  {concept_type:12} {count}", verbosity)
