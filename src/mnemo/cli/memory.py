"""Memory commands for Mnemo CLI: store, recall, search, analyze."""
from typing import Optional, Tuple
import click

from ..analysis import ContentAnalyzer
from ..errors import ContentAnalysisError
from .common import (
    VERBOSITY_NORMAL,
    echo_json,
    echo_normal,
    echo_verbose,
    fail,
    get_base_path,
    load_cli_config,
    require_initialized,
    run_service_call,
    truncate,
)


@click.group()
def memory_group():
    """Memory management commands."""
    pass


def _echo_node_line(index: int, node, verbosity: int) -> None:
    stars = "★" * node.importance
    click.echo(f"\n{index}. {click.style(node.id[:8], fg='cyan')} {click.style(stars, fg='yellow')}")
    click.echo(f"   {truncate(node.content)}")
    if node.concepts:
        echo_verbose(f"   Concepts: {', '.join(c.name for c in node.concepts)}", verbosity)


@memory_group.command("store")
@click.argument('content')
@click.option('--importance', '-i', type=click.IntRange(1, 5), default=1,
              help='Importance from 1 (low) to 5 (critical)')
@click.option('--concept', '-c', 'concepts', multiple=True,
              help='Concept name to link (repeatable; extracted from content if omitted)')
@click.option('--user', '-u', 'user_id', default=None, help='Owning user id')
@click.option('--project', '-p', default=None, help='Project name')
@click.option('--source', default=None, help='Where the memory came from')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def store(ctx, content: str, importance: int, concepts: Tuple[str, ...], user_id: Optional[str],
          project: Optional[str], source: Optional[str], json_output: bool) -> None:
    """Store a memory.

    Identical content is stored once: storing it again returns the
    existing memory.

    Examples:
        mnemo store "Fixed the auth bug in the login flow" -i 3
        mnemo store "Quarterly budget review" -c budget -c finance -p acme
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    context = {}
    if user_id:
        context['userId'] = user_id
    if project:
        context['projectName'] = project
    if source:
        context['source'] = source

    node = run_service_call(
        ctx, base_path, "store memory",
        lambda service: service.store_memory(
            content,
            context=context,
            concepts=list(concepts) if concepts else None,
            importance=importance,
        ),
    )

    if json_output:
        echo_json(node.to_dict())
        return

    echo_normal(click.style("✓ Memory stored", fg="green", bold=True), verbosity)
    echo_normal(f"  ID: {click.style(node.id, fg='cyan')}", verbosity)
    echo_normal(f"  Importance: {node.importance}", verbosity)
    if node.concepts:
        echo_normal(f"  Concepts: {', '.join(c.name for c in node.concepts)}", verbosity)
    echo_verbose(f"  Hash: {node.content_hash}", verbosity)


@memory_group.command("recall")
@click.argument('query', required=False)
@click.option('--user', '-u', 'user_id', default=None, help='Only memories owned by this user')
@click.option('--limit', '-l', type=click.IntRange(1, 100), default=20, help='Maximum number of results')
@click.option('--threshold', '-t', type=click.FloatRange(0.0, 1.0), default=None,
              help='Similarity threshold when a query is given')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def recall(ctx, query: Optional[str], user_id: Optional[str], limit: int,
           threshold: Optional[float], json_output: bool) -> None:
    """List active memories, optionally filtered by similarity to QUERY.

    Examples:
        mnemo recall
        mnemo recall "auth bug" --limit 5
        mnemo recall --user alice --json-output
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    nodes = run_service_call(
        ctx, base_path, "recall memories",
        lambda service: service.retrieve_memories(
            query=query, user_id=user_id, limit=limit, similarity_threshold=threshold
        ),
    )

    if json_output:
        echo_json([n.to_dict() for n in nodes])
        return

    click.echo(click.style(f"Memories ({len(nodes)} found)", fg="cyan", bold=True))
    click.echo("=" * 60)
    for i, node in enumerate(nodes, 1):
        _echo_node_line(i, node, verbosity)
    if not nodes:
        click.echo(click.style("No memories found.", fg="yellow"))


@memory_group.command("search")
@click.argument('query')
@click.option('--threshold', '-t', type=click.FloatRange(0.0, 1.0), default=0.7,
              help='Minimum similarity (default: 0.7)')
@click.option('--limit', '-l', type=click.IntRange(1, 100), default=10, help='Maximum number of results')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def search(ctx, query: str, threshold: float, limit: int, json_output: bool) -> None:
    """Similarity search over active memories.

    Examples:
        mnemo search "database migration"
        mnemo search "budget" --threshold 0.5 --json-output
    """
    base_path = require_initialized(ctx)
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    results = run_service_call(
        ctx, base_path, "search memories",
        lambda service: service.search_memories(query, similarity_threshold=threshold, limit=limit),
    )

    if json_output:
        echo_json(results.to_dict())
        return

    click.echo(click.style(f"Search Results ({results.total} found)", fg="cyan", bold=True))
    click.echo("=" * 60)
    for i, node in enumerate(results.memories, 1):
        _echo_node_line(i, node, verbosity)
    if not results.memories:
        click.echo(click.style("No memories found. Try a lower --threshold.", fg="yellow"))
    echo_verbose(f"\n({results.processing_time_ms:.1f} ms)", verbosity)


@memory_group.command("analyze")
@click.argument('content')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def analyze(ctx, content: str, json_output: bool) -> None:
    """Analyze text without storing it.

    Reports keywords, topics, entities, sentiment and language.

    Examples:
        mnemo analyze "Great progress on the Python API today"
    """
    base_path = get_base_path(ctx.obj.get('data_dir'))
    config = load_cli_config(base_path)

    try:
        analysis = ContentAnalyzer(config.analysis).analyze(content, "adhoc")
    except ContentAnalysisError as e:
        fail(f"Analysis failed at stage '{e.stage}': {e}")

    if json_output:
        echo_json(analysis.to_dict())
        return

    sentiment = analysis.sentiment_score
    sentiment_color = "green" if sentiment > 0 else "red" if sentiment < 0 else "white"
    click.echo(click.style("Content Analysis", fg="cyan", bold=True))
    click.echo("=" * 40)
    click.echo(f"  Words: {analysis.word_count}  Characters: {analysis.character_count}")
    click.echo(f"  Language: {analysis.language}")
    click.echo(f"  Topics: {', '.join(analysis.topics)}")
    click.echo(f"  Keywords: {', '.join(analysis.keywords) or '-'}")
    click.echo(f"  Entities: {', '.join(analysis.entities) or '-'}")
    click.echo(f"  Sentiment: {click.style(f'{sentiment:+.2f}', fg=sentiment_color)}")
    if analysis.is_degraded:
        click.echo(click.style(f"  Degraded steps: {', '.join(analysis.degraded)}", fg="yellow"))
