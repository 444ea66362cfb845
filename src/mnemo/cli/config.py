"""Setup and configuration commands for Mnemo CLI."""
import sys
import asyncio
import click
import yaml

from ..config import CONFIG_FILENAME, MnemoConfig, config_from_dict, load_config, save_config
from ..storage import AsyncMemoryDatabase
from .common import VERBOSITY_NORMAL, get_base_path, echo_quiet, echo_normal


@click.group()
def config_group():
    """Configuration management commands."""
    pass


@click.command("init")
@click.pass_context
def init(ctx) -> None:
    """Initialize the memory store.

    Creates the following:
    - base directory (~/.mnemo by default)
    - config.yaml with default settings
    - SQLite database
    """
    base_path = get_base_path(ctx.obj.get('data_dir'))
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    echo_normal(click.style("Initializing Mnemo...", fg="cyan", bold=True), verbosity)

    base_path.mkdir(parents=True, exist_ok=True)
    echo_normal(f" ✓ Directory: {base_path}", verbosity)

    config_path = base_path / CONFIG_FILENAME
    if not config_path.exists():
        save_config(MnemoConfig(), config_path)
        echo_normal(f" ✓ Created config: {config_path}", verbosity)
    else:
        echo_normal(f" ⚠ Config exists: {config_path}", verbosity)

    try:
        config = load_config(config_path)
        db_path = config.resolve_db_path(base_path)
        existed = db_path.exists()

        async def _init_db():
            async with AsyncMemoryDatabase(db_path, enable_wal=config.storage.enable_wal):
                pass

        asyncio.run(_init_db())
        if existed:
            echo_normal(f" ⚠ Database exists: {db_path}", verbosity)
        else:
            echo_normal(f" ✓ Initialized database: {db_path}", verbosity)
    except Exception as e:
        echo_quiet(click.style(f"Error: Failed to initialize database: {e}", fg="red"), verbosity)
        sys.exit(1)

    echo_normal(click.style("\nMnemo ready.", fg="green", bold=True), verbosity)


def _read_config_data(ctx):
    base_path = get_base_path(ctx.obj.get('data_dir'))
    config_path = base_path / CONFIG_FILENAME
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    if not config_path.exists():
        echo_quiet(click.style("Error: Mnemo not initialized. Run 'mnemo init' first.", fg="red"), verbosity)
        sys.exit(1)
    return config_path, yaml.safe_load(config_path.read_text()) or {}, verbosity


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str) -> None:
    """Set a configuration value.

    VALUE is parsed as YAML, so numbers and booleans keep their type.

    Examples:
        mnemo config set embedding.provider ollama
        mnemo config set engine.auto_link_threshold 0.85
        mnemo config set analysis.enable_sentiment_analysis false
    """
    config_path, config_data, verbosity = _read_config_data(ctx)

    try:
        keys = key.split('.')
        current = config_data
        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = yaml.safe_load(value)

        # Reject values the loader would refuse
        config_from_dict(config_data)

        config_path.write_text(yaml.dump(config_data, default_flow_style=False, sort_keys=False))
        echo_normal(click.style(f"✓ Set {key} = {value}", fg="green"), verbosity)
    except Exception as e:
        echo_quiet(click.style(f"Error: Failed to set config: {e}", fg="red"), verbosity)
        sys.exit(1)


@config_group.command('get')
@click.argument('key')
@click.pass_context
def config_get(ctx, key: str) -> None:
    """Get a configuration value.

    Examples:
        mnemo config get embedding.provider
    """
    _, config_data, verbosity = _read_config_data(ctx)

    current = config_data
    for k in key.split('.'):
        if not isinstance(current, dict) or k not in current:
            echo_quiet(click.style(f"Key '{key}' not found", fg="yellow"), verbosity)
            sys.exit(1)
        current = current[k]

    echo_quiet(current, verbosity)


@config_group.command('show')
@click.pass_context
def config_show(ctx) -> None:
    """Display full configuration."""
    config_path, _, verbosity = _read_config_data(ctx)

    echo_normal(click.style("Current configuration:", fg="cyan", bold=True), verbosity)
    echo_quiet(config_path.read_text(), verbosity)
