"""Shared utilities for Mnemo CLI commands."""
import sys
import json
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import click

from ..analysis import ContentAnalyzer
from ..config import CONFIG_FILENAME, MnemoConfig, get_base_path as _config_base_path, load_config
from ..errors import MemoryServiceError
from ..logging_config import setup_logging
from ..service import MemoryService
from ..similarity import VectorIndex, create_embedder
from ..storage import AsyncMemoryDatabase

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2


def get_base_path(ctx_data_dir: Optional[Path] = None) -> Path:
    """Get the base path for Mnemo data.

    Priority: --data-dir flag > MNEMO_BASE_PATH env var > default path.
    """
    return _config_base_path(ctx_data_dir)


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if verbosity >= VERBOSITY_VERBOSE:
        click.echo(message)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if verbosity >= VERBOSITY_NORMAL:
        click.echo(message)


def echo_quiet(message: Any, verbosity: int) -> None:
    """Print a message that is shown even in quiet mode."""
    click.echo(message)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"))
    sys.exit(1)


def load_cli_config(base_path: Path) -> MnemoConfig:
    try:
        return load_config(base_path / CONFIG_FILENAME)
    except ValueError as e:
        fail(f"Invalid configuration: {e}")


def require_initialized(ctx) -> Path:
    """Base path of an initialized store; exits when `mnemo init` has not been run."""
    base_path = get_base_path(ctx.obj.get('data_dir'))
    if not base_path.exists():
        fail("Mnemo not initialized. Run 'mnemo init' first.")

    config = load_cli_config(base_path)
    if not config.resolve_db_path(base_path).exists():
        fail("Database not found. Run 'mnemo init' first.")
    return base_path


@asynccontextmanager
async def open_service(base_path: Path, verbosity: int = VERBOSITY_NORMAL):
    """Open database and vector index for base_path and yield a MemoryService."""
    config = load_config(base_path / CONFIG_FILENAME)
    setup_logging("DEBUG" if verbosity >= VERBOSITY_VERBOSE else config.logging.level)

    db_path = config.resolve_db_path(base_path)
    database = AsyncMemoryDatabase(db_path, enable_wal=config.storage.enable_wal)
    index = VectorIndex(db_path, create_embedder(config.embedding), enable_wal=config.storage.enable_wal)
    service = MemoryService(
        database,
        index,
        config=config.engine,
        analyzer=ContentAnalyzer(config.analysis),
    )
    try:
        await database.initialize()
        yield service
    finally:
        await index.close()
        await database.close()


def run_service_call(ctx, base_path: Path, action: str, call):
    """
    Run ``call(service)`` against the store at base_path.

    Service errors print their code and exit 1; any other failure prints
    "Failed to <action>" and exits 1.
    """
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)

    async def _run():
        async with open_service(base_path, verbosity) as service:
            return await call(service)

    try:
        return asyncio.run(_run())
    except MemoryServiceError as e:
        fail(f"{e.message} ({e.code})")
    except Exception as e:
        fail(f"Failed to {action}: {e}")


def truncate(text: str, width: int = 80) -> str:
    text = text.replace("\n", " ")
    return text if len(text) <= width else text[:width - 3] + "..."
