from __future__ import annotations

from typing import TYPE_CHECKING, cast

import click

from buildparts import config

if TYPE_CHECKING:
    from collections.abc import Callable

    from buildparts.cli import CliContext


def get_cli_context(ctx: click.Context) -> CliContext:
    """Get the CliContext stored by the root group."""
    return cast("CliContext", ctx.find_root().obj)


def load_config(ctx: click.Context) -> config.BuildPartsConfig:
    """Load config honoring the root --config option."""
    return config.load_config(get_cli_context(ctx)["config_path"])


def make_progress_callback(action: str) -> Callable[[int], None]:
    """Create a progress callback for file transfer operations."""

    def callback(completed: int) -> None:
        click.echo(f"  {action} {completed} files...", nl=False)
        click.echo("\r", nl=False)

    return callback
