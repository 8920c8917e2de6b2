from __future__ import annotations

import pathlib

import click

from buildparts import messages, publish, session
from buildparts.cli import decorators as cli_decorators
from buildparts.cli import helpers as cli_helpers


@click.command("publish-check")
@click.argument(
    "paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=pathlib.Path)
)
@click.option(
    "--artifacts-dir",
    required=True,
    type=click.Path(file_okay=False, path_type=pathlib.Path),
    help="Directory collected as build artifacts when the build finishes",
)
@click.pass_context
@cli_decorators.with_error_handling
def publish_check(
    ctx: click.Context, paths: tuple[pathlib.Path, ...], artifacts_dir: pathlib.Path
) -> None:
    """Print early-publish notifications for PATHS, in order.

    Skipped artifacts print nothing; the running produced-bytes total is shared
    across all PATHS.
    """
    cfg = cli_helpers.load_config(ctx)
    sink = messages.LoggingMessages()
    guard = publish.PublishGuard(session.BuildSession(), artifacts_dir, sink, cfg.publish)
    for path in paths:
        guard.notify_artifact_built(path)
    for notification in sink.published:
        click.echo(notification)
