from __future__ import annotations

import pathlib

import click

from buildparts import messages, pipeline
from buildparts.cli import decorators as cli_decorators
from buildparts.cli import helpers as cli_helpers
from buildparts.storage import unpack as unpack_mod


@click.command("fetch")
@click.argument(
    "manifest_path", type=click.Path(dir_okay=False, path_type=pathlib.Path), metavar="MANIFEST"
)
@click.option(
    "-o",
    "--output",
    "output",
    required=True,
    type=click.Path(file_okay=False, path_type=pathlib.Path),
    help="Classes output directory (replaced on success)",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=pathlib.Path),
    default=None,
    help="Parts cache directory (default: derived from config)",
)
@click.option("-j", "--jobs", type=click.IntRange(min=1), default=None, help="Parallel download jobs")
@click.pass_context
@cli_decorators.with_error_handling
def fetch(
    ctx: click.Context,
    manifest_path: pathlib.Path,
    output: pathlib.Path,
    cache_dir: pathlib.Path | None,
    jobs: int | None,
) -> None:
    """Fetch, verify and unpack compiled class archives listed in MANIFEST."""
    cli_ctx = cli_helpers.get_cli_context(ctx)
    cfg = cli_helpers.load_config(ctx)
    if jobs is not None:
        cfg = cfg.model_copy(update={"fetch": cfg.fetch.model_copy(update={"jobs": jobs})})

    sink = messages.LoggingMessages()
    result = pipeline.fetch_and_unpack(
        manifest_path,
        output,
        cfg,
        sink,
        cache_root=cache_dir,
        callback=None if cli_ctx["quiet"] else cli_helpers.make_progress_callback("Downloaded"),
    )

    if not cli_ctx["quiet"]:
        summary = result.summary
        click.echo(
            f"{len(result.entries)} part(s): {summary['downloaded_count']} downloaded, "
            + f"{summary['reused_count']} reused, {result.unpacked_files} file(s) unpacked"
        )


@click.command("unpack")
@click.argument(
    "archive", type=click.Path(dir_okay=False, exists=True, path_type=pathlib.Path)
)
@click.option(
    "-o",
    "--output",
    "output",
    required=True,
    type=click.Path(file_okay=False, path_type=pathlib.Path),
    help="Classes output directory (replaced)",
)
@click.pass_context
@cli_decorators.with_error_handling
def unpack(ctx: click.Context, archive: pathlib.Path, output: pathlib.Path) -> None:
    """Replace the classes output with the contents of ARCHIVE."""
    count = unpack_mod.unpack_archive(archive, output)
    if not cli_helpers.get_cli_context(ctx)["quiet"]:
        click.echo(f"Unpacked {count} file(s) into {output}")
