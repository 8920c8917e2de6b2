from __future__ import annotations

import importlib
import logging
import pathlib
from typing import TypedDict, override

import click

# Lazy command registry: command_name -> (module_path, attr_name, help_text)
_LAZY_COMMANDS: dict[str, tuple[str, str, str]] = {
    "fetch": (
        "buildparts.cli.parts",
        "fetch",
        "Fetch, verify and unpack compiled class archives from a manifest.",
    ),
    "unpack": ("buildparts.cli.parts", "unpack", "Unpack a single compiled classes archive."),
    "publish-check": (
        "buildparts.cli.publish",
        "publish_check",
        "Decide early publication for built artifacts.",
    ),
}


class CliContext(TypedDict):
    """Context object for CLI commands."""

    verbose: bool
    quiet: bool
    config_path: pathlib.Path | None


class BuildPartsGroup(click.Group):
    """Group with lazily imported commands."""

    @override
    def list_commands(self, ctx: click.Context) -> list[str]:
        return sorted(_LAZY_COMMANDS.keys())

    @override
    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        if cmd_name not in _LAZY_COMMANDS:
            return None

        module_path, attr_name, _help = _LAZY_COMMANDS[cmd_name]
        module = importlib.import_module(module_path)
        return getattr(module, attr_name)

    @override
    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        commands = [(name, _LAZY_COMMANDS[name][2]) for name in self.list_commands(ctx)]
        if commands:
            with formatter.section("Commands"):
                formatter.write_dl(commands)


def _setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure logging for CLI output."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s", force=True)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group(cls=BuildPartsGroup)
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    default=None,
    help="Config file (default: ./buildparts.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, config_path: pathlib.Path | None) -> None:
    """Reuse compiled class archives instead of recompiling.

    Fetches content-addressed archives into a local cache, verifies them and
    unpacks them into the build output tree.
    """
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")
    ctx.obj = CliContext(verbose=verbose, quiet=quiet, config_path=config_path)
    _setup_logging(verbose, quiet)


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
