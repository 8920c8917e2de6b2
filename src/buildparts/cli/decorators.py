from __future__ import annotations

import functools
from typing import TYPE_CHECKING

import click

from buildparts import exceptions

if TYPE_CHECKING:
    from collections.abc import Callable


def _handle_buildparts_error(e: exceptions.BuildPartsError) -> click.ClickException:
    """Convert BuildPartsError to user-friendly ClickException."""
    message = e.format_user_message()
    if suggestion := e.get_suggestion():
        message = f"{message}\n\nTip: {suggestion}"
    return click.ClickException(message)


def with_error_handling[**P, R](func: Callable[P, R]) -> Callable[P, R]:
    """Wrap a command so library errors become ClickExceptions.

        @cli.command("fetch")
        @with_error_handling
        def fetch(...):
            ...
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except exceptions.BuildPartsError as e:
            raise _handle_buildparts_error(e) from e
        except Exception as e:
            raise click.ClickException(repr(e)) from e

    return wrapper
