"""Spinner shown on stderr while a slow git call runs."""

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console

_console = Console(stderr=True)


@contextmanager
def progress(message: str, enabled: bool = True, console: Console | None = None) -> Iterator[None]:
    """Show a spinner for the duration of the block.

    Only drawn when stderr is a terminal. The spinner is stopped when the
    block exits, whether or not it raised.
    """
    console = console or _console
    if not enabled or not console.is_terminal:
        yield
        return
    with console.status(message, spinner="dots"):
        yield
