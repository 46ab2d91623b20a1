"""
Script-friendly helpers for presenting svcapp errors:
- `use_console(...)`: context manager that sets up a Rich Console with
  sensible 'auto' color defaults and makes it the active one.
- `run_with_diagnostics(...)`: decorator to wrap a CLI entry point in the same
  context and pretty-print SvcError on the way out (exit status 1).
"""

from __future__ import annotations

import contextvars
import functools
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec

from rich.console import Console

from svcapp.errors import SvcError

__all__ = ["use_console", "print_exception", "run_with_diagnostics"]

P = ParamSpec("P")

# Track the active Console so print_exception() can reuse the same settings.
_active_console: contextvars.ContextVar[Console | None] = contextvars.ContextVar(
    "_active_console", default=None
)


@contextmanager
def use_console(*, color: str | None = None) -> Iterator[Console]:
    """
    Activate a stderr Console for this script.

    Args:
      color: 'auto' | 'always' | 'never' | None (env SVCAPP_COLOR or 'auto')
    """
    color = (color or os.getenv("SVCAPP_COLOR") or "auto").lower()
    console = Console(
        stderr=True,
        force_terminal=(color == "always") or None,
        no_color=(color == "never"),
    )
    token = _active_console.set(console)
    try:
        yield console
    finally:
        _active_console.reset(token)


def print_exception(e: SvcError) -> None:
    """Pretty-print a SvcError; uses the active Console if available."""
    (_active_console.get() or Console(stderr=True)).print(e)


def run_with_diagnostics(
    *, color: str | None = None, exit_on_exception: bool = True
) -> Callable[[Callable[P, int]], Callable[P, int]]:
    """
    Decorator: runs the function inside `use_console(...)`.
    If a SvcError escapes, pretty-print it and (by default) return exit status 1.
    """

    def deco(fn: Callable[P, int]) -> Callable[P, int]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> int:
            with use_console(color=color):
                try:
                    return fn(*args, **kwargs)
                except SvcError as e:
                    print_exception(e)
                    if exit_on_exception:
                        return 1
                    raise

        return wrapper

    return deco
