"""Console helpers: colored messages, error reports, host target triple."""

from __future__ import annotations

import platform
import sys
from typing import TextIO

from rich.console import Console

from .config import ColorMode, get_config

__all__ = [
    "GREEN",
    "RED",
    "YELLOW",
    "default_target",
    "print_message",
    "report_error",
]

# Message styles
RED = "bold red"
GREEN = "bold green"
YELLOW = "bold yellow"

_COLOR_SYSTEMS = {
    ColorMode.AUTO: "auto",
    ColorMode.ALWAYS: "standard",
    ColorMode.NEVER: None,
}


def _console(stream: TextIO) -> Console:
    mode = get_config().color
    # AUTO leaves terminal detection to rich
    force_terminal = {ColorMode.ALWAYS: True, ColorMode.NEVER: False}.get(mode)
    return Console(
        file=stream,
        force_terminal=force_terminal,
        color_system=_COLOR_SYSTEMS[mode],
        highlight=False,
        soft_wrap=True,
    )


def print_message(msg: str, style: str, stream: TextIO | None = None) -> None:
    """Print one line in ``style`` when the stream supports it."""
    out = stream if stream is not None else sys.stdout
    _console(out).print(msg, style=style, markup=False)


def report_error(err: BaseException, stream: TextIO | None = None) -> None:
    """Print an error and every cause chained to it."""
    out = stream if stream is not None else sys.stderr
    print_message(f"error: {err}", RED, out)
    cause = err.__cause__ or err.__context__
    seen = {id(err)}
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        print_message(f"caused by: {cause}", YELLOW, out)
        cause = cause.__cause__ or cause.__context__


_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "i386": "i686",
    "i586": "i686",
    "x86": "i686",
}


def default_target() -> str:
    """Target triple of the host, as rustc names it."""
    machine = platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine, machine or "x86_64")
    if sys.platform == "darwin":
        return f"{arch}-apple-darwin"
    if sys.platform == "win32":
        return f"{arch}-pc-windows-msvc"
    if sys.platform.startswith("freebsd"):
        return f"{arch}-unknown-freebsd"
    return f"{arch}-unknown-linux-gnu"
