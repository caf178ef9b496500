"""Terminal plumbing for the interactive loops."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import click

from agentroom.streaming import AbortSignal

logger = logging.getLogger(__name__)

ABORT_KEY = b"\x04"  # Ctrl-D
TYPING_NOTE = "Keys typed while an agent is responding are discarded."


@contextmanager
def keypress_abort(task: asyncio.Future, abort: AbortSignal) -> Iterator[None]:
    """Abort ``task`` when Ctrl-D is pressed while it runs.

    The terminal is put in cbreak mode for the duration so single keys are
    delivered without Enter; Ctrl-C still raises KeyboardInterrupt. Every
    other key pressed meanwhile is consumed and dropped. Does nothing when
    stdin is not a terminal.
    """
    if sys.platform == "win32" or not sys.stdin.isatty():
        yield
        return

    import termios
    import tty

    fd = sys.stdin.fileno()
    loop = asyncio.get_running_loop()
    saved = termios.tcgetattr(fd)

    def on_key() -> None:
        if ABORT_KEY in os.read(fd, 64) and not task.done():
            logger.debug("Abort key pressed")
            abort.abort(task)

    tty.setcbreak(fd)
    loop.add_reader(fd, on_key)
    try:
        yield
    finally:
        loop.remove_reader(fd)
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt


@contextmanager
def terminate_as_interrupt() -> Iterator[None]:
    """Treat SIGTERM like Ctrl-C so lock cleanup runs on both."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def read_input(label: str = "You") -> str | None:
    """Prompt for one line. Returns None at end of input."""
    from agentroom.meeting.colors import USER_COLOR

    try:
        line = click.prompt(
            click.style(label, fg=USER_COLOR, bold=True),
            default="",
            show_default=False,
            prompt_suffix=": ",
        )
    except click.Abort:
        # click turns EOF and Ctrl-C at the prompt into Abort
        click.echo()
        return None
    return line.strip()
