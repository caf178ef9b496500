"""Streaming renderer that colors ``[speaker]:`` segments as tokens arrive."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Callable, Iterable

import click

from agentroom.meeting.colors import ColorAssigner

_TAG_RE = re.compile(r"^\[(@?)([^\]\n]+)\]:?[ \t]*")
_PARTIAL_TAG_RE = re.compile(r"^\[@?[^\]\n]*$")

# A partial tag longer than this is treated as ordinary text
MAX_PENDING_TAG = 30


def _echo(text: str) -> None:
    click.echo(text, nl=False)


class SpeakerAwareRenderer:
    """Render one agent's token stream, switching colors on speaker tags.

    A model may answer as several simulated speakers, each line starting with
    ``[name]:`` or ``[@name]``. Tags can be split across tokens, so text that
    starts a line with ``[`` is held back until the tag is complete or clearly
    not a tag. Coloring never changes the returned message text.
    """

    def __init__(
        self,
        speaker: str,
        participants: Iterable[str],
        colors: ColorAssigner,
        write: Callable[[str], None] | None = None,
    ):
        """Initialize the renderer.

        Args:
            speaker: Agent whose stream this is; its color is the default
            participants: Names recognized inside tags (``user`` is implied)
            colors: Shared color assigner
            write: Output function, defaults to click.echo without newline
        """
        self.colors = colors
        self.write = write or _echo
        self.current_speaker = speaker
        self.known = {name.lower() for name in participants} | {"user"}
        self._buffer = ""
        self._raw: list[str] = []
        self._at_line_start = True

    @property
    def message(self) -> str:
        """Concatenation of every raw token received so far."""
        return "".join(self._raw)

    def _style(self, text: str) -> str:
        return self.colors.style(self.current_speaker, text)

    def feed(self, token: str) -> None:
        """Consume one stream fragment and write whatever can be decided."""
        self._raw.append(token)
        self._buffer += token
        out: list[str] = []

        while self._buffer:
            if self._at_line_start and self._buffer.startswith("["):
                match = _TAG_RE.match(self._buffer)
                if match:
                    name = match.group(2)
                    if name.lower() in self.known:
                        self.current_speaker = name
                    out.append(self._style(match.group(0)))
                    self._buffer = self._buffer[match.end():]
                    self._at_line_start = False
                    continue
                if _PARTIAL_TAG_RE.match(self._buffer) and len(self._buffer) < MAX_PENDING_TAG:
                    break
                out.append(self._style("["))
                self._buffer = self._buffer[1:]
                self._at_line_start = False
                continue

            if self._buffer[0] == "\n":
                out.append("\n")
                self._buffer = self._buffer[1:]
                self._at_line_start = True
                continue

            # Plain text runs to the next newline
            end = self._buffer.find("\n")
            chunk = self._buffer if end == -1 else self._buffer[:end]
            out.append(self._style(chunk))
            self._buffer = self._buffer[len(chunk):]
            self._at_line_start = False

        if out:
            self.write("".join(out))

    def finish(self) -> str:
        """Flush held-back text, end the line and return the full message."""
        if self._buffer:
            self.write(self._style(self._buffer))
            self._buffer = ""
        self.write("\n")
        return self.message

    async def render(self, tokens: AsyncIterator[str]) -> str:
        """Render an async token stream to completion."""
        async for token in tokens:
            self.feed(token)
        return self.finish()
