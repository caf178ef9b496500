"""Stable per-speaker terminal colors."""

from __future__ import annotations

import click

ColorSpec = str | tuple[int, int, int]

AGENT_PALETTE: tuple[ColorSpec, ...] = (
    "cyan",
    "magenta",
    "yellow",
    "green",
    "blue",
    "red",
    (255, 165, 0),  # orange
    (147, 112, 219),  # purple
    (0, 255, 255),  # aqua
    (255, 105, 180),  # hot pink
)

USER_COLOR: ColorSpec = "bright_blue"


class ColorAssigner:
    """Assigns each speaker the next unused palette color, cycling on overflow.

    Names are matched case-insensitively and keep their color for the
    lifetime of the assigner. Construct one per process and share it.
    """

    def __init__(self, palette: tuple[ColorSpec, ...] = AGENT_PALETTE):
        if not palette:
            raise ValueError("palette must not be empty")
        self.palette = palette
        self._assigned: dict[str, ColorSpec] = {}

    def color_for(self, name: str) -> ColorSpec:
        key = name.lower()
        if key == "user":
            return USER_COLOR
        if key not in self._assigned:
            self._assigned[key] = self.palette[len(self._assigned) % len(self.palette)]
        return self._assigned[key]

    def style(self, name: str, text: str, bold: bool = False) -> str:
        """Wrap ``text`` in the ANSI color assigned to ``name``."""
        return click.style(text, fg=self.color_for(name), bold=bold)
