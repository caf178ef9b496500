"""Tests for the speaker-aware stream renderer and color assignment."""

import click
import pytest

from agentroom.meeting.colors import AGENT_PALETTE, USER_COLOR, ColorAssigner
from agentroom.meeting.renderer import MAX_PENDING_TAG, SpeakerAwareRenderer


def make_renderer(speaker="ceo", participants=("ceo", "cto")):
    written: list[str] = []
    renderer = SpeakerAwareRenderer(speaker, participants, ColorAssigner(), write=written.append)
    return renderer, written


def plain(written: list[str]) -> str:
    return click.unstyle("".join(written))


class TestSpeakerAwareRenderer:
    """Test incremental rendering."""

    @pytest.mark.parametrize(
        "tokens",
        [
            ["Hello", " world"],
            ["[c", "to]: hi\n", "[ce", "o]: bye"],
            ["[", "not a tag at all because it is much too long to be one", "\n"],
            ["line one\n", "[unknown]: x\n", "[@cto] y"],
            ["", "[", "", "cto", "]", ":", " ok"],
        ],
    )
    def test_message_is_raw_concatenation(self, tokens):
        """Coloring never changes the returned text."""
        renderer, written = make_renderer()
        for token in tokens:
            renderer.feed(token)
        assert renderer.finish() == "".join(tokens)
        assert plain(written) == "".join(tokens) + "\n"

    def test_split_tag_switches_speaker(self):
        """A tag split across tokens is recognized once complete."""
        renderer, written = make_renderer()
        renderer.feed("[ct")
        assert written == []
        renderer.feed("o]: sure")
        assert renderer.current_speaker == "cto"

    def test_mention_tag_switches_speaker(self):
        renderer, _ = make_renderer()
        renderer.feed("[@cto] over to you")
        assert renderer.current_speaker == "cto"

    def test_user_tag_switches_to_user(self):
        renderer, _ = make_renderer()
        renderer.feed("[User]: you said")
        assert renderer.current_speaker == "User"

    def test_unknown_tag_keeps_speaker(self):
        renderer, written = make_renderer()
        renderer.feed("[cfo]: not here\n")
        assert renderer.current_speaker == "ceo"
        assert plain(written) == "[cfo]: not here\n"

    def test_tag_only_at_line_start(self):
        """Brackets inside a line are ordinary text."""
        renderer, _ = make_renderer()
        renderer.feed("see [cto]: later")
        assert renderer.current_speaker == "ceo"

    def test_long_partial_tag_is_flushed(self):
        """An unterminated bracket is given up on after a few characters."""
        renderer, written = make_renderer()
        renderer.feed("[" + "x" * MAX_PENDING_TAG)
        assert plain(written) == "[" + "x" * MAX_PENDING_TAG

    def test_pending_partial_tag_flushed_on_finish(self):
        renderer, written = make_renderer()
        renderer.feed("[ct")
        assert renderer.finish() == "[ct"
        assert plain(written) == "[ct\n"

    @pytest.mark.asyncio
    async def test_render_async_stream(self):
        renderer, written = make_renderer()

        async def tokens():
            for token in ["[cto]:", " yes\n", "done"]:
                yield token

        assert await renderer.render(tokens()) == "[cto]: yes\ndone"
        assert plain(written).endswith("done\n")


class TestColorAssigner:
    """Test stable color assignment."""

    def test_stable_and_case_insensitive(self):
        colors = ColorAssigner()
        first = colors.color_for("ceo")
        colors.color_for("cto")
        assert colors.color_for("CEO") == first

    def test_assignment_order(self):
        colors = ColorAssigner()
        assert [colors.color_for(n) for n in ["a", "b", "c"]] == list(AGENT_PALETTE[:3])

    def test_cycles_on_overflow(self):
        colors = ColorAssigner(palette=("red", "green"))
        assert [colors.color_for(n) for n in ["a", "b", "c"]] == ["red", "green", "red"]

    def test_user_has_fixed_color(self):
        colors = ColorAssigner()
        assert colors.color_for("User") == USER_COLOR
        assert colors.color_for("a") == AGENT_PALETTE[0]

    def test_empty_palette_rejected(self):
        with pytest.raises(ValueError):
            ColorAssigner(palette=())

    def test_style_wraps_text(self):
        colors = ColorAssigner()
        styled = colors.style("ceo", "hello", bold=True)
        assert styled != "hello"
        assert click.unstyle(styled) == "hello"
