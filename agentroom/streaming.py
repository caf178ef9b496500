"""Live streaming of a completion to the terminal, abortable by the user."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import click

from agentroom.client import ModelClient, ModelClientError, stream_tokens
from agentroom.schemas import ChatCompletionRequest, Usage

if TYPE_CHECKING:
    from agentroom.meeting.renderer import SpeakerAwareRenderer

logger = logging.getLogger(__name__)


class AbortSignal:
    """Set when the user aborts a live stream."""

    def __init__(self) -> None:
        self.aborted = False

    def abort(self, task: asyncio.Future) -> None:
        self.aborted = True
        task.cancel()


AbortWatcher = Callable[[asyncio.Future, AbortSignal], AbstractContextManager[None]]


@contextmanager
def no_abort(task: asyncio.Future, signal: AbortSignal) -> Iterator[None]:
    """Abort watcher for non-interactive use: streams cannot be aborted."""
    yield


@dataclass
class StreamOutcome:
    """Result of a live streamed reply."""

    content: str = ""
    aborted: bool = False
    error: str | None = None
    usage: Usage | None = None


async def stream_completion(
    client: ModelClient,
    request: ChatCompletionRequest,
    renderer: SpeakerAwareRenderer,
    abort_watcher: AbortWatcher = no_abort,
    speaker: str | None = None,
) -> StreamOutcome:
    """Render a streamed completion live until it ends, fails or is aborted.

    Partial output stays on screen when the stream is aborted or fails; the
    outcome then carries no content.
    """
    usage: list[Usage] = []
    speaker = speaker or request.model
    task = asyncio.ensure_future(
        renderer.render(stream_tokens(client.chat_completion_stream(request), usage))
    )
    signal = AbortSignal()
    with abort_watcher(task, signal):
        try:
            content = await task
        except asyncio.CancelledError:
            if not signal.aborted:
                raise
            click.secho("\n\n⚠ Aborting...", fg="yellow")
            return StreamOutcome(aborted=True)
        except ModelClientError as e:
            logger.warning(f"Stream failed for {speaker}: {e}")
            click.secho(f"\n✗ Error streaming response from {speaker}: {e}", fg="red", err=True)
            return StreamOutcome(error=str(e))
        except Exception as e:
            logger.debug(f"Unexpected stream error for {speaker}", exc_info=True)
            click.secho(f"\n✗ Error streaming response from {speaker}: {e}", fg="red", err=True)
            return StreamOutcome(error=str(e))

    return StreamOutcome(content=content, usage=usage[-1] if usage else None)
