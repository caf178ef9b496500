"""Deciding which agents answer a message and whether each wants to."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import click

from agentroom.client import ModelClientError
from agentroom.meeting.renderer import SpeakerAwareRenderer
from agentroom.meeting.room import MeetingRoom
from agentroom.prompt_engine import (
    BROADCAST_NOTE,
    build_conversation,
    build_meeting_context,
    build_system_prompt,
)
from agentroom.schemas import Agent, ChatCompletionRequest, ResponseStats, TargetedMessage
from agentroom.streaming import StreamOutcome, stream_completion

logger = logging.getLogger(__name__)

PASS_TOKEN = "PASS"


@dataclass
class ResponseIntent:
    """Result of asking one agent whether (and what) it would answer."""

    agent: Agent
    wants_to_respond: bool
    content: str
    error: str | None = None

    @property
    def agent_name(self) -> str:
        return self.agent.name


def wants_to_respond(content: str) -> bool:
    """An agent declines only with a bare PASS."""
    return content.strip().upper() != PASS_TOKEN


def select_responders(targeted: TargetedMessage, room: MeetingRoom) -> list[Agent]:
    """Targeted agents for a direct message, the whole roster for a broadcast."""
    if targeted.is_direct_target:
        return room.agents_named(targeted.targeted_agents)
    return list(room.roster)


def build_agent_request(
    room: MeetingRoom,
    agent: Agent,
    chain_depth: int = 0,
    broadcast: bool = False,
    mentioned_by: str | None = None,
    extra_note: str | None = None,
    extra_user_content: str | None = None,
    stream: bool = False,
) -> ChatCompletionRequest:
    """Assemble the full completion request for one agent in the room."""
    system_prompt = build_system_prompt(agent, room.profile())
    system_prompt += build_meeting_context(
        agent, room.roster, room.session, chain_depth, mentioned_by=mentioned_by
    )
    if broadcast:
        system_prompt += "\n" + BROADCAST_NOTE + "\n"
    if extra_note:
        system_prompt += "\n" + extra_note + "\n"

    params = agent.model_params
    return ChatCompletionRequest(
        model=agent.model,
        messages=build_conversation(
            system_prompt, room.session.shared_messages, extra_user_content
        ),
        max_tokens=params.max_tokens,
        temperature=params.temperature,
        top_p=params.top_p,
        top_k=params.top_n,
        stream=stream,
    )


def _warn_agent_failure(agent: Agent, error: Exception) -> None:
    click.secho(f"\n✗ Error getting response from {agent.name}: {error}", fg="red", err=True)
    click.secho(f"  Agent {agent.name} will be skipped for this response.", fg="yellow")


async def query_intent(
    room: MeetingRoom,
    agent: Agent,
    targeted: TargetedMessage,
    chain_depth: int = 0,
    mentioned_by: str | None = None,
) -> ResponseIntent:
    """Ask one agent for a non-streamed reply; failures count as declining."""
    try:
        request = build_agent_request(
            room,
            agent,
            chain_depth=chain_depth,
            broadcast=not targeted.is_direct_target,
            mentioned_by=mentioned_by,
        )
        response = await room.client.chat_completion(request)
        content = response.choices[0].message.content or ""
    except ModelClientError as e:
        logger.warning(f"Intent query failed for {agent.name}: {e}")
        _warn_agent_failure(agent, e)
        return ResponseIntent(agent=agent, wants_to_respond=False, content="", error=str(e))
    except Exception as e:
        logger.debug(f"Unexpected error querying {agent.name}", exc_info=True)
        _warn_agent_failure(agent, e)
        return ResponseIntent(agent=agent, wants_to_respond=False, content="", error=str(e))

    return ResponseIntent(agent=agent, wants_to_respond=wants_to_respond(content), content=content)


async def solicit(
    room: MeetingRoom,
    responders: list[Agent],
    targeted: TargetedMessage,
    chain_depth: int = 0,
    mentioned_by: str | None = None,
) -> list[ResponseIntent]:
    """Query all responders concurrently; results come back in roster order."""
    return list(
        await asyncio.gather(
            *(query_intent(room, agent, targeted, chain_depth, mentioned_by) for agent in responders)
        )
    )


async def stream_response(
    room: MeetingRoom,
    agent: Agent,
    chain_depth: int = 0,
    mentioned_by: str | None = None,
    extra_note: str | None = None,
    extra_user_content: str | None = None,
) -> StreamOutcome:
    """Stream an agent's reply live to the terminal.

    The room's abort watcher may cancel the stream; partial output stays on
    screen but the outcome is marked aborted and carries no content.
    """
    try:
        request = build_agent_request(
            room,
            agent,
            chain_depth=chain_depth,
            mentioned_by=mentioned_by,
            extra_note=extra_note,
            extra_user_content=extra_user_content,
            stream=True,
        )
    except Exception as e:
        logger.debug(f"Could not build request for {agent.name}", exc_info=True)
        _warn_agent_failure(agent, e)
        return StreamOutcome(error=str(e))

    renderer = SpeakerAwareRenderer(agent.name, room.participant_names, room.colors)
    outcome = await stream_completion(
        room.client, request, renderer, room.abort_watcher, speaker=agent.name
    )

    if outcome.usage is not None:
        room.session.metadata.last_response_stats = ResponseStats(
            agent_name=agent.name,
            prompt_tokens=outcome.usage.prompt_tokens,
            completion_tokens=outcome.usage.completion_tokens,
            total_tokens=outcome.usage.total_tokens,
            context_window_size=agent.model_params.ctx_size,
        )
    return outcome
