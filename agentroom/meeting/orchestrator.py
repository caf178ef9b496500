"""Turn driver: live speaker, raised hands and agent-to-agent chains."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import click

from agentroom.meeting.buffer import clear_buffered, push_buffered
from agentroom.meeting.room import MeetingRoom
from agentroom.meeting.session import (
    append_agent_message,
    append_user_message,
    last_user_message,
    retract_message,
)
from agentroom.meeting.solicitation import (
    ResponseIntent,
    select_responders,
    solicit,
    stream_response,
)
from agentroom.meeting.targeting import detect_agent_mentions, is_addressing_user
from agentroom.prompt_engine import FORCED_RESPONSE_NOTE
from agentroom.schemas import Agent, MeetingMessage, TargetedMessage

logger = logging.getLogger(__name__)

# A reply must be longer than this to trigger a chain, so a bare "@cto" does not
MIN_CHAIN_CONTENT_CHARS = 20


@dataclass
class TurnResult:
    """What happened in one hop of a conversation."""

    speaker: Agent | None = None
    content: str = ""
    aborted: bool = False


class MeetingOrchestrator:
    """Drives user turns through solicitation, live streaming and chaining."""

    def __init__(self, room: MeetingRoom):
        self.room = room

    @property
    def session(self):
        return self.room.session

    async def handle_user_message(self, targeted: TargetedMessage) -> None:
        """Run one top-level user turn and any agent-to-agent chain it starts.

        Chains are walked iteratively: each hop targets the agents the
        previous speaker @mentioned, one level deeper, until nobody is
        mentioned, a check-in happens, or ``max_chain_length`` is reached.
        """
        dropped = clear_buffered(self.session)
        if dropped:
            plural = "s" if dropped > 1 else ""
            click.secho(f"\n(Clearing {dropped} buffered response{plural})\n", fg="bright_black")

        user_message = append_user_message(self.session, targeted, chain_depth=0)
        self.room.save()

        pending: TargetedMessage | None = targeted
        depth = 0
        mentioned_by: str | None = None

        while pending is not None:
            result = await self.run_turn(pending, depth, mentioned_by)

            if result.aborted:
                if depth == 0 and retract_message(self.session, user_message):
                    logger.info("Turn aborted, retracted user message")
                self.room.save()
                return

            if result.speaker is None:
                return

            pending = self.next_hop(result, depth)
            if pending is None:
                await self.handle_check_in(result, depth)
                return

            depth += 1
            mentioned_by = result.speaker.name
            indent = "  " * depth
            click.secho(
                f"\n{indent}↳ [Agent-to-agent chain, depth {depth}/{self.session.max_chain_length}]",
                fg="bright_black",
            )

    async def run_turn(
        self,
        targeted: TargetedMessage,
        chain_depth: int,
        mentioned_by: str | None = None,
    ) -> TurnResult:
        """Solicit responders, stream the first willing one, buffer the rest."""
        room = self.room
        responders = select_responders(targeted, room)
        if not responders:
            click.secho("⚠ No matching agents found for that target", fg="yellow")
            return TurnResult()

        intents = await solicit(room, responders, targeted, chain_depth, mentioned_by)
        accepted = [intent for intent in intents if intent.wants_to_respond]

        if not accepted:
            click.secho("\n(None of the agents felt qualified to respond)", fg="yellow")
            click.secho(
                "Use /@ <agent-name> to request a specific agent to answer\n",
                fg="bright_black",
            )
            room.save()
            return TurnResult()

        live: ResponseIntent | None = None
        content = ""
        remaining = list(accepted)
        while remaining:
            candidate = remaining.pop(0)
            click.echo(room.colors.style(candidate.agent_name, f"\n{candidate.agent_name}:", bold=True))
            outcome = await stream_response(
                room, candidate.agent, chain_depth, mentioned_by=mentioned_by
            )
            if outcome.aborted:
                return TurnResult(aborted=True)
            if outcome.error is None:
                live = candidate
                content = outcome.content
                break

        if live is None:
            room.save()
            return TurnResult()

        append_agent_message(self.session, live.agent_name, content, chain_depth)

        if remaining:
            click.echo()
            for intent in remaining:
                push_buffered(self.session, intent.agent_name, intent.content)
                self._announce_raised_hand(intent.agent_name, "also has an answer")
            click.echo()

        room.save()
        return TurnResult(speaker=live.agent, content=content)

    def next_hop(self, result: TurnResult, chain_depth: int) -> TargetedMessage | None:
        """The message for the next chain hop, or None if the chain ends here."""
        if is_addressing_user(result.content, self.session.profile_name):
            return None

        mentioned = detect_agent_mentions(
            result.content, self.room.participant_names, exclude=result.speaker.name
        )
        if not mentioned:
            return None
        if len(result.content.strip()) <= MIN_CHAIN_CONTENT_CHARS:
            return None
        if chain_depth >= self.session.max_chain_length:
            logger.info(f"Chain stopped at max depth {chain_depth}")
            return None

        return TargetedMessage(
            content=result.content,
            targeted_agents=mentioned,
            is_direct_target=True,
        )

    async def handle_check_in(self, result: TurnResult, chain_depth: int) -> None:
        """On a check-in, collect replies from agents it mentions as raised hands."""
        if not is_addressing_user(result.content, self.session.profile_name):
            return

        mentioned = detect_agent_mentions(
            result.content, self.room.participant_names, exclude=result.speaker.name
        )
        if not mentioned:
            return

        speaker = result.speaker.name
        click.secho(f"\n💬 {speaker} is checking in with you.", fg="bright_black")
        click.secho(
            f"   Mentioned agents ({', '.join(mentioned)}) will buffer responses.\n",
            fg="bright_black",
        )

        for agent in self.room.agents_named(mentioned):
            targeted = TargetedMessage(
                content=result.content, targeted_agents=[agent.name], is_direct_target=True
            )
            intents = await solicit(self.room, [agent], targeted, chain_depth, mentioned_by=speaker)
            for intent in intents:
                if intent.wants_to_respond and intent.content:
                    push_buffered(self.session, intent.agent_name, intent.content)
                    self._announce_raised_hand(intent.agent_name, "has a response")

        click.echo()
        self.room.save()

    async def force_response(self, agent: Agent) -> MeetingMessage | None:
        """Stream ``agent``'s answer to the latest user message on request."""
        last = last_user_message(self.session)
        if last is None:
            click.secho("No user message to respond to", fg="red", err=True)
            return None

        history = self.session.shared_messages
        extra_user = None
        if history and history[-1].role != "user":
            extra_user = f"[User]: {last.content}"

        click.echo(self.room.colors.style(agent.name, f"{agent.name}:", bold=True))
        outcome = await stream_response(
            self.room,
            agent,
            chain_depth=0,
            extra_note=FORCED_RESPONSE_NOTE,
            extra_user_content=extra_user,
        )
        if outcome.aborted or not outcome.content:
            return None

        message = append_agent_message(self.session, agent.name, outcome.content, 0)
        self.room.save()
        return message

    def _announce_raised_hand(self, agent_name: str, verb: str) -> None:
        click.echo(
            click.style("✋ ", fg="bright_black")
            + self.room.colors.style(agent_name, agent_name)
            + click.style(f" {verb} (use /respond {agent_name})", fg="bright_black")
        )
