"""Starting, resuming and running a meeting room in the terminal."""

from __future__ import annotations

import asyncio
import logging

import click

from agentroom.client import ModelClient
from agentroom.locks import AgentLockedError, LockScope
from agentroom.meeting.colors import ColorAssigner
from agentroom.meeting.commands import CommandAction, CommandResult, MeetingCommands
from agentroom.meeting.orchestrator import MeetingOrchestrator
from agentroom.meeting.room import MeetingRoom
from agentroom.meeting.session import (
    MIN_PARTICIPANTS,
    add_participant,
    new_meeting_session,
)
from agentroom.meeting.targeting import parse_targeted_message
from agentroom.schemas import Agent
from agentroom.storage import Storage, room_id
from agentroom.streaming import AbortWatcher
from agentroom.terminal import TYPING_NOTE, keypress_abort, read_input, terminate_as_interrupt

logger = logging.getLogger(__name__)


class MeetingSetupError(Exception):
    """Raised when a room cannot be opened with the requested participants."""

    pass


def prepare_room(
    storage: Storage,
    room_name: str,
    agent_names: list[str],
    client: ModelClient,
    colors: ColorAssigner,
    abort_watcher: AbortWatcher = keypress_abort,
) -> MeetingRoom:
    """Load or create the room and its roster without taking any locks.

    Agents named on the command line join an existing room. Nothing is
    written to disk if any participant is missing or busy.

    Raises:
        AgentNotFoundError: If a participant has no agent definition
        AgentLockedError: If a participant is held by another live session
        MeetingSetupError: If a new room has fewer than two participants
    """
    session = storage.load_meeting_session(room_id(room_name))
    if session is None:
        if len(set(n.lower() for n in agent_names)) < MIN_PARTICIPANTS:
            raise MeetingSetupError(
                f"A new meeting needs at least {MIN_PARTICIPANTS} agents"
            )
        config = storage.load_config()
        session = new_meeting_session(room_name, agent_names, config.current_profile)
        logger.info(f"Created room {session.id}")
    else:
        for name in agent_names:
            add_participant(session, name)

    roster: list[Agent] = [storage.load_agent(name) for name in session.agent_names]

    for agent in roster:
        if storage.is_agent_locked(agent.name):
            raise AgentLockedError(agent.name, storage.locks.owner(agent.name))

    return MeetingRoom(
        session=session,
        roster=roster,
        storage=storage,
        client=client,
        colors=colors,
        abort_watcher=abort_watcher,
    )


def print_banner(room: MeetingRoom) -> None:
    session = room.session
    click.secho(f"\n🏛  Meeting room: {session.room_name}\n", bold=True)
    for agent in room.roster:
        model = click.style(f"({agent.model})", fg="bright_black")
        click.echo(f"  {room.colors.style(agent.name, agent.name, bold=True)} {model}")
    click.echo()
    if session.shared_messages:
        click.secho(
            f"Resuming with {len(session.shared_messages)} message(s), use /history to review",
            fg="bright_black",
        )
    click.secho("Address agents with 'name, ...' or '@name'. Type /help for commands.", fg="bright_black")
    click.secho("Press Ctrl+D to abort a response, Ctrl+C to leave.", fg="bright_black")
    click.secho(f"{TYPING_NOTE}\n", fg="bright_black")


def run_meeting_loop(room: MeetingRoom, lock_scope: LockScope) -> CommandResult:
    """Read lines until the user leaves; returns the command that ended the loop."""
    orchestrator = MeetingOrchestrator(room)
    commands = MeetingCommands(room, orchestrator, lock_scope)

    while True:
        text = read_input()
        if text is None:
            return CommandResult(CommandAction.EXIT)
        if not text:
            continue

        if text.startswith("/"):
            result = asyncio.run(commands.dispatch(text))
            if result.action in (
                CommandAction.EXIT,
                CommandAction.SWITCH_AGENT,
                CommandAction.SWITCH_ROOM,
            ):
                return result
            continue

        targeted = parse_targeted_message(text, room.participant_names)
        asyncio.run(orchestrator.handle_user_message(targeted))


def run_room(
    storage: Storage,
    room_name: str,
    agent_names: list[str],
    client: ModelClient,
    colors: ColorAssigner,
) -> CommandResult:
    """Open one room, hold its agent locks for the session and run the loop."""
    room = prepare_room(storage, room_name, agent_names, client, colors)

    try:
        with terminate_as_interrupt(), LockScope(storage.locks, room.participant_names) as scope:
            room.save()
            print_banner(room)
            result = run_meeting_loop(room, scope)
    except KeyboardInterrupt:
        click.secho("\n\n⚠ Interrupted. Agents unlocked.", fg="yellow")
        result = CommandResult(CommandAction.EXIT)

    room.save()
    return result


def start_or_resume_meeting(
    storage: Storage,
    room_name: str,
    agent_names: list[str],
    client: ModelClient | None = None,
    colors: ColorAssigner | None = None,
) -> None:
    """Enter a room and keep going until the user exits.

    Follows mode switches requested from inside the room: another room is
    opened in place, a single-agent switch hands over to the chat loop. The
    room's locks are released before any switch.
    """
    client = client or ModelClient.from_config(storage.load_config())
    colors = colors or ColorAssigner()

    while True:
        result = run_room(storage, room_name, agent_names, client, colors)

        if result.action == CommandAction.SWITCH_ROOM:
            room_name, agent_names = result.target, []
            continue

        if result.action == CommandAction.SWITCH_AGENT:
            from agentroom.chat import run_chat

            run_chat(storage, result.target, client=client, colors=colors)
            return

        click.secho("Goodbye!\n", fg="bright_black")
        return
