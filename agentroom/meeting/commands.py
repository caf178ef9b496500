"""Slash commands available inside a meeting room."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import click

from agentroom.locks import AgentLockedError, LockScope
from agentroom.meeting.buffer import consume_buffered, drop_buffered_for
from agentroom.meeting.orchestrator import MeetingOrchestrator
from agentroom.meeting.renderer import SpeakerAwareRenderer
from agentroom.meeting.room import MeetingRoom
from agentroom.meeting.session import (
    MIN_PARTICIPANTS,
    add_participant,
    clear_history,
    has_participant,
    remove_participant,
    replace_history,
)
from agentroom.prompt_engine import build_meeting_context, build_system_prompt
from agentroom.schemas import ChatSession, MeetingSession
from agentroom.storage import AgentNotFoundError, ArchiveNotFoundError, room_id

logger = logging.getLogger(__name__)

WIDE_RULE = "═" * 70
LINE_RULE = "─" * 70

DEFAULT_HISTORY_COUNT = 10
HIGH_CHAIN_LENGTH = 10
LOW_CHECK_IN_LIMIT = 512
HIGH_CHECK_IN_LIMIT = 3000

HELP_TEXT = """
  /help, /h                  - Show this help
  /clear, /c                 - Clear room history (offers to archive it first)
  /add <agent>               - Add an agent to the room
  /remove <agent>            - Remove an agent from the room
  /agent <name>              - Switch to single-agent mode
  /respond <agent>, /r, //   - Call on an agent with a raised hand (buffered)
  /@ <agent>                 - Ask an agent to respond to the current chat
  /participants, /p          - Show room participants
  /show <agent>              - Show agent config and generated system prompt
  /restore <name>            - Restore an archived chat
  /buffered, /b              - List all buffered responses
  /status, /s                - Show room statistics
  /history [count]           - Show recent messages
  /chain-length [n]          - View/set max agent-to-agent chain length
  /check-in-limit [n]        - View/set token limit for agent check-ins
  /quit, /q, /exit, /e, /x   - Exit room
  Ctrl+D                     - Abort the response being streamed
  Ctrl+C                     - Exit room
"""

TARGETING_HELP = """
  <agent>, message           - Direct message to a specific agent
  @<agent> message           - Mention agents anywhere in the message
  message (no target)        - Broadcast to all (most qualified respond)
"""


class CommandAction(str, Enum):
    """What the interactive loop should do after a slash command."""

    CONTINUE = "continue"
    UPDATED = "updated"
    EXIT = "exit"
    SWITCH_AGENT = "switch_agent"
    SWITCH_ROOM = "switch_room"


@dataclass
class CommandResult:
    action: CommandAction = CommandAction.CONTINUE
    target: str | None = None

    @property
    def session_changed(self) -> bool:
        return self.action == CommandAction.UPDATED


def _dim(text: str) -> None:
    click.secho(text, fg="bright_black")


def _error(text: str) -> None:
    click.secho(text, fg="red", err=True)


def _warn(text: str) -> None:
    click.secho(text, fg="yellow")


def _parse_count(value: str) -> int | None:
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number >= 0 else None


class MeetingCommands:
    """Dispatches ``/command args`` lines against a live room."""

    def __init__(
        self,
        room: MeetingRoom,
        orchestrator: MeetingOrchestrator,
        lock_scope: LockScope,
    ):
        self.room = room
        self.orchestrator = orchestrator
        self.lock_scope = lock_scope
        self._handlers = {
            "": self.help,
            "help": self.help,
            "h": self.help,
            "clear": self.clear,
            "c": self.clear,
            "add": self.add,
            "remove": self.remove,
            "agent": self.switch_agent,
            "respond": self.respond,
            "r": self.respond,
            "/": self.respond,
            "@": self.force,
            "participants": self.participants,
            "p": self.participants,
            "show": self.show,
            "restore": self.restore,
            "buffered": self.buffered,
            "b": self.buffered,
            "status": self.status,
            "s": self.status,
            "history": self.history,
            "chain-length": self.chain_length,
            "chain": self.chain_length,
            "check-in-limit": self.check_in_limit,
            "checkin": self.check_in_limit,
            "quit": self.quit,
            "q": self.quit,
            "exit": self.quit,
            "e": self.quit,
            "x": self.quit,
        }

    @property
    def session(self) -> MeetingSession:
        return self.room.session

    async def dispatch(self, line: str) -> CommandResult:
        """Run one slash command line such as ``/respond cto``."""
        parts = line.strip()[1:].split()
        command = parts[0].lower() if parts else ""
        args = parts[1:]

        handler = self._handlers.get(command)
        if handler is None:
            _error(f"Unknown command: /{command}")
            click.echo("Type /help for available commands")
            return CommandResult()

        logger.debug(f"Slash command /{command} {args}")
        result = handler(args)
        if inspect.isawaitable(result):
            result = await result
        return result

    # --- Informational ---

    def help(self, args: list[str]) -> CommandResult:
        click.secho("\n📚 Meeting Room Commands", bold=True)
        click.echo(HELP_TEXT)
        click.secho("Message Targeting:", bold=True)
        click.echo(TARGETING_HELP)
        click.secho("Agent-to-Agent Communication:", bold=True)
        click.echo("  Agents can @mention other agents in their responses")
        click.echo("  Mentioned agents will automatically respond (up to the chain limit)")
        click.echo("  Use /chain-length to control max conversation depth\n")
        return CommandResult()

    def participants(self, args: list[str]) -> CommandResult:
        colors = self.room.colors
        click.secho("\n👥 Room Participants\n", bold=True)
        for agent in self.room.roster:
            click.echo(f"  {colors.style(agent.name, agent.name)}")
            click.echo(f"    Model: {click.style(agent.model, fg='bright_black')}")
            click.echo(f"    Role: {click.style(agent.role_summary, fg='bright_black')}")
        click.echo()
        return CommandResult()

    def buffered(self, args: list[str]) -> CommandResult:
        colors = self.room.colors
        click.secho("\n📝 Buffered Responses\n", bold=True)
        if not self.session.buffered_responses:
            _dim("  (none)")
            click.echo()
            return CommandResult()

        for entry in self.session.buffered_responses:
            stamp = click.style(entry.timestamp, fg="bright_black")
            click.echo(f"  {colors.style(entry.agent_name, entry.agent_name)} - {stamp}")
            _dim(f"    {entry.content[:100]}...")
            click.echo()
        _dim("Use /respond <agent-name> to show the full response\n")
        return CommandResult()

    def status(self, args: list[str]) -> CommandResult:
        session = self.session

        def value(v) -> str:
            return click.style(str(v), fg="cyan")

        click.secho("\n📊 Room Status\n", bold=True)
        click.echo(f"  Room Name: {value(session.room_name)}")
        click.echo(f"  Participants: {value(', '.join(session.agent_names))}")
        click.echo(f"  Total Messages: {value(len(session.shared_messages))}")
        click.echo(f"  Buffered Responses: {value(len(session.buffered_responses))}")
        click.echo(f"  Max Chain Length: {value(session.max_chain_length)}")
        click.echo(f"  Check-In Token Limit: {value(session.check_in_token_limit)}")

        stats = session.metadata.last_response_stats
        if stats is not None:
            click.echo(f"\n  Last Response: {value(stats.agent_name)}")
            click.echo(
                f"    Tokens: {stats.total_tokens} "
                f"({stats.prompt_tokens} prompt + {stats.completion_tokens} completion)"
            )
            if stats.context_window_size:
                used = stats.total_tokens / stats.context_window_size * 100
                click.echo(f"    Context: {used:.0f}% of {stats.context_window_size}")
        click.echo()
        return CommandResult()

    def history(self, args: list[str]) -> CommandResult:
        count = DEFAULT_HISTORY_COUNT
        if args:
            parsed = _parse_count(args[0])
            if not parsed:
                _error("History count must be a positive number")
                return CommandResult()
            count = parsed

        recent = self.session.shared_messages[-count:]
        if not recent:
            _dim("\n(No message history)\n")
            return CommandResult()

        colors = self.room.colors
        click.secho(f"\n💬 Recent Messages (last {len(recent)})\n", bold=True)
        for message in recent:
            if message.role == "user":
                click.echo(colors.style("user", "[User]"))
                if message.target_agent:
                    _dim(f"  (to: {message.target_agent})")
                click.echo(message.content)
            else:
                name = message.agent_name or "assistant"
                depth = f" (chain depth {message.chain_depth})" if message.chain_depth else ""
                click.echo(colors.style(name, f"[{name}]") + click.style(depth, fg="bright_black"))
                click.echo(colors.style(name, message.content))
            click.echo()
        return CommandResult()

    def show(self, args: list[str]) -> CommandResult:
        if not args:
            _warn("\n⚠ Please specify an agent name")
            _dim("Usage: /show <agent-name>\n")
            click.secho("Available agents in this meeting:", bold=True)
            for agent in self.room.roster:
                click.echo(f"  {click.style(agent.name, fg='cyan')}")
            click.echo()
            return CommandResult()

        agent = self.room.find_agent(args[0])
        if agent is None:
            _error(f"\n✗ Agent not found in meeting: {args[0]}")
            _dim("Use /participants to see meeting participants\n")
            return CommandResult()

        prompt = build_system_prompt(agent, self.room.profile())
        prompt += build_meeting_context(agent, self.room.roster, self.session)
        params = agent.model_params

        click.secho(f"\n{WIDE_RULE}", bold=True)
        click.secho(f"🤖 Agent Configuration: {agent.name}", bold=True, fg="cyan")
        click.secho(f"{WIDE_RULE}\n", bold=True)
        click.secho("📋 Basic Information:", bold=True)
        click.echo(f"  Name:          {agent.name}")
        click.echo(f"  Model:         {agent.model}\n")
        click.secho("⚙️  Model Parameters:", bold=True)
        click.echo(f"  Context Size:  {params.ctx_size}")
        click.echo(f"  Max Tokens:    {params.max_tokens}")
        click.echo(f"  Temperature:   {params.temperature}")
        click.echo(f"  Top P:         {params.top_p}")
        click.echo(f"  Top K:         {params.top_n}\n")

        if agent.attributes:
            click.secho("🏷️  Agent Attributes:", bold=True)
            for line in json.dumps(agent.attributes, indent=2).splitlines():
                _dim(f"  {line}")
            click.echo()

        click.secho("🧠 Generated System Prompt:", bold=True)
        _dim(LINE_RULE)
        click.echo(prompt)
        _dim(LINE_RULE)

        click.secho("\n📊 System Prompt Stats:", bold=True)
        click.echo(f"  Characters:    {len(prompt)}")
        click.echo(f"  Est. Tokens:   {estimate_tokens(prompt)} (~4 chars/token)")
        click.secho(f"{WIDE_RULE}\n", bold=True)
        return CommandResult()

    # --- Room membership ---

    def add(self, args: list[str]) -> CommandResult:
        if not args:
            _error("\nAgent name is required")
            _dim("Usage: /add <agent-name>\n")
            return CommandResult()

        name = args[0]
        if has_participant(self.session, name):
            _warn(f"\n⚠ {name} is already in the room\n")
            return CommandResult()

        storage = self.room.storage
        try:
            agent = storage.load_agent(name)
        except AgentNotFoundError:
            _error(f"\n✗ Agent not found: {name}")
            _dim(f"Create an agent with: ai agent new {name}\n")
            return CommandResult()

        try:
            self.lock_scope.acquire(agent.name)
        except AgentLockedError:
            _error(f"\n⚠ {agent.name} is currently busy in another session.")
            _warn("Please try again when they are available.\n")
            return CommandResult()

        add_participant(self.session, agent.name)
        self.room.roster.append(agent)
        self.room.save()

        click.echo(click.style("\n✓ ", fg="green") + self.room.colors.style(agent.name, agent.name)
                   + click.style(" joined the room", fg="green"))
        _dim(f"  Model: {agent.model}")
        _dim(f"  Role: {agent.role_summary}\n")
        return CommandResult(CommandAction.UPDATED)

    def remove(self, args: list[str]) -> CommandResult:
        if not args:
            _error("\nAgent name is required")
            _dim("Usage: /remove <agent-name>\n")
            return CommandResult()

        name = args[0]
        if not has_participant(self.session, name):
            _warn(f"\n⚠ {name} is not in the room\n")
            return CommandResult()

        if len(self.session.agent_names) <= MIN_PARTICIPANTS:
            _error(f"\n✗ Cannot remove agent - at least {MIN_PARTICIPANTS} agents must remain in the room")
            _dim("If you want to end this meeting, use /quit\n")
            return CommandResult()

        removed = remove_participant(self.session, name)
        self.room.roster = [a for a in self.room.roster if a.name.lower() != removed.lower()]
        drop_buffered_for(self.session, removed)
        self.lock_scope.release(removed)
        self.room.save()

        click.echo(click.style("\n✓ ", fg="green") + self.room.colors.style(removed, removed)
                   + click.style(" left the room\n", fg="green"))
        return CommandResult(CommandAction.UPDATED)

    # --- Responses ---

    def respond(self, args: list[str]) -> CommandResult:
        colors = self.room.colors
        if not args:
            _error("Agent name is required")
            click.echo("Usage: /respond <agent-name>")
            click.echo("\nAgents with raised hands (buffered responses):")
            if not self.session.buffered_responses:
                _dim("  (none)")
            for entry in self.session.buffered_responses:
                click.echo(f"  {colors.style(entry.agent_name, entry.agent_name)}")
            click.echo()
            return CommandResult()

        agent = self.room.find_agent(args[0])
        if agent is None:
            _error(f"Agent not found in room: {args[0]}")
            return CommandResult()

        message = consume_buffered(self.session, agent.name)
        if message is None:
            _warn(f"\n⚠ {agent.name} does not have a raised hand (no buffered response)")
            _dim(f"To ask {agent.name} to respond to the current chat, use: /@ {agent.name}\n")
            return CommandResult()

        click.echo(colors.style(agent.name, f"\n{agent.name}:", bold=True))
        renderer = SpeakerAwareRenderer(agent.name, self.room.participant_names, colors)
        renderer.feed(message.content)
        renderer.finish()
        click.echo()
        self.room.save()
        return CommandResult(CommandAction.UPDATED)

    async def force(self, args: list[str]) -> CommandResult:
        if not args:
            _error("Agent name is required")
            click.echo("Usage: /@ <agent-name>")
            click.echo("\nCurrent participants:")
            for agent in self.room.roster:
                click.echo(f"  {self.room.colors.style(agent.name, agent.name)}")
            click.echo()
            return CommandResult()

        agent = self.room.find_agent(args[0])
        if agent is None:
            _error(f"Agent not found in room: {args[0]}")
            return CommandResult()

        click.secho(f"\nAsking {agent.name} to respond...\n", fg="blue")
        message = await self.orchestrator.force_response(agent)
        if message is None:
            return CommandResult()
        return CommandResult(CommandAction.UPDATED)

    # --- Settings ---

    def chain_length(self, args: list[str]) -> CommandResult:
        session = self.session
        if not args:
            click.secho("\n🔗 Agent-to-Agent Chain Settings\n", bold=True)
            click.echo(f"  Max Chain Length: {click.style(str(session.max_chain_length), fg='cyan')}\n")
            _dim("This controls how many times agents can respond to each other")
            _dim("before the conversation returns to the user.\n")
            _dim("Example chain (max length 3):")
            _dim("  User → Agent A (depth 0)")
            _dim("  Agent A → Agent B (depth 1)")
            _dim("  Agent B → Agent C (depth 2)")
            _dim("  Agent C → Agent A (depth 3) - MAX REACHED\n")
            _dim(f"Use /chain-length <number> to change (current: {session.max_chain_length})\n")
            return CommandResult()

        new_length = _parse_count(args[0])
        if new_length is None:
            _error("Invalid chain length. Must be a non-negative number.")
            _dim("Use 0 to disable agent-to-agent chaining.")
            return CommandResult()

        old_length = session.max_chain_length
        session.max_chain_length = new_length
        self.room.save()

        click.secho(f"\n✓ Max chain length updated: {old_length} → {new_length}", fg="green")
        if new_length == 0:
            _warn("⚠ Agent-to-agent chaining is now disabled.")
            _dim("Agents can still @mention each other, but won't auto-respond.")
        elif new_length > HIGH_CHAIN_LENGTH:
            _warn(f"⚠ Chain length of {new_length} may result in very long conversations.")
        click.echo()
        return CommandResult(CommandAction.UPDATED)

    def check_in_limit(self, args: list[str]) -> CommandResult:
        session = self.session
        if not args:
            click.secho("\n🔔 Agent Check-In Settings\n", bold=True)
            click.echo(
                f"  Check-In Token Limit: {click.style(str(session.check_in_token_limit), fg='cyan')}\n"
            )
            _dim("This controls when agents should pause and check in with you")
            _dim("during agent-to-agent conversations.\n")
            _dim("Agents are instructed to check in:")
            _dim(f"  • After ~{session.check_in_token_limit} tokens of conversation")
            _dim("  • After major decisions")
            _dim("  • When needing user input/approval\n")
            _dim(f"Use /check-in-limit <number> to change (current: {session.check_in_token_limit})\n")
            return CommandResult()

        new_limit = _parse_count(args[0])
        if new_limit is None:
            _error("Invalid check-in limit. Must be a non-negative number.")
            _dim("Typical values: 512 (frequent), 1024, 2048 (infrequent)")
            return CommandResult()

        old_limit = session.check_in_token_limit
        session.check_in_token_limit = new_limit
        self.room.save()

        click.secho(f"\n✓ Check-in token limit updated: {old_limit} → {new_limit}", fg="green")
        if new_limit < LOW_CHECK_IN_LIMIT:
            _warn("⚠ Very low limit - agents will check in frequently.")
        elif new_limit > HIGH_CHECK_IN_LIMIT:
            _warn("⚠ High limit - agents may have very long discussions before checking in.")
        click.echo()
        return CommandResult(CommandAction.UPDATED)

    # --- History management ---

    def _offer_archive(self, question: str) -> None:
        session = self.session
        if not session.shared_messages and not session.buffered_responses:
            return
        if not click.confirm(click.style(question, fg="yellow"), default=False):
            return

        default_name = f"{session.room_name}-{datetime.now():%Y%m%d-%H%M%S}"
        name = click.prompt(click.style("Enter a name for this chat", fg="cyan"), default=default_name)
        path = self.room.storage.save_archive(name.strip() or default_name, session)
        click.secho(f"✓ Chat saved to archive: {path.stem}", fg="green")
        _dim(f"  Location: {path}")

    def clear(self, args: list[str]) -> CommandResult:
        self._offer_archive("Save chat history before clearing?")
        clear_history(self.session)
        self.room.save()
        click.secho("✓ Cleared room history", fg="green")
        return CommandResult(CommandAction.UPDATED)

    def restore(self, args: list[str]) -> CommandResult:
        storage = self.room.storage
        if not args:
            return self._list_archives()

        try:
            archived = storage.load_archive(args[0])
        except ArchiveNotFoundError as e:
            _error(f"\n✗ {e}")
            _dim("Use /restore to see available archives\n")
            return CommandResult()

        self._offer_archive("Save current chat before restoring?")

        if isinstance(archived, ChatSession):
            click.secho(f"\n✓ Restoring agent chat: {archived.agent_name}", fg="green")
            _dim(f"  Messages: {len(archived.messages)}\n")
            storage.save_session(archived)
            return CommandResult(CommandAction.SWITCH_AGENT, archived.agent_name)

        click.secho(f"\n✓ Restoring meeting room: {archived.room_name}", fg="green")
        _dim(f"  Participants: {', '.join(archived.agent_names)}")
        _dim(f"  Messages: {len(archived.shared_messages)}")

        if archived.room_name == self.session.room_name:
            replace_history(self.session, archived)
            self.room.save()
            click.secho("\n✓ Room history restored, use /history to show the previous conversation\n", fg="green")
            return CommandResult(CommandAction.UPDATED)

        archived.id = room_id(archived.room_name)
        storage.save_meeting_session(archived)
        _dim(f"  Switching to room: {archived.room_name}\n")
        return CommandResult(CommandAction.SWITCH_ROOM, archived.room_name)

    def _list_archives(self) -> CommandResult:
        storage = self.room.storage
        names = storage.list_archives()
        if not names:
            _warn("\n⚠ No archived chats found")
            _dim("Use /clear to save your current chat to the archive\n")
            return CommandResult()

        click.secho("\n📦 Archived Chats\n", bold=True)
        for name in names:
            click.echo(f"  {click.style(name, fg='cyan')}")
            try:
                archived = storage.load_archive(name)
            except ArchiveNotFoundError:
                continue
            if isinstance(archived, MeetingSession):
                kind, count = "Meeting Room", len(archived.shared_messages)
            else:
                kind, count = "Agent Chat", len(archived.messages)
            _dim(f"    Type: {kind}")
            _dim(f"    Messages: {count}")
            _dim(f"    Updated: {archived.updated_at}")
        _dim("\nUsage: /restore <archive-name>\n")
        return CommandResult()

    # --- Mode changes ---

    def switch_agent(self, args: list[str]) -> CommandResult:
        storage = self.room.storage
        if not args:
            names = storage.list_agents()
            if not names:
                _error("No agents available")
                return CommandResult()
            click.secho("\n🤖 Available Agents\n", bold=True)
            for name in names:
                try:
                    agent = storage.load_agent(name)
                except AgentNotFoundError:
                    click.echo(f"  {click.style(name, fg='cyan')}")
                    continue
                click.echo(f"  {click.style(name, fg='cyan')} - {click.style(agent.model, fg='bright_black')}")
                _dim(f"    {agent.role_summary}")
            _dim("\nUsage: /agent <agent-name>\n")
            return CommandResult()

        name = args[0]
        if not storage.agent_exists(name):
            _error(f"\n✗ Agent not found: {name}")
            _dim("Use /agent to see available agents\n")
            return CommandResult()

        click.secho(f"\n✓ Switching to agent: {name}", fg="green")
        _dim("Leaving meeting and loading agent session...\n")
        return CommandResult(CommandAction.SWITCH_AGENT, name)

    def quit(self, args: list[str]) -> CommandResult:
        return CommandResult(CommandAction.EXIT)


def estimate_tokens(text: str) -> int:
    """Rough token estimate at four characters per token."""
    return -(-len(text) // 4)
