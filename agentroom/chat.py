"""Single-agent chat mode."""

from __future__ import annotations

import asyncio
import logging

import click

from agentroom.client import ModelClient
from agentroom.locks import LockScope
from agentroom.meeting.colors import ColorAssigner
from agentroom.meeting.renderer import SpeakerAwareRenderer
from agentroom.prompt_engine import build_system_prompt
from agentroom.schemas import (
    Agent,
    ChatCompletionRequest,
    ChatMessage,
    ChatSession,
    MeetingMessage,
    Profile,
    now_iso,
)
from agentroom.storage import Storage, sanitize_id
from agentroom.streaming import AbortWatcher, StreamOutcome, no_abort, stream_completion
from agentroom.terminal import TYPING_NOTE, keypress_abort, read_input, terminate_as_interrupt

logger = logging.getLogger(__name__)

CHAT_HELP = """
  /help, /h                  - Show this help
  /clear, /c                 - Clear the conversation
  /history [count]           - Show recent messages
  /quit, /q, /exit, /e, /x   - Exit
  Ctrl+D                     - Abort the response being streamed
"""

QUIT_COMMANDS = {"quit", "q", "exit", "e", "x"}


def chat_session_id(agent_name: str) -> str:
    """One persistent conversation per agent."""
    return f"session-{sanitize_id(agent_name)}"


def load_or_create_chat(storage: Storage, agent_name: str) -> ChatSession:
    session = storage.load_session(chat_session_id(agent_name))
    if session is None:
        session = ChatSession(id=chat_session_id(agent_name), agent_name=agent_name)
    return session


def build_chat_request(agent: Agent, profile: Profile, session: ChatSession) -> ChatCompletionRequest:
    """System prompt followed by the plain conversation."""
    messages = [ChatMessage(role="system", content=build_system_prompt(agent, profile))]
    messages.extend(ChatMessage(role=m.role, content=m.content) for m in session.messages)
    params = agent.model_params
    return ChatCompletionRequest(
        model=agent.model,
        messages=messages,
        max_tokens=params.max_tokens,
        temperature=params.temperature,
        top_p=params.top_p,
        top_k=params.top_n,
        stream=True,
    )


async def send_chat_message(
    storage: Storage,
    agent: Agent,
    session: ChatSession,
    text: str,
    client: ModelClient,
    colors: ColorAssigner,
    abort_watcher: AbortWatcher = no_abort,
) -> StreamOutcome:
    """Send one user line and stream the reply.

    The user line is kept only if the agent answered, so an aborted or failed
    turn leaves the saved conversation unchanged.
    """
    user_message = MeetingMessage(role="user", content=text)
    session.messages.append(user_message)

    request = build_chat_request(agent, storage.load_profile(storage.load_config().current_profile), session)
    renderer = SpeakerAwareRenderer(agent.name, [agent.name], colors)
    click.echo(colors.style(agent.name, f"\n{agent.name}:", bold=True))
    outcome = await stream_completion(client, request, renderer, abort_watcher, speaker=agent.name)

    if outcome.aborted or outcome.error is not None:
        session.messages.remove(user_message)
        return outcome

    session.messages.append(
        MeetingMessage(role="assistant", content=outcome.content, agent_name=agent.name)
    )
    session.updated_at = now_iso()
    storage.save_session(session)
    return outcome


def _show_history(session: ChatSession, colors: ColorAssigner, args: list[str]) -> None:
    count = 10
    if args and args[0].isdigit() and int(args[0]) > 0:
        count = int(args[0])
    recent = session.messages[-count:]
    if not recent:
        click.secho("\n(No message history)\n", fg="bright_black")
        return
    for message in recent:
        speaker = message.agent_name or "user"
        label = "[User]" if message.role == "user" else f"[{speaker}]"
        click.echo(colors.style(speaker, label))
        click.echo(message.content + "\n")


def run_chat(
    storage: Storage,
    agent_name: str,
    client: ModelClient | None = None,
    colors: ColorAssigner | None = None,
    prompt: str | None = None,
) -> None:
    """Chat with one agent, holding its lock for the whole session.

    With ``prompt`` a single exchange is made and the function returns.

    Raises:
        AgentNotFoundError: If the agent does not exist
        AgentLockedError: If the agent is busy in another session
    """
    agent = storage.load_agent(agent_name)
    client = client or ModelClient.from_config(storage.load_config())
    colors = colors or ColorAssigner()

    try:
        with terminate_as_interrupt(), LockScope(storage.locks, [agent.name]):
            session = load_or_create_chat(storage, agent.name)

            if prompt is not None:
                asyncio.run(send_chat_message(storage, agent, session, prompt, client, colors))
                return

            click.secho(f"Using agent: {agent.name} ({agent.model})", fg="bright_black")
            if session.messages:
                click.secho(f"Continuing session with {len(session.messages)} message(s)", fg="bright_black")
            click.secho("Type /help for commands. Press Ctrl+D to abort a response.", fg="bright_black")
            click.secho(f"{TYPING_NOTE}\n", fg="bright_black")
            _chat_loop(storage, agent, session, client, colors)
    except KeyboardInterrupt:
        click.secho("\n\n⚠ Interrupted. Agent unlocked.", fg="yellow")
        return

    click.secho("Goodbye!\n", fg="bright_black")


def _chat_loop(
    storage: Storage,
    agent: Agent,
    session: ChatSession,
    client: ModelClient,
    colors: ColorAssigner,
) -> None:
    while True:
        text = read_input()
        if text is None:
            return
        if not text:
            continue

        if text.startswith("/"):
            parts = text[1:].split()
            command = parts[0].lower() if parts else ""
            if command in QUIT_COMMANDS:
                return
            if command in ("", "help", "h"):
                click.echo(CHAT_HELP)
            elif command in ("clear", "c"):
                session.messages = []
                session.updated_at = now_iso()
                storage.save_session(session)
                click.secho("✓ Cleared conversation", fg="green")
            elif command == "history":
                _show_history(session, colors, parts[1:])
            else:
                click.secho(f"Unknown command: /{command}", fg="red", err=True)
            continue

        asyncio.run(
            send_chat_message(storage, agent, session, text, client, colors, keypress_abort)
        )
