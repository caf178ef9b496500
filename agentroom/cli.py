"""CLI for agentroom - local AI agents and multi-agent meetings."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from agentroom import __version__
from agentroom.client import ModelClient
from agentroom.locks import AgentLockedError
from agentroom.schemas import Agent, ModelParams, now_iso
from agentroom.storage import AgentNotFoundError, Storage, room_id

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _fail(message: str, hint: str | None = None) -> None:
    click.secho(f"✗ {message}", fg="red", err=True)
    if hint:
        click.secho(hint, fg="bright_black", err=True)
    sys.exit(1)


def _fail_missing_agent(e: AgentNotFoundError) -> None:
    _fail(str(e), f"Create an agent with: ai agent new {e.name} --model <model>")


def _fail_locked_agent(e: AgentLockedError) -> None:
    _fail(str(e), "Please try again when they are available, or run 'ai agent unlock' if the lock is stale.")


@click.group()
@click.version_option(version=__version__, prog_name="agentroom")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="AI_HOME",
    default=None,
    help="Data directory (defaults to ~/.ai)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, home: Path | None, verbose: bool) -> None:
    """agentroom - chat with local AI agents, alone or in meeting rooms.

    Agents are named model + prompt configurations. Put several of them in
    a meeting room and address them by name or @mention.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
    storage = Storage(home)
    storage.init()
    ctx.obj = storage


# --- Meetings ---


@main.group()
def meeting() -> None:
    """Multi-agent meeting rooms."""
    pass


@meeting.command("start")
@click.argument("room")
@click.argument("agents", nargs=-1)
@click.pass_obj
def meeting_start(storage: Storage, room: str, agents: tuple[str, ...]) -> None:
    """Start a new meeting room or resume an existing one.

    Agents listed for an existing room join it.

    \b
    Example:
        ai meeting start planning ceo cto cfo
        ai meeting start planning
    """
    from agentroom.meeting import MeetingSetupError, start_or_resume_meeting

    try:
        start_or_resume_meeting(storage, room, list(agents))
    except AgentNotFoundError as e:
        _fail_missing_agent(e)
    except AgentLockedError as e:
        _fail_locked_agent(e)
    except MeetingSetupError as e:
        _fail(str(e), f"Usage: ai meeting start {room} <agent1> <agent2> [...]")


@meeting.command("list")
@click.pass_obj
def meeting_list(storage: Storage) -> None:
    """List saved meeting rooms."""
    ids = storage.list_meeting_sessions()
    if not ids:
        click.echo("No meeting rooms yet. Start one with 'ai meeting start <room> <agents...>'.")
        return

    click.echo("Meeting rooms:")
    for session_id in ids:
        session = storage.load_meeting_session(session_id)
        if session is None:
            click.echo(f"  - {session_id} (unreadable)")
            continue
        click.echo(
            f"  - {session.room_name}: {', '.join(session.agent_names)} "
            f"({len(session.shared_messages)} messages, updated {session.updated_at})"
        )


@meeting.command("reset")
@click.argument("room")
@click.option("--archive", "archive_name", default=None, help="Archive the history under this name first")
@click.pass_obj
def meeting_reset(storage: Storage, room: str, archive_name: str | None) -> None:
    """Clear a room's history and raised hands, keeping its participants."""
    from agentroom.meeting.session import clear_history

    session = storage.load_meeting_session(room_id(room))
    if session is None:
        _fail(f"Meeting room not found: {room}", "List rooms with: ai meeting list")

    if archive_name:
        path = storage.save_archive(archive_name, session)
        click.echo(f"Archived to {path}")

    clear_history(session)
    storage.save_meeting_session(session)
    click.echo(f"Cleared room history: {room}")


# --- Agents ---


@main.group()
def agent() -> None:
    """Manage agents."""
    pass


@agent.command("new")
@click.argument("name")
@click.option("--model", "-m", required=True, help="Model identifier served by the endpoint")
@click.option("--prompt", "-p", "system_prompt", default="You are a helpful AI assistant.", help="System prompt")
@click.option("--ctx-size", default=4096, show_default=True, help="Context window size")
@click.option("--max-tokens", default=1024, show_default=True, help="Max tokens per reply")
@click.option("--temperature", default=0.7, show_default=True, help="Sampling temperature")
@click.option("--top-p", default=0.9, show_default=True, help="Nucleus sampling threshold")
@click.option("--top-n", default=40, show_default=True, help="Top-k sampling cutoff")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing agent")
@click.pass_obj
def agent_new(
    storage: Storage,
    name: str,
    model: str,
    system_prompt: str,
    ctx_size: int,
    max_tokens: int,
    temperature: float,
    top_p: float,
    top_n: int,
    force: bool,
) -> None:
    """Create an agent.

    \b
    Example:
        ai agent new cto --model ai/llama3.2 --prompt "You are the CTO."
    """
    from pydantic import ValidationError

    if storage.agent_exists(name) and not force:
        _fail(f"Agent already exists: {name}", "Use --force to overwrite it")

    try:
        new_agent = Agent(
            name=name,
            model=model,
            system_prompt=system_prompt,
            model_params=ModelParams(
                ctx_size=ctx_size,
                max_tokens=max_tokens,
                temperature=temperature,
                top_p=top_p,
                top_n=top_n,
            ),
        )
    except ValidationError as e:
        _fail(f"Invalid agent definition: {e.errors()[0]['msg']}")

    if force and storage.agent_exists(name):
        new_agent.created_at = storage.load_agent(name).created_at
        new_agent.updated_at = now_iso()

    storage.save_agent(new_agent)
    click.echo(f"✓ Created agent: {name} ({model})")


@agent.command("list")
@click.pass_obj
def agent_list(storage: Storage) -> None:
    """List agents."""
    names = storage.list_agents()
    if not names:
        click.echo("No agents yet. Create one with 'ai agent new <name> --model <model>'.")
        return

    click.echo("Agents:")
    for name in names:
        try:
            loaded = storage.load_agent(name)
        except AgentNotFoundError:
            click.echo(f"  - {name} (invalid)")
            continue
        busy = " [busy]" if storage.is_agent_locked(loaded.name) else ""
        click.echo(f"  - {loaded.name} ({loaded.model}){busy}")


@agent.command("show")
@click.argument("name")
@click.pass_obj
def agent_show(storage: Storage, name: str) -> None:
    """Show an agent's stored configuration as JSON."""
    try:
        loaded = storage.load_agent(name)
    except AgentNotFoundError as e:
        _fail_missing_agent(e)
    click.echo(loaded.to_json())


@agent.command("unlock")
@click.argument("name")
@click.pass_obj
def agent_unlock(storage: Storage, name: str) -> None:
    """Remove an agent's lock, e.g. after a crashed session."""
    owner = storage.locks.owner(name)
    storage.unlock_agent(name)
    if owner is None:
        click.echo(f"{name} was not locked")
    else:
        click.echo(f"✓ Unlocked {name} (was held by pid {owner})")


# --- Single agent ---


@main.command()
@click.argument("agent_name")
@click.argument("prompt", nargs=-1)
@click.pass_obj
def run(storage: Storage, agent_name: str, prompt: tuple[str, ...]) -> None:
    """Chat with a single agent, or send it one prompt.

    \b
    Example:
        ai run cto
        ai run cto "Summarize our architecture options"
    """
    from agentroom.chat import run_chat

    try:
        run_chat(storage, agent_name, prompt=" ".join(prompt) if prompt else None)
    except AgentNotFoundError as e:
        _fail_missing_agent(e)
    except AgentLockedError as e:
        _fail_locked_agent(e)


@main.command()
@click.pass_obj
def status(storage: Storage) -> None:
    """Show configuration and whether the model endpoint is reachable."""
    config = storage.load_config()
    client = ModelClient.from_config(config)
    healthy = asyncio.run(client.health_check())

    click.echo(f"Home:      {storage.base_dir}")
    click.echo(f"Profile:   {config.current_profile}")
    click.echo(f"Endpoint:  {client.completions_url}")
    if healthy:
        click.secho("Status:    ✓ reachable", fg="green")
    else:
        click.secho("Status:    ✗ unreachable", fg="red")

    names = storage.list_agents()
    busy = [n for n in names if storage.is_agent_locked(n)]
    click.echo(f"Agents:    {len(names)} ({len(busy)} busy)")
    click.echo(f"Rooms:     {len(storage.list_meeting_sessions())}")

    if not healthy:
        sys.exit(1)


if __name__ == "__main__":
    main()
