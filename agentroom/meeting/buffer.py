"""Raised hands: replies held back until the user asks for them."""

from __future__ import annotations

from agentroom.meeting.session import append_agent_message, refresh_metadata
from agentroom.schemas import BufferedResponse, MeetingMessage, MeetingSession


def push_buffered(session: MeetingSession, agent_name: str, content: str) -> BufferedResponse:
    """Queue a reply. No deduplication: a fresh user turn clears the queue first."""
    entry = BufferedResponse(agent_name=agent_name, content=content)
    session.buffered_responses.append(entry)
    refresh_metadata(session)
    return entry


def find_buffered(session: MeetingSession, agent_name: str) -> BufferedResponse | None:
    for entry in session.buffered_responses:
        if entry.agent_name.lower() == agent_name.lower():
            return entry
    return None


def consume_buffered(session: MeetingSession, agent_name: str) -> MeetingMessage | None:
    """Move an agent's buffered reply into the shared log.

    The message keeps the time the reply was produced. Returns None when the
    agent has no raised hand.
    """
    entry = find_buffered(session, agent_name)
    if entry is None:
        return None
    session.buffered_responses.remove(entry)
    return append_agent_message(
        session,
        entry.agent_name,
        entry.content,
        timestamp=entry.timestamp,
    )


def clear_buffered(session: MeetingSession) -> int:
    """Discard every raised hand; returns how many were dropped."""
    dropped = len(session.buffered_responses)
    if dropped:
        session.buffered_responses = []
        refresh_metadata(session)
    return dropped


def drop_buffered_for(session: MeetingSession, agent_name: str) -> None:
    session.buffered_responses = [
        b for b in session.buffered_responses if b.agent_name.lower() != agent_name.lower()
    ]
    refresh_metadata(session)
