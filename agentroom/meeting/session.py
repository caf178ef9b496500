"""Mutations of a MeetingSession that keep its summary metadata current."""

from __future__ import annotations

from agentroom.schemas import (
    MeetingMessage,
    MeetingMetadata,
    MeetingSession,
    TargetedMessage,
    now_iso,
)
from agentroom.storage import room_id

MIN_PARTICIPANTS = 2


def new_meeting_session(
    room_name: str,
    agent_names: list[str],
    profile_name: str = "default",
) -> MeetingSession:
    """Create an empty room. Participant order is display order."""
    names = list(dict.fromkeys(agent_names))
    session = MeetingSession(
        id=room_id(room_name),
        room_name=room_name,
        agent_names=names,
        profile_name=profile_name,
    )
    refresh_metadata(session)
    return session


def refresh_metadata(session: MeetingSession) -> None:
    """Recompute denormalized fields and bump ``updated_at``."""
    session.metadata.active_agents = list(session.agent_names)
    session.metadata.total_messages = len(session.shared_messages)
    session.updated_at = now_iso()


def append_user_message(
    session: MeetingSession,
    targeted: TargetedMessage,
    chain_depth: int = 0,
) -> MeetingMessage:
    message = MeetingMessage(
        role="user",
        content=targeted.content,
        target_agent=", ".join(targeted.targeted_agents) or None,
        chain_depth=chain_depth,
    )
    session.shared_messages.append(message)
    refresh_metadata(session)
    return message


def append_agent_message(
    session: MeetingSession,
    agent_name: str,
    content: str,
    chain_depth: int = 0,
    timestamp: str | None = None,
) -> MeetingMessage:
    message = MeetingMessage(
        role="assistant",
        content=content,
        agent_name=agent_name,
        chain_depth=chain_depth,
        timestamp=timestamp or now_iso(),
    )
    session.shared_messages.append(message)
    refresh_metadata(session)
    return message


def retract_message(session: MeetingSession, message: MeetingMessage) -> bool:
    """Remove ``message`` if it is still the newest entry of the log.

    Used when a turn is cancelled so no user turn is left without a reply.
    """
    if session.shared_messages and session.shared_messages[-1] is message:
        session.shared_messages.pop()
        refresh_metadata(session)
        return True
    return False


def last_user_message(session: MeetingSession) -> MeetingMessage | None:
    for message in reversed(session.shared_messages):
        if message.role == "user":
            return message
    return None


def clear_history(session: MeetingSession) -> None:
    """Drop the whole conversation and all raised hands."""
    session.shared_messages = []
    session.buffered_responses = []
    session.metadata.last_response_stats = None
    refresh_metadata(session)


def replace_history(session: MeetingSession, source: MeetingSession) -> None:
    """Wholesale replace the log and buffer with those of ``source``."""
    session.shared_messages = [m.model_copy() for m in source.shared_messages]
    session.buffered_responses = [b.model_copy() for b in source.buffered_responses]
    session.metadata = MeetingMetadata(
        last_response_stats=source.metadata.last_response_stats,
    )
    refresh_metadata(session)


def has_participant(session: MeetingSession, name: str) -> bool:
    return any(n.lower() == name.lower() for n in session.agent_names)


def add_participant(session: MeetingSession, name: str) -> bool:
    if has_participant(session, name):
        return False
    session.agent_names.append(name)
    refresh_metadata(session)
    return True


def remove_participant(session: MeetingSession, name: str) -> str | None:
    """Remove a participant by case-insensitive name; returns the stored name."""
    for stored in session.agent_names:
        if stored.lower() == name.lower():
            session.agent_names.remove(stored)
            refresh_metadata(session)
            return stored
    return None
