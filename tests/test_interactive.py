"""Tests for entering, running and leaving a meeting room."""

from unittest.mock import patch

import pytest

from agentroom.locks import AgentLockedError, AgentLockManager
from agentroom.meeting import MeetingSetupError, start_or_resume_meeting
from agentroom.meeting.orchestrator import MeetingOrchestrator
from agentroom.terminal import TYPING_NOTE

PARTICIPANTS = ["ceo", "cto", "cfo"]


@pytest.fixture
def agents(make_agent):
    return [make_agent(name) for name in PARTICIPANTS]


def locked(storage) -> list[str]:
    return [name for name in PARTICIPANTS if storage.is_agent_locked(name)]


class TestLockLifetime:
    """Every participant is locked while the room runs and released on any exit."""

    def test_locked_while_running(self, storage, agents, fake_client):
        seen = {}

        def prompt(*args, **kwargs):
            seen["locked"] = locked(storage)
            return None

        with patch("agentroom.meeting.interactive.read_input", side_effect=prompt):
            start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert seen["locked"] == PARTICIPANTS
        assert locked(storage) == []

    def test_quit_releases_locks(self, storage, agents, fake_client, capsys):
        with patch("agentroom.meeting.interactive.read_input", side_effect=["/quit"]):
            start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert locked(storage) == []
        assert "Goodbye!" in capsys.readouterr().out

    def test_ctrl_c_at_prompt_releases_locks(self, storage, agents, fake_client, capsys):
        with patch("agentroom.meeting.interactive.read_input", side_effect=KeyboardInterrupt):
            start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert locked(storage) == []
        assert "Agents unlocked" in capsys.readouterr().out
        assert storage.load_meeting_session("room-planning") is not None

    def test_ctrl_c_mid_turn_releases_locks(self, storage, agents, fake_client):
        with patch("agentroom.meeting.interactive.read_input", side_effect=["hello everyone"]), \
                patch.object(MeetingOrchestrator, "handle_user_message", side_effect=KeyboardInterrupt):
            start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert locked(storage) == []

    def test_uncaught_error_mid_turn_releases_locks(self, storage, agents, fake_client):
        """An unexpected error still ends the room with every lock released."""
        with patch("agentroom.meeting.interactive.read_input", side_effect=["hello everyone"]), \
                patch.object(MeetingOrchestrator, "handle_user_message", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError, match="disk full"):
                start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert locked(storage) == []

    def test_switch_to_single_agent_releases_room_first(self, storage, agents, fake_client):
        seen = {}

        def fake_run_chat(store, agent_name, **kwargs):
            seen["agent"] = agent_name
            seen["locked"] = locked(store)

        with patch("agentroom.meeting.interactive.read_input", side_effect=["/agent ceo"]), \
                patch("agentroom.chat.run_chat", side_effect=fake_run_chat):
            start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert seen == {"agent": "ceo", "locked": []}


class TestRoomEntry:
    """Test failures before any lock is taken."""

    def test_busy_participant_fails_without_locking(self, storage, agents, fake_client):
        AgentLockManager(storage.locks.lock_dir, pid=1).lock("cfo")

        with patch("agentroom.locks.is_process_alive", return_value=True):
            with pytest.raises(AgentLockedError):
                start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        assert not storage.is_agent_locked("ceo")
        assert not storage.is_agent_locked("cto")
        assert storage.load_meeting_session("room-planning") is None

    def test_new_room_needs_two_agents(self, storage, agents, fake_client):
        with pytest.raises(MeetingSetupError):
            start_or_resume_meeting(storage, "planning", ["ceo"], client=fake_client)
        assert locked(storage) == []


class TestBanner:
    """Test the notes printed on entering a room."""

    def test_warns_that_typing_during_a_reply_is_discarded(self, storage, agents, fake_client, capsys):
        with patch("agentroom.meeting.interactive.read_input", side_effect=[None]):
            start_or_resume_meeting(storage, "planning", PARTICIPANTS, client=fake_client)

        out = capsys.readouterr().out
        assert "Ctrl+D to abort a response" in out
        assert TYPING_NOTE in out
