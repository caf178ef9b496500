"""Tests for JSON file storage."""

import json

import pytest

from agentroom.meeting.session import new_meeting_session
from agentroom.schemas import Agent, ChatSession, Config, MeetingSession, Profile
from agentroom.storage import (
    AgentNotFoundError,
    ArchiveNotFoundError,
    Storage,
    room_id,
    sanitize_id,
)


class TestStorageLayout:
    """Test initialization and configuration."""

    def test_init_creates_layout(self, storage):
        for sub in Storage.SUBDIRS:
            assert (storage.base_dir / sub).is_dir()
        assert storage.load_config() == Config()
        assert storage.load_profile("default").name == "default"

    def test_config_is_camel_case(self, storage):
        storage.save_config(Config(current_profile="dana", endpoint="http://gpu:8080"))
        data = json.loads((storage.base_dir / "config.json").read_text())
        assert data["currentProfile"] == "dana"
        assert data["requestTimeout"] == 300.0
        assert storage.load_config().endpoint == "http://gpu:8080"

    def test_invalid_config_falls_back(self, storage):
        (storage.base_dir / "config.json").write_text('{"requestTimeout": -1}')
        assert storage.load_config() == Config()

    def test_home_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AI_HOME", str(tmp_path / "elsewhere"))
        assert Storage().base_dir == tmp_path / "elsewhere"

    def test_missing_profile_is_empty(self, storage):
        profile = storage.load_profile("nobody")
        assert profile.name == "nobody"
        assert profile.attributes == {}

    def test_profile_round_trip(self, storage):
        storage.save_profile(Profile(name="dana", attributes={"role": "founder"}))
        assert storage.load_profile("dana").attributes == {"role": "founder"}

    @pytest.mark.parametrize(
        "value, expected",
        [("planning", "planning"), ("Q1 plan/x", "Q1-plan-x"), ("../etc", "etc"), ("   ", "unnamed")],
    )
    def test_sanitize_id(self, value, expected):
        assert sanitize_id(value) == expected

    def test_room_id(self):
        assert room_id("Q1 Planning") == "room-Q1-Planning"


class TestAgents:
    """Test agent persistence."""

    def test_round_trip(self, storage, make_agent):
        make_agent("ceo", attributes={"tone": "direct"})
        loaded = storage.load_agent("ceo")
        assert loaded.model == "model-ceo"
        assert loaded.attributes == {"tone": "direct"}
        assert storage.list_agents() == ["ceo"]
        assert storage.agent_exists("ceo")

    def test_stored_as_camel_case(self, storage, make_agent):
        make_agent("ceo")
        data = json.loads((storage.base_dir / "agents" / "ceo.json").read_text())
        assert "systemPrompt" in data
        assert data["modelParams"]["maxTokens"] == 1024

    def test_missing_agent(self, storage):
        with pytest.raises(AgentNotFoundError) as exc_info:
            storage.load_agent("ghost")
        assert exc_info.value.name == "ghost"

    def test_invalid_agent_file(self, storage):
        (storage.base_dir / "agents" / "bad.json").write_text("{}")
        with pytest.raises(AgentNotFoundError):
            storage.load_agent("bad")

    def test_lock_delegation(self, storage):
        storage.lock_agent("ceo")
        assert storage.is_agent_locked("ceo")
        storage.unlock_agent("ceo")
        assert not storage.is_agent_locked("ceo")


class TestMeetings:
    """Test meeting session persistence."""

    def test_round_trip(self, storage):
        session = new_meeting_session("planning", ["ceo", "cto"])
        session.max_chain_length = 2
        storage.save_meeting_session(session)

        loaded = storage.load_meeting_session(session.id)
        assert loaded.room_name == "planning"
        assert loaded.max_chain_length == 2
        assert storage.list_meeting_sessions() == ["room-planning"]

    def test_missing_fields_get_defaults(self, storage):
        path = storage.base_dir / "meetings" / "room-old.json"
        path.write_text(json.dumps({"id": "room-old", "roomName": "old", "agentNames": ["a", "b"]}))
        loaded = storage.load_meeting_session("room-old")
        assert loaded.max_chain_length == 5
        assert loaded.check_in_token_limit == 512

    def test_malformed_session_is_absent(self, storage):
        (storage.base_dir / "meetings" / "room-bad.json").write_text("{not json")
        assert storage.load_meeting_session("room-bad") is None

    def test_missing_session(self, storage):
        assert storage.load_meeting_session("room-none") is None


class TestArchives:
    """Test archive save and load."""

    def test_meeting_archive(self, storage):
        session = new_meeting_session("planning", ["ceo", "cto"])
        path = storage.save_archive("before-offsite", session)
        assert path.name == "before-offsite.json"
        assert isinstance(storage.load_archive("before-offsite"), MeetingSession)
        assert storage.list_archives() == ["before-offsite"]

    def test_chat_archive(self, storage):
        storage.save_archive("solo", ChatSession(id="session-ceo", agent_name="ceo"))
        assert isinstance(storage.load_archive("solo"), ChatSession)

    def test_missing_archive(self, storage):
        with pytest.raises(ArchiveNotFoundError):
            storage.load_archive("nothing")

    def test_corrupted_archive(self, storage):
        (storage.base_dir / "archive" / "broken.json").write_text("[")
        with pytest.raises(ArchiveNotFoundError, match="corrupted"):
            storage.load_archive("broken")


class TestChatSessions:
    def test_round_trip(self, storage):
        storage.save_session(ChatSession(id="session-ceo", agent_name="ceo"))
        assert storage.load_session("session-ceo").agent_name == "ceo"
        assert storage.load_session("session-none") is None

    def test_agent_model_validation(self):
        with pytest.raises(ValueError):
            Agent(name="bad name", model="m")


class TestUndecodableFiles:
    """Files that are not valid UTF-8 are treated like malformed JSON."""

    GARBAGE = b"\xff\xfe{not json"

    def test_meeting_session_is_absent(self, storage):
        (storage.base_dir / "meetings" / "room-x.json").write_bytes(self.GARBAGE)
        assert storage.load_meeting_session("room-x") is None

    def test_chat_session_is_absent(self, storage):
        (storage.base_dir / "sessions" / "session-ceo.json").write_bytes(self.GARBAGE)
        assert storage.load_session("session-ceo") is None

    def test_config_falls_back(self, storage):
        (storage.base_dir / "config.json").write_bytes(self.GARBAGE)
        assert storage.load_config() == Config()

    def test_agent_is_not_found(self, storage):
        (storage.base_dir / "agents" / "ceo.json").write_bytes(self.GARBAGE)
        with pytest.raises(AgentNotFoundError):
            storage.load_agent("ceo")

    def test_archive_is_corrupted(self, storage):
        (storage.base_dir / "archive" / "old.json").write_bytes(self.GARBAGE)
        with pytest.raises(ArchiveNotFoundError, match="corrupted"):
            storage.load_archive("old")

    @pytest.mark.parametrize("content", [GARBAGE, b"{broken", b'{"attributes": 3}'])
    def test_malformed_profile_has_no_attributes(self, storage, content):
        (storage.base_dir / "profiles" / "default.json").write_bytes(content)
        profile = storage.load_profile("default")
        assert profile.name == "default"
        assert profile.attributes == {}
