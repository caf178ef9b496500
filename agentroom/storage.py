"""JSON file storage for config, profiles, agents, sessions, rooms and archives."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from pydantic import ValidationError

from agentroom.locks import AgentLockManager
from agentroom.schemas import Agent, ChatSession, Config, MeetingSession, Profile

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = Path.home() / ".ai"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class AgentNotFoundError(Exception):
    """Raised when an agent definition does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Agent not found: {name}")


class ArchiveNotFoundError(Exception):
    """Raised when an archived chat does not exist or cannot be read."""

    pass


def sanitize_id(value: str) -> str:
    """Make a string safe to use as a file name."""
    cleaned = _UNSAFE_CHARS.sub("-", value.strip()).strip("-.")
    return cleaned or "unnamed"


def room_id(room_name: str) -> str:
    """Stable session id for a room name."""
    return f"room-{sanitize_id(room_name)}"


class Storage:
    """File-backed store rooted at ``base_dir`` (``~/.ai`` by default)."""

    SUBDIRS = ("profiles", "agents", "sessions", "meetings", "archive", "locks")

    def __init__(self, base_dir: Path | str | None = None):
        """Initialize the storage.

        Args:
            base_dir: Root directory; falls back to $AI_HOME, then ~/.ai
        """
        if base_dir is None:
            env_home = os.environ.get("AI_HOME")
            base_dir = Path(env_home) if env_home else DEFAULT_BASE_DIR
        self.base_dir = Path(base_dir)
        self.locks = AgentLockManager(self.base_dir / "locks")

    def init(self) -> None:
        """Create the directory layout, default config and default profile."""
        for sub in self.SUBDIRS:
            (self.base_dir / sub).mkdir(parents=True, exist_ok=True)

        if not self._config_path.exists():
            self.save_config(Config())

        if not self._profile_path("default").exists():
            self.save_profile(Profile(name="default"))

    # --- Paths ---

    @property
    def _config_path(self) -> Path:
        return self.base_dir / "config.json"

    def _profile_path(self, name: str) -> Path:
        return self.base_dir / "profiles" / f"{sanitize_id(name)}.json"

    def _agent_path(self, name: str) -> Path:
        return self.base_dir / "agents" / f"{sanitize_id(name)}.json"

    def _session_path(self, session_id: str) -> Path:
        return self.base_dir / "sessions" / f"{sanitize_id(session_id)}.json"

    def _meeting_path(self, session_id: str) -> Path:
        return self.base_dir / "meetings" / f"{sanitize_id(session_id)}.json"

    def _archive_path(self, name: str) -> Path:
        return self.base_dir / "archive" / f"{sanitize_id(name)}.json"

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(payload + "\n")
        tmp.replace(path)

    @staticmethod
    def _list(directory: Path) -> list[str]:
        if not directory.exists():
            return []
        return sorted(p.stem for p in directory.glob("*.json"))

    # --- Config ---

    def load_config(self) -> Config:
        try:
            return Config.model_validate_json(self._config_path.read_bytes())
        except FileNotFoundError:
            return Config()
        except ValidationError as e:
            logger.warning(f"Invalid config.json, using defaults: {e}")
            return Config()

    def save_config(self, config: Config) -> None:
        self._write(self._config_path, config.to_json())

    # --- Profiles ---

    def load_profile(self, name: str) -> Profile:
        """Load a profile; a missing profile yields one with no attributes."""
        try:
            return Profile.model_validate_json(self._profile_path(name).read_bytes())
        except FileNotFoundError:
            return Profile(name=name)
        except ValidationError as e:
            logger.warning(f"Invalid profile {name}, using no attributes: {e}")
            return Profile(name=name)

    def save_profile(self, profile: Profile) -> None:
        self._write(self._profile_path(profile.name), profile.to_json())

    # --- Agents ---

    def load_agent(self, name: str) -> Agent:
        """Load an agent definition.

        Raises:
            AgentNotFoundError: If no such agent exists or its file is invalid
        """
        path = self._agent_path(name)
        try:
            return Agent.model_validate_json(path.read_bytes())
        except FileNotFoundError as e:
            raise AgentNotFoundError(name) from e
        except ValidationError as e:
            logger.error(f"Invalid agent file {path}: {e}")
            raise AgentNotFoundError(name) from e

    def save_agent(self, agent: Agent) -> None:
        self._write(self._agent_path(agent.name), agent.to_json())

    def agent_exists(self, name: str) -> bool:
        return self._agent_path(name).exists()

    def list_agents(self) -> list[str]:
        return self._list(self.base_dir / "agents")

    # --- Agent locks ---

    def is_agent_locked(self, name: str) -> bool:
        return self.locks.is_locked(name)

    def lock_agent(self, name: str) -> None:
        self.locks.lock(name)

    def unlock_agent(self, name: str) -> None:
        self.locks.unlock(name)

    # --- Single-agent sessions ---

    def load_session(self, session_id: str) -> ChatSession | None:
        try:
            return ChatSession.model_validate_json(self._session_path(session_id).read_bytes())
        except FileNotFoundError:
            return None
        except ValidationError as e:
            logger.warning(f"Ignoring malformed session {session_id}: {e}")
            return None

    def save_session(self, session: ChatSession) -> None:
        self._write(self._session_path(session.id), session.to_json())

    # --- Meeting rooms ---

    def load_meeting_session(self, session_id: str) -> MeetingSession | None:
        """Load a room by id. Missing or malformed records count as absent."""
        path = self._meeting_path(session_id)
        try:
            return MeetingSession.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            return None
        except ValidationError as e:
            logger.warning(f"Malformed meeting session {path}, starting fresh: {e}")
            return None

    def save_meeting_session(self, session: MeetingSession) -> None:
        self._write(self._meeting_path(session.id), session.to_json())

    def list_meeting_sessions(self) -> list[str]:
        return self._list(self.base_dir / "meetings")

    # --- Archives ---

    def save_archive(self, name: str, session: MeetingSession | ChatSession) -> Path:
        path = self._archive_path(name)
        self._write(path, session.to_json())
        logger.info(f"Archived {session.id} as {path.name}")
        return path

    def load_archive(self, name: str) -> MeetingSession | ChatSession:
        """Load an archived chat; meeting archives are recognized by ``roomName``.

        Raises:
            ArchiveNotFoundError: If the archive is missing or unreadable
        """
        path = self._archive_path(name)
        try:
            data = json.loads(path.read_bytes())
        except FileNotFoundError as e:
            raise ArchiveNotFoundError(f"Archive not found: {name}") from e
        except ValueError as e:
            # Undecodable bytes or invalid JSON
            raise ArchiveNotFoundError(f"Archive is corrupted: {name}") from e

        try:
            if "roomName" in data:
                return MeetingSession.model_validate(data)
            return ChatSession.model_validate(data)
        except ValidationError as e:
            raise ArchiveNotFoundError(f"Archive is corrupted: {name}") from e

    def list_archives(self) -> list[str]:
        return self._list(self.base_dir / "archive")
