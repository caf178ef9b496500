"""Runtime context shared by everything that drives one meeting room."""

from __future__ import annotations

from dataclasses import dataclass, field

from agentroom.client import ModelClient
from agentroom.meeting.colors import ColorAssigner
from agentroom.schemas import Agent, MeetingSession, Profile
from agentroom.storage import Storage
from agentroom.streaming import AbortWatcher, no_abort


@dataclass
class MeetingRoom:
    """A live room: persisted session plus the loaded participant agents."""

    session: MeetingSession
    roster: list[Agent]
    storage: Storage
    client: ModelClient
    colors: ColorAssigner = field(default_factory=ColorAssigner)
    abort_watcher: AbortWatcher = no_abort

    @property
    def participant_names(self) -> list[str]:
        return [agent.name for agent in self.roster]

    def find_agent(self, name: str) -> Agent | None:
        for agent in self.roster:
            if agent.name.lower() == name.lower():
                return agent
        return None

    def agents_named(self, names: list[str]) -> list[Agent]:
        """Roster agents matching ``names``, in roster order."""
        wanted = {n.lower() for n in names}
        return [agent for agent in self.roster if agent.name.lower() in wanted]

    def profile(self) -> Profile:
        return self.storage.load_profile(self.session.profile_name)

    def save(self) -> None:
        self.storage.save_meeting_session(self.session)
