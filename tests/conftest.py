"""Pytest configuration and fixtures for agentroom tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentroom.meeting.colors import ColorAssigner
from agentroom.meeting.room import MeetingRoom
from agentroom.meeting.session import new_meeting_session
from agentroom.schemas import (
    Agent,
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionChoice,
    CompletionChunk,
    CompletionDelta,
    CompletionMessage,
    Usage,
)
from agentroom.storage import Storage


class FakeModelClient:
    """Scripted stand-in for ModelClient.

    Replies are scripted per agent (the fixture agents use ``model-<name>``).
    A reply may be an exception, which is raised instead. The last scripted
    reply repeats once the script runs out. Streams replay the agent's most
    recent non-streamed reply unless a stream reply is scripted.
    """

    def __init__(self):
        self.replies: dict[str, list] = {}
        self.stream_replies: dict[str, list] = {}
        self.requests: list[ChatCompletionRequest] = []
        self.stream_requests: list[ChatCompletionRequest] = []
        self._last: dict[str, str] = {}

    def say(self, agent_name: str, *replies) -> None:
        self.replies[f"model-{agent_name}"] = list(replies)

    def stream(self, agent_name: str, *replies) -> None:
        self.stream_replies[f"model-{agent_name}"] = list(replies)

    @staticmethod
    def _next(script: dict[str, list], model: str):
        queue = script.get(model)
        if not queue:
            return None
        return queue.pop(0) if len(queue) > 1 else queue[0]

    @property
    def streamed_models(self) -> list[str]:
        return [r.model for r in self.stream_requests]

    @property
    def queried_models(self) -> list[str]:
        return [r.model for r in self.requests]

    async def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        self.requests.append(request)
        reply = self._next(self.replies, request.model)
        if reply is None:
            reply = "PASS"
        if isinstance(reply, Exception):
            raise reply
        self._last[request.model] = reply
        return ChatCompletionResponse(
            choices=[CompletionChoice(message=CompletionMessage(content=reply))]
        )

    async def chat_completion_stream(self, request: ChatCompletionRequest):
        self.stream_requests.append(request)
        reply = self._next(self.stream_replies, request.model)
        if reply is None:
            reply = self._last.get(request.model, "(no reply)")
        if isinstance(reply, Exception):
            raise reply
        for i in range(0, len(reply), 7):
            yield CompletionChunk(
                choices=[CompletionChoice(delta=CompletionDelta(content=reply[i:i + 7]))]
            )
        yield CompletionChunk(
            choices=[CompletionChoice(delta=CompletionDelta(), finish_reason="stop")],
            usage=Usage(prompt_tokens=100, completion_tokens=20, total_tokens=120),
        )

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    """Initialized storage rooted in a temporary home directory."""
    store = Storage(tmp_path / "home")
    store.init()
    return store


@pytest.fixture
def make_agent(storage: Storage):
    """Factory that creates and saves an agent using model ``model-<name>``."""

    def _make(name: str, system_prompt: str | None = None, **kwargs) -> Agent:
        agent = Agent(
            name=name,
            model=f"model-{name}",
            system_prompt=system_prompt or f"You are the {name.upper()}.\nKeep answers short.",
            **kwargs,
        )
        storage.save_agent(agent)
        return agent

    return _make


@pytest.fixture
def fake_client() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def make_room(storage: Storage, make_agent, fake_client: FakeModelClient):
    """Factory for a MeetingRoom wired to the fake client."""

    def _make(names: list[str], room_name: str = "planning", **settings) -> MeetingRoom:
        roster = [
            storage.load_agent(name) if storage.agent_exists(name) else make_agent(name)
            for name in names
        ]
        session = new_meeting_session(room_name, names)
        for key, value in settings.items():
            setattr(session, key, value)
        return MeetingRoom(
            session=session,
            roster=roster,
            storage=storage,
            client=fake_client,
            colors=ColorAssigner(),
        )

    return _make
