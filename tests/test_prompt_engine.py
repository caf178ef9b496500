"""Tests for prompt and conversation assembly."""

from agentroom.meeting.session import new_meeting_session
from agentroom.prompt_engine import (
    build_conversation,
    build_meeting_context,
    build_system_prompt,
    format_attributes,
)
from agentroom.schemas import Agent, MeetingMessage, Profile


def agent(name: str, prompt: str = "You are helpful.", **kwargs) -> Agent:
    return Agent(name=name, model=f"model-{name}", system_prompt=prompt, **kwargs)


class TestSystemPrompt:
    """Test agent and profile attribute sections."""

    def test_plain_prompt(self):
        assert build_system_prompt(agent("ceo")) == "You are helpful."

    def test_attribute_sections(self):
        ceo = agent("ceo", attributes={"favoriteColor": "blue"})
        profile = Profile(name="default", attributes={"name": "Dana", "languages": ["en", "pt"]})

        prompt = build_system_prompt(ceo, profile)

        assert "# Agent Attributes\n\n**Favorite Color**: blue" in prompt
        assert "# User Attributes" in prompt
        assert "**Languages**: en, pt" in prompt

    def test_nested_attributes(self):
        text = format_attributes({"workHours": {"startTime": "9am"}})
        assert text == "**Work Hours**:\n  - Start Time: 9am"


class TestMeetingContext:
    """Test meeting instructions."""

    def setup_method(self):
        self.roster = [
            agent("ceo", "Chief executive.\nSecond line."),
            agent("cto", "Chief technologist."),
        ]
        self.session = new_meeting_session("planning", ["ceo", "cto"], "dana")

    def test_roster_excludes_self(self):
        context = build_meeting_context(self.roster[0], self.roster, self.session)
        assert "meeting with 1 other agent:" in context
        assert "* @cto" in context
        assert "  Role: Chief technologist." in context
        assert "* @ceo" not in context
        assert "Do NOT @mention yourself (@ceo)" in context
        assert "@user or @dana" in context

    def test_limits_are_stated(self):
        self.session.max_chain_length = 4
        self.session.check_in_token_limit = 900
        context = build_meeting_context(self.roster[0], self.roster, self.session)
        assert "chain up to 4 levels deep" in context
        assert "approximately 900 tokens" in context

    def test_depth_warnings(self):
        ceo = self.roster[0]
        assert "DEPTH LIMIT" not in build_meeting_context(ceo, self.roster, self.session, 0)
        assert "approaching" in build_meeting_context(ceo, self.roster, self.session, 3)
        assert "MUST check in" in build_meeting_context(ceo, self.roster, self.session, 4)

    def test_mentioned_by(self):
        context = build_meeting_context(self.roster[1], self.roster, self.session, 1, mentioned_by="ceo")
        assert "You were @mentioned by ceo" in context


class TestConversation:
    """Test shared-log conversion to chat messages."""

    def test_merges_consecutive_roles(self):
        history = [
            MeetingMessage(role="user", content="Plan?"),
            MeetingMessage(role="assistant", content="Ship it.", agent_name="ceo"),
            MeetingMessage(role="assistant", content="Feasible.", agent_name="cto", chain_depth=1),
        ]

        messages = build_conversation("SYS", history)

        assert [(m.role, m.content) for m in messages] == [
            ("system", "SYS"),
            ("user", "[User]: Plan?"),
            ("assistant", "[ceo]: Ship it.\n\n[cto]: Feasible."),
        ]

    def test_extra_user_content_merges_into_trailing_user_turn(self):
        history = [MeetingMessage(role="user", content="Plan?")]
        messages = build_conversation("SYS", history, "[User]: again")
        assert messages[-1].content == "[User]: Plan?\n\n[User]: again"
        assert len(messages) == 2

    def test_extra_user_content_after_assistant(self):
        history = [MeetingMessage(role="assistant", content="Hi", agent_name="ceo")]
        messages = build_conversation("SYS", history, "[User]: again")
        assert [m.role for m in messages] == ["system", "assistant", "user"]
