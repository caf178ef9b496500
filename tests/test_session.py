"""Tests for meeting session mutations and the raised-hand buffer."""

from agentroom.meeting.buffer import (
    clear_buffered,
    consume_buffered,
    drop_buffered_for,
    find_buffered,
    push_buffered,
)
from agentroom.meeting.session import (
    add_participant,
    append_agent_message,
    append_user_message,
    clear_history,
    last_user_message,
    new_meeting_session,
    remove_participant,
    replace_history,
    retract_message,
)
from agentroom.schemas import TargetedMessage


def make_session():
    return new_meeting_session("Q1 Planning", ["ceo", "cto", "ceo"])


class TestMeetingSession:
    """Test session creation and log mutations."""

    def test_new_session(self):
        session = make_session()
        assert session.id == "room-Q1-Planning"
        assert session.agent_names == ["ceo", "cto"]
        assert session.max_chain_length == 5
        assert session.check_in_token_limit == 512
        assert session.metadata.active_agents == ["ceo", "cto"]

    def test_append_updates_metadata(self):
        session = make_session()
        append_user_message(session, TargetedMessage(content="hi", targeted_agents=["ceo", "cto"]))
        append_agent_message(session, "ceo", "hello", chain_depth=0)
        assert session.metadata.total_messages == 2
        assert session.shared_messages[0].target_agent == "ceo, cto"
        assert session.shared_messages[1].agent_name == "ceo"

    def test_broadcast_has_no_target(self):
        session = make_session()
        message = append_user_message(session, TargetedMessage(content="hi"))
        assert message.target_agent is None

    def test_retract_only_newest(self):
        """Only the newest entry can be retracted."""
        session = make_session()
        first = append_user_message(session, TargetedMessage(content="one"))
        append_agent_message(session, "ceo", "reply")
        assert retract_message(session, first) is False
        second = append_user_message(session, TargetedMessage(content="two"))
        assert retract_message(session, second) is True
        assert [m.content for m in session.shared_messages] == ["one", "reply"]

    def test_last_user_message(self):
        session = make_session()
        assert last_user_message(session) is None
        append_user_message(session, TargetedMessage(content="question"))
        append_agent_message(session, "ceo", "answer")
        assert last_user_message(session).content == "question"

    def test_participants(self):
        session = make_session()
        assert add_participant(session, "CTO") is False
        assert add_participant(session, "cfo") is True
        assert remove_participant(session, "CEO") == "ceo"
        assert remove_participant(session, "coo") is None
        assert session.agent_names == ["cto", "cfo"]
        assert session.metadata.active_agents == ["cto", "cfo"]

    def test_clear_and_replace_history(self):
        session = make_session()
        append_user_message(session, TargetedMessage(content="old"))
        push_buffered(session, "cto", "waiting")

        archived = session.model_copy(deep=True)
        clear_history(session)
        assert session.shared_messages == []
        assert session.buffered_responses == []
        assert session.metadata.total_messages == 0

        replace_history(session, archived)
        assert [m.content for m in session.shared_messages] == ["old"]
        assert [b.agent_name for b in session.buffered_responses] == ["cto"]
        assert session.metadata.total_messages == 1


class TestBuffer:
    """Test raised hands."""

    def test_consume_moves_once(self):
        """Consuming moves the reply into the log exactly once."""
        session = make_session()
        entry = push_buffered(session, "cto", "my answer")

        message = consume_buffered(session, "CTO")
        assert message.content == "my answer"
        assert message.agent_name == "cto"
        assert message.timestamp == entry.timestamp
        assert session.buffered_responses == []
        assert consume_buffered(session, "cto") is None
        assert [m.content for m in session.shared_messages] == ["my answer"]

    def test_clear_returns_count(self):
        session = make_session()
        for i in range(3):
            push_buffered(session, "cto", f"answer {i}")
        assert clear_buffered(session) == 3
        assert clear_buffered(session) == 0
        assert session.buffered_responses == []

    def test_find_and_drop(self):
        session = make_session()
        push_buffered(session, "cto", "a")
        push_buffered(session, "ceo", "b")
        assert find_buffered(session, "Ceo").content == "b"
        drop_buffered_for(session, "CTO")
        assert [b.agent_name for b in session.buffered_responses] == ["ceo"]
