"""Multi-agent meeting rooms."""

from agentroom.meeting.interactive import MeetingSetupError, start_or_resume_meeting
from agentroom.meeting.orchestrator import MeetingOrchestrator
from agentroom.meeting.room import MeetingRoom
from agentroom.meeting.targeting import parse_targeted_message

__all__ = [
    "MeetingOrchestrator",
    "MeetingRoom",
    "MeetingSetupError",
    "parse_targeted_message",
    "start_or_resume_meeting",
]
