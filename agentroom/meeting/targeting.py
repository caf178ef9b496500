"""Message targeting: who a line of text is addressed to."""

from __future__ import annotations

import re
from collections.abc import Iterable

from agentroom.schemas import TargetedMessage

_USER_MENTION_RE = re.compile(r"@user\b", re.IGNORECASE)


def _prefix_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(name)}\s*,\s*", re.IGNORECASE)


def _mention_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"@{re.escape(name)}\b", re.IGNORECASE)


def parse_targeted_message(text: str, participants: Iterable[str]) -> TargetedMessage:
    """Resolve the addressing intent of a user message.

    Priority order:
        1. ``<agent>, ...`` prefix: that agent alone, prefix stripped. Only the
           first matching participant in roster order counts, and any
           @mentions elsewhere in the text are not used for targeting.
        2. ``@agent`` mentions anywhere: every distinct mentioned participant.
        3. Otherwise a broadcast with no targets.
    """
    names = list(participants)

    for name in names:
        pattern = _prefix_pattern(name)
        if pattern.match(text):
            return TargetedMessage(
                content=pattern.sub("", text, count=1),
                targeted_agents=[name],
                is_direct_target=True,
            )

    mentioned = detect_agent_mentions(text, names)
    if mentioned:
        return TargetedMessage(content=text, targeted_agents=mentioned, is_direct_target=True)

    return TargetedMessage(content=text, targeted_agents=[], is_direct_target=False)


def detect_agent_mentions(
    content: str,
    participants: Iterable[str],
    exclude: str | None = None,
) -> list[str]:
    """Return participants @mentioned in ``content``, in roster order.

    Args:
        content: Text to scan
        participants: Roster names
        exclude: Name to ignore (usually the speaker)
    """
    mentioned: list[str] = []
    seen: set[str] = set()
    for name in participants:
        key = name.lower()
        if key in seen or (exclude is not None and key == exclude.lower()):
            continue
        if _mention_pattern(name).search(content):
            mentioned.append(name)
            seen.add(key)
    return mentioned


def is_addressing_user(content: str, profile_name: str | None = None) -> bool:
    """True if the text checks in with the user via @user or @<profile>."""
    if _USER_MENTION_RE.search(content):
        return True
    if profile_name and _mention_pattern(profile_name).search(content):
        return True
    return False
