"""System prompt and conversation assembly for agents."""

from __future__ import annotations

import re
from typing import Any

from agentroom.schemas import Agent, ChatMessage, MeetingMessage, MeetingSession, Profile

RULE = "=" * 60
THIN_RULE = "-" * 60

BROADCAST_NOTE = (
    "NOTE: The user's message was not directed at anyone specific. Only respond "
    "if you believe you are the most qualified agent in this meeting to answer "
    "based on your role and expertise. If you don't think you should respond, "
    'reply with exactly: "PASS"'
)

FORCED_RESPONSE_NOTE = (
    "NOTE: The user has specifically requested your response. "
    "Please provide your perspective on their question."
)

_CAMEL_SPLIT = re.compile(r"(?=[A-Z])")


def _format_key(key: str) -> str:
    """Turn ``favoriteColor`` into ``Favorite Color``."""
    words = " ".join(part for part in _CAMEL_SPLIT.split(key) if part)
    return words[:1].upper() + words[1:]


def format_attributes(attributes: dict[str, Any]) -> str:
    """Format an attribute mapping as markdown lines."""
    lines: list[str] = []
    for key, value in attributes.items():
        label = _format_key(key)
        if isinstance(value, list):
            lines.append(f"**{label}**: {', '.join(str(v) for v in value)}")
        elif isinstance(value, dict):
            lines.append(f"**{label}**:")
            for sub_key, sub_value in value.items():
                lines.append(f"  - {_format_key(sub_key)}: {sub_value}")
        else:
            lines.append(f"**{label}**: {value}")
    return "\n".join(lines)


def build_system_prompt(agent: Agent, profile: Profile | None = None) -> str:
    """Agent system prompt plus agent and user attribute sections."""
    prompt = agent.system_prompt

    if agent.attributes:
        prompt += "\n\n# Agent Attributes\n\n" + format_attributes(agent.attributes)

    if profile is not None and profile.attributes:
        prompt += "\n\n# User Attributes\n\n" + format_attributes(profile.attributes)

    return prompt


def _section(title: str) -> list[str]:
    return [THIN_RULE, title, THIN_RULE, ""]


def build_meeting_context(
    agent: Agent,
    roster: list[Agent],
    session: MeetingSession,
    chain_depth: int = 0,
    mentioned_by: str | None = None,
) -> str:
    """Meeting instructions appended to an agent's system prompt.

    Covers the participant roster, @mention mechanics, check-in guidance,
    formatting rules and, near the chain limit, a depth warning.
    """
    others = [a for a in roster if a.name.lower() != agent.name.lower()]
    max_chain = session.max_chain_length
    user_handle = session.profile_name

    parts = ["", "", RULE, "MEETING CONTEXT", RULE, ""]

    plural = "s" if len(others) != 1 else ""
    parts.append(f"You are currently in a meeting with {len(others)} other agent{plural}:")
    parts.append("")
    for other in others:
        parts.append(f"* @{other.name}")
        parts.append(f"  Role: {other.role_summary}")
        parts.append(f"  Handle: @{other.name}")
        parts.append("")

    parts.extend(_section("HOW TO ADDRESS OTHER AGENTS:"))
    parts.append("To direct a question or comment to another agent, use their @ handle:")
    parts.append('  Example: "I agree with that approach. @cto what do you think about the technical feasibility?"')
    parts.append("")
    parts.append("You can address multiple agents in one response:")
    parts.append('  Example: "Good points. @cfo what\'s the budget, and @cto how long would this take?"')
    parts.append("")

    parts.extend(_section("RESPONSE MECHANICS:"))
    parts.append("* When you mention another agent with @agent-name, they will automatically respond")
    parts.append(f"* Agent conversations can chain up to {max_chain} levels deep")
    parts.append("* If you mention multiple agents:")
    parts.append("  - The first mentioned agent's response will stream immediately")
    parts.append("  - Other mentioned agents' responses will be buffered")
    parts.append('  - Buffered agents will "raise their hand" indicating they have a response')
    parts.append("  - The user can use /respond <agent> to view buffered responses")
    parts.append("")

    parts.extend(_section("WHEN TO CHECK IN WITH THE USER:"))
    parts.append(f"* After approximately {session.check_in_token_limit} tokens of agent-to-agent conversation")
    parts.append("* After making or discussing any major decisions")
    parts.append("* When you need user input or approval to proceed")
    parts.append("* When the discussion reaches a natural pause point")
    parts.append("")
    parts.append("HOW to check in:")
    parts.append(f"  - Use @user or @{user_handle} to address the user directly")
    parts.append("  - Summarize the discussion so far")
    parts.append("  - Present options, decisions, or findings clearly")
    parts.append("  - Ask the user for guidance, input, or approval to continue")
    parts.append("  - If you mention other agents with @ in a check-in, they will buffer their responses")
    parts.append("")

    parts.extend(_section("RESPONSE FORMATTING (CRITICAL):"))
    parts.append("1. HOW TO SPEAK AS YOURSELF:")
    parts.append("   - Speak directly in your own voice (no prefix needed)")
    parts.append("   - Use @mentions to address others")
    parts.append("")
    parts.append("2. IF YOU WANT TO PRESENT MULTIPLE PERSPECTIVES:")
    parts.append("   - Each perspective MUST start on a new line with format: [agent-name]:")
    parts.append("   - Use lowercase agent name in brackets followed by colon")
    parts.append("")
    parts.append("3. ABSOLUTE PROHIBITIONS:")
    parts.append("   - NEVER speak as @user or [User]: - THE USER IS A REAL PERSON")
    parts.append("   - NEVER put words in the user's mouth or role-play their responses")
    parts.append("   - The user will type their own responses - you cannot speak for them")
    parts.append("   - You may address the user with @user and quote what they said before")
    parts.append("")
    parts.append(f"IMPORTANT: Do NOT @mention yourself (@{agent.name}) - you cannot respond to yourself")
    parts.append("")
    parts.append(RULE)
    parts.append("")

    if mentioned_by:
        parts.append(f"You were @mentioned by {mentioned_by}. Respond to what they asked you.")
        parts.append("")

    if chain_depth >= max_chain - 1:
        parts.append("IMPORTANT: CONVERSATION DEPTH LIMIT")
        parts.append(f"You are at chain depth {chain_depth} out of maximum {max_chain}.")
        parts.append("You MUST check in with the user now using @user.")
        parts.append("Do NOT @mention other agents - just summarize and ask the user for guidance.")
        parts.append("")
    elif chain_depth >= max_chain - 2:
        parts.append("Note: You are approaching the conversation depth limit.")
        parts.append(
            f"Consider checking in with @user soon (current depth: {chain_depth}/{max_chain})."
        )
        parts.append("")

    return "\n".join(parts)


def _speaker_prefix(message: MeetingMessage) -> str:
    if message.agent_name:
        return f"[{message.agent_name}]: {message.content}"
    return f"[User]: {message.content}"


def build_conversation(
    system_prompt: str,
    history: list[MeetingMessage],
    extra_user_content: str | None = None,
) -> list[ChatMessage]:
    """Build alternating chat messages from a shared log.

    Consecutive turns with the same role are merged, each tagged with its
    speaker so the model can tell agents apart.
    """
    messages = [ChatMessage(role="system", content=system_prompt)]

    last_role: str | None = None
    accumulated = ""
    for message in history:
        role = "user" if message.role == "user" else "assistant"
        text = _speaker_prefix(message)
        if role == last_role:
            accumulated += "\n\n" + text
            continue
        if last_role is not None and accumulated:
            messages.append(ChatMessage(role=last_role, content=accumulated))
        last_role = role
        accumulated = text

    if last_role is not None and accumulated:
        messages.append(ChatMessage(role=last_role, content=accumulated))

    if extra_user_content:
        if messages[-1].role == "user":
            messages[-1] = ChatMessage(
                role="user", content=messages[-1].content + "\n\n" + extra_user_content
            )
        else:
            messages.append(ChatMessage(role="user", content=extra_user_content))

    return messages
