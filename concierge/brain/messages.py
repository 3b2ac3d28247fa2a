"""
Internal message representation for LLM prompt construction.

Prompts are organized as messages[] internally; the transport to the
completion service stays a single prompt string (see flatten_messages).

Usage:
    from concierge.brain.messages import MessageBuilder

    prompt = (
        MessageBuilder()
        .system("Pick one route...")
        .turns(recent_turns)
        .user("delete report.pdf")
        .flatten(include_role_headers=True)
    )
"""
from typing import Iterable, List, Literal, TypedDict


Role = Literal["system", "user", "assistant"]


class Message(TypedDict):
    """A single message: role + content."""
    role: Role
    content: str


def msg_system(content: str) -> Message:
    return {"role": "system", "content": content}


def msg_user(content: str) -> Message:
    return {"role": "user", "content": content}


def msg_assistant(content: str) -> Message:
    return {"role": "assistant", "content": content}


def flatten_messages(
    messages: List[Message],
    include_role_headers: bool = False,
    block_separator: str = "\n\n"
) -> str:
    """
    Flatten a list of messages into a single prompt string.

    Args:
        messages: List of Message dicts to flatten
        include_role_headers: If True, prefix each block with "System:", "User:", etc.
        block_separator: String placed between message blocks.

    Returns:
        A single string suitable for Ollama's prompt field. Empty messages are skipped.
    """
    if not messages:
        return ""

    parts = []
    for msg in messages:
        content = msg.get("content", "").strip()
        if not content:
            continue
        if include_role_headers:
            parts.append(f"{msg.get('role', 'user').capitalize()}:\n{content}")
        else:
            parts.append(content)

    return block_separator.join(parts)


class MessageBuilder:
    """Chainable builder for message lists."""

    def __init__(self):
        self._messages: List[Message] = []

    def system(self, content: str) -> "MessageBuilder":
        if content and content.strip():
            self._messages.append(msg_system(content))
        return self

    def user(self, content: str) -> "MessageBuilder":
        if content and content.strip():
            self._messages.append(msg_user(content))
        return self

    def assistant(self, content: str) -> "MessageBuilder":
        if content and content.strip():
            self._messages.append(msg_assistant(content))
        return self

    def turns(self, turns: Iterable, max_chars: int = 400) -> "MessageBuilder":
        """
        Add prior conversation turns (objects with .role and .text).

        Each turn is truncated to max_chars; unknown roles count as user.
        """
        for turn in turns or ():
            text = (getattr(turn, "text", "") or "")[:max_chars]
            if getattr(turn, "role", "user") == "assistant":
                self.assistant(text)
            else:
                self.user(text)
        return self

    def build(self) -> List[Message]:
        return self._messages.copy()

    def flatten(self, include_role_headers: bool = False) -> str:
        return flatten_messages(self._messages, include_role_headers=include_role_headers)

    def __len__(self) -> int:
        return len(self._messages)
