"""
LLM integration via Ollama.

Prompts are built as an internal messages[] representation; transport to
Ollama remains a single prompt string.
"""
from concierge.brain.ollama_client import OllamaClient
from concierge.brain.messages import (
    Message,
    msg_system,
    msg_user,
    msg_assistant,
    flatten_messages,
    MessageBuilder
)

__all__ = [
    "OllamaClient",
    "Message",
    "msg_system",
    "msg_user",
    "msg_assistant",
    "flatten_messages",
    "MessageBuilder"
]
