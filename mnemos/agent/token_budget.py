"""Token estimation for prompt budgeting.

Counts are a character heuristic (ceil(len / 4)). Close enough for budget
decisions and identical across providers.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mnemos.agent.messages import Message

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(message: Message) -> int:
    """Content plus think block plus serialized tool-call arguments."""
    total = estimate_tokens(message.content) + estimate_tokens(message.think)
    for call in message.tool_calls:
        total += estimate_tokens(call.name) + estimate_tokens(str(call.arguments))
    return total


def estimate_messages_tokens(messages: Iterable[Message]) -> int:
    return sum(estimate_message_tokens(m) for m in messages)
