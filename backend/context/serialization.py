"""
Conversation context serialization for LLM consumption.

Responsibilities:
- Convert system prompt + conversation history + current caller text
  into LLM-ready message format.

Non-responsibilities:
- No truncation logic
- No turn storage
- No logging
"""

from __future__ import annotations

from typing import Iterable

from context.conversation import ConversationContext


def serialize_for_llm(
    *,
    system_prompt: str,
    context: ConversationContext,
    user_text: str,
    continuation: Iterable[dict[str, str]] = (),
) -> list[dict[str, str]]:
    """
    Serialize conversation context into LLM message format.

    Output format:
    [
        {"role": "system", "content": "..."},
        {"role": "user", "content": "..."},
        {"role": "assistant", "content": "..."},
        ...
        {"role": "user", "content": "<current caller text>"},
        <continuation messages, e.g. tool results>
    ]

    Rules:
    - System prompt is always first
    - Stored context turns come next (already truncated)
    - Current caller text is appended as a fresh user turn
    - Continuation messages for the in-flight interaction come last
    """
    messages: list[dict[str, str]] = [{
        "role": "system",
        "content": system_prompt,
    }]

    messages.extend(context.serialize())

    messages.append({
        "role": "user",
        "content": user_text,
    })

    messages.extend(continuation)

    return messages
