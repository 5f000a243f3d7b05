# pylint: disable=missing-module-docstring,missing-function-docstring

from context.conversation import ConversationContext
from context.serialization import serialize_for_llm


def test_interaction_commits_user_and_assistant_turns():
    ctx = ConversationContext("MZ1")

    ctx.commit_interaction(interaction_id=0, user_text="hi", assistant_text="Hello!")

    assert ctx.serialize() == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "Hello!"},
    ]


def test_empty_assistant_reply_is_not_stored():
    ctx = ConversationContext()

    ctx.commit_interaction(interaction_id=0, user_text="hi", assistant_text="")

    assert len(ctx) == 1


def test_oldest_turns_are_dropped_over_turn_limit(logs):
    ctx = ConversationContext(max_turns=4, max_chars=10_000)

    for i in range(3):
        ctx.commit_interaction(interaction_id=i, user_text=f"u{i}", assistant_text=f"a{i}")

    assert [m["content"] for m in ctx.serialize()] == ["u1", "a1", "u2", "a2"]
    assert len(logs.of("context_turn_dropped")) == 2


def test_char_limit_drops_turns_but_keeps_last_oversized(logs):
    ctx = ConversationContext(max_turns=10, max_chars=10)

    ctx.commit_interaction(interaction_id=0, user_text="x" * 50, assistant_text="")

    assert len(ctx) == 1
    assert len(logs.of("context_single_turn_oversized")) == 1


def test_serialize_for_llm_orders_messages():
    ctx = ConversationContext()
    ctx.commit_interaction(interaction_id=0, user_text="hi", assistant_text="Hello!")

    messages = serialize_for_llm(
        system_prompt="SYS",
        context=ctx,
        user_text="what time is it",
        continuation=[{"role": "assistant", "content": "@{}"}],
    )

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user", "assistant"]
    assert messages[0]["content"] == "SYS"
    assert messages[3]["content"] == "what time is it"
