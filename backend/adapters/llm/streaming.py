"""
Streaming response generator (OpenAI-compatible chat completions).

Role in the system:
- Receives finalized caller text (or a seed message) per interaction.
- Streams a chat completion and cuts the token stream into speakable
  fragments at sentence / delimiter boundaries.
- Emits ResponseFragment events with per-interaction sequence indices.
- Resolves '@'-prefixed tool calls synchronously, then continues the
  same interaction with a follow-up completion.
- Commits the exchange to the rolling conversation history when the
  interaction completes.

Concurrency:
- One asyncio task per generate() call.
- Calls for the same interaction run one after another, so each call
  owns a contiguous block of sequence indices. The first fragment of
  each call is flagged opens_turn.
- Indices come from a per-interaction counter and are never reused.
"""
from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

from adapters.llm.base import LLMAdapter
from adapters.llm.prompts import SYSTEM_PROMPT_V1, tool_result_message
from constants import MAX_TOOL_ROUNDS, TOOL_CALL_PREFIX
from context.conversation import ConversationContext
from context.serialization import serialize_for_llm
from observability.logger import log_event, now_ms
from observability.metrics import emit_metric
from orchestrator.chunking import (
    clean_fragment_text,
    drain_fragments,
    find_tool_prefix,
)
from orchestrator.enums.service import Service
from orchestrator.events import (
    Event,
    EventType,
    ResponseFragment,
    ServiceError,
)
from services.shop_service import ToolRegistry


class StreamingLLMAdapter(LLMAdapter):
    """
    Concrete streaming response generator.

    The adapter is responsible ONLY for:
    - Talking to the LLM provider
    - Cutting tokens into fragments
    - Emitting RESPONSE_FRAGMENT events

    It does NOT:
    - Retry
    - Know about synthesis, playback, or barge-in
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        client: Any,
        model: str,
        stream_sid: str | None = None,
        provider: str = "openai",
        system_prompt: str = SYSTEM_PROMPT_V1,
        tools: ToolRegistry | None = None,
        context: ConversationContext | None = None,
    ) -> None:
        """
        Args:
            emit_event:
                Callback used to emit events into the session controller.
            client:
                Vendor client (openai.AsyncOpenAI or compatible).
            model:
                Model identifier string.
            stream_sid:
                Carrier stream identifier for logging/correlation.
        """
        self._emit_event = emit_event
        self._client = client
        self._model = model
        self._stream_sid = stream_sid
        self._provider = provider
        self._system_prompt = system_prompt
        self._tools = tools or ToolRegistry()
        self._context = context or ConversationContext(stream_sid)

        # interaction_id -> next sequence index to hand out
        self._next_index: dict[int, int] = {}

        # interaction_id -> latest scheduled generation for it
        self._tails: dict[int, asyncio.Task[None]] = {}

        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def context(self) -> ConversationContext:
        return self._context

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, text: str, interaction_id: int) -> None:
        """
        Schedule a streamed response and return immediately.

        If a generation for interaction_id is still running, this one
        starts when it finishes.
        """
        previous = self._tails.get(interaction_id)

        log_event({
            "event_type": "LLM_GENERATE",
            "stream_sid": self._stream_sid,
            "interaction_id": interaction_id,
            "chars": len(text),
            "queued": previous is not None,
        })

        task = asyncio.create_task(self._run_after(previous, text, interaction_id))
        self._tails[interaction_id] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(
            lambda t, iid=interaction_id: self._release_tail(iid, t)
        )

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._tails.clear()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _release_tail(self, interaction_id: int, task: asyncio.Task[None]) -> None:
        if self._tails.get(interaction_id) is task:
            del self._tails[interaction_id]

    async def _run_after(
        self,
        previous: asyncio.Task[None] | None,
        text: str,
        interaction_id: int,
    ) -> None:
        if previous is not None and not previous.done():
            # wait() does not propagate the predecessor's outcome
            await asyncio.wait((previous,))
        await self._run_interaction(text, interaction_id)

    async def _run_interaction(self, text: str, interaction_id: int) -> None:
        """
        Run one interaction to completion, including tool rounds.

        Emits at most one ServiceError; fragments emitted before a
        failure are kept.
        """
        spoken: list[str] = []
        continuation: list[dict[str, str]] = []
        started_ns = time.monotonic_ns()

        try:
            for round_num in range(MAX_TOOL_ROUNDS + 1):
                messages = serialize_for_llm(
                    system_prompt=self._system_prompt,
                    context=self._context,
                    user_text=text,
                    continuation=continuation,
                )

                round_spoken: list[str] = []
                tail, tool_buffer = await self._stream_round(
                    messages,
                    interaction_id,
                    round_spoken,
                    started_ns if round_num == 0 else 0,
                    turn_started=bool(spoken),
                )
                spoken.extend(round_spoken)

                tool_call = self._parse_tool_call(tool_buffer, interaction_id)
                last_round = tool_call is None or round_num == MAX_TOOL_ROUNDS

                tail_text = clean_fragment_text(tail)
                if tail_text:
                    await self._emit_fragment(
                        interaction_id,
                        tail_text,
                        is_final=last_round,
                        opens_turn=not spoken,
                    )
                    spoken.append(tail_text)

                if last_round:
                    break

                assert tool_call is not None
                tool, args = tool_call
                result = self._tools.execute(tool, args)

                continuation.append({
                    "role": "assistant",
                    "content": " ".join(round_spoken + ([tail_text] if tail_text else []))
                    + f"\n{TOOL_CALL_PREFIX}{tool_buffer.strip()}",
                })
                continuation.append(tool_result_message(tool, result))

        except asyncio.CancelledError:
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = f"{type(exc).__name__}: {exc}"
            log_event({
                "event_type": "LLM_ERROR",
                "stream_sid": self._stream_sid,
                "interaction_id": interaction_id,
                "reason": reason,
            })
            await self._emit_event(
                ServiceError(
                    event_type=EventType.SERVICE_ERROR,
                    ts_ms=now_ms(),
                    service=Service.LLM,
                    reason=reason,
                    interaction_id=interaction_id,
                )
            )

        self._context.commit_interaction(
            interaction_id=interaction_id,
            user_text=text,
            assistant_text=" ".join(spoken),
        )

        log_event({
            "event_type": "LLM_DONE",
            "stream_sid": self._stream_sid,
            "interaction_id": interaction_id,
            "fragments": len(spoken),
        })

    async def _stream_round(
        self,
        messages: list[dict[str, str]],
        interaction_id: int,
        spoken: list[str],
        started_ns: int,
        *,
        turn_started: bool = False,
    ) -> tuple[str, str]:
        """
        Stream one completion, emitting every complete fragment.

        started_ns of 0 disables the first-fragment latency metric.
        turn_started says an earlier round already emitted fragments.
        A tool-call prefix counts only at the start of a word.

        Returns:
            (unflushed speech tail, raw tool-call text after the prefix)
        """
        kwargs: dict[str, Any] = dict(
            model=self._model,
            messages=messages,
            stream=True,
        )
        if self._provider == "openai":
            kwargs["service_tier"] = "priority"

        stream = await self._client.chat.completions.create(**kwargs)

        buffer = ""
        speech_mode = True
        tool_buffer = ""
        at_word_start = True

        async for chunk in stream:
            delta = self._extract_delta(chunk)
            if not delta:
                continue

            if not speech_mode:
                tool_buffer += delta
                continue

            cut = find_tool_prefix(delta, TOOL_CALL_PREFIX, at_word_start=at_word_start)
            if cut >= 0:
                buffer += delta[:cut]
                speech_mode = False
                tool_buffer = delta[cut + len(TOOL_CALL_PREFIX):]
            else:
                buffer += delta
                at_word_start = delta[-1].isspace()

            fragments, buffer = drain_fragments(buffer)
            for text in fragments:
                if not spoken and started_ns:
                    emit_metric(
                        "llm_first_fragment",
                        (time.monotonic_ns() - started_ns) // 1_000_000,
                        stream_sid=self._stream_sid,
                        details={"interaction_id": interaction_id},
                    )
                await self._emit_fragment(
                    interaction_id,
                    text,
                    is_final=False,
                    opens_turn=not spoken and not turn_started,
                )
                spoken.append(text)

        return buffer, tool_buffer

    async def _emit_fragment(
        self,
        interaction_id: int,
        text: str,
        *,
        is_final: bool,
        opens_turn: bool = False,
    ) -> None:
        await self._emit_event(
            ResponseFragment(
                event_type=EventType.RESPONSE_FRAGMENT,
                ts_ms=now_ms(),
                interaction_id=interaction_id,
                sequence_index=self._claim_index(interaction_id),
                text=text,
                is_final=is_final,
                opens_turn=opens_turn,
            )
        )

    def _claim_index(self, interaction_id: int) -> int:
        index = self._next_index.get(interaction_id, 0)
        self._next_index[interaction_id] = index + 1
        return index

    def _parse_tool_call(
        self,
        tool_buffer: str,
        interaction_id: int,
    ) -> tuple[str, dict[str, Any]] | None:
        if not tool_buffer.strip():
            return None

        try:
            data = json.loads(tool_buffer)
            if not isinstance(data, dict) or "tool" not in data:
                raise ValueError("missing 'tool' field")
        except ValueError as exc:
            log_event({
                "event_type": "LLM_TOOL_CALL_MALFORMED",
                "stream_sid": self._stream_sid,
                "interaction_id": interaction_id,
                "reason": str(exc),
                "raw": tool_buffer[:200],
            })
            return None

        tool = str(data["tool"])
        args = {k: v for k, v in data.items() if k != "tool"}
        return tool, args

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """Extract token delta from vendor response (OpenAI format)."""
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""
