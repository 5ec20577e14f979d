"""Recall evaluation: score how useful recalled memories were in a conversation.

The scores drive embedding feedback (see learner.py) when a session is archived.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mnemos.agent.messages import Message
    from mnemos.agent.model_client import ModelClient
    from mnemos.memory.contracts import RecallEvaluator
    from mnemos.memory.models import Memory

logger = structlog.get_logger()

QUERY_VECTOR_KEY = "query_vector"

_EVAL_PROMPT = (
    "Analyze the conversation transcript and the memories that were recalled as "
    "context for it. For EACH memory decide whether it was actually useful for "
    "answering the user.\n\n"
    "RECALLED MEMORIES:\n{memories}\n\n"
    "TRANSCRIPT:\n{transcript}\n\n"
    "Reply with a JSON object only. Keys are memory IDs, values are helpfulness "
    "scores between -1.0 and 1.0:\n"
    "1.0: directly used to answer\n"
    "0.5: provided good context\n"
    "0.0: neutral, not used\n"
    "-0.5: slightly off-topic\n"
    "-1.0: irrelevant or misleading"
)


def parse_evaluations(raw: str, memory_ids: Iterable[str]) -> dict[str, float]:
    """Parse a model reply into {memory_id: score}.

    Unknown ids and non-numeric scores are dropped; scores are clamped to
    [-1, 1]. An unparseable reply yields {}.
    """
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.strip("`").removeprefix("json").strip()

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("recall_evaluation_unparseable", reply=raw[:200])
        return {}
    if not isinstance(parsed, dict):
        logger.warning("recall_evaluation_not_object", reply=raw[:200])
        return {}

    known = set(memory_ids)
    scores: dict[str, float] = {}
    for memory_id, value in parsed.items():
        if memory_id not in known:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        scores[memory_id] = max(-1.0, min(1.0, float(value)))
    return scores


def build_transcript(messages: Sequence[Message]) -> str:
    return "\n\n".join(f"[{m.role.upper()}] {m.content}" for m in messages if m.content)


def collect_recall(messages: Sequence[Message]) -> tuple[list[Memory], list[list[float]]]:
    """Unique recalled memories (first seen first) and the query vectors that recalled them."""
    memories: list[Memory] = []
    seen: set[str] = set()
    query_vectors: list[list[float]] = []
    for message in messages:
        for memory in message.recalled_memories:
            if memory.id not in seen:
                seen.add(memory.id)
                memories.append(memory)
        vector = message.debug_info.get(QUERY_VECTOR_KEY)
        if vector:
            query_vectors.append(list(vector))
    return memories, query_vectors


def make_llm_recall_evaluator(model_client: ModelClient, model: str) -> RecallEvaluator:
    """Return a RecallEvaluator that asks the model to score each memory."""

    async def evaluate(transcript: str, memories: Sequence[Memory]) -> dict[str, float]:
        if not memories:
            return {}
        listing = "\n\n".join(
            f"- ID: {m.id}\n  Title: {m.title}\n  Content: {m.content}" for m in memories
        )
        reply = await model_client.chat(
            [
                {
                    "role": "user",
                    "content": _EVAL_PROMPT.format(memories=listing, transcript=transcript),
                }
            ],
            model,
            temperature=0.0,
        )
        scores = parse_evaluations(reply, (m.id for m in memories))
        logger.debug("recall_evaluated", memories=len(memories), scored=len(scores))
        return scores

    return evaluate
