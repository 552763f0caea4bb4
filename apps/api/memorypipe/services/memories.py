from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from memorypipe.models.memory import Memory


@dataclass
class MemoryMatch:
    memory_id: int
    content: str
    memory_type: str | None
    source_type: str
    source_app: str
    tags: list[str]
    similarity: float


def get_tags(memory: Memory) -> list[str]:
    try:
        tags = json.loads(memory.tags_json or "[]")
    except ValueError:
        return []
    return [str(t) for t in tags] if isinstance(tags, list) else []


def create_placeholder_memory(
    db: Session,
    *,
    owner_id: str,
    content: str,
    source_app: str,
    source_type: str,
    source_id: str | None = None,
) -> Memory:
    """
    Vector-less Memory row for the embedding stage to fill in later.
    Added to the session but not committed: it shares the caller's transaction.
    """
    memory = Memory(
        owner_id=owner_id,
        content=content,
        source_app=source_app,
        source_type=source_type,
        source_id=source_id,
        tags_json="[]",
    )
    db.add(memory)
    return memory


def get_owned_memory(db: Session, memory_id: int, owner_id: str) -> Memory | None:
    return db.query(Memory).filter(Memory.id == memory_id, Memory.owner_id == owner_id).first()


def find_source_memory(db: Session, *, owner_id: str, source_type: str, source_id: str) -> Memory | None:
    """The placeholder Memory a stage created for one of its result records."""
    return (
        db.query(Memory)
        .filter(Memory.owner_id == owner_id, Memory.source_type == source_type, Memory.source_id == source_id)
        .order_by(Memory.id.asc())
        .first()
    )


def apply_embedding(
    memory: Memory,
    *,
    vector: Sequence[float],
    model: str,
    tokens: int,
    memory_type: str,
    confidence_score: float,
    intent_label: str,
    usage_type: str,
    tags: list[str] | None = None,
    originating_provider: str | None = None,
    originating_prompt: str | None = None,
) -> Memory:
    """
    Write embedding output onto the Memory in place.

    Pure assignment from the inputs, so applying the same inputs twice leaves the same row.
    Optional fields only overwrite when supplied.
    """
    memory.embedding_vector = [float(x) for x in vector]
    memory.embedding_model = model
    memory.embedding_tokens = int(tokens)
    memory.memory_type = memory_type
    memory.confidence_score = float(confidence_score)
    memory.intent_label = intent_label
    memory.usage_type = usage_type
    if tags:
        memory.tags_json = json.dumps(list(tags), ensure_ascii=False)
    if originating_provider:
        memory.originating_provider = originating_provider
    if originating_prompt:
        memory.originating_prompt = originating_prompt
    return memory


def _similarity(distance: Any) -> float:
    try:
        d = float(distance)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, 1.0 - d))


def similar_memories_query(
    query_vector: List[float],
    owner_id: str,
    *,
    similarity_threshold: float = 0.78,
    max_results: int = 10,
):
    distance = Memory.embedding_vector.cosine_distance(query_vector)
    return (
        select(Memory, distance.label("distance"))
        .where(
            Memory.owner_id == owner_id,
            Memory.embedding_vector.is_not(None),
            distance <= 1.0 - similarity_threshold,
        )
        .order_by(distance.asc())
        .limit(int(max_results))
    )


def search_similar_memories(
    db: Session,
    query_vector: List[float],
    owner_id: str,
    *,
    similarity_threshold: float = 0.78,
    max_results: int = 10,
) -> List[MemoryMatch]:
    """
    Cosine-similarity search over the caller's embedded memories (pgvector <=>).
    Results are ranked by similarity in [0, 1], highest first.
    """
    stmt = similar_memories_query(
        query_vector,
        owner_id,
        similarity_threshold=similarity_threshold,
        max_results=max_results,
    )
    out: List[MemoryMatch] = []
    for memory, distance in db.execute(stmt).all():
        out.append(
            MemoryMatch(
                memory_id=int(memory.id),
                content=memory.content,
                memory_type=memory.memory_type,
                source_type=memory.source_type,
                source_app=memory.source_app,
                tags=get_tags(memory),
                similarity=_similarity(distance),
            )
        )
    return out
