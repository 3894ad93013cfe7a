"""Agent memory: time-decayed facts with keyword-ranked recall.

Each NPC owns a newest-first list of MemoryItems. Once per epoch every
strength is multiplied by the daily decay multiplier; memories at or below
PRUNE_FLOOR are dropped for good.

Recall is a keyword heuristic, not semantic search:

    score = strength + 0.5 × (query tokens found in the memory text)

Ties keep the original (newest-first) order, so the same memory list and
query always give the same answer.
"""

from __future__ import annotations

import uuid

from realm_forge.models import NPC, MemoryItem

PRUNE_FLOOR = 0.1
TOKEN_BONUS = 0.5


def decay_memories(npcs: list[NPC], multiplier: float) -> list[NPC]:
    """Return copies of `npcs` with every memory decayed and weak ones pruned."""
    decayed: list[NPC] = []
    for npc in npcs:
        memory = []
        for m in npc.memory:
            strength = round(m.strength * multiplier, 3)
            if strength > PRUNE_FLOOR:
                memory.append(m.model_copy(update={"strength": strength}))
        decayed.append(npc.model_copy(update={"memory": memory}))
    return decayed


def add_memory(
    npc: NPC, text: str, epoch: int, tags: list[str] | None = None
) -> NPC:
    item = MemoryItem(
        id=f"mem_{uuid.uuid4().hex[:12]}",
        text=text,
        tags=list(tags or []),
        strength=1.0,
        created_epoch=epoch,
        last_reinforced_epoch=epoch,
    )
    return npc.model_copy(update={"memory": [item, *npc.memory]})


def retrieve_memories(npc: NPC, query: str, limit: int = 3) -> list[MemoryItem]:
    tokens = query.lower().split()

    def _score(m: MemoryItem) -> float:
        text = m.text.lower()
        return m.strength + TOKEN_BONUS * sum(1 for t in tokens if t in text)

    # sorted() is stable: equal scores keep newest-first order
    ranked = sorted(npc.memory, key=_score, reverse=True)
    return ranked[:limit]
