"""Deterministic, content-derived identifiers for documents and fragments.

Document ids are UUIDv5 values over a fixed namespace, seeded with the agent
id plus the content seed: the same ``(agent_id, seed)`` pair always yields
the same id, which is what lets character knowledge be deduplicated by
content.

Fragment ids must differ on every ingestion run even though the document id
is stable, so their seed also mixes in a nanosecond timestamp and a
process-wide monotonic counter.  The counter keeps two fragments created in
the same clock tick (or under a clock step backwards) distinct.
"""

from __future__ import annotations

import itertools
import time
import uuid

# Fixed namespace so ids are stable across processes and deployments.
KNOWLEDGE_NAMESPACE = uuid.UUID("6f0b5c2e-4d0a-5b8e-9a61-2f7c3d4e8a10")

_fragment_sequence = itertools.count()


def derive_document_id(agent_id: str, content_seed: str) -> str:
    """Return a stable UUID-shaped id for *content_seed* owned by *agent_id*."""
    return str(uuid.uuid5(KNOWLEDGE_NAMESPACE, f"{agent_id}:{content_seed}"))


def derive_fragment_id(agent_id: str, document_id: str, position: int) -> str:
    """Return a fresh UUID-shaped id for fragment *position* of *document_id*."""
    seed = f"{document_id}-fragment-{position}-{time.time_ns()}-{next(_fragment_sequence)}"
    return derive_document_id(agent_id, seed)
