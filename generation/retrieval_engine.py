"""
Step 1 — Retrieval Engine

Picks one context record per category (leetcode / resume / note):
- Embeds two random probe words concurrently (leetcode + resume share the
  first probe, note uses the second)
- Similarity search per category, up to CANDIDATES_PER_CATEGORY each
- Resume fallback: if similarity search starves it, take any resume record
- Uniform random pick per category gives daily variety from a static corpus
- Any category still empty → InsufficientContext naming every empty one
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from embeddings import get_embedding_generator
from embeddings.qdrant_manager import get_qdrant_manager
from generation.errors import InsufficientContext
from generation.schemas import ContextRecord

log = logging.getLogger("generation.pipeline")


# ─── Constants ────────────────────────────────────────────────────────────────

PROBE_VOCABULARY = (
    "algorithm", "system design", "database", "network", "security",
    "react", "aws", "deploy", "scale",
)
PROBE_DIMENSION = 1024
CANDIDATES_PER_CATEGORY = 5
FALLBACK_LIMIT = 1

# Categories rescued by a non-similarity lookup when search returns nothing.
FALLBACK_CATEGORIES = ("resume",)


@dataclass(frozen=True)
class ContextSet:
    leetcode: ContextRecord
    resume: ContextRecord
    note: ContextRecord


class Retriever:
    def __init__(self, embedder=None, store=None, rng: Optional[random.Random] = None):
        self._embedder = embedder
        self._store = store
        self.rng = rng or random.Random()

    @property
    def embedder(self):
        if self._embedder is None:
            self._embedder = get_embedding_generator()
        return self._embedder

    @property
    def store(self):
        if self._store is None:
            self._store = get_qdrant_manager()
        return self._store

    async def _probe(self) -> List[float]:
        word = self.rng.choice(PROBE_VOCABULARY)
        log.info(f"[RETRIEVE] Probe word: {word!r}")
        return await self.embedder.embed(word, dimension=PROBE_DIMENSION, normalize=True)

    async def _candidates(self, vector: List[float], category: str) -> List[ContextRecord]:
        rows = await self.store.search(vector, category, CANDIDATES_PER_CATEGORY)
        if not rows and category in FALLBACK_CATEGORIES:
            log.info(f"[RETRIEVE] No similarity hits for {category}; using fallback lookup")
            rows = await self.store.any(category, FALLBACK_LIMIT)
        return rows

    async def retrieve_context_set(self) -> ContextSet:
        """
        Raises:
            InsufficientContext: if any category has no candidates after fallback
            EmbeddingUnavailable / StoreUnavailable: propagated from collaborators
        """
        primary, secondary = await asyncio.gather(self._probe(), self._probe())
        probes = {"leetcode": primary, "resume": primary, "note": secondary}

        categories = list(probes)
        results = await asyncio.gather(
            *(self._candidates(probes[c], c) for c in categories)
        )
        candidates: Dict[str, List[ContextRecord]] = dict(zip(categories, results))

        missing = [c for c in categories if not candidates[c]]
        if missing:
            log.error(f"[RETRIEVE] Starved categories: {missing}")
            raise InsufficientContext(missing)

        picked = {c: self.rng.choice(rows) for c, rows in candidates.items()}
        log.info(
            "[RETRIEVE] Picked "
            + ", ".join(f"{c}={r.id}" for c, r in picked.items())
        )
        return ContextSet(**picked)
