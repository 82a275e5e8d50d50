"""In-memory stand-ins for the remote capabilities."""

import asyncio
import json
from typing import Callable, Dict, List, Optional

from generation.errors import QuizNotFound
from generation.schemas import ContextRecord, ProgressPath, QuizRecord


DAY = 24 * 60 * 60
NOW = 1_760_000_000.0  # 2025-10-09


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeEmbedder:
    def __init__(self):
        self.calls: List[str] = []

    async def embed(self, text, dimension=1024, normalize=True):
        self.calls.append(text)
        return [float(len(text)), 1.0]


class FakeStore:
    def __init__(self, search_results=None, any_results=None, error=None, gate=None):
        self.search_results: Dict[str, List[ContextRecord]] = search_results or {}
        self.any_results: Dict[str, List[ContextRecord]] = any_results or {}
        self.error = error
        self.gate = gate
        self.search_calls: List[tuple] = []
        self.any_calls: List[tuple] = []

    async def search(self, vector, category, limit=5):
        self.search_calls.append((tuple(vector), category, limit))
        if self.gate:
            await self.gate.wait()
        if self.error:
            raise self.error
        return list(self.search_results.get(category, []))[:limit]

    async def any(self, category, limit=1):
        self.any_calls.append((category, limit))
        return list(self.any_results.get(category, []))[:limit]


class Gate:
    """Holds every caller until `parties` callers are waiting at the same time."""

    def __init__(self, parties: int, timeout: float = 2.0):
        self.parties = parties
        self.timeout = timeout
        self.arrived = 0
        self._open: Optional[asyncio.Event] = None

    async def wait(self):
        if self._open is None:
            self._open = asyncio.Event()
        self.arrived += 1
        if self.arrived >= self.parties:
            self._open.set()
        await asyncio.wait_for(self._open.wait(), self.timeout)


class GatedEmbedder(FakeEmbedder):
    def __init__(self, gate: Gate):
        super().__init__()
        self.gate = gate

    async def embed(self, text, dimension=1024, normalize=True):
        await self.gate.wait()
        return await super().embed(text, dimension, normalize)


class FakeCompletion:
    """Replies via `responder(prompt)`; records every prompt."""

    def __init__(self, responder: Callable[[str], str]):
        self.responder = responder
        self.prompts: List[str] = []

    async def complete(self, prompt, max_tokens=1024, temperature=0.4, top_p=1.0):
        self.prompts.append(prompt)
        return self.responder(prompt)


class InMemoryQuizCache:
    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.records: Dict[str, dict] = {}
        self.puts: List[str] = []

    async def get(self, date_key):
        data = self.records.get(date_key)
        if data is None or data["expiry_timestamp"] <= self.clock():
            return None
        return QuizRecord.model_validate(json.loads(json.dumps(data)))

    async def put(self, date_key, record, ttl):
        self.puts.append(date_key)
        self.records[date_key] = record.model_dump(mode="json")

    async def put_if_absent(self, date_key, record, ttl):
        if await self.get(date_key) is not None:
            return False
        await self.put(date_key, record, ttl)
        return True

    async def partial_update(self, date_key, path: ProgressPath, value):
        if await self.get(date_key) is None:
            raise QuizNotFound(date_key)
        path.apply(self.records[date_key], value.model_dump(mode="json") if value else None)

    async def list_recent(self, limit=7):
        out = []
        for date_key in sorted(self.records, reverse=True):
            record = await self.get(date_key)
            if record is not None:
                out.append(record)
        return out[:limit]


# ─── Canned model replies ─────────────────────────────────────────────────────

MCQ_REPLY = json.dumps({
    "question": "Which structure gives O(1) average lookup?",
    "options": ["A) Linked list", "B) Hash map", "C) Binary heap", "D) Sorted array"],
    "answer": "B) Hash map",
    "explanation": "Hash maps index by hashed key.",
})

STAR_REPLY = json.dumps({
    "questions": [
        {"category": c, "question": f"Tell me about a time you showed {c.lower()}."}
        for c in ("Ownership", "Conflict", "Failure", "Ambiguity", "Impact")
    ]
})

CODING_REPLY = "```json\n" + json.dumps({
    "questions": [
        {
            "title": f"Challenge {i}",
            "description": f"Solve problem {i}.",
            "language": "Python",
            "starter_code": "def solve(xs):\n    pass\n",
        }
        for i in range(1, 4)
    ]
}) + "\n```"


def drill_responder(prompt: str) -> str:
    if "STAR method" in prompt:
        return STAR_REPLY
    if "coding challenges" in prompt:
        return CODING_REPLY
    return MCQ_REPLY


def record(record_id: str, category: str, text: str = "", **metadata) -> ContextRecord:
    return ContextRecord(id=record_id, category=category, text=text or f"{category} text", metadata=metadata)


def full_store() -> FakeStore:
    return FakeStore(search_results={
        "leetcode": [record("lc-1", "leetcode", json.dumps({"title": "Two Sum", "difficulty": "Easy"}))],
        "resume": [record("res-1", "resume", "Led the payments migration", company="Acme")],
        "note": [record("note-1", "note", "Consistent hashing spreads keys", topic="distributed")],
    })


def sample_quiz(date_key: str = "2025-10-09", expiry: float = NOW + 7 * DAY,
                star_count: int = 5, coding_count: int = 3) -> QuizRecord:
    mcq = json.loads(MCQ_REPLY)
    mcq["answer"] = "B"
    return QuizRecord.model_validate({
        "date": date_key,
        "leetcode": {"problem": {"title": "Two Sum"}, "ai_question": mcq},
        "resume": {
            "context": {"company": "Acme"},
            "mcq": mcq,
            "star_questions": [
                {"id": f"star-{i}", "category": "Ownership", "question": f"Story {i}"}
                for i in range(star_count)
            ],
        },
        "technical": {
            "context": {"topic": "distributed"},
            "mcq": mcq,
            "coding_questions": [
                {"id": f"code-{i}", "title": f"T{i}", "description": "d"}
                for i in range(coding_count)
            ],
        },
        "expiry_timestamp": int(expiry),
    })


class GatedCompletion(FakeCompletion):
    def __init__(self, gate: Gate, responder: Callable[[str], str]):
        super().__init__(responder)
        self.gate = gate

    async def complete(self, prompt, max_tokens=1024, temperature=0.4, top_p=1.0):
        await self.gate.wait()
        return await super().complete(prompt, max_tokens, temperature, top_p)
