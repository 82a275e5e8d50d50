"""
Step 3 — Daily Quiz Pipeline (GenerationOrchestrator)

    Check → Retrieve → Synthesize → Persist → Return

- Check:      cache read by date; a hit returns immediately (skipped when force=True)
- Retrieve:   one context record per category
- Synthesize: five independent generation calls fanned out with asyncio.gather;
              the first failure fails the whole step, siblings' results are dropped
- Persist:    overwrite the day's record with a fresh retention window

Two concurrent misses for the same day both generate and the last write wins.
Set QUIZ_CREATE_IF_ABSENT=true to persist with create-if-absent instead; the
losing request then returns the winner's record.
"""

import asyncio
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from database.redis_client import RETENTION_SECONDS, get_quiz_cache
from generation.errors import InvalidRequest
from generation.question_generator import get_question_synthesizer
from generation.retrieval_engine import ContextSet, Retriever
from generation.schemas import (
    ContextRecord, LeetcodeSection, QuizRecord, ResumeSection, TechnicalSection,
)

log = logging.getLogger("generation.pipeline")

CREATE_IF_ABSENT = os.getenv("QUIZ_CREATE_IF_ABSENT", "false").lower() in ("1", "true", "yes")


def today_key(now: Optional[float] = None) -> str:
    moment = datetime.fromtimestamp(now if now is not None else time.time(), tz=timezone.utc)
    return moment.strftime("%Y-%m-%d")


def validate_date_key(date_key: str) -> str:
    """Return the zero-padded YYYY-MM-DD form; "2025-10-9" and "2025-10-09" are one day."""
    try:
        parsed = datetime.strptime(date_key, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise InvalidRequest(f"Date must be YYYY-MM-DD, got {date_key!r}")
    return parsed.strftime("%Y-%m-%d")


def _leetcode_problem(record: ContextRecord) -> Dict[str, Any]:
    """Leetcode records store the problem as JSON text."""
    try:
        problem = json.loads(record.text)
    except json.JSONDecodeError:
        return {"description": record.text}
    return problem if isinstance(problem, dict) else {"description": record.text}


class DailyQuizPipeline:
    def __init__(
        self,
        retriever: Optional[Retriever] = None,
        synthesizer=None,
        cache=None,
        clock: Callable[[], float] = time.time,
        retention_seconds: int = RETENTION_SECONDS,
        create_if_absent: bool = CREATE_IF_ABSENT,
    ):
        self.retriever = retriever or Retriever()
        self._synthesizer = synthesizer
        self._cache = cache
        self.clock = clock
        self.retention_seconds = retention_seconds
        self.create_if_absent = create_if_absent

    @property
    def synthesizer(self):
        if self._synthesizer is None:
            self._synthesizer = get_question_synthesizer()
        return self._synthesizer

    @property
    def cache(self):
        if self._cache is None:
            self._cache = get_quiz_cache()
        return self._cache

    async def generate(self, date_key: Optional[str] = None, force: bool = False) -> QuizRecord:
        """
        Return the quiz for `date_key` (default: today, UTC), generating it on a miss.

        Raises:
            InvalidRequest, InsufficientContext, MalformedModelOutput,
            EmbeddingUnavailable, CompletionUnavailable, StoreUnavailable, CacheUnavailable
        """
        date_key = validate_date_key(date_key or today_key(self.clock()))

        # ── Check ─────────────────────────────────────────────────────────
        if not force:
            cached = await self.cache.get(date_key)
            if cached is not None:
                log.info(f"[CHECK] Returning cached quiz for {date_key}")
                return cached
        else:
            log.info(f"[CHECK] force=True, regenerating {date_key}")

        # ── Retrieve ──────────────────────────────────────────────────────
        log.info(f"[RETRIEVE] Generating new quiz for {date_key}")
        context = await self.retriever.retrieve_context_set()

        # ── Synthesize ────────────────────────────────────────────────────
        record = await self._synthesize(date_key, context)

        # ── Persist ───────────────────────────────────────────────────────
        ttl = self.retention_seconds
        if self.create_if_absent and not force:
            written = await self.cache.put_if_absent(date_key, record, ttl)
            if not written:
                log.info(f"[PERSIST] Lost create race for {date_key}; returning stored quiz")
                winner = await self.cache.get(date_key)
                if winner is not None:
                    return winner
                await self.cache.put(date_key, record, ttl)
        else:
            await self.cache.put(date_key, record, ttl)
        log.info(f"[PERSIST] Saved quiz for {date_key}")
        return record

    async def _synthesize(self, date_key: str, context: ContextSet) -> QuizRecord:
        synth = self.synthesizer
        (
            leetcode_mcq,
            resume_mcq,
            star_questions,
            technical_mcq,
            coding_questions,
        ) = await asyncio.gather(
            synth.generate_mcq(context.leetcode.text, "LeetCode Strategy"),
            synth.generate_mcq(context.resume.text, "Resume Experience"),
            synth.generate_star_set(context.resume.text),
            synth.generate_mcq(context.note.text, "Technical Knowledge"),
            synth.generate_coding_set(context.note.text),
        )
        log.info(
            f"[SYNTHESIZE] {date_key}: 3 MCQs, {len(star_questions)} STAR, "
            f"{len(coding_questions)} coding"
        )
        return QuizRecord(
            date=date_key,
            leetcode=LeetcodeSection(
                problem=_leetcode_problem(context.leetcode),
                ai_question=leetcode_mcq,
            ),
            resume=ResumeSection(
                context=dict(context.resume.metadata),
                mcq=resume_mcq,
                star_questions=star_questions,
            ),
            technical=TechnicalSection(
                context=dict(context.note.metadata),
                mcq=technical_mcq,
                coding_questions=coding_questions,
            ),
            expiry_timestamp=int(self.clock()) + self.retention_seconds,
        )

    async def list_recent(self, limit_days: int = 7) -> List[QuizRecord]:
        """Read-only history, newest first."""
        if limit_days < 1:
            raise InvalidRequest("limit must be at least 1")
        return await self.cache.list_recent(limit_days)


_pipeline: Optional[DailyQuizPipeline] = None


def get_daily_quiz_pipeline() -> DailyQuizPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = DailyQuizPipeline()
    return _pipeline
