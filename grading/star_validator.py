"""
STAR Step Validator

Grades one STAR step (Situation, Task, Action, Result) of a behavioral
answer with a single rubric completion, then stores the Segment in the
matching question's progress via a targeted partial update.

The validator does NOT check that earlier steps have passed; it grades
whatever it is given. Sequencing is enforced by the calling layer
(grading/progression.py).
"""

import logging
from typing import Optional

from pydantic import ValidationError

from database.redis_client import get_quiz_cache
from generation.errors import InvalidRequest, MalformedModelOutput
from generation.gpt_client import get_completion_service
from generation.sanitizer import sanitize
from generation.schemas import STAR_STEPS, ProgressPath, Segment
from grading.scoring import PASS_THRESHOLD, coerce_score

log = logging.getLogger("grading")


STEP_DEFINITIONS = {
    "S": ("Situation", "Sets the scene: when, where, who, and what made it hard. Specific, not generic."),
    "T": ("Task", "States the candidate's own responsibility or goal, distinct from the team's."),
    "A": ("Action", "Concrete steps the candidate personally took, in 'I' statements, with reasoning."),
    "R": ("Result", "Measurable outcome (numbers, time, quality) and what was learned."),
}

STAR_RUBRIC_PROMPT = """You are a rigorous senior interviewer grading one part of a STAR answer.

Behavioral question: {question}

Part being graded: {step} — {label}
Definition: {definition}

Candidate's {label} answer:
---
{answer}
---

Score ONLY how well this text fulfils the {label} part, from 0 to 10.
If the score is below {threshold}, rewrite the answer as a strong {label}
that keeps the candidate's facts; otherwise set "better_version" to null.

Respond with JSON ONLY:
{{
  "score": <integer 0-10>,
  "feedback": "<2-3 sentences of specific feedback>",
  "better_version": "<improved rewrite or null>"
}}"""


def build_segment(answer_text: str, data: dict) -> Segment:
    score = coerce_score(data.get("score"))
    improved = data.get("better_version") or data.get("improved_version")
    return Segment(
        answer_text=answer_text,
        score=score,
        feedback=str(data.get("feedback") or "").strip(),
        improved_version=str(improved).strip() if improved and score < PASS_THRESHOLD else None,
    )


class StarValidator:
    def __init__(self, completion=None, cache=None):
        self._completion = completion
        self._cache = cache

    @property
    def completion(self):
        if self._completion is None:
            self._completion = get_completion_service()
        return self._completion

    @property
    def cache(self):
        if self._cache is None:
            self._cache = get_quiz_cache()
        return self._cache

    async def validate_step(
        self,
        date_key: Optional[str],
        question_index: Optional[int],
        step: str,
        answer_text: str,
        question_text: str,
    ) -> Segment:
        """
        Grade one STAR step; persist it when both date_key and question_index are given.

        Raises:
            InvalidRequest: unknown step or empty answer
            MalformedModelOutput / CompletionUnavailable: grading failed, nothing written
            QuizNotFound / InvalidProgressPath / CacheUnavailable: persisting failed
        """
        if step not in STAR_STEPS:
            raise InvalidRequest(f"Unknown STAR step: {step!r}")
        if not answer_text or not answer_text.strip():
            raise InvalidRequest("Answer is empty")

        label, definition = STEP_DEFINITIONS[step]
        prompt = STAR_RUBRIC_PROMPT.format(
            question=question_text,
            step=step,
            label=label,
            definition=definition,
            answer=answer_text,
            threshold=PASS_THRESHOLD,
        )
        raw = await self.completion.complete(prompt, max_tokens=800, temperature=0.2, top_p=1.0)
        data = sanitize(raw)
        try:
            segment = build_segment(answer_text, data)
        except (ValueError, ValidationError) as e:
            raise MalformedModelOutput(raw, f"STAR grade did not match schema: {e}") from e

        log.info(f"[STAR] {date_key} q{question_index} {step} scored {segment.score}/10")

        if date_key is not None and question_index is not None:
            await self.cache.partial_update(date_key, ProgressPath.star(question_index, step), segment)
        return segment


_star_validator: Optional[StarValidator] = None


def get_star_validator() -> StarValidator:
    global _star_validator
    if _star_validator is None:
        _star_validator = StarValidator()
    return _star_validator
