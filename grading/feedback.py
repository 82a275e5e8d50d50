"""
Legacy open-ended feedback.

Quizzes generated before STAR and coding drills carried one open-ended
question per section. This grader is a single-segment validator: one
completion, no progression rules, result written to
<section>.open_ended.feedback.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from database.redis_client import get_quiz_cache
from generation.errors import InvalidRequest, MalformedModelOutput
from generation.gpt_client import get_completion_service
from generation.sanitizer import sanitize
from generation.schemas import OpenEndedFeedback, ProgressPath
from grading.scoring import coerce_score

log = logging.getLogger("grading")


FEEDBACK_PROMPT = """You are a rigorous senior technical interviewer.

Question: {question}
What a strong answer covers: {guidelines}

Candidate's answer:
---
{answer}
---

Respond with JSON ONLY:
{{
  "feedback": "<specific feedback, 2-4 sentences>",
  "score": "<X/10>",
  "improvement_tips": ["<tip>", "<tip>"]
}}"""


def _tips(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        raise ValueError(f"improvement_tips must be a list, got {type(value).__name__}")
    return [str(tip).strip() for tip in value if str(tip).strip()]


async def grade_open_ended(
    answer_text: str,
    question_text: str,
    guidelines: str = "",
    date_key: Optional[str] = None,
    section: Optional[str] = None,
    completion=None,
    cache=None,
) -> OpenEndedFeedback:
    """Grade a plain open-ended answer; persist when date_key and section are given."""
    if not answer_text or not answer_text.strip():
        raise InvalidRequest("Answer is empty")

    completion = completion or get_completion_service()
    prompt = FEEDBACK_PROMPT.format(
        question=question_text,
        guidelines=guidelines or "a clear, correct and well-structured explanation",
        answer=answer_text,
    )
    raw = await completion.complete(prompt, max_tokens=600, temperature=0.3, top_p=1.0)
    data = sanitize(raw)
    try:
        result = OpenEndedFeedback(
            answer_text=answer_text,
            feedback=str(data.get("feedback") or "").strip(),
            score=f"{coerce_score(data.get('score'))}/10",
            improvement_tips=_tips(data.get("improvement_tips")),
        )
    except (ValueError, ValidationError) as e:
        raise MalformedModelOutput(raw, f"Feedback did not match schema: {e}") from e

    log.info(f"[FEEDBACK] {date_key} {section} scored {result.score}")

    if date_key is not None and section is not None:
        cache = cache or get_quiz_cache()
        await cache.partial_update(date_key, ProgressPath.open_ended(section), result)
    return result
