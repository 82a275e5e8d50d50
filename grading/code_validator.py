"""
Code Validator

Single-shot code review: one rubric completion (correctness, idiomatic
style, edge cases and security), score 0–10. The result replaces any
previous result for that coding question; there is no sequencing.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from database.redis_client import get_quiz_cache
from generation.errors import InvalidRequest, MalformedModelOutput
from generation.gpt_client import get_completion_service
from generation.sanitizer import sanitize
from generation.schemas import CodeResult, ProgressPath
from grading.scoring import MAX_SCORE, coerce_score

log = logging.getLogger("grading")


CODE_RUBRIC_PROMPT = """You are a rigorous senior engineer reviewing an interview solution.

Problem:
---
{question}
---

Candidate's {language} solution:
```{language}
{answer}
```

Grade from 0 to 10 using:
1. Correctness — does it solve the problem for all valid inputs?
2. Idiomatic {language} — naming, structure, standard library use
3. Edge cases and security — empty/large inputs, invalid data, unsafe operations

If the score is below 10, provide a better complete solution in {language};
otherwise set "better_solution" to null.

Respond with JSON ONLY:
{{
  "score": <integer 0-10>,
  "feedback": "<specific review, 3-5 sentences>",
  "better_solution": "<improved code or null>"
}}"""


def build_code_result(answer_text: str, data: dict) -> CodeResult:
    score = coerce_score(data.get("score"))
    better = data.get("better_solution")
    return CodeResult(
        answer_text=answer_text,
        score=score,
        feedback=str(data.get("feedback") or "").strip(),
        better_solution=str(better) if better and score < MAX_SCORE else None,
    )


class CodeValidator:
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

    async def validate_code(
        self,
        date_key: Optional[str],
        question_index: Optional[int],
        answer_text: str,
        question_text: str,
        language: str = "python",
    ) -> CodeResult:
        if not answer_text or not answer_text.strip():
            raise InvalidRequest("Code is empty")

        language = (language or "python").strip().lower()
        prompt = CODE_RUBRIC_PROMPT.format(
            question=question_text,
            language=language,
            answer=answer_text,
        )
        raw = await self.completion.complete(prompt, max_tokens=2000, temperature=0.2, top_p=1.0)
        data = sanitize(raw)
        try:
            result = build_code_result(answer_text, data)
        except (ValueError, ValidationError) as e:
            raise MalformedModelOutput(raw, f"Code review did not match schema: {e}") from e

        log.info(f"[CODE] {date_key} q{question_index} ({language}) scored {result.score}/10")

        if date_key is not None and question_index is not None:
            await self.cache.partial_update(date_key, ProgressPath.coding(question_index), result)
        return result


_code_validator: Optional[CodeValidator] = None


def get_code_validator() -> CodeValidator:
    global _code_validator
    if _code_validator is None:
        _code_validator = CodeValidator()
    return _code_validator
