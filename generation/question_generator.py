"""
Step 2 — Question Generation Engine

Generates typed questions from one context passage using OpenAI GPT.
Supported kinds:
  - "mcq"        → 4 options (A/B/C/D) with the correct letter and an explanation
  - "open_ended" → question + answer guidelines (legacy quizzes)
  - "star"       → batch of 5 behavioral questions for STAR drills
  - "coding"     → batch of 3 coding challenges with starter code

Every call is one completion request; the reply goes through the sanitizer
and is decoded into pydantic models. Anything that does not decode raises
MalformedModelOutput; there are no placeholder questions.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from generation.errors import MalformedModelOutput
from generation.gpt_client import get_completion_service
from generation.sanitizer import sanitize
from generation.schemas import (
    CODING_QUESTION_COUNT, MCQ, OPTION_LETTERS, STAR_QUESTION_COUNT,
    CodingQuestion, OpenEnded, STARQuestion,
)

log = logging.getLogger("generation.pipeline")


# ─── Prompts ───────────────────────────────────────────────────────────────────

MCQ_PROMPT = """You are a rigorous senior technical interviewer.

Context:
---
{context_text}
---

Task: Generate 1 multiple-choice question based strictly on the context above.
Type: {topic}

OUTPUT FORMAT — respond with ONLY a valid JSON object, no markdown, no explanation:
{{
  "question": "<question text>",
  "options": ["A) ...", "B) ...", "C) ...", "D) ..."],
  "answer": "<A|B|C|D>",
  "explanation": "<brief explanation of why the answer is correct>"
}}

RULES:
1. Exactly 4 options, exactly ONE correct
2. Distractors must be plausible, not jokes
3. Do NOT use "All of the above" or "None of the above"
4. Return ONLY the JSON object
"""

OPEN_ENDED_PROMPT = """You are a rigorous senior technical interviewer.

Context:
---
{context_text}
---

Task: Ask 1 open-ended interview question grounded in the context above.
Type: {topic}

OUTPUT FORMAT — respond with ONLY a valid JSON object:
{{
  "question": "<question text>",
  "guidelines": "<what a strong answer must cover>"
}}
"""

STAR_PROMPT = """You are a rigorous senior technical interviewer running a behavioral round.

Candidate resume excerpt:
---
{context_text}
---

Task: Write {count} behavioral questions the candidate should answer with the
STAR method (Situation, Task, Action, Result). Anchor each one in the experience
above; vary the competency (ownership, conflict, failure, ambiguity, impact).

OUTPUT FORMAT — respond with ONLY a valid JSON object:
{{
  "questions": [
    {{"category": "<competency, e.g. Ownership>", "question": "<question text>"}}
  ]
}}
The "questions" array must contain exactly {count} items.
"""

CODING_PROMPT = """You are a rigorous senior technical interviewer.

Technical notes:
---
{context_text}
---

Task: Write {count} short, practical coding challenges that exercise the concepts
in the notes. Each must be solvable in under 40 lines.

OUTPUT FORMAT — respond with ONLY a valid JSON object:
{{
  "questions": [
    {{
      "title": "<short title>",
      "description": "<problem statement with input/output expectations>",
      "language": "<python|typescript|javascript|java|go>",
      "starter_code": "<function signature and a TODO body>"
    }}
  ]
}}
The "questions" array must contain exactly {count} items.
"""

# Per-kind request shape: (max_tokens, temperature)
_REQUEST_SHAPE = {
    "mcq": (500, 0.5),
    "open_ended": (500, 0.5),
    "star": (1200, 0.7),
    "coding": (2000, 0.6),
}

CONTEXT_LIMIT = 6000

_LETTER = re.compile(r"^\s*\(?([A-Da-d])(?:\)|\.|:|\s|$)")


# ─── Builders ─────────────────────────────────────────────────────────────────

def _answer_letter(answer: Any, options: List[str]) -> str:
    """Normalise "B", "b)", "B) text" or the full option text to a letter."""
    text = str(answer or "").strip()
    match = _LETTER.match(text)
    if match:
        return match.group(1).upper()
    for letter, option in zip(OPTION_LETTERS, options):
        if text and text == str(option).strip():
            return letter
    raise ValueError(f"Unrecognised answer: {text!r}")


def _build_mcq(data: Dict[str, Any]) -> MCQ:
    options = [str(o).strip() for o in (data.get("options") or [])]
    return MCQ(
        question=str(data["question"]).strip(),
        options=options,
        answer=_answer_letter(data.get("answer"), options),
        explanation=str(data.get("explanation") or "").strip(),
    )


def _build_open_ended(data: Dict[str, Any]) -> OpenEnded:
    return OpenEnded(
        question=str(data["question"]).strip(),
        guidelines=str(data.get("guidelines") or "").strip(),
    )


def _batch_items(data: Dict[str, Any], count: int) -> List[Dict[str, Any]]:
    items = data.get("questions")
    if not isinstance(items, list) or len(items) < count:
        got = len(items) if isinstance(items, list) else 0
        raise ValueError(f"Expected {count} questions, got {got}")
    return items[:count]


def _build_star_set(data: Dict[str, Any]) -> List[STARQuestion]:
    return [
        STARQuestion(
            id=f"star-{uuid.uuid4().hex[:12]}",
            category=str(item.get("category") or "Behavioral").strip(),
            question=str(item["question"]).strip(),
        )
        for item in _batch_items(data, STAR_QUESTION_COUNT)
    ]


def _build_coding_set(data: Dict[str, Any]) -> List[CodingQuestion]:
    return [
        CodingQuestion(
            id=f"code-{uuid.uuid4().hex[:12]}",
            title=str(item["title"]).strip(),
            description=str(item["description"]).strip(),
            language=str(item.get("language") or "python").strip().lower(),
            starter_code=str(item.get("starter_code") or ""),
        )
        for item in _batch_items(data, CODING_QUESTION_COUNT)
    ]


_PROMPTS = {
    "mcq": MCQ_PROMPT,
    "open_ended": OPEN_ENDED_PROMPT,
    "star": STAR_PROMPT,
    "coding": CODING_PROMPT,
}

_BUILDERS = {
    "mcq": _build_mcq,
    "open_ended": _build_open_ended,
    "star": _build_star_set,
    "coding": _build_coding_set,
}


# ─── Synthesizer ──────────────────────────────────────────────────────────────

class QuestionSynthesizer:
    def __init__(self, completion=None):
        self._completion = completion

    @property
    def completion(self):
        if self._completion is None:
            self._completion = get_completion_service()
        return self._completion

    async def synthesize(self, kind: str, context_text: str, topic: str = "Technical Knowledge"):
        """
        Generate one MCQ / OpenEnded, or a STAR / coding batch, from a passage.

        Raises:
            ValueError: unknown kind
            MalformedModelOutput: reply did not decode into the requested type
            CompletionUnavailable: propagated from the completion service
        """
        if kind not in _PROMPTS:
            raise ValueError(f"Unknown question kind: {kind!r}")

        count = STAR_QUESTION_COUNT if kind == "star" else CODING_QUESTION_COUNT
        prompt = _PROMPTS[kind].format(
            context_text=(context_text or "")[:CONTEXT_LIMIT],
            topic=topic,
            count=count,
        )
        max_tokens, temperature = _REQUEST_SHAPE[kind]
        raw = await self.completion.complete(
            prompt, max_tokens=max_tokens, temperature=temperature, top_p=1.0,
        )

        data = sanitize(raw)
        try:
            result = _BUILDERS[kind](data)
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
            log.warning(f"[SYNTHESIZE] {kind} reply did not match schema: {e}")
            raise MalformedModelOutput(raw, f"{kind} reply did not match schema: {e}") from e

        log.info(f"[SYNTHESIZE] {kind} OK ({topic})")
        return result

    async def generate_mcq(self, context_text: str, topic: str) -> MCQ:
        return await self.synthesize("mcq", context_text, topic)

    async def generate_open_ended(self, context_text: str, topic: str) -> OpenEnded:
        return await self.synthesize("open_ended", context_text, topic)

    async def generate_star_set(self, context_text: str) -> List[STARQuestion]:
        return await self.synthesize("star", context_text, "Behavioral (STAR)")

    async def generate_coding_set(self, context_text: str) -> List[CodingQuestion]:
        return await self.synthesize("coding", context_text, "Coding Challenge")


_synthesizer: Optional[QuestionSynthesizer] = None


def get_question_synthesizer() -> QuestionSynthesizer:
    global _synthesizer
    if _synthesizer is None:
        _synthesizer = QuestionSynthesizer()
    return _synthesizer
