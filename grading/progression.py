"""
STAR progression policy for the calling layer.

Steps unlock strictly in order S → T → A → R: a step may be submitted only
once the previous step has a stored Segment scoring at least PASS_THRESHOLD.
S is always open. Re-submitting an already unlocked step is allowed and
replaces its Segment.
"""

from typing import Optional

from generation.errors import InvalidProgressPath, InvalidRequest, StepLocked
from generation.schemas import STAR_STEPS, QuizRecord, STARQuestion
from grading.scoring import PASS_THRESHOLD


def previous_step(step: str) -> Optional[str]:
    if step not in STAR_STEPS:
        raise InvalidRequest(f"Unknown STAR step: {step!r}")
    position = STAR_STEPS.index(step)
    return STAR_STEPS[position - 1] if position > 0 else None


def step_passed(question: STARQuestion, step: str) -> bool:
    segment = question.progress.get(step)
    return segment is not None and segment.score >= PASS_THRESHOLD


def is_step_unlocked(question: STARQuestion, step: str) -> bool:
    required = previous_step(step)
    return required is None or step_passed(question, required)


def is_question_complete(question: STARQuestion) -> bool:
    return step_passed(question, STAR_STEPS[-1])


def require_step_unlocked(quiz: QuizRecord, question_index: int, step: str) -> STARQuestion:
    """
    Return the addressed STAR question if `step` may be submitted.

    Raises:
        InvalidProgressPath: no STAR question at question_index
        StepLocked: the previous step is missing or below threshold
    """
    questions = quiz.resume.star_questions
    if not 0 <= question_index < len(questions):
        raise InvalidProgressPath(f"No STAR question at index {question_index} for {quiz.date}")
    question = questions[question_index]
    if not is_step_unlocked(question, step):
        raise StepLocked(step, previous_step(step))
    return question
