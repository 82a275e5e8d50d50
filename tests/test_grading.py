import asyncio
import json

import pytest

from fakes import FakeCompletion, sample_quiz
from generation.errors import (
    InvalidProgressPath, InvalidRequest, MalformedModelOutput, QuizNotFound, StepLocked,
)
from generation.schemas import OpenEnded, Segment
from grading.code_validator import CodeValidator
from grading.feedback import grade_open_ended
from grading.progression import (
    is_question_complete, is_step_unlocked, previous_step, require_step_unlocked,
)
from grading.scoring import coerce_score
from grading.star_validator import StarValidator


def _grader(**reply):
    return FakeCompletion(lambda prompt: json.dumps(reply))


def _store(cache, quiz=None):
    quiz = quiz or sample_quiz()
    cache.records[quiz.date] = quiz.model_dump(mode="json")
    return quiz


# ─── Scoring ──────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("value,expected", [
    (7, 7), (7.6, 8), ("9", 9), ("6/10", 6), (" 10 ", 10), (14, 10), (-2, 0),
])
def test_coerce_score(value, expected):
    assert coerce_score(value) == expected


@pytest.mark.parametrize("value", [None, "", "great", True, [8]])
def test_coerce_score_rejects_non_numbers(value):
    with pytest.raises(ValueError):
        coerce_score(value)


# ─── STAR validator ───────────────────────────────────────────────────────────

def test_star_step_is_graded_and_stored(cache):
    _store(cache)
    completion = _grader(score=5, feedback="Too vague.", better_version="In Q3 2023 at Acme...")
    validator = StarValidator(completion=completion, cache=cache)

    segment = asyncio.run(validator.validate_step("2025-10-09", 2, "S", "It was busy.", "Tell me..."))

    assert segment == Segment(
        answer_text="It was busy.", score=5, feedback="Too vague.",
        improved_version="In Q3 2023 at Acme...",
    )
    stored = cache.records["2025-10-09"]["resume"]["star_questions"]
    assert stored[2]["progress"]["S"]["score"] == 5
    assert stored[1]["progress"]["S"] is None
    assert "Situation" in completion.prompts[0]


def test_passing_step_has_no_improved_version(cache):
    _store(cache)
    validator = StarValidator(completion=_grader(score="9/10", feedback="Clear.", better_version="x"), cache=cache)

    segment = asyncio.run(validator.validate_step("2025-10-09", 0, "T", "I owned the rollout.", "q"))

    assert segment.score == 9
    assert segment.improved_version is None


def test_validator_grades_steps_out_of_order(cache):
    _store(cache)
    validator = StarValidator(completion=_grader(score=7, feedback="ok"), cache=cache)

    asyncio.run(validator.validate_step("2025-10-09", 0, "R", "Latency fell 40%.", "q"))

    progress = cache.records["2025-10-09"]["resume"]["star_questions"][0]["progress"]
    assert progress["R"]["score"] == 7
    assert progress["S"] is None


def test_without_date_nothing_is_written(cache):
    _store(cache)
    before = json.dumps(cache.records, sort_keys=True)
    validator = StarValidator(completion=_grader(score=8, feedback="ok"), cache=cache)

    asyncio.run(validator.validate_step(None, None, "A", "I paired with SRE.", "q"))

    assert json.dumps(cache.records, sort_keys=True) == before


def test_unparseable_grade_writes_nothing(cache):
    _store(cache)
    before = json.dumps(cache.records, sort_keys=True)
    validator = StarValidator(completion=FakeCompletion(lambda p: "Score: great"), cache=cache)

    with pytest.raises(MalformedModelOutput):
        asyncio.run(validator.validate_step("2025-10-09", 0, "S", "text", "q"))
    assert json.dumps(cache.records, sort_keys=True) == before


def test_missing_score_is_malformed(cache):
    _store(cache)
    validator = StarValidator(completion=_grader(feedback="no score"), cache=cache)

    with pytest.raises(MalformedModelOutput):
        asyncio.run(validator.validate_step("2025-10-09", 0, "S", "text", "q"))


def test_invalid_step_and_empty_answer(cache):
    validator = StarValidator(completion=_grader(score=8, feedback="ok"), cache=cache)

    with pytest.raises(InvalidRequest):
        asyncio.run(validator.validate_step(None, None, "X", "text", "q"))
    with pytest.raises(InvalidRequest):
        asyncio.run(validator.validate_step(None, None, "S", "   ", "q"))
    assert validator.completion.prompts == []


def test_unknown_day_raises_not_found(cache):
    validator = StarValidator(completion=_grader(score=8, feedback="ok"), cache=cache)

    with pytest.raises(QuizNotFound):
        asyncio.run(validator.validate_step("2025-10-01", 0, "S", "text", "q"))


# ─── Code validator ───────────────────────────────────────────────────────────

def test_perfect_code_has_no_better_solution(cache):
    _store(cache)
    validator = CodeValidator(completion=_grader(score=10, feedback="Clean.", better_solution="def f(): ..."), cache=cache)

    result = asyncio.run(validator.validate_code("2025-10-09", 1, "def f(): ...", "Reverse", "Python"))

    assert result.score == 10
    assert result.better_solution is None
    assert "```python" in validator.completion.prompts[0]


def test_code_resubmission_replaces_result(cache):
    _store(cache)
    first = CodeValidator(completion=_grader(score=4, feedback="Misses empty input.", better_solution="v2"), cache=cache)
    second = CodeValidator(completion=_grader(score=9, feedback="Good.", better_solution="v3"), cache=cache)

    asyncio.run(first.validate_code("2025-10-09", 0, "v1", "q"))
    asyncio.run(second.validate_code("2025-10-09", 0, "v2", "q"))

    progress = cache.records["2025-10-09"]["technical"]["coding_questions"][0]["progress"]
    assert progress == {"answer_text": "v2", "score": 9, "feedback": "Good.", "better_solution": "v3"}


def test_fenced_better_solution_is_kept(cache):
    _store(cache)
    better = "```python\ndef f(xs):\n    return {x: 1 for x in xs}\n```"
    validator = CodeValidator(completion=_grader(score=6, feedback="Rebuilds the dict.", better_solution=better), cache=cache)

    result = asyncio.run(validator.validate_code("2025-10-09", 2, "def f(xs): ...", "Index a list"))

    assert result.score == 6
    assert result.better_solution == better
    stored = cache.records["2025-10-09"]["technical"]["coding_questions"][2]["progress"]
    assert stored["better_solution"] == better


def test_code_index_out_of_range(cache):
    _store(cache)
    validator = CodeValidator(completion=_grader(score=5, feedback="ok"), cache=cache)

    with pytest.raises(InvalidProgressPath):
        asyncio.run(validator.validate_code("2025-10-09", 3, "code", "q"))


# ─── Legacy open-ended feedback ───────────────────────────────────────────────

def test_open_ended_feedback_is_stored(cache):
    quiz = sample_quiz()
    quiz.technical.open_ended = OpenEnded(question="Explain CAP", guidelines="partitions")
    _store(cache, quiz)
    completion = _grader(feedback="Solid.", score=7, improvement_tips=["Mention PACELC", ""])

    result = asyncio.run(grade_open_ended(
        "Consistency or availability under partition.", "Explain CAP",
        date_key="2025-10-09", section="technical", completion=completion, cache=cache,
    ))

    assert result.score == "7/10"
    assert result.improvement_tips == ["Mention PACELC"]
    stored = cache.records["2025-10-09"]["technical"]["open_ended"]["feedback"]
    assert stored["score"] == "7/10"


def test_open_ended_without_question_in_record(cache):
    _store(cache)

    with pytest.raises(InvalidProgressPath):
        asyncio.run(grade_open_ended(
            "answer", "q", date_key="2025-10-09", section="resume",
            completion=_grader(feedback="ok", score="5/10"), cache=cache,
        ))


# ─── Progression ──────────────────────────────────────────────────────────────

def _with_progress(**scores):
    quiz = sample_quiz()
    for step, score in scores.items():
        setattr(quiz.resume.star_questions[0].progress, step,
                Segment(answer_text=step, score=score, feedback=""))
    return quiz


def test_previous_step():
    assert previous_step("S") is None
    assert previous_step("A") == "T"
    with pytest.raises(InvalidRequest):
        previous_step("Q")


def test_situation_always_unlocked():
    quiz = sample_quiz()
    assert is_step_unlocked(quiz.resume.star_questions[0], "S")
    assert require_step_unlocked(quiz, 0, "S").id == "star-0"


def test_step_locked_until_previous_passes():
    quiz = _with_progress(S=7)

    with pytest.raises(StepLocked) as exc:
        require_step_unlocked(quiz, 0, "T")
    assert exc.value.to_payload()["required_step"] == "S"

    quiz = _with_progress(S=8)
    require_step_unlocked(quiz, 0, "T")
    with pytest.raises(StepLocked):
        require_step_unlocked(quiz, 0, "A")


def test_question_complete_after_result_passes():
    quiz = _with_progress(S=9, T=8, A=10, R=8)
    assert is_question_complete(quiz.resume.star_questions[0])
    assert not is_question_complete(quiz.resume.star_questions[1])


def test_require_step_bad_index():
    with pytest.raises(InvalidProgressPath):
        require_step_unlocked(sample_quiz(), 9, "S")
