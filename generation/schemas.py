"""
Pydantic schemas for the daily drill engine.

Layer 1: ContextRecord — read-only knowledge-base items (leetcode / resume / note)
Layer 2: Question variants — MCQ, OpenEnded, STARQuestion, CodingQuestion
Layer 3: QuizRecord — one persisted record per calendar day, plus the
         ProgressPath used to patch a single progress field in place.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from generation.errors import InvalidProgressPath


CATEGORIES = ("leetcode", "resume", "note")
STAR_STEPS = ("S", "T", "A", "R")
OPTION_LETTERS = ("A", "B", "C", "D")

STAR_QUESTION_COUNT = 5
CODING_QUESTION_COUNT = 3

Category = Literal["leetcode", "resume", "note"]


# ─── Layer 1: Context ──────────────────────────────────────────────────────────

class ContextRecord(BaseModel):
    """One retrievable knowledge-base item."""
    model_config = ConfigDict(frozen=True)

    id: str
    category: Category
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ─── Layer 2: Questions ────────────────────────────────────────────────────────

class MCQ(BaseModel):
    question: str
    options: List[str] = Field(..., min_length=4, max_length=4)
    answer: Literal["A", "B", "C", "D"]
    explanation: str = ""


class OpenEndedFeedback(BaseModel):
    """Legacy single-shot grading result."""
    answer_text: str
    feedback: str
    score: str                      # "X/10"
    improvement_tips: List[str] = Field(default_factory=list)


class OpenEnded(BaseModel):
    question: str
    guidelines: str = ""
    feedback: Optional[OpenEndedFeedback] = None


class Segment(BaseModel):
    """Graded result for one STAR step. Re-submission replaces it wholesale."""
    answer_text: str
    score: int = Field(..., ge=0, le=10)
    feedback: str
    improved_version: Optional[str] = None


class StarProgress(BaseModel):
    S: Optional[Segment] = None
    T: Optional[Segment] = None
    A: Optional[Segment] = None
    R: Optional[Segment] = None

    def get(self, step: str) -> Optional[Segment]:
        return getattr(self, step)


class STARQuestion(BaseModel):
    id: str
    category: str = "Behavioral"
    question: str
    progress: StarProgress = Field(default_factory=StarProgress)


class CodeResult(BaseModel):
    answer_text: str
    score: int = Field(..., ge=0, le=10)
    feedback: str
    better_solution: Optional[str] = None


class CodingQuestion(BaseModel):
    id: str
    title: str
    description: str
    language: str = "python"
    starter_code: str = ""
    progress: Optional[CodeResult] = None


# ─── Layer 3: Quiz record ──────────────────────────────────────────────────────

class LeetcodeSection(BaseModel):
    problem: Dict[str, Any]
    ai_question: MCQ


class ResumeSection(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict)
    mcq: MCQ
    # Older records predate STAR drills; they carry an open-ended question instead.
    star_questions: List[STARQuestion] = Field(default_factory=list)
    open_ended: Optional[OpenEnded] = None


class TechnicalSection(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict)
    mcq: MCQ
    coding_questions: List[CodingQuestion] = Field(default_factory=list)
    open_ended: Optional[OpenEnded] = None


class QuizRecord(BaseModel):
    date: str                       # YYYY-MM-DD, natural primary key
    leetcode: LeetcodeSection
    resume: ResumeSection
    technical: TechnicalSection
    expiry_timestamp: int           # epoch seconds


# ─── Partial update addressing ─────────────────────────────────────────────────

_SECTIONS = ("resume", "technical")


@dataclass(frozen=True)
class ProgressPath:
    """
    Structured address of one mutable progress field inside a QuizRecord.

    Three shapes exist:
      resume.star_questions[i].progress[step]
      technical.coding_questions[i].progress
      <section>.open_ended.feedback
    """
    section: str
    collection: str
    index: Optional[int] = None
    step: Optional[str] = None

    @classmethod
    def star(cls, index: int, step: str) -> "ProgressPath":
        if step not in STAR_STEPS:
            raise InvalidProgressPath(f"Unknown STAR step: {step!r}")
        if index is None or index < 0:
            raise InvalidProgressPath(f"Invalid question index: {index!r}")
        return cls("resume", "star_questions", index, step)

    @classmethod
    def coding(cls, index: int) -> "ProgressPath":
        if index is None or index < 0:
            raise InvalidProgressPath(f"Invalid question index: {index!r}")
        return cls("technical", "coding_questions", index)

    @classmethod
    def open_ended(cls, section: str) -> "ProgressPath":
        if section not in _SECTIONS:
            raise InvalidProgressPath(f"Unknown section: {section!r}")
        return cls(section, "open_ended")

    @property
    def field(self) -> str:
        parts = ["progress", self.section, self.collection]
        if self.index is not None:
            parts.append(str(self.index))
        if self.step is not None:
            parts.append(self.step)
        return ":".join(parts)

    @classmethod
    def from_field(cls, field: str) -> "ProgressPath":
        parts = field.split(":")
        if len(parts) < 3 or parts[0] != "progress":
            raise InvalidProgressPath(f"Not a progress field: {field!r}")
        _, section, collection, *rest = parts
        if collection == "star_questions" and len(rest) == 2:
            return cls.star(int(rest[0]), rest[1])
        if collection == "coding_questions" and len(rest) == 1:
            return cls.coding(int(rest[0]))
        if collection == "open_ended" and not rest:
            return cls.open_ended(section)
        raise InvalidProgressPath(f"Not a progress field: {field!r}")

    def apply(self, quiz: Dict[str, Any], value: Optional[Dict[str, Any]]) -> None:
        """Write `value` at this path inside a plain-dict quiz."""
        section = quiz.get(self.section) or {}
        if self.collection == "open_ended":
            target = section.get("open_ended")
            if not isinstance(target, dict):
                raise InvalidProgressPath(f"{self.section} has no open-ended question")
            target["feedback"] = value
            return

        items = section.get(self.collection) or []
        if not 0 <= self.index < len(items):
            raise InvalidProgressPath(
                f"{self.section}.{self.collection} has no question at index {self.index}"
            )
        question = items[self.index]
        if self.step is None:
            question["progress"] = value
        else:
            progress = question.get("progress") or {}
            progress[self.step] = value
            question["progress"] = progress


# ─── API request bodies (camelCase accepted for the web client) ───────────────

class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateRequest(_RequestModel):
    date: Optional[str] = Field(None, description="YYYY-MM-DD; defaults to today (UTC)")
    force: bool = Field(False, description="Regenerate even if a quiz exists for the day")


class ValidateStarRequest(_RequestModel):
    date: Optional[str] = None
    question_index: Optional[int] = Field(None, alias="questionIndex", ge=0)
    step: Literal["S", "T", "A", "R"]
    user_answer: str = Field(..., alias="userAnswer", min_length=1)
    question: str


class ValidateCodeRequest(_RequestModel):
    date: Optional[str] = None
    question_index: Optional[int] = Field(None, alias="questionIndex", ge=0)
    user_answer: str = Field(..., alias="userAnswer", min_length=1)
    question: str
    language: str = "python"


class FeedbackRequest(_RequestModel):
    date: Optional[str] = None
    section: Optional[Literal["resume", "technical"]] = None
    user_answer: str = Field(..., alias="userAnswer", min_length=1)
    question: str
    guidelines: str = ""
