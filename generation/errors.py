"""
Error taxonomy for the daily drill engine.

Every failure surfaced to a caller is a DrillError with a stable `kind`
(the class name) and a structured payload for the HTTP adapter.
"""

from typing import Iterable, List, Optional


class DrillError(Exception):
    """Base class for all engine failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict:
        return {"error": self.kind, "message": self.message}


# ─── Request / state errors ────────────────────────────────────────────────────

class InvalidRequest(DrillError):
    status_code = 400


class InvalidProgressPath(DrillError):
    status_code = 400


class QuizNotFound(DrillError):
    status_code = 404

    def __init__(self, date_key: str):
        super().__init__(f"No quiz stored for {date_key}")
        self.date_key = date_key


class StepLocked(DrillError):
    """Raised by the calling layer when a STAR step is submitted out of order."""

    status_code = 409

    def __init__(self, step: str, required_step: str):
        super().__init__(
            f"Step {step} is locked until step {required_step} scores at least 8"
        )
        self.step = step
        self.required_step = required_step

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["step"] = self.step
        payload["required_step"] = self.required_step
        return payload


# ─── Generation errors ─────────────────────────────────────────────────────────

class InsufficientContext(DrillError):
    status_code = 502

    def __init__(self, missing_categories: Iterable[str]):
        self.missing_categories: List[str] = sorted(missing_categories)
        super().__init__(
            "Insufficient data in vector store for: " + ", ".join(self.missing_categories)
        )

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["missing_categories"] = self.missing_categories
        return payload


class MalformedModelOutput(DrillError):
    status_code = 502

    def __init__(self, raw_text: str, reason: Optional[str] = None):
        super().__init__(reason or "Model output contained no parseable JSON object")
        self.raw_text = raw_text

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["raw_text"] = (self.raw_text or "")[:500]
        return payload


# ─── Remote dependency errors (never retried here) ────────────────────────────

class EmbeddingUnavailable(DrillError):
    status_code = 503


class CompletionUnavailable(DrillError):
    status_code = 503


class StoreUnavailable(DrillError):
    status_code = 503


class CacheUnavailable(DrillError):
    status_code = 503
