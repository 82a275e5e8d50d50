"""
Shared OpenAI GPT helper (CompletionService).

Used by:
  - question_generator.py        (synthesis)
  - grading/star_validator.py    (STAR step rubric)
  - grading/code_validator.py    (code review rubric)
  - grading/feedback.py          (legacy open-ended feedback)

Chat model comes from GPT_MODEL (default gpt-4o-mini).
"""

import os
from typing import Optional

import openai
from openai import AsyncOpenAI

from generation.errors import CompletionUnavailable

# ── Model config ───────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")

INTERVIEWER_SYSTEM = (
    "You are a rigorous senior technical interviewer. "
    "Return ONLY valid JSON exactly in the requested format. No prose, no markdown."
)

# Lazy singleton, built on the first completion
_client: Optional[AsyncOpenAI] = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError(
                "OPENAI_API_KEY is not set. Add it to your .env file."
            )
        _client = AsyncOpenAI(api_key=api_key)
    return _client


async def call_gpt(
    prompt: str,
    system: str = INTERVIEWER_SYSTEM,
    temperature: float = 0.4,
    max_tokens: int = 1024,
    top_p: float = 1.0,
) -> str:
    """
    Call OpenAI Chat Completions and return the assistant message text.

    Args:
        prompt:      Rendered generation or rubric prompt
        system:      Persona turn; the interviewer persona by default
        temperature: Graders run near 0.2, synthesis higher
        max_tokens:  Reply length cap; batch kinds need more
        top_p:       Nucleus sampling cutoff

    Returns:
        Reply text, unparsed; callers hand it to the sanitizer

    Raises:
        CompletionUnavailable: on any API or transport failure
    """
    client = _get_client()
    try:
        response = await client.chat.completions.create(
            model=GPT_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            top_p=top_p,
            max_tokens=max_tokens,
        )
    except openai.OpenAIError as e:
        raise CompletionUnavailable(f"Completion request failed: {e}") from e
    return response.choices[0].message.content or ""


class CompletionService:
    """Object wrapper over call_gpt so collaborators can be swapped in tests."""

    async def complete(
        self,
        prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.4,
        top_p: float = 1.0,
    ) -> str:
        return await call_gpt(
            prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
        )


_completion_service: Optional[CompletionService] = None


def get_completion_service() -> CompletionService:
    global _completion_service
    if _completion_service is None:
        _completion_service = CompletionService()
    return _completion_service
