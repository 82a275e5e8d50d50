"""
Drill Router

Thin HTTP layer over the generation pipeline and graders.
Endpoints:
  GET  /history          — recent daily quizzes, newest first
  POST /generate         — today's quiz (cached), or regenerate with force=true
  POST /validate-star    — grade one STAR step (enforces S→T→A→R unlocking)
  POST /validate-code    — grade a coding answer
  POST /feedback         — legacy open-ended feedback
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from database.redis_client import QuizCache, get_quiz_cache
from generation.errors import QuizNotFound
from generation.gpt_client import CompletionService, get_completion_service
from generation.pipeline import DailyQuizPipeline, get_daily_quiz_pipeline, validate_date_key
from generation.schemas import (
    CodeResult, FeedbackRequest, GenerateRequest, OpenEndedFeedback, QuizRecord,
    Segment, ValidateCodeRequest, ValidateStarRequest,
)
from grading.code_validator import CodeValidator, get_code_validator
from grading.feedback import grade_open_ended
from grading.progression import require_step_unlocked
from grading.star_validator import StarValidator, get_star_validator

router = APIRouter(tags=["drill"])

log = logging.getLogger("generation.pipeline")


@router.get("/history", response_model=List[QuizRecord])
async def history(
    limit: int = Query(7, ge=1, le=31),
    pipeline: DailyQuizPipeline = Depends(get_daily_quiz_pipeline),
):
    return await pipeline.list_recent(limit)


@router.post("/generate", response_model=QuizRecord)
async def generate(
    request: GenerateRequest,
    pipeline: DailyQuizPipeline = Depends(get_daily_quiz_pipeline),
):
    log.info(f"[GENERATE] date={request.date or 'today'} force={request.force}")
    return await pipeline.generate(request.date, force=request.force)


@router.post("/validate-star", response_model=Segment)
async def validate_star(
    request: ValidateStarRequest,
    validator: StarValidator = Depends(get_star_validator),
    cache: QuizCache = Depends(get_quiz_cache),
):
    persist = request.date is not None and request.question_index is not None
    date_key = None
    if persist:
        date_key = validate_date_key(request.date)
        quiz = await cache.get(date_key)
        if quiz is None:
            raise QuizNotFound(date_key)
        require_step_unlocked(quiz, request.question_index, request.step)

    return await validator.validate_step(
        date_key,
        request.question_index if persist else None,
        request.step,
        request.user_answer,
        request.question,
    )


@router.post("/validate-code", response_model=CodeResult)
async def validate_code(
    request: ValidateCodeRequest,
    validator: CodeValidator = Depends(get_code_validator),
):
    persist = request.date is not None and request.question_index is not None
    date_key = validate_date_key(request.date) if persist else None
    return await validator.validate_code(
        date_key,
        request.question_index if persist else None,
        request.user_answer,
        request.question,
        request.language,
    )


@router.post("/feedback", response_model=OpenEndedFeedback)
async def feedback(
    request: FeedbackRequest,
    completion: CompletionService = Depends(get_completion_service),
    cache: QuizCache = Depends(get_quiz_cache),
):
    persist = request.date is not None and request.section is not None
    return await grade_open_ended(
        request.user_answer,
        request.question,
        request.guidelines,
        date_key=validate_date_key(request.date) if persist else None,
        section=request.section if persist else None,
        completion=completion,
        cache=cache,
    )
