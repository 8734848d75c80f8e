from fastapi import APIRouter, Depends
from fastapi.responses import Response

from loopsmith.config import settings
from loopsmith.dependencies import get_evaluator, get_formatter
from loopsmith.exceptions import EngineNotFound, EvaluationFailed
from loopsmith.schemas.evaluation import (
    EvaluationRequest,
    EvaluationResponse,
    SuggestionRequest,
    SuggestionResponse,
)
from loopsmith.services.evaluator import EvaluatorService
from loopsmith.services.formatter import ResultFormatter
from loopsmith.services.suggestions import suggest_improvements

router = APIRouter(prefix="/api/v1", tags=["evaluation"])


@router.post("/evaluate", response_model=EvaluationResponse, response_model_exclude_none=True)
async def evaluate_document(
    request: EvaluationRequest,
    evaluator: EvaluatorService = Depends(get_evaluator),
) -> EvaluationResponse:
    """Evaluate a document (inline content or file path) with the engine."""
    return await evaluator.evaluate(request)


@router.post("/evaluate/report")
async def evaluate_document_report(
    request: EvaluationRequest,
    evaluator: EvaluatorService = Depends(get_evaluator),
    formatter: ResultFormatter = Depends(get_formatter),
) -> Response:
    """Evaluate a document and return a rendered Markdown/JSON report."""
    target = request.target_score if request.target_score is not None else settings.target_score
    try:
        result = await evaluator.evaluate(request)
    except (EngineNotFound, EvaluationFailed) as e:
        return Response(
            content=formatter.format_error(e),
            media_type=formatter.media_type,
            status_code=503 if isinstance(e, EngineNotFound) else 502,
        )
    return Response(
        content=formatter.format_result(result, target),
        media_type=formatter.media_type,
    )


@router.post("/suggestions", response_model=SuggestionResponse)
async def improvement_suggestions(request: SuggestionRequest) -> SuggestionResponse:
    """Heuristic improvement suggestions, no engine call."""
    return SuggestionResponse(
        suggestions=suggest_improvements(request.content, request.previous_score)
    )


@router.delete("/cache")
async def clear_cache(evaluator: EvaluatorService = Depends(get_evaluator)) -> dict:
    cache = evaluator.cache
    removed = cache.clear() if cache is not None else 0
    return {"removed": removed}


@router.get("/health")
async def health(evaluator: EvaluatorService = Depends(get_evaluator)) -> dict:
    cache = evaluator.cache
    return {
        "engine_available": evaluator.engine_available(),
        "cache_enabled": cache is not None,
        "cache_size": len(cache) if cache is not None else 0,
        "mock": settings.use_mock_evaluator,
    }
