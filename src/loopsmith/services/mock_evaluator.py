"""Deterministic stand-in for the evaluation engine.

Used when ``use_mock_evaluator`` is set so the service can run without the
engine installed. Scores come from simple document heuristics.
"""

import logging

from loopsmith.config import Settings
from loopsmith.schemas.evaluation import (
    EvaluationDetails,
    EvaluationMetadata,
    EvaluationRequest,
    EvaluationResponse,
)
from loopsmith.services.normalizer import SCHEMA_VERSION, status_from_score

logger = logging.getLogger(__name__)

MOCK_MODEL_NAME = "mock-evaluator"


class MockEvaluatorService:
    def __init__(self, settings: Settings) -> None:
        self._target_score = settings.target_score

    @property
    def cache(self) -> None:
        return None

    def engine_available(self) -> bool:
        return True

    async def evaluate(self, request: EvaluationRequest) -> EvaluationResponse:
        target_score = (
            request.target_score if request.target_score is not None else self._target_score
        )
        content = request.content or f"[Document from {request.document_path}]"
        length = len(content)
        has_title = "#" in content
        has_code = "```" in content
        has_list = "\n- " in content or "\n* " in content or content.startswith(("- ", "* "))

        score = min(
            10.0,
            length / 50 + (2 if has_title else 0) + (2 if has_code else 0) + (1 if has_list else 0),
        )
        score = round(score, 1)

        strengths: list[str] = []
        issues: list[str] = []
        improvements: list[str] = []
        if has_title:
            strengths.append("Clear section structure")
        else:
            issues.append("Structure is unclear")
            improvements.append("Organize the document into sections")
        if has_code:
            strengths.append("Includes code examples")
        else:
            issues.append("No code examples")
            improvements.append("Add implementation examples")
        if length < 500:
            issues.append("Content is too short")
            improvements.append("Add more detailed explanations")

        logger.info("Mock evaluation: %d chars -> score %.1f", length, score)
        return EvaluationResponse(
            score=score,
            passed=score >= target_score,
            summary=f"Mock evaluation completed. Score: {score:.1f}/10",
            status=status_from_score(score),
            details=EvaluationDetails(
                strengths=strengths,
                issues=issues,
                improvements=improvements,
                context_specific={"mock_evaluation": True, "content_length": length},
            ),
            metadata=EvaluationMetadata(
                evaluation_time=0.0,
                model_used=MOCK_MODEL_NAME,
                parsing_method="mock",
                schema_version=SCHEMA_VERSION,
            ),
        )
