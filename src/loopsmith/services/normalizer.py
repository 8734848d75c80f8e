import logging
from typing import Any

from loopsmith.schemas.evaluation import (
    EvaluationDetails,
    EvaluationMetadata,
    EvaluationResponse,
    EvaluationStatus,
    RubricWeights,
)
from loopsmith.services.parser import ParseResult

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 5.0
DEFAULT_SUMMARY = "Evaluation completed."
SCHEMA_VERSION = "v3"

# 这些字段由 normalizer 自行组装，不作为 extra 透传
_CORE_FIELDS = {
    "score",
    "pass",
    "passed",
    "summary",
    "status",
    "details",
    "rubric_scores",
    "suggestions",
    "metadata",
}


def status_from_score(score: float) -> EvaluationStatus:
    """Map a 0-10 score to a status label; thresholds are inclusive."""
    if score >= 8:
        return EvaluationStatus.EXCELLENT
    if score >= 6:
        return EvaluationStatus.GOOD
    if score >= 4:
        return EvaluationStatus.NEEDS_IMPROVEMENT
    return EvaluationStatus.POOR


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    return None


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    if isinstance(value, str) and value:
        return [value]
    return []


class ResponseNormalizer:
    def __init__(self, engine_name: str = "codex-1") -> None:
        self._engine_name = engine_name

    def normalize(
        self,
        parsed: ParseResult,
        target_score: float,
        execution_time_ms: float,
        *,
        rubric: RubricWeights | None = None,
    ) -> EvaluationResponse:
        """Fill defaults, derive pass/status and build the response record."""
        fields = parsed.fields
        defaults: list[str] = []

        rubric_scores = self._rubric_scores(fields.get("rubric_scores"))

        score = _as_float(fields.get("score"))
        if score is None and rubric is not None and rubric_scores:
            score = rubric.weighted_score(rubric_scores)
            if score is not None:
                logger.info("Score derived from weighted rubric scores: %.2f", score)
        if score is None:
            score = DEFAULT_SCORE
            defaults.append("score")
            logger.warning("No score found in engine output, defaulting to %.1f", score)
        elif not 0.0 <= score <= 10.0:
            logger.warning("Score %.2f out of range, clamping to [0, 10]", score)
            score = min(max(score, 0.0), 10.0)

        passed = _as_bool(fields.get("pass"))
        if passed is None:
            # 部分引擎版本输出 "passed" 而不是 "pass"
            passed = _as_bool(fields.get("passed"))
        if passed is None:
            passed = score >= target_score
            defaults.append("pass")
            logger.info(
                "No explicit pass verdict, derived pass=%s from score %.2f >= %.2f",
                passed,
                score,
                target_score,
            )

        status = self._status(fields.get("status"), score)
        if status is None:
            status = status_from_score(score)
            defaults.append("status")
            logger.info("Status derived from score: %s", status)

        summary = fields.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = DEFAULT_SUMMARY
            defaults.append("summary")
            logger.warning("No summary found in engine output, using default")

        details = self._details(fields.get("details"))
        if details is None:
            details = EvaluationDetails()
            defaults.append("details")
            logger.warning("No details found in engine output, using empty details")

        suggestions = fields.get("suggestions")
        extras = {
            k: v
            for k, v in fields.items()
            if k not in _CORE_FIELDS and not k.startswith("_")
        }

        return EvaluationResponse(
            score=score,
            passed=passed,
            summary=summary,
            status=status,
            details=details,
            rubric_scores=rubric_scores or None,
            suggestions=_as_str_list(suggestions) if suggestions is not None else None,
            metadata=EvaluationMetadata(
                evaluation_time=execution_time_ms,
                model_used=self._engine_name,
                parsing_method=parsed.parsing_method,
                schema_version=SCHEMA_VERSION,
                defaults_applied=defaults,
            ),
            **extras,
        )

    @staticmethod
    def _status(value: Any, score: float) -> EvaluationStatus | None:
        if value is None:
            return None
        try:
            return EvaluationStatus(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown status %r, deriving from score %.2f", value, score)
            return None

    @staticmethod
    def _details(value: Any) -> EvaluationDetails | None:
        if not isinstance(value, dict):
            return None
        context = value.get("context_specific")
        extra = {
            k: v
            for k, v in value.items()
            if k not in {"strengths", "issues", "improvements", "context_specific"}
        }
        return EvaluationDetails(
            strengths=_as_str_list(value.get("strengths")),
            issues=_as_str_list(value.get("issues")),
            improvements=_as_str_list(value.get("improvements")),
            context_specific=context if isinstance(context, dict) else {},
            **extra,
        )

    @staticmethod
    def _rubric_scores(value: Any) -> dict[str, float]:
        if not isinstance(value, dict):
            return {}
        scores: dict[str, float] = {}
        for name, raw in value.items():
            number = _as_float(raw)
            if number is not None:
                scores[str(name)] = number
        return scores
