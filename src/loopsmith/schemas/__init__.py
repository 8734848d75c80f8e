"""Loopsmith schemas."""

from loopsmith.schemas.evaluation import (
    EvaluationDetails,
    EvaluationMetadata,
    EvaluationRequest,
    EvaluationResponse,
    EvaluationStatus,
    RubricWeights,
)

__all__ = [
    "EvaluationDetails",
    "EvaluationMetadata",
    "EvaluationRequest",
    "EvaluationResponse",
    "EvaluationStatus",
    "RubricWeights",
]
