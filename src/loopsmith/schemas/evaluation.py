from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EvaluationStatus(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


class RubricWeights(BaseModel):
    """Relative weights of the rubric criteria, normalized to sum to 1.0.

    Callers may pass fractions (0.3, 0.3, 0.2, 0.2) or percentages
    (30, 30, 20, 20); both normalize to the same weights.
    """

    completeness: float = Field(default=0.3, ge=0)
    accuracy: float = Field(default=0.3, ge=0)
    clarity: float = Field(default=0.2, ge=0)
    usability: float = Field(default=0.2, ge=0)

    @model_validator(mode="after")
    def _normalize(self) -> "RubricWeights":
        total = self.completeness + self.accuracy + self.clarity + self.usability
        if total <= 0:
            raise ValueError("rubric weights must not all be zero")
        self.completeness /= total
        self.accuracy /= total
        self.clarity /= total
        self.usability /= total
        return self

    def weighted_score(self, scores: dict[str, float]) -> float | None:
        """Combine per-criterion scores; None when no criterion is scored."""
        weights = self.model_dump()
        covered = {k: w for k, w in weights.items() if k in scores}
        if not covered:
            return None
        total_weight = sum(covered.values())
        if total_weight <= 0:
            return None
        return sum(scores[k] * w for k, w in covered.items()) / total_weight


class EvaluationRequest(BaseModel):
    content: str | None = None
    document_path: str | None = None
    target_score: float | None = Field(default=None, ge=0, le=10)
    rubric: RubricWeights | None = None
    project_path: str | None = None
    evaluation_mode: Literal["flexible", "strict"] | None = None

    @model_validator(mode="after")
    def _require_document(self) -> "EvaluationRequest":
        if (self.content is None) == (self.document_path is None):
            raise ValueError("exactly one of content or document_path is required")
        if self.content is not None and not self.content.strip():
            raise ValueError("content must not be empty")
        return self


class EvaluationDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    strengths: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    context_specific: dict[str, Any] = Field(default_factory=dict)


class EvaluationMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    evaluation_time: float = 0.0  # 毫秒，命中缓存时为 0
    model_used: str = ""
    parsing_method: str = ""
    schema_version: str = "v3"
    defaults_applied: list[str] = Field(default_factory=list)


class EvaluationResponse(BaseModel):
    """Normalized evaluation result.

    Engine output varies between revisions, so unknown top-level fields are
    kept as extras instead of being dropped.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    score: float = Field(ge=0, le=10)
    passed: bool = Field(alias="pass")
    summary: str = ""
    status: EvaluationStatus
    details: EvaluationDetails = Field(default_factory=EvaluationDetails)
    rubric_scores: dict[str, float] | None = None
    suggestions: list[str] | None = None
    metadata: EvaluationMetadata = Field(default_factory=EvaluationMetadata)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SuggestionRequest(BaseModel):
    content: str
    previous_score: float | None = Field(default=None, ge=0, le=10)


class SuggestionResponse(BaseModel):
    suggestions: list[str] = Field(default_factory=list)
