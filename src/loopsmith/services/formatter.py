"""Render evaluation results and errors as Markdown or JSON reports."""

import json
from typing import Literal

from loopsmith.exceptions import EngineNotFound, LoopsmithError, ProcessTimeout
from loopsmith.schemas.evaluation import EvaluationResponse, EvaluationStatus
from loopsmith.services.cache import CACHE_MODEL_NAME

_STATUS_TEXT = {
    EvaluationStatus.EXCELLENT: "Excellent",
    EvaluationStatus.GOOD: "Good",
    EvaluationStatus.NEEDS_IMPROVEMENT: "Needs Improvement",
    EvaluationStatus.POOR: "Poor",
}


class ResultFormatter:
    def __init__(self, output_format: Literal["markdown", "json"] = "markdown") -> None:
        self._format = output_format

    @property
    def media_type(self) -> str:
        return "application/json" if self._format == "json" else "text/markdown"

    def format_result(self, result: EvaluationResponse, target_score: float = 8.0) -> str:
        if self._format == "json":
            return json.dumps(result.to_payload(), ensure_ascii=False, indent=2)
        return self._to_markdown(result, target_score)

    def _to_markdown(self, result: EvaluationResponse, target_score: float) -> str:
        lines = ["# Document Evaluation Result", ""]

        if result.metadata.model_used == CACHE_MODEL_NAME:
            lines += ["**Retrieved from cache** *(evaluation time: 0ms)*", ""]

        verdict = "Pass" if result.passed else "Fail"
        lines += [f"## Evaluation: {verdict} ({_STATUS_TEXT[result.status]})", ""]

        score_line = f"**Score: {result.score:g}/10.0**"
        if not result.passed:
            score_line += f" (target: {target_score:g})"
        lines += [score_line, ""]

        if result.summary:
            lines += [f"**Summary:** {result.summary}", ""]
        lines += ["---", ""]

        details = result.details
        for title, items in (
            ("Strengths", details.strengths),
            ("Issues", details.issues),
            ("Improvements", details.improvements),
        ):
            if items:
                lines.append(f"## {title}")
                lines += [f"- {item}" for item in items]
                lines.append("")

        if details.context_specific:
            lines += [
                "## Additional Information",
                "```json",
                json.dumps(details.context_specific, ensure_ascii=False, indent=2),
                "```",
                "",
            ]

        lines += ["---", "", "## Next Steps", ""]
        if result.passed:
            lines += [
                "The document has reached the target quality.",
                "Address any noted issues, then confirm the next actions with the user.",
            ]
        else:
            lines += [
                "- Revise the document based on the evaluation above.",
                "- Re-evaluate after revising.",
                "- Iterate until the target score is reached.",
            ]
        return "\n".join(lines) + "\n"

    def format_error(self, error: Exception) -> str:
        code = _error_code(error)
        if self._format == "json":
            return json.dumps(
                {"error": True, "message": str(error), "code": code},
                ensure_ascii=False,
                indent=2,
            )

        lines = [
            "# Evaluation Error",
            "",
            "An error occurred during document evaluation.",
            "",
            f"**Error Code**: `{code}`",
            "",
            "```",
            str(error),
            "```",
            "",
            "## Recommended Solutions",
            "",
        ]
        cause = getattr(error, "last_error", error)
        if isinstance(cause, ProcessTimeout):
            lines += [
                "1. Split large documents into chapters.",
                "2. Raise `ENGINE_TIMEOUT_MS` (maximum 30 minutes).",
            ]
        elif isinstance(cause, EngineNotFound):
            lines += [
                "1. Check the engine installation: `codex --version`.",
                "2. Point `ENGINE_COMMAND` at the engine binary.",
            ]
        lines.append("- Wait a moment and try again.")
        return "\n".join(lines) + "\n"


def _error_code(error: Exception) -> str:
    cause = getattr(error, "last_error", error)
    if isinstance(cause, ProcessTimeout):
        return "EVAL_TIMEOUT"
    if isinstance(cause, EngineNotFound):
        return "ENGINE_NOT_FOUND"
    if isinstance(error, LoopsmithError):
        return type(error).__name__
    return "INTERNAL_ERROR"
