from fastapi import Request

from loopsmith.services.evaluator import EvaluatorService
from loopsmith.services.formatter import ResultFormatter


def get_evaluator(request: Request) -> EvaluatorService:
    """Retrieve the evaluator singleton from app state."""
    return request.app.state.evaluator


def get_formatter(request: Request) -> ResultFormatter:
    """Retrieve the report formatter from app state."""
    return request.app.state.formatter
