from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from loopsmith.services.evaluator import EvaluatorService
from loopsmith.services.formatter import ResultFormatter


@pytest.fixture
def mock_evaluator() -> MagicMock:
    """Create a mocked EvaluatorService for router tests."""
    evaluator = MagicMock(spec=EvaluatorService)
    evaluator.cache = None
    evaluator.engine_available.return_value = True
    return evaluator


@pytest.fixture
def test_app(mock_evaluator: MagicMock):
    """Create a test FastAPI app with mocked dependencies."""
    from fastapi import FastAPI
    from loopsmith.exceptions import LoopsmithError
    from loopsmith.main import loopsmith_error_handler
    from loopsmith.routers.evaluation import router as evaluation_router

    app = FastAPI()
    app.state.evaluator = mock_evaluator
    app.state.formatter = ResultFormatter("markdown")
    app.include_router(evaluation_router)
    app.add_exception_handler(LoopsmithError, loopsmith_error_handler)
    return app


@pytest.fixture
def client(test_app) -> TestClient:
    return TestClient(test_app)
