import logging
from contextlib import asynccontextmanager

from loopsmith.config import settings
from loopsmith.utils.log import configure_logging

configure_logging(settings.log_level)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loopsmith.exceptions import (
    DocumentNotFound,
    EngineNotFound,
    EvaluationFailed,
    LoopsmithError,
)
from loopsmith.routers import evaluation
from loopsmith.services.evaluator import EvaluatorService
from loopsmith.services.formatter import ResultFormatter
from loopsmith.services.mock_evaluator import MockEvaluatorService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the evaluator once per process; the cache lives as long as the app."""
    logger.info("Starting loopsmith service ...")
    if settings.use_mock_evaluator:
        logger.warning("Using mock evaluator (use_mock_evaluator=true)")
        app.state.evaluator = MockEvaluatorService(settings)
    else:
        app.state.evaluator = EvaluatorService(settings)
    app.state.formatter = ResultFormatter(settings.output_format)
    logger.info("loopsmith service ready.")
    yield
    logger.info("Shutting down loopsmith service ...")


app = FastAPI(
    title="Loopsmith",
    description="Document quality evaluation via an external CLI engine",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(evaluation.router)


@app.exception_handler(LoopsmithError)
async def loopsmith_error_handler(request: Request, exc: LoopsmithError):
    if isinstance(exc, DocumentNotFound):
        status_code = 404
    elif isinstance(exc, EngineNotFound):
        status_code = 503
    elif isinstance(exc, EvaluationFailed):
        status_code = 502
    else:
        status_code = 500
    content: dict = {"detail": str(exc)}
    if isinstance(exc, EvaluationFailed):
        content["attempts"] = exc.attempts
    return JSONResponse(status_code=status_code, content=content)
