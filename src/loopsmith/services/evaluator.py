"""Document evaluation service.

调用链：
    request -> ResultCache 查询 -> RetryCoordinator
        -> ProcessInvoker -> OutputParser -> ResponseNormalizer
    -> ResultCache 写入 -> response

每次请求独立运行自己的子进程和重试循环，只共享 ResultCache。
cache 的 get/put 之间没有 await，在单事件循环内不会交错。
"""

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path

from loopsmith.config import Settings
from loopsmith.exceptions import DocumentNotFound
from loopsmith.schemas.evaluation import EvaluationRequest, EvaluationResponse
from loopsmith.services.cache import ResultCache, fingerprint
from loopsmith.services.invoker import ProcessInvoker
from loopsmith.services.normalizer import ResponseNormalizer
from loopsmith.services.parser import OutputParser
from loopsmith.services.prompt import PromptBuilder
from loopsmith.services.retry import RetryCoordinator

logger = logging.getLogger(__name__)


class EvaluatorService:
    def __init__(
        self,
        settings: Settings,
        *,
        invoker: ProcessInvoker | None = None,
        cache: ResultCache | None = None,
        retry: RetryCoordinator | None = None,
        prompts: PromptBuilder | None = None,
    ) -> None:
        self._invoker = invoker or ProcessInvoker(settings)
        self._parser = OutputParser(settings.engine_output_marker)
        self._normalizer = ResponseNormalizer(settings.engine_name)
        self._retry = retry or RetryCoordinator(
            settings.max_retries, settings.retry_delay_ms
        )
        self._prompts = prompts or PromptBuilder(settings)
        if cache is None and settings.cache_enabled:
            cache = ResultCache(settings.cache_ttl_ms, settings.cache_capacity)
        self._cache = cache
        self._timeout_ms = settings.engine_timeout_ms
        self._max_buffer = settings.engine_max_buffer
        self._target_score = settings.target_score
        self._mode = settings.evaluation_mode
        self._engine_command = settings.engine_command

    @property
    def cache(self) -> ResultCache | None:
        return self._cache

    def engine_available(self) -> bool:
        return shutil.which(self._engine_command) is not None

    async def evaluate(self, request: EvaluationRequest) -> EvaluationResponse:
        """Evaluate one document, serving identical requests from the cache."""
        start = time.perf_counter()
        target_score = (
            request.target_score if request.target_score is not None else self._target_score
        )
        mode = request.evaluation_mode or self._mode
        content = await self._read_document(request)

        key = fingerprint(
            content,
            target_score,
            self._timeout_ms,
            self._prompts.template,
            mode=mode,
            rubric=request.rubric,
            project_path=request.project_path,
        )
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            logger.info("Cache miss for %s", key[:12])

        prompt = self._prompts.build(
            content=request.content,
            document_path=request.document_path,
            target_score=target_score,
            rubric=request.rubric,
            project_path=request.project_path,
        )
        working_directory = request.project_path or os.getcwd()

        async def attempt() -> EvaluationResponse:
            result = await self._invoker.run(
                prompt,
                working_directory,
                timeout_ms=self._timeout_ms,
                max_buffer_bytes=self._max_buffer,
            )
            parsed = self._parser.parse(result.stdout, mode=mode)
            return self._normalizer.normalize(
                parsed, target_score, result.duration_ms, rubric=request.rubric
            )

        response = await self._retry.execute(attempt)
        # 总耗时包含所有重试和退避等待
        response.metadata.evaluation_time = (time.perf_counter() - start) * 1000

        logger.info(
            "Evaluation finished: score=%.1f pass=%s status=%s via %s",
            response.score,
            response.passed,
            response.status,
            response.metadata.parsing_method,
        )
        if self._cache is not None:
            self._cache.put(key, response)
        return response

    async def _read_document(self, request: EvaluationRequest) -> str:
        if request.content is not None:
            return request.content

        path = Path(request.document_path)  # type: ignore[arg-type]
        if not path.is_absolute() and request.project_path:
            path = Path(request.project_path) / path
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentNotFound(f"Cannot read document {path}: {e}") from e
