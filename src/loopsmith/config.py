import logging
import sys
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_logger = logging.getLogger(__name__)

# 单次引擎调用的硬上限（30 分钟）
MAX_ENGINE_TIMEOUT_MS = 1_800_000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Evaluation engine (non-interactive CLI)
    engine_command: str = "codex.cmd" if sys.platform == "win32" else "codex"
    engine_args: list[str] = [
        "exec",
        "--dangerously-bypass-approvals-and-sandbox",
        "--skip-git-repo-check",
    ]
    engine_name: str = "codex-1"
    engine_timeout_ms: int = 300_000  # 单次尝试超时，超过上限会被截断
    engine_max_buffer: int = 20 * 1024 * 1024  # stdout 最大缓存字节数
    engine_kill_grace_seconds: float = 5.0  # SIGTERM 之后等待多久再 SIGKILL
    engine_output_marker: str = "] codex\n"  # 引擎最终回答之前的分隔行

    # Retry (指数退避)
    max_retries: int = 2
    retry_delay_ms: int = 1000

    # Result cache
    cache_enabled: bool = True
    cache_ttl_ms: int = 3_600_000
    cache_capacity: int = 100

    # Evaluation
    target_score: float = 8.0
    evaluation_mode: Literal["flexible", "strict"] = "flexible"
    evaluation_language: Literal["ja", "en"] = "ja"
    output_format: Literal["markdown", "json"] = "markdown"
    prompt_template_path: Path | None = None
    use_mock_evaluator: bool = False

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    @field_validator("engine_timeout_ms")
    @classmethod
    def _clamp_timeout(cls, value: int) -> int:
        if value > MAX_ENGINE_TIMEOUT_MS:
            _logger.warning(
                "engine_timeout_ms=%d exceeds the %d ms ceiling, clamping",
                value,
                MAX_ENGINE_TIMEOUT_MS,
            )
            return MAX_ENGINE_TIMEOUT_MS
        return value

    @field_validator("target_score")
    @classmethod
    def _check_target(cls, value: float) -> float:
        if not 0.0 <= value <= 10.0:
            raise ValueError("target_score must be between 0 and 10")
        return value


settings = Settings()
