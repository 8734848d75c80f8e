"""In-memory result cache keyed by a request fingerprint.

Entries expire after a TTL and the map is bounded; once full, the oldest
inserted entry is evicted (FIFO, reads do not refresh an entry).
"""

import hashlib
import logging
import time
from collections.abc import Callable

from loopsmith.schemas.evaluation import EvaluationResponse, RubricWeights

logger = logging.getLogger(__name__)

CACHE_MODEL_NAME = "cache"


def fingerprint(
    content: str,
    target_score: float,
    timeout_ms: int,
    template: str,
    *,
    mode: str = "flexible",
    rubric: RubricWeights | None = None,
    project_path: str | None = None,
) -> str:
    """SHA-256 over everything that can change an evaluation result.

    ``rubric`` and ``project_path`` end up in the prompt, and the rubric also
    drives the weighted score fallback; ``mode`` decides whether text-only
    output is accepted.
    """
    # None 和默认 rubric 生成的 prompt 相同，但只有显式 rubric 会参与加权评分
    rubric_part = (
        "" if rubric is None else ",".join(f"{k}={v:.6f}" for k, v in rubric.model_dump().items())
    )
    parts = (
        content,
        f"{float(target_score):.4f}",
        str(int(timeout_ms)),
        template,
        mode,
        rubric_part,
        project_path or "",
    )
    digest = hashlib.sha256()
    for part in parts:
        encoded = part.encode("utf-8")
        # 长度前缀，避免字段拼接产生歧义
        digest.update(len(encoded).to_bytes(8, "big"))
        digest.update(encoded)
    return digest.hexdigest()


class ResultCache:
    def __init__(
        self,
        ttl_ms: int = 3_600_000,
        capacity: int = 100,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_ms / 1000
        self._capacity = max(capacity, 1)
        self._clock = clock
        # dict 保持插入顺序，第一个 key 即最早写入
        self._entries: dict[str, tuple[EvaluationResponse, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> EvaluationResponse | None:
        """Return a cache-marked copy of a live entry, or None on miss."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        response, stored_at = entry
        if self._clock() - stored_at >= self._ttl_s:
            del self._entries[key]
            logger.info("Cache entry %s expired", key[:12])
            return None

        logger.info("Cache hit for %s", key[:12])
        hit = response.model_copy(deep=True)
        hit.metadata.evaluation_time = 0.0
        hit.metadata.model_used = CACHE_MODEL_NAME
        return hit

    def put(self, key: str, response: EvaluationResponse) -> None:
        if key in self._entries:
            # 重新写入视为新条目，移到队尾
            del self._entries[key]
        self._entries[key] = (response.model_copy(deep=True), self._clock())

        while len(self._entries) > self._capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.info("Cache full (%d), evicted %s", self._capacity, oldest[:12])

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed
