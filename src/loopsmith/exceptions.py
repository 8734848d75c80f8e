class LoopsmithError(Exception):
    """Base exception for the loopsmith evaluation service."""


class DocumentNotFound(LoopsmithError):
    """Raised when the requested document cannot be read."""


class EngineError(LoopsmithError):
    """Failure of a single engine attempt.

    ``retryable`` tells the retry coordinator whether another attempt may
    succeed.
    """

    retryable: bool = True

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class EngineNotFound(EngineError):
    """Raised when the engine binary is not installed or not on PATH."""

    retryable = False


class ProcessSpawnError(EngineError):
    """Raised when the engine process could not be started."""


class ProcessTimeout(EngineError):
    """Raised when the engine exceeds its wall-clock budget and is killed."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Engine timed out after {timeout_ms} ms")
        self.timeout_ms = timeout_ms


class NonZeroExit(EngineError):
    """Raised when the engine exits with a non-zero status."""

    _MAX_STDERR = 2000

    def __init__(self, exit_code: int, stderr: str) -> None:
        self.exit_code = exit_code
        self.stderr = stderr[: self._MAX_STDERR]
        super().__init__(
            f"Engine exited with code {exit_code}: {self.stderr or 'no stderr output'}"
        )


class ParseFailure(EngineError):
    """Raised when engine output cannot be turned into an evaluation."""

    def __init__(self, message: str, raw_output: str = "") -> None:
        super().__init__(message)
        self.raw_excerpt = raw_output[:500]


class NoPayloadFound(ParseFailure):
    """Raised when neither JSON nor structured text yields any field."""


class EvaluationFailed(LoopsmithError):
    """Terminal error after every attempt has failed."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Evaluation failed after {attempts} attempt(s): {last_error}"
        )
