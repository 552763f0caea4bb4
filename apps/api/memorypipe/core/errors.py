from __future__ import annotations


class PipelineError(Exception):
    """Base for every failure a pipeline stage can surface to the queue."""

    retryable = True


class UnsupportedInputError(PipelineError):
    # the same input fails identically; never retried
    retryable = False


class UnsupportedAudioFormat(UnsupportedInputError):
    pass


class SourceFileMissing(UnsupportedInputError):
    pass


class TargetRecordMissing(UnsupportedInputError):
    pass


class ProviderError(PipelineError):
    pass


class MalformedProviderResponse(ProviderError):
    pass


class AllProvidersFailed(ProviderError):
    def __init__(self, capability: str, errors: list[tuple[str, Exception]]) -> None:
        self.capability = capability
        self.errors = errors
        self.last_error = errors[-1][1] if errors else None
        detail = "; ".join(f"{name}: {err}" for name, err in errors) or "no providers configured"
        super().__init__(f"All providers failed for {capability} ({detail})")


class PersistenceError(PipelineError):
    pass
