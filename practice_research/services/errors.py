from __future__ import annotations


class PracticeError(Exception):
    """Base class for practice search failures."""


class ValidationError(PracticeError):
    """Input violates a precondition of the run (fatal)."""


class ConfigError(PracticeError):
    """Input payload or config could not be parsed (fatal)."""


class ProviderError(PracticeError):
    """A provider call failed: non-2xx, timeout or malformed payload."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class FetchError(PracticeError):
    """Evidence page could not be fetched or is not text."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class HookError(PracticeError):
    """A hook could not be resolved or its callable is missing."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
