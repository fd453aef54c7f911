from __future__ import annotations

from typing import List, Tuple


class EnrichmentError(RuntimeError):
    """Base class for every failure raised by the enrichment pipeline."""


class FragmentParseError(EnrichmentError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot merge report fragment {path}: {reason}")
        self.path = path
        self.reason = reason


class MalformedResponse(EnrichmentError, ValueError):
    pass


class ProviderFailure(EnrichmentError):
    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class MissingCredentialError(ProviderFailure):
    pass


class AllModelsExhausted(EnrichmentError):
    def __init__(self, title: str, failures: List[Tuple[str, str]]) -> None:
        causes = "; ".join(f"{model}: {cause}" for model, cause in failures)
        super().__init__(f"All models failed for '{title}'. {causes}".strip())
        self.title = title
        self.failures = failures


class PersistError(EnrichmentError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to write report {path}: {reason}")
        self.path = path
        self.reason = reason
