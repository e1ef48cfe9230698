from __future__ import annotations


class RecommendationError(Exception):
    """Base class for errors raised by the recommendation subsystem."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFound(RecommendationError):
    """The wedding id does not resolve to a registered wedding."""

    status_code = 404


class InvalidInput(RecommendationError):
    status_code = 400


class UpstreamUnavailable(RecommendationError):
    """A data source the engine reads from could not be reached.

    Distinct from an empty result so the UI can tell "no matches" apart
    from "system degraded".
    """

    status_code = 503


class CacheUnavailable(RecommendationError):
    """The recommendation cache could not be reached.

    Never surfaced to callers: the engine logs it and computes fresh.
    """

    status_code = 503
