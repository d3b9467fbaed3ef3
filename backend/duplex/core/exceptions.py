"""
Engine-level exceptions.

Per-user problems (a bad row, an unreadable investigation record) are raised
as one of these and isolated by the evaluation pipeline. EvaluationAborted is
the only one that ever reaches the caller of evaluate().
"""


class DuplexError(Exception):
    """Base class for every error raised by the engine."""


class MalformedEventError(DuplexError):
    """A raw log row is missing a field the detectors need."""

    def __init__(self, message: str, row: dict | None = None) -> None:
        super().__init__(message)
        self.row = row or {}


class StateStoreUnavailable(DuplexError):
    """The investigation record store could not be read or written."""

    def __init__(self, message: str, user_id: str | None = None) -> None:
        super().__init__(message)
        self.user_id = user_id


class EvaluationAborted(DuplexError):
    """The whole run failed; no ranked output was produced."""
