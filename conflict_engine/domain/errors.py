"""Errors raised at the engine boundary."""


class ConflictEngineError(Exception):
    """Base error for the conflict engine."""


class InvalidInterval(ConflictEngineError, ValueError):
    """Raised when an interval is inverted (or empty) after normalization."""


class MalformedSegment(ConflictEngineError, ValueError):
    """Raised when an amount segment is missing fields required by its kind."""
