"""Exception hierarchy raised by the storyboard keyframe engine."""

from __future__ import annotations


class StoryboardError(RuntimeError):
    """Base class for all storyboard engine failures."""


class InvariantViolation(StoryboardError):
    """Raised when the timeline and its channels fall out of step.

    This always indicates a programming error and is never recovered from.
    """


class UnsupportedChannel(StoryboardError):
    """Raised when a targeted animation uses an unknown property kind."""

    def __init__(self, message: str, *, property_kind: object | None = None) -> None:
        super().__init__(message)
        self.property_kind = property_kind


class SerializationError(StoryboardError):
    """Raised when an archive cannot be written or read."""

    def __init__(self, message: str, *, entry: str | None = None) -> None:
        super().__init__(message)
        self.entry = entry


class DisposalError(StoryboardError):
    """Raised when the previous scene could not be torn down before a load."""


class NotFound(StoryboardError, KeyError):
    """Raised when a name or identifier does not resolve to a live object."""

    def __init__(self, message: str, *, name: str | None = None) -> None:
        super().__init__(message)
        self.name = name

    def __str__(self) -> str:  # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


__all__ = [
    "DisposalError",
    "InvariantViolation",
    "NotFound",
    "SerializationError",
    "StoryboardError",
    "UnsupportedChannel",
]
