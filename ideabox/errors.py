"""Exceptions raised by the ideabox storage and enrichment layers."""

from __future__ import annotations


class IdeaboxError(Exception):
    """Base class for all ideabox errors."""


class ValidationError(IdeaboxError):
    """Input rejected before it reached storage (blank content, bad importance...)."""


class NotFoundError(IdeaboxError):
    """A referenced record does not exist."""


class IdeaNotFoundError(NotFoundError):
    def __init__(self, idea_id: int) -> None:
        super().__init__(f"Idea with ID {idea_id} not found")
        self.idea_id = idea_id


class ReminderNotFoundError(NotFoundError):
    def __init__(self, reminder_id: int) -> None:
        super().__init__(f"Reminder with ID {reminder_id} not found")
        self.reminder_id = reminder_id


class MalformedPayloadError(IdeaboxError):
    """A task payload could not be parsed into what its handler needs."""


class UnknownTaskKindError(IdeaboxError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown task type: {kind!r}")
        self.kind = kind
