"""Error taxonomy for contractbot.

Only UnhandledProcessingError is a hard failure. The others are recovered
locally by re-prompting or asking the user to clarify.
"""

from __future__ import annotations


class ContractBotError(Exception):
    """Base exception for query understanding errors."""

    pass


class InputValidationError(ContractBotError):
    """Utterance rejected before the pipeline (empty, oversized, unsafe)."""

    pass


class EntityValidationError(ContractBotError):
    """A creation-step answer failed its field rule.

    Attributes:
        field: Name of the field being collected
        hint: Example of an accepted value, shown when re-prompting
    """

    def __init__(self, message: str, field: str | None = None, hint: str | None = None) -> None:
        super().__init__(message)
        self.field = field
        self.hint = hint


class ClassificationAmbiguity(ContractBotError):
    """Contracts and parts scored equally and no entity breaks the tie."""

    pass


class SessionExpiredOrMissing(ContractBotError):
    """No live creation session for the session id."""

    def __init__(self, session_id: str, expired: bool = False) -> None:
        state = "expired" if expired else "missing"
        super().__init__(f"Creation session {session_id!r} is {state}")
        self.session_id = session_id
        self.expired = expired


class UnhandledProcessingError(ContractBotError):
    """Unexpected fault while processing a turn."""

    pass


__all__ = [
    "ContractBotError",
    "InputValidationError",
    "EntityValidationError",
    "ClassificationAmbiguity",
    "SessionExpiredOrMissing",
    "UnhandledProcessingError",
]
