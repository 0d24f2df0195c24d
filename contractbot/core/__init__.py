"""Core components for contractbot."""

from __future__ import annotations

from .dictionary import (
    DEFAULT_OVERRIDES,
    DictionaryStore,
)
from .errors import (
    ClassificationAmbiguity,
    ContractBotError,
    EntityValidationError,
    InputValidationError,
    SessionExpiredOrMissing,
    UnhandledProcessingError,
)
from .handlers import (
    ContractRecord,
    DomainHandlers,
    InMemoryHandlers,
    PartRecord,
)
from .router import (
    QueryRouter,
    Understanding,
    create_router,
    validate_input,
)
from .session import (
    OFFER_MARKER,
    Conversation,
    CreationSession,
    FlowKind,
    SessionManager,
    StepOutcome,
    StepStatus,
)
from .spelling import (
    CorrectionResult,
    SpellCorrector,
)

__all__ = [
    # Dictionary and spelling
    "DictionaryStore",
    "DEFAULT_OVERRIDES",
    "SpellCorrector",
    "CorrectionResult",
    # Errors
    "ContractBotError",
    "InputValidationError",
    "EntityValidationError",
    "ClassificationAmbiguity",
    "SessionExpiredOrMissing",
    "UnhandledProcessingError",
    # Handlers
    "DomainHandlers",
    "InMemoryHandlers",
    "ContractRecord",
    "PartRecord",
    # Sessions
    "SessionManager",
    "CreationSession",
    "StepOutcome",
    "StepStatus",
    "FlowKind",
    "Conversation",
    "OFFER_MARKER",
    # Router
    "QueryRouter",
    "Understanding",
    "create_router",
    "validate_input",
]
