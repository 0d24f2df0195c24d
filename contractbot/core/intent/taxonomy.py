"""Intent taxonomy and confidence thresholds for contractbot.

This module defines the domains, query and action types, confidence bands
and the per-turn result containers used throughout the intent system.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Domain(str, Enum):
    """Subject area of a query."""

    CONTRACTS = "contracts"
    PARTS = "parts"
    AMBIGUOUS = "ambiguous"
    SYSTEM = "system"  # Fixed commands (help, clear, greeting...)


class QueryType(str, Enum):
    """Nature of the query, derived from entities and keywords."""

    SPECIFIC_CONTRACT = "specific_contract"
    SPECIFIC_PART = "specific_part"
    CUSTOMER_FILTER = "customer_filter"
    USER_FILTER = "user_filter"
    STATUS_FILTER = "status_filter"
    SEARCH = "search"
    LIST_ALL = "list_all"
    CREATE = "create"
    UPDATE = "update"
    HELP = "help"
    COMMAND = "command"
    GENERAL = "general"


class ActionType(str, Enum):
    """Action the user asked for."""

    CREATE = "create"
    UPDATE = "update"
    SHOW = "show"
    GET = "get"
    LIST = "list"
    SEARCH = "search"
    FILTER = "filter"
    CHECK = "check"
    HELP = "help"
    DELETE = "delete"
    UNKNOWN = "unknown"


class ConfidenceBand(str, Enum):
    """What the assistant does with a scored query."""

    HIGH = "high"  # Auto-execute
    MEDIUM = "medium"  # Verify with user
    LOW = "low"  # Request clarification


class IntentConfidence:
    """Confidence thresholds for the pipeline.

    - HIGH (>=0.90): Execute without confirmation
    - MEDIUM (>=0.70): Execute, asking the user to verify
    - LOW (<0.70): Request clarification

    SCORE_FLOOR / SCORE_CEILING bound the combined confidence score.
    """

    HIGH = 0.90
    MEDIUM = 0.70
    SCORE_FLOOR = 0.35
    SCORE_CEILING = 0.98

    @classmethod
    def band(
        cls, score: float, high: float | None = None, medium: float | None = None
    ) -> ConfidenceBand:
        """Map a score to its band.

        Args:
            score: Confidence score
            high: Override for the HIGH threshold
            medium: Override for the MEDIUM threshold
        """
        high = cls.HIGH if high is None else high
        medium = cls.MEDIUM if medium is None else medium
        if score >= high:
            return ConfidenceBand.HIGH
        if score >= medium:
            return ConfidenceBand.MEDIUM
        return ConfidenceBand.LOW


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


@dataclass(frozen=True)
class FilterCriteria:
    """A derived query filter, e.g. ``status = active`` or ``date between a and b``."""

    field: str
    operator: str
    value: Any
    value2: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = {"field": self.field, "operator": self.operator, "value": self.value}
        if self.value2 is not None:
            data["value2"] = self.value2
        return data


@dataclass
class ParsedQuery:
    """Entities and derived structure for one utterance.

    Created per turn and discarded after the response.

    Attributes:
        original_text: Text as the user typed it
        normalized_text: Corrected text used for extraction
        entities: One value per entity type (contractNumber, partNumber, ...)
        entity_confidences: Per-entity confidence in [0, 1]
        query_type: Nature of the query
        action_type: Requested action
        keywords: Domain keywords found in the text
        filters: Derived filter criteria
        validation_errors: Entity values that are malformed
        validation_warnings: Entity values that look suspicious
        confidence: Mean entity/type confidence in [0, 1]
    """

    original_text: str
    normalized_text: str
    entities: dict[str, str] = field(default_factory=dict)
    entity_confidences: dict[str, float] = field(default_factory=dict)
    query_type: QueryType = QueryType.GENERAL
    action_type: ActionType = ActionType.UNKNOWN
    keywords: list[str] = field(default_factory=list)
    filters: list[FilterCriteria] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)
    validation_warnings: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def has(self, entity_type: str) -> bool:
        """Check whether an entity type was extracted."""
        return bool(self.entities.get(entity_type))

    def get(self, entity_type: str) -> str | None:
        return self.entities.get(entity_type)


@dataclass
class IntentResult:
    """Result of intent classification.

    Attributes:
        domain: Subject area (contracts, parts, ambiguous, system)
        intent: Fine-grained intent label (e.g. "contract_status", "cmd.help")
        confidence: Classification confidence contribution in [0, 1]
        source: Classification source (command, creation, categorizer, rule, fallback)
        matched_rules: Names of rules that fired (for debugging)
        domain_scores: Keyword/entity score per domain
        needs_clarification: Whether the user must be asked to clarify
        missing_entities: Required entities the intent lacks
    """

    domain: Domain
    intent: str
    confidence: float
    source: str = "unknown"
    matched_rules: list[str] = field(default_factory=list)
    domain_scores: dict[str, int] = field(default_factory=dict)
    needs_clarification: bool = False
    missing_entities: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.confidence = clamp(self.confidence)

    @classmethod
    def from_command(cls, command: str) -> "IntentResult":
        """Create an IntentResult for a fixed command (help, clear, ...)."""
        return cls(
            domain=Domain.SYSTEM,
            intent=f"cmd.{command}",
            confidence=1.0,
            source="command",
            matched_rules=[command],
        )

    @classmethod
    def creation(cls, flow: str) -> "IntentResult":
        """Create an IntentResult that starts a guided creation flow."""
        return cls(
            domain=Domain.CONTRACTS,
            intent=f"create_{flow}",
            confidence=0.95,
            source="creation",
            matched_rules=[f"create_{flow}"],
        )

    @classmethod
    def clarification(cls, domain_scores: dict[str, int] | None = None) -> "IntentResult":
        """Create an ambiguous result that asks the user which domain they mean."""
        return cls(
            domain=Domain.AMBIGUOUS,
            intent="clarify_domain",
            confidence=0.3,
            source="fallback",
            domain_scores=domain_scores or {},
            needs_clarification=True,
        )

    @property
    def is_command(self) -> bool:
        return self.source == "command"

    @property
    def is_creation(self) -> bool:
        return self.source == "creation"

    @property
    def is_specific(self) -> bool:
        """Whether the intent is more specific than a plain lookup/search."""
        return self.intent not in GENERIC_INTENTS and not self.needs_clarification


# Intents that carry no more information than "look something up"
GENERIC_INTENTS: frozenset[str] = frozenset(
    {"search_contract", "search_part", "general", "clarify_domain"}
)

# Entities that a handler needs for each intent
REQUIRED_ENTITIES: dict[str, list[str]] = {
    "contract_status": ["contractNumber"],
    "contract_history": ["contractNumber"],
    "contract_details": ["contractNumber"],
    "contract_parts": ["contractNumber"],
    "contract_failed_parts": ["contractNumber"],
    "part_details": ["partNumber"],
    "part_price": ["partNumber"],
    "part_availability": ["partNumber"],
    "part_compatibility": ["partNumber"],
    "part_contracts": ["partNumber"],
}
