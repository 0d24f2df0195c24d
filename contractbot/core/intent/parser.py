"""Intent classification orchestrator for contractbot.

This module implements the classification pipeline that runs on corrected
text:
1. Command bypass - fixed commands (help, clear, greeting, ...)
2. Creation detection - "create contract" / "create checklist"
3. Entity extraction and domain scoring (contracts vs parts)
4. Within-domain intent - pluggable categorizer, else ordered rule table

The classifier degrades gracefully: if no categorizer is configured, or the
categorizer fails or is unsure, the rule tables decide.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from ..errors import ClassificationAmbiguity
from .entities import EntityExtractor
from .patterns import IntentPatternMatcher, RuleContext
from .taxonomy import (
    GENERIC_INTENTS,
    REQUIRED_ENTITIES,
    Domain,
    IntentConfidence,
    IntentResult,
    ParsedQuery,
    QueryType,
)

logger = logging.getLogger(__name__)

# Classification confidence contributions
RULE_CONFIDENCE = 0.80
GENERIC_RULE_CONFIDENCE = 0.60
DEFAULT_CATEGORIZER_MIN_CONFIDENCE = 0.3

# Friendly names used in clarification prompts
DOMAIN_LABELS: dict[Domain, str] = {
    Domain.CONTRACTS: "contracts",
    Domain.PARTS: "parts",
}


@runtime_checkable
class Categorizer(Protocol):
    """A statistical intent categorizer for one or more domains.

    Implementations return the best label and its confidence, or None when
    they have no model for the domain.
    """

    def categorize(self, domain: Domain, text: str) -> tuple[str, float] | None:
        ...


class IntentClassifier:
    """Main intent classification orchestrator.

    Attributes:
        extractor: Entity extractor used for ParsedQuery construction
        pattern_matcher: Rule-table matcher
        categorizer: Optional statistical categorizer
        min_categorizer_confidence: Categorizer labels below this fall back to rules
    """

    def __init__(
        self,
        extractor: EntityExtractor | None = None,
        categorizer: Categorizer | None = None,
        min_categorizer_confidence: float = DEFAULT_CATEGORIZER_MIN_CONFIDENCE,
    ) -> None:
        """Initialize the classifier.

        Args:
            extractor: Entity extractor (a fresh one if None)
            categorizer: Optional categorizer consulted before the rule tables
            min_categorizer_confidence: Minimum categorizer confidence to accept
        """
        self.extractor = extractor or EntityExtractor()
        self.pattern_matcher = IntentPatternMatcher()
        self.categorizer = categorizer
        self.min_categorizer_confidence = min_categorizer_confidence

    # ------------------------------------------------------------------
    # Stage 1-2: bypasses
    # ------------------------------------------------------------------

    def match_command(self, text: str) -> IntentResult | None:
        """Check for a fixed command.

        Args:
            text: Corrected user input

        Returns:
            IntentResult if a command matched, None otherwise
        """
        command = self.pattern_matcher.match_command(text)
        if command is None:
            return None
        logger.debug(f"Command bypass: {command}")
        return IntentResult.from_command(command)

    def match_creation(self, text: str) -> IntentResult | None:
        """Check for a request to start a creation flow."""
        flow = self.pattern_matcher.match_creation(text)
        if flow is None:
            return None
        logger.debug(f"Creation request: {flow}")
        return IntentResult.creation(flow)

    # ------------------------------------------------------------------
    # Stage 3: entities and query structure
    # ------------------------------------------------------------------

    def parse_query(self, original: str, corrected: str | None = None) -> ParsedQuery:
        """Extract entities and derive query/action type.

        Args:
            original: Text as the user typed it
            corrected: Spell-corrected text (defaults to original)

        Returns:
            ParsedQuery for the utterance
        """
        normalized = (corrected if corrected is not None else original).strip()
        extracted = self.extractor.extract(normalized)
        entities = extracted.to_dict()

        ctx = RuleContext.of(normalized, entities, extracted.keywords)
        parsed = ParsedQuery(
            original_text=original,
            normalized_text=normalized,
            entities=entities,
            entity_confidences=dict(extracted.confidences),
            query_type=self.pattern_matcher.query_type(ctx),
            action_type=self.pattern_matcher.action_type(ctx),
            keywords=list(extracted.keywords),
            filters=list(extracted.filters),
            validation_errors=list(extracted.validation_errors),
            validation_warnings=list(extracted.validation_warnings),
        )
        parsed.confidence = self._query_confidence(parsed)
        return parsed

    def _query_confidence(self, parsed: ParsedQuery) -> float:
        """Mean of entity, type and keyword signals, less 0.2 per validation error."""
        total = 0.0
        factors = 0

        if parsed.entity_confidences:
            total += sum(parsed.entity_confidences.values()) / len(parsed.entity_confidences)
            factors += 1
        if parsed.query_type is not QueryType.GENERAL:
            total += 0.7
            factors += 1
        if parsed.action_type.value != "unknown":
            total += 0.7
            factors += 1
        if parsed.keywords:
            total += min(len(parsed.keywords) * 0.1, 0.5)
            factors += 1

        total -= len(parsed.validation_errors) * 0.2
        if factors == 0:
            return 0.0
        return max(0.0, min(1.0, total / factors))

    # ------------------------------------------------------------------
    # Stage 4: domain and intent
    # ------------------------------------------------------------------

    def classify(self, parsed: ParsedQuery) -> IntentResult:
        """Classify domain and intent for a parsed query.

        Args:
            parsed: Result of parse_query()

        Returns:
            IntentResult; an ambiguous result asks the user to pick a domain
        """
        ctx = RuleContext.of(parsed.normalized_text, parsed.entities, parsed.keywords)

        domain, scores = self.pattern_matcher.score(ctx)
        logger.debug(f"Domain scores: {scores} -> {domain.value}")
        try:
            self._require_domain(domain, scores)
        except ClassificationAmbiguity as e:
            logger.debug(f"Ambiguous domain: {e}")
            return IntentResult.clarification(scores)

        result = None
        if self._categorizer_available():
            result = self._categorize(domain, parsed.normalized_text, scores)

        if result is None:
            rule = self.pattern_matcher.match_intent(domain, ctx)
            intent = rule.outcome if rule else ("search_contract" if domain is Domain.CONTRACTS else "search_part")
            result = IntentResult(
                domain=domain,
                intent=intent,
                confidence=GENERIC_RULE_CONFIDENCE if intent in GENERIC_INTENTS else RULE_CONFIDENCE,
                source="rule",
                matched_rules=[rule.name] if rule else [],
                domain_scores=scores,
            )

        self._check_required_entities(result, parsed)
        return result

    def _require_domain(self, domain: Domain, scores: dict[str, int]) -> None:
        if domain is Domain.AMBIGUOUS:
            raise ClassificationAmbiguity(
                f"Cannot tell {DOMAIN_LABELS[Domain.CONTRACTS]} from "
                f"{DOMAIN_LABELS[Domain.PARTS]} (scores {scores})"
            )

    def _categorizer_available(self) -> bool:
        """Check if a categorizer is configured and callable."""
        return self.categorizer is not None and callable(getattr(self.categorizer, "categorize", None))

    def _categorize(self, domain: Domain, text: str, scores: dict[str, int]) -> IntentResult | None:
        try:
            outcome = self.categorizer.categorize(domain, text)
        except Exception as e:
            logger.warning(f"Categorizer failed, using rules: {e}")
            return None

        if not outcome:
            return None
        label, confidence = outcome
        if confidence < self.min_categorizer_confidence:
            logger.debug(f"Categorizer unsure ({label}={confidence:.2f}), using rules")
            return None

        return IntentResult(
            domain=domain,
            intent=label,
            confidence=confidence,
            source="categorizer",
            domain_scores=scores,
        )

    def _check_required_entities(self, result: IntentResult, parsed: ParsedQuery) -> None:
        """Flag intents whose required entities are missing.

        Args:
            result: IntentResult to check and modify in place
            parsed: ParsedQuery holding the entities
        """
        required = REQUIRED_ENTITIES.get(result.intent, [])
        missing = [e for e in required if not parsed.has(e)]

        if missing:
            result.needs_clarification = True
            result.missing_entities = missing
            if result.confidence > IntentConfidence.MEDIUM:
                result.confidence = IntentConfidence.MEDIUM - 0.01


def create_classifier(
    categorizer: Categorizer | None = None,
    min_categorizer_confidence: float = DEFAULT_CATEGORIZER_MIN_CONFIDENCE,
) -> IntentClassifier:
    """Factory function to create an IntentClassifier.

    Args:
        categorizer: Optional statistical categorizer
        min_categorizer_confidence: Minimum categorizer confidence to accept

    Returns:
        Configured IntentClassifier instance
    """
    return IntentClassifier(
        categorizer=categorizer,
        min_categorizer_confidence=min_categorizer_confidence,
    )
