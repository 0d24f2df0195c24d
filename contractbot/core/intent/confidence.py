"""Combined confidence scoring for contractbot.

The score starts from a base, adds boosts for each unambiguous entity
(numeric identifiers weigh most, names less), for a specific intent and for
a known routing target, then applies a gentle penalty when spelling
correction changed the text a lot. The result is clamped to
[SCORE_FLOOR, SCORE_CEILING] and mapped to a band:

- HIGH: execute without confirmation
- MEDIUM: execute, asking the user to verify
- LOW: ask the user to clarify
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from rapidfuzz.distance import Levenshtein

from .entities import (
    ACCOUNT_NUMBER,
    CONTRACT_NUMBER,
    CUSTOMER_NAME,
    DATE,
    PART_NUMBER,
    STATUS_TYPE,
    USER_NAME,
)
from .patterns import DOMAIN_KEYWORDS
from .taxonomy import ConfidenceBand, Domain, IntentConfidence, IntentResult, clamp

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.65

# Additive boost per entity type present
ENTITY_BOOSTS: dict[str, float] = {
    CONTRACT_NUMBER: 0.25,
    ACCOUNT_NUMBER: 0.20,
    PART_NUMBER: 0.20,
    CUSTOMER_NAME: 0.15,
    USER_NAME: 0.10,
    STATUS_TYPE: 0.05,
    DATE: 0.05,
}

INTENT_BOOST = 0.05
ROUTING_BOOST = 0.05
DOMAIN_TERM_BOOST = 0.03

# Below this original/corrected similarity the score is scaled down
SIMILARITY_THRESHOLD = 0.9
SIMILARITY_FLOOR_FACTOR = 0.85


@dataclass
class ConfidenceAssessment:
    """Score, band and the factors that produced them."""

    score: float
    band: ConfidenceBand
    similarity: float
    factors: dict[str, float] = field(default_factory=dict)


class ConfidenceScorer:
    """Score how sure the pipeline is about one turn.

    Args:
        high: HIGH band threshold
        medium: MEDIUM band threshold
    """

    def __init__(self, high: float = IntentConfidence.HIGH, medium: float = IntentConfidence.MEDIUM) -> None:
        self.high = high
        self.medium = medium

    @staticmethod
    def similarity(original: str, corrected: str) -> float:
        """1 - edit distance / longer length, case-insensitive."""
        if not original and not corrected:
            return 1.0
        return Levenshtein.normalized_similarity(original.lower(), corrected.lower())

    def assess(
        self,
        original: str,
        corrected: str,
        entities: dict[str, str],
        intent: IntentResult,
    ) -> ConfidenceAssessment:
        """Score a classified turn.

        Args:
            original: Text as typed
            corrected: Text after spelling correction
            entities: Extracted entity map
            intent: Classification result (its domain is the routing target)

        Returns:
            ConfidenceAssessment with the clamped score and its band
        """
        sim = self.similarity(original, corrected)

        if intent.is_command:
            score = IntentConfidence.SCORE_CEILING
            return ConfidenceAssessment(score, self.band(score), sim, {"command": score})

        factors: dict[str, float] = {"base": BASE_CONFIDENCE}
        for entity_type, boost in ENTITY_BOOSTS.items():
            if entities.get(entity_type):
                factors[entity_type] = boost

        if intent.is_specific:
            factors["intent"] = INTENT_BOOST

        routed = intent.domain in (Domain.CONTRACTS, Domain.PARTS) and not intent.needs_clarification
        if routed:
            factors["routing"] = ROUTING_BOOST
            if self._mentions_domain_term(corrected, intent.domain):
                factors["domain_term"] = DOMAIN_TERM_BOOST

        raw = sum(factors.values())
        if sim < SIMILARITY_THRESHOLD:
            penalty = SIMILARITY_FLOOR_FACTOR + (1 - SIMILARITY_FLOOR_FACTOR) * sim
            factors["similarity_factor"] = penalty
            raw *= penalty

        score = clamp(raw, IntentConfidence.SCORE_FLOOR, IntentConfidence.SCORE_CEILING)
        logger.debug(f"Confidence {score:.3f} (sim={sim:.3f}) from {factors}")
        return ConfidenceAssessment(score, self.band(score), sim, factors)

    def score(
        self,
        original: str,
        corrected: str,
        entities: dict[str, str],
        intent: IntentResult,
    ) -> float:
        """Combined confidence in [SCORE_FLOOR, SCORE_CEILING]."""
        return self.assess(original, corrected, entities, intent).score

    def band(self, score: float) -> ConfidenceBand:
        return IntentConfidence.band(score, high=self.high, medium=self.medium)

    @staticmethod
    def _mentions_domain_term(text: str, domain: Domain) -> bool:
        words = set(re.findall(r"[a-z]+", text.lower()))
        return bool(words & DOMAIN_KEYWORDS.get(domain, frozenset()))


__all__ = [
    "BASE_CONFIDENCE",
    "ENTITY_BOOSTS",
    "ConfidenceAssessment",
    "ConfidenceScorer",
]
