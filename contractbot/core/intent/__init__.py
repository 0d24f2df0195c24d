"""Intent understanding for contractbot queries.

This package turns corrected user text into entities, a domain (contracts
or parts), a fine-grained intent and a confidence score.

The classification pipeline has four stages:
1. Command bypass - fixed commands such as help, clear and greeting
2. Creation detection - phrases that start a guided creation session
3. Entity extraction and domain scoring
4. Within-domain intent - pluggable categorizer, else ordered rule tables

Example usage:
    ```python
    from contractbot.core.intent import ConfidenceScorer, IntentClassifier

    classifier = IntentClassifier()
    parsed = classifier.parse_query("Find contract 123456")
    result = classifier.classify(parsed)
    assert result.domain == Domain.CONTRACTS
    assert parsed.entities["contractNumber"] == "123456"

    score = ConfidenceScorer().score(
        parsed.original_text, parsed.normalized_text, parsed.entities, result
    )
    ```
"""

from .confidence import (
    ConfidenceAssessment,
    ConfidenceScorer,
)
from .entities import (
    DATE_FORMATS,
    KNOWN_CUSTOMERS,
    STATUS_VALUES,
    EntityExtractor,
    ExtractedEntities,
    extract_entities,
    normalize_date,
    parse_date,
)
from .parser import (
    Categorizer,
    IntentClassifier,
    create_classifier,
)
from .patterns import (
    IntentPatternMatcher,
    Rule,
    RuleContext,
)
from .taxonomy import (
    REQUIRED_ENTITIES,
    ActionType,
    ConfidenceBand,
    Domain,
    FilterCriteria,
    IntentConfidence,
    IntentResult,
    ParsedQuery,
    QueryType,
)

__all__ = [
    # Classifier
    "IntentClassifier",
    "Categorizer",
    "create_classifier",
    # Rules
    "IntentPatternMatcher",
    "Rule",
    "RuleContext",
    # Confidence
    "ConfidenceScorer",
    "ConfidenceAssessment",
    # Taxonomy
    "ActionType",
    "ConfidenceBand",
    "Domain",
    "FilterCriteria",
    "IntentConfidence",
    "IntentResult",
    "ParsedQuery",
    "QueryType",
    "REQUIRED_ENTITIES",
    # Entity extraction
    "EntityExtractor",
    "ExtractedEntities",
    "extract_entities",
    "parse_date",
    "normalize_date",
    "DATE_FORMATS",
    "KNOWN_CUSTOMERS",
    "STATUS_VALUES",
]
