"""Entity extraction for contractbot intent parsing.

This module extracts typed values (contract/account/part numbers, customer
and user names, status, dates) from corrected text. Extraction is a pure
function of its input: same text, same entities.

When spans compete, keyword-anchored entities win over shape-only numeric
entities, which win over gazetteer names. "account 123456" is therefore an
account number, never a contract number.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .taxonomy import FilterCriteria

# Entity type keys used in entity maps
CONTRACT_NUMBER = "contractNumber"
ACCOUNT_NUMBER = "accountNumber"
PART_NUMBER = "partNumber"
CUSTOMER_NAME = "customerName"
USER_NAME = "userName"
STATUS_TYPE = "statusType"
DATE = "date"
END_DATE = "endDate"

STATUS_VALUES: tuple[str, ...] = (
    "active",
    "inactive",
    "expired",
    "pending",
    "completed",
    "cancelled",
    "draft",
    "suspended",
)

# Gazetteer of known customer names
KNOWN_CUSTOMERS: tuple[str, ...] = (
    "boeing",
    "honeywell",
    "acme",
    "siemens",
    "lockheed",
    "raytheon",
    "microsoft",
    "google",
    "apple",
    "oracle",
    "ibm",
    "dell",
    "cisco",
)

# Numbers that look like contract numbers but are placeholders
CONTRACT_NUMBER_STOPLIST: frozenset[str] = frozenset(
    {"0000", "00000", "000000", "0000000", "00000000", "9999", "99999", "999999"}
)

# Words that follow "for"/"by"/"customer" but are not names
NAME_STOPWORDS: frozenset[str] = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "can", "her", "was", "one",
        "our", "out", "day", "get", "has", "him", "his", "how", "new", "now", "old", "see",
        "two", "way", "who", "did", "its", "let", "put", "say", "she", "too", "use", "with",
        "have", "this", "will", "your", "from", "they", "know", "want", "been", "good",
        "much", "some", "time", "very", "when", "here", "just", "like", "long", "make",
        "many", "over", "such", "take", "than", "them", "well", "were", "me", "my", "a",
        "an", "us", "it", "me", "that", "what", "which", "any", "every", "each", "number",
        "name", "names", "contract", "contracts", "account", "accounts", "part", "parts",
        "customer", "customers", "client", "user", "users", "status", "details", "info",
        "date", "dates", "checklist", "project", "type", "today", "yesterday", "last",
        "next", "this", "month", "year", "week", "id", "no", "yes",
    }
    | set(STATUS_VALUES)
)

IMPORTANT_KEYWORDS: tuple[str, ...] = (
    "contract", "contracts", "agreement", "customer", "client", "account", "user",
    "status", "active", "inactive", "expired", "pending", "create", "make", "new",
    "update", "modify", "show", "display", "list", "search", "find", "help", "guide",
    "part", "parts", "price", "stock", "failed", "details", "history", "checklist", "all",
)

# Date formats in priority order; the first strict parse wins
DATE_FORMATS: tuple[tuple[str, str], ...] = (
    ("%Y-%m-%d", "YYYY-MM-DD"),
    ("%m/%d/%Y", "MM/DD/YYYY"),
    ("%m/%d/%y", "MM/DD/YY"),
    ("%d/%m/%Y", "DD/MM/YYYY"),
    ("%d-%m-%Y", "DD-MM-YYYY"),
)

DATE_EXAMPLE = "2025-01-31 or 01/31/2025"


def parse_date(text: str) -> date | None:
    """Parse a date using DATE_FORMATS in priority order.

    Parsing is strict: "02/30/2025" is rejected, not rolled over.

    Args:
        text: Candidate date string

    Returns:
        Parsed date, or None if no format matches
    """
    if not text:
        return None
    candidate = text.strip()
    for fmt, _label in DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(text: str) -> str | None:
    """Parse a date and render it as YYYY-MM-DD (None if unparseable)."""
    parsed = parse_date(text)
    return parsed.isoformat() if parsed else None


@dataclass
class ExtractedEntities:
    """Container for entities extracted from user input.

    Attributes:
        contract_number: 4-9 digit contract number
        account_number: 6-12 digit account number
        part_number: Uppercased part number
        customer_name: Customer or client name
        user_name: User who created/owns records
        status_type: Lowercase status value
        date: First date found, YYYY-MM-DD
        end_date: Second date found, YYYY-MM-DD
        confidences: Per-entity confidence keyed like to_dict()
        keywords: Domain keywords found, in order of appearance
        filters: Filter criteria derived from the entities
        validation_errors: Problems with extracted values
        validation_warnings: Suspicious extracted values
        raw: Matched text per entity before normalization
    """

    contract_number: str | None = None
    account_number: str | None = None
    part_number: str | None = None
    customer_name: str | None = None
    user_name: str | None = None
    status_type: str | None = None
    date: str | None = None
    end_date: str | None = None
    confidences: dict[str, float] = field(default_factory=dict)
    keywords: list[str] = field(default_factory=list)
    filters: list[FilterCriteria] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)
    validation_warnings: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    _KEYS = {
        "contract_number": CONTRACT_NUMBER,
        "account_number": ACCOUNT_NUMBER,
        "part_number": PART_NUMBER,
        "customer_name": CUSTOMER_NAME,
        "user_name": USER_NAME,
        "status_type": STATUS_TYPE,
        "date": DATE,
        "end_date": END_DATE,
    }

    def to_dict(self) -> dict[str, str]:
        """Entity map keyed by entity type, excluding missing values."""
        return {
            key: getattr(self, attr)
            for attr, key in self._KEYS.items()
            if getattr(self, attr) is not None
        }


@dataclass
class _NumberCandidate:
    kind: str
    value: str
    anchored: bool
    start: int


class EntityExtractor:
    """Extract structured entities from natural language text.

    Args:
        today: Reference date for the "expiration in the past" warning;
            defaults to the current date at extraction time
    """

    PATTERNS = {
        "date": re.compile(r"\b(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[/-]\d{1,2}[/-]\d{2,4})\b"),
        # AE12345-12345678
        "part_strict": re.compile(r"\b([A-Za-z]{2}\d{5}-\d{8})\b"),
        # AE125, BCX123456
        "part_loose": re.compile(r"\b([A-Za-z]{2,3}\d{3,6})\b"),
        "digits": re.compile(r"\b(\d{4,12})\b"),
        "account_anchor": re.compile(
            r"\b(?:account|acct|acc|customer)\s*(?:number|num|no\.?|#|id)?\s*[:#]?\s*$",
            re.IGNORECASE,
        ),
        "contract_anchor": re.compile(
            r"\bcontracts?\s*(?:number|num|no\.?|#|id)?\s*[:#]?\s*$",
            re.IGNORECASE,
        ),
        "status": re.compile(
            r"\b(active|inactive|expired|pending|completed|cancelled|canceled|draft|suspended)\b",
            re.IGNORECASE,
        ),
        "user_name": re.compile(
            r"\b(?:created\s+by|made\s+by|owned\s+by|author|user|by)\s+([A-Za-z][A-Za-z0-9._-]{1,20})\b",
            re.IGNORECASE,
        ),
        "customer_name": re.compile(
            r"\b(?i:customer|client|for)\s+(?i:name\s+)?"
            r"([A-Za-z][A-Za-z&.'-]*(?:\s+[A-Z][A-Za-z&.'-]*)*)\b"
        ),
    }

    def __init__(self, today: date | None = None) -> None:
        self._today = today

    def extract(self, text: str) -> ExtractedEntities:
        """Extract all entities from natural language text.

        Args:
            text: Corrected user input

        Returns:
            ExtractedEntities with detected values, confidences and filters
        """
        entities = ExtractedEntities()
        if not text or not text.strip():
            return entities

        lower = text.lower()
        consumed: list[tuple[int, int]] = []

        self._extract_dates(text, entities, consumed)
        self._extract_part_number(text, entities, consumed)
        self._extract_numbers(text, entities, consumed)
        self._extract_status(text, entities)
        self._extract_names(text, entities)

        entities.keywords = self._extract_keywords(lower)
        entities.confidences = self._score(entities, lower)
        entities.filters = self._derive_filters(entities, lower)
        self._validate(entities, lower)
        return entities

    # ------------------------------------------------------------------
    # Shape-driven extraction
    # ------------------------------------------------------------------

    def _extract_dates(
        self, text: str, entities: ExtractedEntities, consumed: list[tuple[int, int]]
    ) -> None:
        found: list[str] = []
        for match in self.PATTERNS["date"].finditer(text):
            normalized = normalize_date(match.group(1))
            if normalized is None:
                continue
            consumed.append(match.span())
            found.append(normalized)
            entities.raw.setdefault("dates", []).append(match.group(1))
            if len(found) == 2:
                break

        if found:
            entities.date = found[0]
        if len(found) > 1:
            entities.end_date = found[1]

    def _extract_part_number(
        self, text: str, entities: ExtractedEntities, consumed: list[tuple[int, int]]
    ) -> None:
        match = self.PATTERNS["part_strict"].search(text)
        if match is None:
            match = self.PATTERNS["part_loose"].search(text)
        if match is None:
            return
        entities.part_number = match.group(1).upper()
        entities.raw[PART_NUMBER] = match.group(1)
        consumed.append(match.span())

    def _extract_numbers(
        self, text: str, entities: ExtractedEntities, consumed: list[tuple[int, int]]
    ) -> None:
        candidates: list[_NumberCandidate] = []

        for match in self.PATTERNS["digits"].finditer(text):
            if _overlaps(match.span(), consumed):
                continue
            value = match.group(1)
            before = text[: match.start()]

            if self.PATTERNS["account_anchor"].search(before) and 6 <= len(value) <= 12:
                candidates.append(_NumberCandidate(ACCOUNT_NUMBER, value, True, match.start()))
            elif self.PATTERNS["contract_anchor"].search(before) and 4 <= len(value) <= 9:
                candidates.append(_NumberCandidate(CONTRACT_NUMBER, value, True, match.start()))
            elif 4 <= len(value) <= 8:
                if _is_stoplisted(value):
                    continue
                candidates.append(_NumberCandidate(CONTRACT_NUMBER, value, False, match.start()))
            elif 9 <= len(value) <= 12:
                candidates.append(_NumberCandidate(ACCOUNT_NUMBER, value, False, match.start()))

        account = _pick(c for c in candidates if c.kind == ACCOUNT_NUMBER)
        contract = _pick(
            (c for c in candidates if c.kind == CONTRACT_NUMBER),
            prefer_length=6,
        )

        if account is not None:
            entities.account_number = account.value
            entities.raw[ACCOUNT_NUMBER] = {"anchored": account.anchored}
        if contract is not None:
            entities.contract_number = contract.value
            entities.raw[CONTRACT_NUMBER] = {"anchored": contract.anchored}

    def _extract_status(self, text: str, entities: ExtractedEntities) -> None:
        match = self.PATTERNS["status"].search(text)
        if match is None:
            return
        value = match.group(1).lower()
        entities.status_type = "cancelled" if value == "canceled" else value
        entities.raw[STATUS_TYPE] = match.group(1)

    # ------------------------------------------------------------------
    # Names
    # ------------------------------------------------------------------

    def _extract_names(self, text: str, entities: ExtractedEntities) -> None:
        for match in self.PATTERNS["user_name"].finditer(text):
            candidate = match.group(1)
            if _is_name(candidate):
                entities.user_name = candidate
                entities.raw[USER_NAME] = match.group(0)
                break

        for match in self.PATTERNS["customer_name"].finditer(text):
            # "for customer Acme Corp" captures "customer Acme Corp"
            words = match.group(1).split()
            while words and not _is_name(words[0]):
                words.pop(0)
            if not words:
                continue
            candidate = " ".join(words)
            if candidate == entities.user_name:
                continue
            entities.customer_name = _trim_name(candidate)
            entities.raw[CUSTOMER_NAME] = match.group(0)
            return

        # Gazetteer names rank below every anchored entity
        for token in re.findall(r"[A-Za-z]+", text):
            if token.lower() in KNOWN_CUSTOMERS and token != entities.user_name:
                entities.customer_name = token
                entities.raw[CUSTOMER_NAME] = {"gazetteer": True}
                return

    # ------------------------------------------------------------------
    # Keywords, confidence, filters, validation
    # ------------------------------------------------------------------

    def _extract_keywords(self, lower: str) -> list[str]:
        tokens = re.findall(r"[a-z]+", lower)
        seen: list[str] = []
        for token in tokens:
            if token in IMPORTANT_KEYWORDS and token not in seen:
                seen.append(token)
        return seen

    def _score(self, entities: ExtractedEntities, lower: str) -> dict[str, float]:
        """Confidence per entity: 0.5 base + context bonus + shape bonus, capped at 1.0."""
        scores: dict[str, float] = {}

        def add(key: str, context: bool, context_bonus: float, shape: bool, shape_bonus: float) -> None:
            score = 0.5
            if context:
                score += context_bonus
            if shape:
                score += shape_bonus
            scores[key] = min(1.0, score)

        if entities.contract_number:
            add(CONTRACT_NUMBER, "contract" in lower, 0.3, len(entities.contract_number) == 6, 0.2)
        if entities.account_number:
            add(
                ACCOUNT_NUMBER,
                "account" in lower or "acc" in lower or "customer" in lower,
                0.3,
                len(entities.account_number) == 9,
                0.2,
            )
        if entities.part_number:
            add(
                PART_NUMBER,
                "part" in lower,
                0.3,
                bool(self.PATTERNS["part_strict"].fullmatch(entities.part_number)),
                0.2,
            )
        if entities.customer_name:
            anchored = not isinstance(entities.raw.get(CUSTOMER_NAME), dict)
            add(CUSTOMER_NAME, "customer" in lower or "client" in lower, 0.4, anchored, 0.1)
        if entities.user_name:
            add(USER_NAME, "by" in lower.split() or "user" in lower, 0.3, False, 0.0)
        if entities.status_type:
            add(STATUS_TYPE, True, 0.4, False, 0.0)
        if entities.date:
            dated = any(w in lower for w in ("date", "after", "before", "since", "between", "expir", "effective"))
            iso = any(re.fullmatch(r"\d{4}-\d{2}-\d{2}", d) for d in entities.raw.get("dates", []))
            add(DATE, dated, 0.2, iso, 0.3)

        return scores

    def _derive_filters(self, entities: ExtractedEntities, lower: str) -> list[FilterCriteria]:
        filters: list[FilterCriteria] = []

        if entities.status_type:
            filters.append(FilterCriteria("status", "=", entities.status_type))
        if entities.customer_name:
            filters.append(FilterCriteria("customer", "=", entities.customer_name))
        if entities.user_name:
            filters.append(FilterCriteria("created_by", "=", entities.user_name))
        if entities.account_number:
            filters.append(FilterCriteria("account_number", "=", entities.account_number))

        if entities.date:
            date_field = "expiration_date" if "expir" in lower else (
                "effective_date" if "effective" in lower else "created_date"
            )
            if entities.end_date and "between" in lower:
                filters.append(FilterCriteria(date_field, "between", entities.date, entities.end_date))
            elif re.search(r"\b(after|since|from)\b", lower):
                filters.append(FilterCriteria(date_field, ">", entities.date))
            elif re.search(r"\b(before|until|prior)\b", lower):
                filters.append(FilterCriteria(date_field, "<", entities.date))
            else:
                filters.append(FilterCriteria(date_field, "=", entities.date))

        return filters

    def _validate(self, entities: ExtractedEntities, lower: str) -> None:
        if entities.contract_number and not 6 <= len(entities.contract_number) <= 8:
            entities.validation_warnings.append("Contract numbers are usually 6-8 digits")
        if entities.customer_name and len(entities.customer_name) > 50:
            entities.validation_warnings.append("Customer name is very long")
        if entities.date and entities.end_date and entities.end_date < entities.date:
            entities.validation_errors.append("End date is before start date")
        if entities.date and "expir" in lower:
            today = self._today or date.today()
            if entities.date < today.isoformat():
                entities.validation_warnings.append("Expiration date is in the past")


def _overlaps(span: tuple[int, int], consumed: list[tuple[int, int]]) -> bool:
    start, end = span
    return any(start < c_end and c_start < end for c_start, c_end in consumed)


def _is_stoplisted(value: str) -> bool:
    if value in CONTRACT_NUMBER_STOPLIST:
        return True
    # Four-digit years
    return len(value) == 4 and 1900 <= int(value) <= 2099


def _pick(candidates, prefer_length: int | None = None) -> _NumberCandidate | None:
    """Preferred length first, then anchored candidates, then text order."""
    ordered = sorted(
        candidates,
        key=lambda c: (
            prefer_length is not None and len(c.value) != prefer_length,
            not c.anchored,
            c.start,
        ),
    )
    return ordered[0] if ordered else None


def _is_name(word: str) -> bool:
    return len(word) > 1 and word.lower() not in NAME_STOPWORDS and not word.isdigit()


def _trim_name(candidate: str) -> str:
    """Drop trailing stopwords picked up by the multi-word name pattern."""
    words = candidate.split()
    while len(words) > 1 and words[-1].lower() in NAME_STOPWORDS:
        words.pop()
    return " ".join(words)


# Module-level instance for convenience
_extractor = EntityExtractor()


def extract_entities(text: str) -> ExtractedEntities:
    """Extract entities from text using the default extractor.

    Args:
        text: User input text

    Returns:
        ExtractedEntities with all detected entities
    """
    return _extractor.extract(text)
