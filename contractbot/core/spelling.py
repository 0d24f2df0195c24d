"""Token-level typo correction for contractbot.

Each whitespace token is corrected independently; the output keeps the
token count and order, and each token keeps its leading and trailing
punctuation.

Per token:
1. Skip numbers, identifier-shaped tokens (``AE125``), contractions and
   capitalized words that are not at sentence start (probable names).
2. Override table lookup (authoritative).
3. Bounded edit distance against the dictionary, ranked by
   (distance ascending, frequency descending), then an acceptance guard.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from rapidfuzz.distance import Levenshtein

from .dictionary import DictionaryStore

logger = logging.getLogger(__name__)

MAX_EDIT_DISTANCE = 2
# Candidates whose length differs by more than this are never compared
MAX_LENGTH_WINDOW = 3
# Accepted corrections never change length by more than this
MAX_LENGTH_DELTA = 4
MIN_CORRECTABLE_LENGTH = 3

_TOKEN_PARTS = re.compile(r"^(?P<lead>\W*)(?P<core>.*?)(?P<trail>\W*)$", re.DOTALL)
_ALPHA = re.compile(r"^[A-Za-z]+$")
_NUMERIC = re.compile(r"^[\d.,]+$")
_IDENTIFIER = re.compile(r"^[A-Za-z]{1,3}\d+", re.IGNORECASE)
_SENTENCE_END = (".", "!", "?")

# Typos of these roots only ever resolve to the listed canonical words
AMBIGUOUS_ROOTS: tuple[tuple[re.Pattern[str], frozenset[str]], ...] = (
    (
        re.compile(r"^(?:con|cnt|kon|cotn|ocn)[a-z]*(?:tr|rt|rc)"),
        frozenset({"contract", "contracts"}),
    ),
)


@dataclass
class TokenCorrection:
    """A single token that was changed.

    Attributes:
        original: Token core before correction
        corrected: Replacement word
        source: "override" or "dictionary"
        distance: Edit distance between original and corrected
    """

    original: str
    corrected: str
    source: str
    distance: int


@dataclass
class Suggestion:
    """Dictionary candidate for a token."""

    word: str
    distance: int
    frequency: int


@dataclass
class CorrectionResult:
    """Result of correcting an utterance.

    Attributes:
        original: Input text
        corrected: Output text (same token count and order)
        corrections: Tokens that were changed
    """

    original: str
    corrected: str
    corrections: list[TokenCorrection] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether any token was corrected."""
        return bool(self.corrections)


class SpellCorrector:
    """Correct typos using a DictionaryStore.

    The corrector holds no mutable state, so one instance can serve
    concurrent requests.
    """

    def __init__(self, store: DictionaryStore) -> None:
        self.store = store

    def correct(self, text: str) -> CorrectionResult:
        """Correct every token in an utterance.

        Args:
            text: Raw utterance

        Returns:
            CorrectionResult with the corrected text and the changes made
        """
        if not text or not text.strip():
            return CorrectionResult(original=text or "", corrected="")

        output: list[str] = []
        corrections: list[TokenCorrection] = []

        for token in text.split():
            at_sentence_start = not output or output[-1].endswith(_SENTENCE_END)
            fixed, correction = self._correct_token(token, at_sentence_start)
            output.append(fixed)
            if correction is not None:
                corrections.append(correction)

        corrected = " ".join(output)
        if corrections:
            logger.debug(
                "Spelling: "
                + ", ".join(f"{c.original}->{c.corrected} ({c.source})" for c in corrections)
            )
        return CorrectionResult(original=text, corrected=corrected, corrections=corrections)

    def correct_word(self, word: str) -> str:
        """Correct a single bare word (no punctuation handling)."""
        fixed, _ = self._correct_token(word, at_sentence_start=True)
        return fixed

    def suggestions(self, word: str) -> list[Suggestion]:
        """All dictionary candidates within MAX_EDIT_DISTANCE, best first.

        A word already in the dictionary yields a single distance-0 suggestion.
        """
        word = word.lower()
        if word in self.store:
            return [Suggestion(word, 0, self.store.frequency(word))]

        found: list[Suggestion] = []
        for candidate, freq in self.store.words_near_length(len(word), MAX_LENGTH_WINDOW):
            distance = Levenshtein.distance(word, candidate, score_cutoff=MAX_EDIT_DISTANCE)
            if distance <= MAX_EDIT_DISTANCE:
                found.append(Suggestion(candidate, distance, freq))

        found.sort(key=lambda s: (s.distance, -s.frequency, s.word))
        return found

    def _correct_token(
        self, token: str, at_sentence_start: bool
    ) -> tuple[str, TokenCorrection | None]:
        parts = _TOKEN_PARTS.match(token)
        if parts is None:
            return token, None

        lead, core, trail = parts.group("lead"), parts.group("core"), parts.group("trail")

        if not core or not self._is_correctable(core, at_sentence_start):
            return token, None

        lowered = core.lower()

        override = self.store.override(lowered)
        if override is not None:
            if override == lowered:
                return token, None
            fixed = _match_case(core, override)
            distance = Levenshtein.distance(lowered, override)
            return lead + fixed + trail, TokenCorrection(core, fixed, "override", distance)

        if len(lowered) < MIN_CORRECTABLE_LENGTH:
            return token, None

        candidates = self.suggestions(lowered)
        if not candidates or candidates[0].distance == 0:
            return token, None

        best = next((c for c in candidates if self._should_accept(lowered, c)), None)
        if best is None:
            return token, None

        fixed = _match_case(core, best.word)
        return lead + fixed + trail, TokenCorrection(core, fixed, "dictionary", best.distance)

    def _is_correctable(self, core: str, at_sentence_start: bool) -> bool:
        if _NUMERIC.match(core) or _IDENTIFIER.match(core):
            return False
        if not _ALPHA.match(core):
            # Contractions, hyphenated codes, emails
            return False
        if core[0].isupper() and not at_sentence_start:
            return False
        return True

    def _should_accept(self, original: str, suggestion: Suggestion) -> bool:
        """Acceptance guard for a dictionary suggestion."""
        word = suggestion.word

        if suggestion.distance > MAX_EDIT_DISTANCE:
            return False
        # Drastic shortening ("specifications" -> "spec")
        if len(original) >= 6 and len(word) <= 3:
            return False
        if abs(len(original) - len(word)) > MAX_LENGTH_DELTA:
            return False
        if len(original) <= 3 and suggestion.distance > 1:
            return False

        for root, allowed in AMBIGUOUS_ROOTS:
            if root.match(original) and word not in allowed:
                return False

        return True


def _match_case(original: str, replacement: str) -> str:
    """Carry the capitalization pattern of original over to replacement."""
    if original.isupper() and len(original) > 1:
        return replacement.upper()
    if original[0].isupper():
        return replacement[0].upper() + replacement[1:]
    return replacement


__all__ = [
    "AMBIGUOUS_ROOTS",
    "MAX_EDIT_DISTANCE",
    "CorrectionResult",
    "SpellCorrector",
    "Suggestion",
    "TokenCorrection",
]
