"""Word frequency dictionary and typo override table.

The dictionary file holds one ``word frequency`` pair per line. Duplicate
words are summed. Domain terms are layered on top with a high weight so they
outrank general English words at the same edit distance.

The override table maps deliberate typo -> canonical pairs. It is checked
before any statistical lookup and is authoritative: it resolves domain
collisions that frequency ranking would get wrong (``filed`` -> ``failed``).

Both tables are read-only after load.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from importlib import resources
from pathlib import Path
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

BUNDLED_DICTIONARY = "frequency_dictionary.txt"

# Very high weight so domain terms win ties against common English words
DOMAIN_WORD_FREQUENCY = 500_000

DOMAIN_WORDS: tuple[str, ...] = (
    # Contracts
    "contract", "contracts", "account", "customer", "client", "agreement",
    "status", "details", "summary", "checklist", "effective", "expiration",
    "expired", "active", "inactive", "pending", "draft", "suspended",
    "project", "created", "create",
    # Parts
    "part", "parts", "product", "specifications", "specification", "datasheet",
    "compatible", "available", "availability", "stock", "inventory",
    "discontinued", "manufacturer", "warranty", "pricing", "price", "failed",
    "error", "errors", "rejected", "missing", "validation", "loaded",
    # Actions
    "show", "list", "find", "search", "get", "display", "help", "number",
)

# Consolidated override table: typo -> canonical
DEFAULT_OVERRIDES: dict[str, str] = {
    # Actions and function words
    "lst": "list",
    "shwo": "show",
    "shw": "show",
    "sho": "show",
    "mee": "me",
    "teh": "the",
    "wth": "with",
    "waht": "what",
    "whats": "what",
    "wat": "what",
    "chek": "check",
    "giv": "give",
    "provid": "provide",
    "becasue": "because",
    "becuase": "because",
    "happend": "happened",
    "serach": "search",
    "seach": "search",
    "fnd": "find",
    "craete": "create",
    "creat": "create",
    # Contract vocabulary
    "contrct": "contract",
    "contrcts": "contracts",
    "contarct": "contract",
    "contarcts": "contracts",
    "cntract": "contract",
    "cntracts": "contracts",
    "cntrct": "contract",
    "kontrakt": "contract",
    "kontract": "contract",
    "kontrct": "contract",
    "conract": "contract",
    "contracs": "contracts",
    "contrat": "contract",
    "contraxt": "contract",
    "contrst": "contract",
    "numbr": "number",
    "numer": "number",
    "accunt": "account",
    "acount": "account",
    "accnt": "account",
    "custmer": "customer",
    "cstomer": "customer",
    "custmor": "customer",
    "statuss": "status",
    "statuz": "status",
    "infro": "info",
    "detials": "details",
    "detals": "details",
    "detalis": "details",
    "summry": "summary",
    "sumry": "summary",
    "efective": "effective",
    "creatd": "created",
    "exipred": "expired",
    "expird": "expired",
    "corprate": "corporate",
    "checklst": "checklist",
    "cheklist": "checklist",
    # Parts vocabulary
    "prts": "parts",
    "parst": "parts",
    "partz": "parts",
    "prduct": "product",
    "prodcut": "product",
    "specifcations": "specifications",
    "specificatons": "specifications",
    "specifcation": "specification",
    "actve": "active",
    "activ": "active",
    "discontnued": "discontinued",
    "discntinued": "discontinued",
    "discountinued": "discontinued",
    "datashet": "datasheet",
    "dataheet": "datasheet",
    "compatble": "compatible",
    "compatable": "compatible",
    "avalable": "available",
    "availabe": "available",
    "availble": "available",
    "stok": "stock",
    "sotck": "stock",
    "manufacterer": "manufacturer",
    "manufacter": "manufacturer",
    "manufactuer": "manufacturer",
    "isses": "issues",
    "issuse": "issues",
    "deffect": "defect",
    "warrenty": "warranty",
    "warrnty": "warranty",
    # Failure vocabulary; "filed" is a real word but means "failed" here
    "faild": "failed",
    "faield": "failed",
    "filde": "failed",
    "failded": "failed",
    "filed": "failed",
    "validdation": "validation",
    "validaion": "validation",
    "vaildation": "validation",
    "loadded": "loaded",
    "looded": "loaded",
    "misssing": "missing",
    "mising": "missing",
    "rejeted": "rejected",
    "rejectd": "rejected",
    "successfull": "successful",
    "succesful": "successful",
    "pricng": "pricing",
    "priceing": "pricing",
    "skiped": "skipped",
    # Time vocabulary
    "aftr": "after",
    "befre": "before",
    "befor": "before",
    "btwn": "between",
    "betwen": "between",
    "mnth": "month",
    "yr": "year",
    "dte": "date",
    # Names
    "boieng": "boeing",
    "honeywel": "honeywell",
}


class DictionaryStore:
    """Read-only word frequency table plus typo override table.

    Words are stored lowercase and indexed by length so candidate scans only
    touch words whose length is within the edit-distance window.
    """

    def __init__(
        self,
        frequencies: dict[str, int] | None = None,
        overrides: dict[str, str] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            frequencies: Word -> frequency mapping (lowercased on load)
            overrides: Typo -> canonical mapping (defaults to DEFAULT_OVERRIDES)
        """
        self._frequencies: dict[str, int] = {}
        for word, freq in (frequencies or {}).items():
            key = word.lower()
            self._frequencies[key] = self._frequencies.get(key, 0) + int(freq)

        self._overrides: dict[str, str] = {
            k.lower(): v for k, v in (overrides if overrides is not None else DEFAULT_OVERRIDES).items()
        }

        self._by_length: dict[int, list[tuple[str, int]]] = defaultdict(list)
        for word, freq in self._frequencies.items():
            self._by_length[len(word)].append((word, freq))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        dictionary_path: Path | None = None,
        overrides_path: Path | None = None,
        domain_words: Iterable[str] = DOMAIN_WORDS,
    ) -> "DictionaryStore":
        """Load the dictionary file and optional override additions.

        Args:
            dictionary_path: "word frequency" file; None uses the bundled resource
            overrides_path: YAML mapping of extra typo -> canonical pairs
            domain_words: Terms added with DOMAIN_WORD_FREQUENCY

        Returns:
            Loaded DictionaryStore
        """
        if dictionary_path is not None:
            lines = Path(dictionary_path).read_text(encoding="utf-8").splitlines()
            source = str(dictionary_path)
        else:
            resource = resources.files("contractbot.data").joinpath(BUNDLED_DICTIONARY)
            lines = resource.read_text(encoding="utf-8").splitlines()
            source = f"bundled:{BUNDLED_DICTIONARY}"

        frequencies = dict(parse_frequency_lines(lines))
        for word in domain_words:
            frequencies[word] = max(frequencies.get(word, 0), DOMAIN_WORD_FREQUENCY)

        overrides = dict(DEFAULT_OVERRIDES)
        if overrides_path is not None:
            overrides.update(load_overrides(overrides_path))

        store = cls(frequencies=frequencies, overrides=overrides)
        logger.info(
            f"Loaded dictionary from {source}: {len(store)} words, "
            f"{len(store._overrides)} overrides"
        )
        return store

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._frequencies)

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and word.lower() in self._frequencies

    def frequency(self, word: str) -> int:
        """Frequency of a word (0 when absent)."""
        return self._frequencies.get(word.lower(), 0)

    def override(self, token: str) -> str | None:
        """Canonical form for a known typo, or None."""
        return self._overrides.get(token.lower())

    def words_near_length(self, length: int, window: int) -> Iterator[tuple[str, int]]:
        """Yield (word, frequency) for words within +/- window of length."""
        for size in range(max(1, length - window), length + window + 1):
            yield from self._by_length.get(size, ())

    @property
    def overrides(self) -> dict[str, str]:
        """Copy of the override table."""
        return dict(self._overrides)


def parse_frequency_lines(lines: Iterable[str]) -> Iterator[tuple[str, int]]:
    """Parse "word frequency" lines, skipping blanks and malformed rows.

    A non-integer frequency counts as 1.
    """
    seen: dict[str, int] = {}
    for line in lines:
        tokens = line.split()
        if len(tokens) < 2:
            continue
        word = tokens[0].lower()
        try:
            freq = int(tokens[1])
        except ValueError:
            freq = 1
        seen[word] = seen.get(word, 0) + freq
    yield from seen.items()


def load_overrides(path: Path) -> dict[str, str]:
    """Load a YAML mapping of typo -> canonical.

    Raises:
        ValueError: If the file is not a mapping
    """
    from ruamel.yaml import YAML

    yaml = YAML(typ="safe")
    with Path(path).open(encoding="utf-8") as f:
        data = yaml.load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Override file {path} must contain a mapping of typo: canonical")

    return {str(k).lower(): str(v).lower() for k, v in data.items()}


__all__ = [
    "DOMAIN_WORDS",
    "DEFAULT_OVERRIDES",
    "DictionaryStore",
    "load_overrides",
    "parse_frequency_lines",
]
