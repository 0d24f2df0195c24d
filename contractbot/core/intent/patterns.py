"""Rule tables for contractbot intent classification.

Every classification decision is an ordered list of ``Rule(name, predicate,
outcome)`` entries; the first rule whose predicate holds wins. Keeping the
rules as data makes their coverage and overlaps enumerable in tests.

Tables, in pipeline order:
1. COMMAND_RULES - fixed commands (help, status, clear, ...) that bypass
   the rest of the pipeline
2. CREATION_RULES - phrases that start a guided creation session
3. DOMAIN_KEYWORDS - keyword hits used to score contracts vs parts
4. CONTRACT_INTENT_RULES / PART_INTENT_RULES - within-domain intents
5. QUERY_TYPE_RULES / ACTION_TYPE_RULES - query and action type
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .entities import ACCOUNT_NUMBER, CONTRACT_NUMBER, CUSTOMER_NAME, PART_NUMBER, STATUS_TYPE, USER_NAME
from .taxonomy import ActionType, Domain, QueryType


@dataclass
class RuleContext:
    """What a rule predicate may look at.

    Attributes:
        text: Lowercased, corrected utterance
        entities: Extracted entity map (contractNumber, partNumber, ...)
        keywords: Domain keywords found in the text
    """

    text: str
    entities: dict[str, str] = field(default_factory=dict)
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def of(cls, text: str, entities: dict[str, str] | None = None, keywords: Iterable[str] = ()) -> "RuleContext":
        return cls(text=text.lower().strip(), entities=dict(entities or {}), keywords=list(keywords))


Predicate = Callable[[RuleContext], bool]


@dataclass(frozen=True)
class Rule:
    """A named (predicate, outcome) pair."""

    name: str
    predicate: Predicate
    outcome: str


# ----------------------------------------------------------------------
# Predicate builders
# ----------------------------------------------------------------------


def contains(*words: str) -> Predicate:
    """True when any of the substrings occurs in the text."""
    return lambda ctx: any(w in ctx.text for w in words)


def matches(pattern: str) -> Predicate:
    """True when the regex matches anywhere in the text."""
    compiled = re.compile(pattern)
    return lambda ctx: compiled.search(ctx.text) is not None


def equals(*phrases: str) -> Predicate:
    """True when the whole text (minus trailing punctuation) is one of the phrases."""
    wanted = frozenset(phrases)
    return lambda ctx: ctx.text in wanted or ctx.text.rstrip(".!?") in wanted


def has_entity(*names: str) -> Predicate:
    """True when any of the entity types was extracted."""
    return lambda ctx: any(ctx.entities.get(n) for n in names)


def has_keyword(*words: str) -> Predicate:
    return lambda ctx: any(w in ctx.keywords for w in words)


def all_of(*predicates: Predicate) -> Predicate:
    return lambda ctx: all(p(ctx) for p in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda ctx: any(p(ctx) for p in predicates)


def negate(predicate: Predicate) -> Predicate:
    return lambda ctx: not predicate(ctx)


def always(ctx: RuleContext) -> bool:
    return True


def first_match(rules: Iterable[Rule], ctx: RuleContext) -> Rule | None:
    """Return the first rule whose predicate holds, or None."""
    for rule in rules:
        if rule.predicate(ctx):
            return rule
    return None


# ----------------------------------------------------------------------
# Stage 1: fixed commands
# ----------------------------------------------------------------------

_short_and_wordy = all_of(negate(matches(r"\d")), lambda ctx: len(ctx.text.split()) <= 5)

# Conversational words only count when nothing in the text is a lookup
_no_lookup = all_of(
    _short_and_wordy,
    negate(matches(r"\b(contracts?|parts?|checklists?|customers?|accounts?|history)\b")),
)

COMMAND_RULES: tuple[Rule, ...] = (
    Rule(
        "help",
        any_of(all_of(matches(r"\bhelp\b"), _no_lookup), equals("?"), contains("what can you do")),
        "help",
    ),
    Rule("status", all_of(matches(r"\bstatus\b"), matches(r"\b(system|model)\b")), "status"),
    Rule("clear", equals("clear", "clear chat", "reset", "cancel", "start over"), "clear"),
    Rule("session_info", all_of(matches(r"\bsession\b"), matches(r"\binfo(rmation)?\b")), "session_info"),
    Rule("reload", all_of(matches(r"\breload\b"), matches(r"\bmodels?\b")), "reload"),
    Rule("about", all_of(any_of(matches(r"\bversion\b"), matches(r"^about\b")), _no_lookup), "about"),
    Rule(
        "greeting",
        all_of(
            matches(r"^(hi|hello|hey|greetings|good\s+(morning|afternoon|evening))\b"),
            _short_and_wordy,
        ),
        "greeting",
    ),
    Rule("thanks", all_of(matches(r"\b(thank\s+you|thanks|thx)\b"), _no_lookup), "thanks"),
    Rule("goodbye", all_of(matches(r"\b(bye|goodbye|see\s+you|exit|quit)\b"), _no_lookup), "goodbye"),
)


# ----------------------------------------------------------------------
# Stage 2: creation phrases
# ----------------------------------------------------------------------

_CREATE_VERB = r"\b(create|make|new|add|start|build|set\s+up|open)\b"

# Checklist first: "create checklist for contract 123456" mentions both
CREATION_RULES: tuple[Rule, ...] = (
    Rule("create_checklist", matches(_CREATE_VERB + r".*\bchecklists?\b"), "checklist"),
    Rule(
        "create_contract",
        all_of(matches(_CREATE_VERB + r".*\bcontract\b"), negate(matches(r"\b(show|list|find|search)\b"))),
        "contract",
    ),
)


# ----------------------------------------------------------------------
# Stage 3: domain scoring
# ----------------------------------------------------------------------

DOMAIN_KEYWORDS: dict[Domain, frozenset[str]] = {
    Domain.CONTRACTS: frozenset(
        {
            "contract", "contracts", "agreement", "agreements", "customer", "customers",
            "client", "clients", "account", "checklist", "effective", "expiration",
            "expired", "expiring", "active", "history", "created", "project", "award",
        }
    ),
    Domain.PARTS: frozenset(
        {
            "part", "parts", "component", "components", "specification", "specifications",
            "spec", "specs", "datasheet", "stock", "inventory", "available", "availability",
            "compatible", "compatibility", "price", "pricing", "cost", "manufacturer",
            "warranty", "discontinued", "failed", "rejected", "errors",
        }
    ),
}

# Entity presence weights: (entity, domain, points)
ENTITY_DOMAIN_WEIGHTS: tuple[tuple[str, Domain, int], ...] = (
    (CONTRACT_NUMBER, Domain.CONTRACTS, 3),
    (PART_NUMBER, Domain.PARTS, 3),
    (ACCOUNT_NUMBER, Domain.CONTRACTS, 1),
)

# Entities that settle a tie in favour of a domain
TIE_BREAK_ENTITIES: dict[Domain, tuple[str, ...]] = {
    Domain.CONTRACTS: (CONTRACT_NUMBER, ACCOUNT_NUMBER, CUSTOMER_NAME),
    Domain.PARTS: (PART_NUMBER,),
}


def score_domains(ctx: RuleContext) -> dict[str, int]:
    """Integer score per domain: +1 per keyword token, plus entity weights."""
    tokens = re.findall(r"[a-z]+", ctx.text)
    scores = {
        domain.value: sum(1 for t in tokens if t in keywords)
        for domain, keywords in DOMAIN_KEYWORDS.items()
    }
    for entity, domain, points in ENTITY_DOMAIN_WEIGHTS:
        if ctx.entities.get(entity):
            scores[domain.value] += points
    return scores


def resolve_domain(scores: dict[str, int], ctx: RuleContext) -> Domain:
    """Strictly higher score wins; a tie is broken by whichever entity is present.

    Returns Domain.AMBIGUOUS when scores tie and entities point both ways
    (or nowhere).
    """
    contracts = scores.get(Domain.CONTRACTS.value, 0)
    parts = scores.get(Domain.PARTS.value, 0)
    if contracts > parts:
        return Domain.CONTRACTS
    if parts > contracts:
        return Domain.PARTS

    leaning = [
        domain
        for domain, names in TIE_BREAK_ENTITIES.items()
        if any(ctx.entities.get(n) for n in names)
    ]
    if len(leaning) == 1:
        return leaning[0]
    return Domain.AMBIGUOUS


# ----------------------------------------------------------------------
# Stage 4: within-domain intents
# ----------------------------------------------------------------------

_failure = contains("failed", "fail", "error", "rejected")
_asks_reason = matches(r"\b(why|because|reason)\b")

CONTRACT_INTENT_RULES: tuple[Rule, ...] = (
    Rule("get_error_messages", all_of(_failure, _asks_reason), "get_error_messages"),
    Rule("contract_failed_parts", all_of(_failure, contains("part")), "contract_failed_parts"),
    Rule("contract_parts", contains("part"), "contract_parts"),
    Rule("contract_status", contains("status"), "contract_status"),
    Rule("contract_history", contains("history"), "contract_history"),
    Rule("contract_details", contains("detail", "info", "summary"), "contract_details"),
    Rule("list_active_contracts", matches(r"\bactive\b"), "list_active_contracts"),
    Rule("list_expired_contracts", contains("expired", "expiring"), "list_expired_contracts"),
    Rule(
        "contracts_by_customer",
        any_of(has_entity(CUSTOMER_NAME, ACCOUNT_NUMBER), contains("customer", "client")),
        "contracts_by_customer",
    ),
    Rule("contracts_by_user", any_of(has_entity(USER_NAME), contains("created by")), "contracts_by_user"),
    Rule("search_contract", always, "search_contract"),
)

PART_INTENT_RULES: tuple[Rule, ...] = (
    Rule("get_error_messages", all_of(_failure, _asks_reason), "get_error_messages"),
    Rule("show_failed_parts", any_of(_failure, contains("missing")), "show_failed_parts"),
    Rule("part_details", contains("specification", "datasheet", "details", "detail", "spec"), "part_details"),
    Rule("part_price", contains("price", "pricing", "cost"), "part_price"),
    Rule("part_availability", contains("available", "availability", "stock", "inventory"), "part_availability"),
    Rule("part_compatibility", contains("compatible", "compatibility"), "part_compatibility"),
    Rule("part_contracts", contains("contract"), "part_contracts"),
    Rule("search_part", always, "search_part"),
)

INTENT_RULES: dict[Domain, tuple[Rule, ...]] = {
    Domain.CONTRACTS: CONTRACT_INTENT_RULES,
    Domain.PARTS: PART_INTENT_RULES,
}


# ----------------------------------------------------------------------
# Query and action types
# ----------------------------------------------------------------------

QUERY_TYPE_RULES: tuple[Rule, ...] = (
    Rule("specific_contract", has_entity(CONTRACT_NUMBER), QueryType.SPECIFIC_CONTRACT.value),
    Rule("specific_part", has_entity(PART_NUMBER), QueryType.SPECIFIC_PART.value),
    Rule("customer_filter", has_entity(ACCOUNT_NUMBER, CUSTOMER_NAME), QueryType.CUSTOMER_FILTER.value),
    Rule("user_filter", has_entity(USER_NAME), QueryType.USER_FILTER.value),
    Rule("status_filter", has_entity(STATUS_TYPE), QueryType.STATUS_FILTER.value),
    Rule("search", has_keyword("search", "find"), QueryType.SEARCH.value),
    Rule("list_all", has_keyword("list", "all"), QueryType.LIST_ALL.value),
    Rule("create", has_keyword("create", "new"), QueryType.CREATE.value),
    Rule("update", has_keyword("update", "modify"), QueryType.UPDATE.value),
    Rule("help", has_keyword("help", "guide"), QueryType.HELP.value),
    Rule("general", always, QueryType.GENERAL.value),
)

ACTION_TYPE_RULES: tuple[Rule, ...] = (
    Rule("create", matches(r"\b(create|make|new)\b"), ActionType.CREATE.value),
    Rule("update", matches(r"\b(update|modify|change)\b"), ActionType.UPDATE.value),
    Rule("show", matches(r"\b(show|display|view)\b"), ActionType.SHOW.value),
    Rule("get", matches(r"\b(get|retrieve|fetch)\b"), ActionType.GET.value),
    Rule("list", matches(r"\b(list|enumerate)\b"), ActionType.LIST.value),
    Rule("search", matches(r"\b(search|find|locate|look\s+up)\b"), ActionType.SEARCH.value),
    Rule("filter", matches(r"\b(filter|sort)\b"), ActionType.FILTER.value),
    Rule("check", matches(r"\b(check|verify|status)\b"), ActionType.CHECK.value),
    Rule("help", matches(r"\b(help|guide|how)\b"), ActionType.HELP.value),
    Rule("delete", matches(r"\b(delete|remove)\b"), ActionType.DELETE.value),
    Rule("unknown", always, ActionType.UNKNOWN.value),
)


class IntentPatternMatcher:
    """Apply the rule tables to a RuleContext.

    Stateless; the tables are module constants so one instance can be
    shared.
    """

    def match_command(self, text: str) -> str | None:
        """Name of the fixed command the text is, or None."""
        rule = first_match(COMMAND_RULES, RuleContext.of(text))
        return rule.outcome if rule else None

    def match_creation(self, text: str) -> str | None:
        """Flow kind ("contract" / "checklist") the text asks to start, or None."""
        rule = first_match(CREATION_RULES, RuleContext.of(text))
        return rule.outcome if rule else None

    def score(self, ctx: RuleContext) -> tuple[Domain, dict[str, int]]:
        """Score domains and resolve the winner."""
        scores = score_domains(ctx)
        return resolve_domain(scores, ctx), scores

    def match_intent(self, domain: Domain, ctx: RuleContext) -> Rule | None:
        """First intent rule of the domain's table that holds."""
        rules = INTENT_RULES.get(domain)
        if rules is None:
            return None
        return first_match(rules, ctx)

    def query_type(self, ctx: RuleContext) -> QueryType:
        rule = first_match(QUERY_TYPE_RULES, ctx)
        return QueryType(rule.outcome) if rule else QueryType.GENERAL

    def action_type(self, ctx: RuleContext) -> ActionType:
        rule = first_match(ACTION_TYPE_RULES, ctx)
        return ActionType(rule.outcome) if rule else ActionType.UNKNOWN


__all__ = [
    "ACTION_TYPE_RULES",
    "COMMAND_RULES",
    "CONTRACT_INTENT_RULES",
    "CREATION_RULES",
    "DOMAIN_KEYWORDS",
    "INTENT_RULES",
    "IntentPatternMatcher",
    "PART_INTENT_RULES",
    "QUERY_TYPE_RULES",
    "Rule",
    "RuleContext",
    "first_match",
    "resolve_domain",
    "score_domains",
]
