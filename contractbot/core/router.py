"""Query router for contractbot.

Entry point for one user turn: ``QueryRouter.understand(utterance,
session_id)``. Order of checks per turn:

1. Input validation (empty, oversized, unsafe input is rejected)
2. Active creation session - the raw text answers the current step
3. Checklist offer - a yes/no right after a contract was created
4. Spelling correction
5. Fixed commands (help, status, clear, ...)
6. Creation requests (create contract / create checklist)
7. Entity extraction, domain/intent classification, confidence scoring
8. Response built from injected domain handlers

Any unexpected exception is logged and turned into a generic apology; it
never reaches the caller.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .. import __version__
from .dictionary import DictionaryStore
from .errors import EntityValidationError, InputValidationError, SessionExpiredOrMissing
from .handlers import DomainHandlers, InMemoryHandlers
from .intent.confidence import ConfidenceAssessment, ConfidenceScorer
from .intent.entities import ACCOUNT_NUMBER, CONTRACT_NUMBER, CUSTOMER_NAME, PART_NUMBER
from .intent.parser import Categorizer, IntentClassifier
from .intent.taxonomy import (
    ActionType,
    ConfidenceBand,
    Domain,
    FilterCriteria,
    IntentConfidence,
    IntentResult,
    ParsedQuery,
    QueryType,
)
from .session import (
    ConversationStore,
    FlowKind,
    SessionManager,
    StepOutcome,
    StepStatus,
)
from .spelling import SpellCorrector, TokenCorrection

if TYPE_CHECKING:
    from ..config import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT_LENGTH = 1000

EMPTY_INPUT_MESSAGE = "Please provide a valid input. Type 'help' for assistance."
TOO_LONG_MESSAGE = "Input too long. Please keep your message under {limit} characters."
UNSAFE_INPUT_MESSAGE = "Your message contains content that cannot be processed. Please rephrase it."
GENERIC_ERROR_MESSAGE = (
    "Sorry, something went wrong while processing your request. "
    "Please try again or type 'help' for assistance."
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
UNSAFE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"\bunion\s+(all\s+)?select\b", re.IGNORECASE),
    re.compile(r"\bdrop\s+table\b", re.IGNORECASE),
    re.compile(r"'\s*or\s+'?1'?\s*=\s*'?1", re.IGNORECASE),
)

_YES = re.compile(r"^(yes|y|yeah|yep|sure|ok|okay)( please)?[.!]?$", re.IGNORECASE)
_NO = re.compile(r"^(no|n|nope|not\s+now)( thanks)?[.!]?$", re.IGNORECASE)

HELP_TEXT = """\
**contractbot help**

I can assist you with:

**Contracts**
- Create new contracts with step-by-step guidance
- Search contracts by number or customer
- Check contract status, details and history

**Checklists**
- Create checklists for contracts
- Set system, effective, expiration and price expiration dates

**Parts**
- Look up parts by number
- Check availability, pricing and compatibility
- Find failed parts and their error messages

**Examples**
- "Create contract"
- "Create contract for account 123456789"
- "Find contract 123456"
- "Search part AB12345-12345678"
- "Contracts for Acme"

Type "status" for system status, "clear" to reset the conversation.
Creation sessions time out after 30 minutes of inactivity."""

COMMAND_RESPONSES: dict[str, str] = {
    "greeting": "Hello! How can I help you with contracts, parts or checklists today?",
    "thanks": "You're welcome! Is there anything else I can help you with?",
    "goodbye": "Goodbye! Have a great day.",
    "clear": "Conversation cleared. How can I help you today?",
}

INTENT_LABELS: dict[str, str] = {
    "contract_status": "contract status",
    "contract_history": "contract history",
    "contract_details": "contract details",
    "contract_parts": "parts on a contract",
    "contract_failed_parts": "failed parts on a contract",
    "list_active_contracts": "active contracts",
    "list_expired_contracts": "expired contracts",
    "contracts_by_customer": "contracts for a customer",
    "contracts_by_user": "contracts created by a user",
    "search_contract": "a contract search",
    "part_details": "part details",
    "part_price": "part pricing",
    "part_availability": "part availability",
    "part_compatibility": "part compatibility",
    "part_contracts": "contracts using a part",
    "show_failed_parts": "failed parts",
    "get_error_messages": "error messages",
    "search_part": "a part search",
}

ENTITY_PROMPTS: dict[str, str] = {
    CONTRACT_NUMBER: "Please provide the contract number (for example 123456).",
    PART_NUMBER: "Please provide the part number (for example AB12345-12345678).",
}


@dataclass
class Understanding:
    """Everything the pipeline concluded about one turn.

    Attributes:
        original_text: Utterance as received
        corrected_text: Text after spelling correction (raw text for session answers)
        entities: Extracted entity map
        domain: contracts, parts, ambiguous or system
        query_type: Nature of the query
        action_type: Requested action
        intent: Fine-grained intent label
        confidence: Combined confidence in [0, 1]
        band: What to do with the confidence (execute / verify / clarify)
        next_prompt: Prompt for the next creation step, None unless input is needed
        response: User-facing text
        session_step: Step cursor of the active creation session
        corrections: Tokens changed by spelling correction
        filters: Derived filter criteria
        metadata: Extra facts recorded with the assistant message
    """

    original_text: str
    corrected_text: str
    entities: dict[str, str] = field(default_factory=dict)
    domain: Domain = Domain.SYSTEM
    query_type: QueryType = QueryType.GENERAL
    action_type: ActionType = ActionType.UNKNOWN
    intent: str = "general"
    confidence: float = 0.0
    band: ConfidenceBand = ConfidenceBand.LOW
    next_prompt: str | None = None
    response: str = ""
    session_step: int | None = None
    corrections: list[TokenCorrection] = field(default_factory=list)
    filters: list[FilterCriteria] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def message(cls, text: str, response: str, intent: str = "general") -> "Understanding":
        """A system reply with no classification (rejections, failures)."""
        return cls(original_text=text, corrected_text=text, intent=intent, response=response)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_text": self.original_text,
            "corrected_text": self.corrected_text,
            "entities": dict(self.entities),
            "domain": self.domain.value,
            "query_type": self.query_type.value,
            "action_type": self.action_type.value,
            "intent": self.intent,
            "confidence": round(self.confidence, 3),
            "band": self.band.value,
            "next_prompt": self.next_prompt,
            "response": self.response,
            "session_step": self.session_step,
            "filters": [f.to_dict() for f in self.filters],
        }


def validate_input(text: str | None, max_length: int = DEFAULT_MAX_INPUT_LENGTH) -> str:
    """Check an utterance before it enters the pipeline.

    Returns:
        The stripped text

    Raises:
        InputValidationError: If the text is empty, too long or unsafe
    """
    if text is None or not text.strip():
        raise InputValidationError(EMPTY_INPUT_MESSAGE)
    if len(text) > max_length:
        raise InputValidationError(TOO_LONG_MESSAGE.format(limit=max_length))
    if _CONTROL_CHARS.search(text) or any(p.search(text) for p in UNSAFE_PATTERNS):
        raise InputValidationError(UNSAFE_INPUT_MESSAGE)
    return text.strip()


class QueryRouter:
    """Understand user turns and route them to domain handlers.

    Attributes:
        corrector: Spelling corrector
        classifier: Entity extraction and intent classification
        scorer: Confidence scorer
        sessions: Creation session registry
        handlers: Record lookup / creation collaborator
        conversations: Per-session message log
        max_input_length: Longest accepted utterance
    """

    def __init__(
        self,
        corrector: SpellCorrector,
        classifier: IntentClassifier,
        scorer: ConfidenceScorer,
        sessions: SessionManager,
        handlers: DomainHandlers,
        conversations: ConversationStore | None = None,
        max_input_length: int = DEFAULT_MAX_INPUT_LENGTH,
    ) -> None:
        self.corrector = corrector
        self.classifier = classifier
        self.scorer = scorer
        self.sessions = sessions
        self.handlers = handlers
        self.conversations = conversations or ConversationStore()
        self.max_input_length = max_input_length

    def understand(self, utterance: str, session_id: str) -> Understanding:
        """Process one user turn.

        Args:
            utterance: Raw user text
            session_id: Conversation id that session state is keyed by

        Returns:
            Understanding for the turn; never raises
        """
        try:
            result = self._understand(utterance, session_id)
        except Exception:
            logger.exception(f"Unhandled error processing turn for session {session_id}")
            result = Understanding.message(utterance or "", GENERIC_ERROR_MESSAGE, intent="error")

        self.conversations.get(session_id).add_assistant_message(result.response, result.metadata)
        return result

    def _understand(self, utterance: str, session_id: str) -> Understanding:
        try:
            text = validate_input(utterance, self.max_input_length)
        except InputValidationError as e:
            logger.warning(f"Rejected input for session {session_id}: {e}")
            return Understanding.message(utterance or "", str(e), intent="invalid_input")

        conversation = self.conversations.get(session_id)
        offers_checklist = conversation.offers_checklist()
        offer = conversation.last_assistant_message()
        conversation.add_user_message(text)

        # Creation session answers bypass correction
        expired_note = ""
        try:
            self.sessions.require(session_id)
        except SessionExpiredOrMissing as e:
            if e.expired:
                expired_note = "Your previous creation session expired after inactivity.\n\n"
        else:
            return self._from_step(text, self.sessions.advance(session_id, text))

        if offers_checklist and (_YES.match(text) or _NO.match(text)):
            contract_number = offer.metadata.get("contract_number") if offer else None
            return self._answer_checklist_offer(text, session_id, contract_number)

        correction = self.corrector.correct(text)
        corrected = correction.corrected

        command = self.classifier.match_command(corrected)
        if command is not None:
            result = self._run_command(text, corrected, session_id, command)
        else:
            creation = self.classifier.match_creation(corrected)
            if creation is not None:
                result = self._start_creation(text, corrected, session_id, creation)
            else:
                result = self._classify(text, corrected)

        result.corrections = list(correction.corrections)
        if expired_note:
            result.response = expired_note + result.response
        return result

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _from_step(self, text: str, outcome: StepOutcome) -> Understanding:
        flow = outcome.session.flow_kind.value if outcome.session else "contract"
        cancelled = outcome.status is StepStatus.CANCELLED
        return Understanding(
            original_text=text,
            corrected_text=text,
            domain=Domain.SYSTEM if cancelled else Domain.CONTRACTS,
            query_type=QueryType.COMMAND if cancelled else QueryType.CREATE,
            action_type=ActionType.UNKNOWN if cancelled else ActionType.CREATE,
            intent="cancel_creation" if cancelled else f"create_{flow}",
            confidence=IntentConfidence.SCORE_CEILING,
            band=ConfidenceBand.HIGH,
            next_prompt=outcome.next_prompt,
            response=outcome.message,
            session_step=outcome.step,
            metadata=dict(outcome.metadata),
        )

    def _start_creation(self, text: str, corrected: str, session_id: str, flow: IntentResult) -> Understanding:
        parsed = self.classifier.parse_query(text, corrected)
        try:
            if flow.intent == f"create_{FlowKind.CHECKLIST.value}":
                outcome = self.sessions.start_checklist(session_id, parsed.get(CONTRACT_NUMBER))
            else:
                outcome = self.sessions.start_contract(session_id, parsed.get(ACCOUNT_NUMBER))
        except EntityValidationError as e:
            return self._result(
                parsed,
                flow,
                ConfidenceBand.MEDIUM,
                IntentConfidence.MEDIUM,
                f"{e} For example: \"{e.hint}\"",
            )

        result = self._from_step(text, outcome)
        result.corrected_text = corrected
        result.entities = dict(parsed.entities)
        return result

    def _answer_checklist_offer(self, text: str, session_id: str, contract_number: str | None) -> Understanding:
        if _YES.match(text) and contract_number:
            return self._from_step(text, self.sessions.start_checklist(session_id, contract_number))

        return Understanding(
            original_text=text,
            corrected_text=text,
            domain=Domain.CONTRACTS,
            query_type=QueryType.GENERAL,
            intent="decline_checklist",
            confidence=IntentConfidence.SCORE_CEILING,
            band=ConfidenceBand.HIGH,
            response="No problem, your contract is saved. How else can I help you?",
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _run_command(self, text: str, corrected: str, session_id: str, intent: IntentResult) -> Understanding:
        command = intent.intent.split(".", 1)[1]

        if command == "clear":
            self.sessions.cancel(session_id)
            self.conversations.clear(session_id)
        response = COMMAND_RESPONSES.get(command) or self._command_response(command, session_id)

        return Understanding(
            original_text=text,
            corrected_text=corrected,
            domain=Domain.SYSTEM,
            query_type=QueryType.HELP if command == "help" else QueryType.COMMAND,
            action_type=ActionType.HELP if command == "help" else ActionType.UNKNOWN,
            intent=intent.intent,
            confidence=IntentConfidence.SCORE_CEILING,
            band=ConfidenceBand.HIGH,
            response=response,
        )

    def _command_response(self, command: str, session_id: str) -> str:
        if command == "help":
            return HELP_TEXT
        if command == "status":
            swept = self.sessions.sweep_expired()
            self.conversations.sweep_expired()
            categorizer = "enabled" if self.classifier.categorizer is not None else "rule-based only"
            return (
                "**System status**\n"
                f"- Active creation sessions: {len(self.sessions)}"
                + (f" ({swept} expired removed)" if swept else "")
                + f"\n- Dictionary words: {len(self.corrector.store)}\n"
                f"- Intent categorizer: {categorizer}"
            )
        if command == "session_info":
            session = self.sessions.get(session_id)
            if session is None:
                return f"Session {session_id}: no creation in progress."
            return (
                f"Session {session_id}: creating a {session.flow_kind.value}, "
                f"step {session.step} of {session.total_steps}."
            )
        if command == "reload":
            reload = getattr(self.classifier.categorizer, "reload", None)
            if callable(reload):
                reload()
                return "Intent models reloaded."
            return "No intent model is loaded; rule-based classification is always current."
        if command == "about":
            return f"contractbot {__version__} - contract, checklist and parts assistant."
        return HELP_TEXT

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _classify(self, text: str, corrected: str) -> Understanding:
        parsed = self.classifier.parse_query(text, corrected)
        intent = self.classifier.classify(parsed)
        assessment = self.scorer.assess(text, corrected, parsed.entities, intent)
        logger.debug(
            f"{intent.domain.value}/{intent.intent} via {intent.source}, "
            f"confidence {assessment.score:.2f} ({assessment.band.value})"
        )
        response = self._respond(parsed, intent, assessment)
        return self._result(parsed, intent, assessment.band, assessment.score, response)

    def _result(
        self,
        parsed: ParsedQuery,
        intent: IntentResult,
        band: ConfidenceBand,
        confidence: float,
        response: str,
    ) -> Understanding:
        return Understanding(
            original_text=parsed.original_text,
            corrected_text=parsed.normalized_text,
            entities=dict(parsed.entities),
            domain=intent.domain,
            query_type=parsed.query_type,
            action_type=parsed.action_type,
            intent=intent.intent,
            confidence=confidence,
            band=band,
            response=response,
            filters=list(parsed.filters),
        )

    def _respond(self, parsed: ParsedQuery, intent: IntentResult, assessment: ConfidenceAssessment) -> str:
        if intent.domain is Domain.AMBIGUOUS:
            return (
                "I'm not sure whether you're asking about **contracts** or **parts**. "
                "Could you clarify? For example: \"show contract 123456\" or "
                "\"part details AB12345-12345678\"."
            )

        if intent.missing_entities:
            return ENTITY_PROMPTS.get(intent.missing_entities[0], "Could you give me a few more details?")

        if assessment.band is ConfidenceBand.LOW:
            label = INTENT_LABELS.get(intent.intent, intent.intent)
            return f"I think you're asking about {label}, but I'm not certain. Could you rephrase or add a number?"

        answer = self._lookup(parsed, intent)
        if parsed.validation_warnings:
            answer += "\n\nNote: " + "; ".join(parsed.validation_warnings)
        if assessment.band is ConfidenceBand.MEDIUM:
            label = INTENT_LABELS.get(intent.intent, intent.intent)
            answer = f"I understood this as {label}. Please verify.\n\n{answer}"
        return answer

    def _lookup(self, parsed: ParsedQuery, intent: IntentResult) -> str:
        """Resolve entities into records through the injected handlers."""
        label = INTENT_LABELS.get(intent.intent, intent.intent)

        contract_number = parsed.get(CONTRACT_NUMBER)
        if intent.domain is Domain.CONTRACTS and contract_number:
            record = self.handlers.find_contract_by_number(contract_number)
            if record is None:
                return f"No contract found with number {contract_number}."
            return f"Contract {contract_number} ({record.status}): showing {label}."

        part_number = parsed.get(PART_NUMBER)
        if intent.domain is Domain.PARTS and part_number:
            part = self.handlers.find_part_by_number(part_number)
            if part is None:
                return f"No part found with number {part_number}."
            return f"Part {part_number}: showing {label}."

        customer = parsed.get(CUSTOMER_NAME)
        if intent.domain is Domain.CONTRACTS and customer:
            contracts = self.handlers.find_contracts_by_customer(customer)
            return f"Found {len(contracts)} contract(s) for {customer}."

        filters = ", ".join(f"{f.field} {f.operator} {f.value}" for f in parsed.filters)
        return f"Looking up {label}" + (f" where {filters}." if filters else ".")


def create_router(
    config: "AppConfig | None" = None,
    handlers: DomainHandlers | None = None,
    categorizer: Categorizer | None = None,
) -> QueryRouter:
    """Factory function to build a QueryRouter from configuration.

    Args:
        config: AppConfig (defaults from the environment if None)
        handlers: Domain handlers (in-memory if None)
        categorizer: Optional statistical intent categorizer

    Returns:
        Configured QueryRouter instance
    """
    if config is None:
        from ..config import AppConfig

        config = AppConfig()

    handlers = handlers or InMemoryHandlers()
    store = DictionaryStore.load(config.dictionary_path, config.overrides_path)
    return QueryRouter(
        corrector=SpellCorrector(store),
        classifier=IntentClassifier(
            categorizer=categorizer,
            min_categorizer_confidence=config.categorizer_min_confidence,
        ),
        scorer=ConfidenceScorer(high=config.bands.high, medium=config.bands.medium),
        sessions=SessionManager(handlers=handlers, timeout_minutes=config.session_timeout_minutes),
        handlers=handlers,
        conversations=ConversationStore(timeout_minutes=config.session_timeout_minutes),
        max_input_length=config.max_input_length,
    )


__all__ = [
    "QueryRouter",
    "Understanding",
    "create_router",
    "validate_input",
]
