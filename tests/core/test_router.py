"""Tests for the QueryRouter turn pipeline.

Tests cover:
- Input validation
- Spelling correction feeding classification
- Lookups through injected handlers and confidence bands
- Fixed commands
- Guided creation flows and the checklist offer
- Session expiry and unhandled errors
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from contractbot.config import AppConfig
from contractbot.core.dictionary import DictionaryStore
from contractbot.core.handlers import ContractRecord, InMemoryHandlers, PartRecord
from contractbot.core.intent import ConfidenceBand, ConfidenceScorer, Domain, IntentClassifier, QueryType
from contractbot.core.router import (
    EMPTY_INPUT_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    UNSAFE_INPUT_MESSAGE,
    QueryRouter,
    create_router,
    validate_input,
)
from contractbot.core.errors import InputValidationError
from contractbot.core.session import OFFER_MARKER, ConversationStore, SessionManager
from contractbot.core.spelling import SpellCorrector

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(scope="module")
def store() -> DictionaryStore:
    return DictionaryStore.load()


@pytest.fixture
def handlers() -> InMemoryHandlers:
    return InMemoryHandlers(
        contracts=[ContractRecord("123456", customer_name="Boeing", status="active")],
        parts=[PartRecord("AE125", price=42.0, in_stock=3)],
    )


@pytest.fixture
def router(tmp_path: Path, handlers: InMemoryHandlers) -> QueryRouter:
    return create_router(AppConfig(project_path=tmp_path), handlers=handlers)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 15, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clocked_router(store: DictionaryStore, handlers: InMemoryHandlers, clock: FakeClock) -> QueryRouter:
    return QueryRouter(
        corrector=SpellCorrector(store),
        classifier=IntentClassifier(),
        scorer=ConfidenceScorer(),
        sessions=SessionManager(handlers=handlers, timeout_minutes=30, clock=clock),
        handlers=handlers,
        conversations=ConversationStore(timeout_minutes=30, clock=clock),
    )


CONTRACT_ANSWERS = ["Boeing Spares 2025", "Maintenance", "none", "Annual spares agreement", "Yes"]


# ============================================================================
# Input Validation Tests
# ============================================================================


class TestInputValidation:
    """Tests for validate_input and rejected turns."""

    def test_strips_text(self) -> None:
        assert validate_input("  help  ") == "help"

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty(self, text) -> None:
        with pytest.raises(InputValidationError, match="valid input"):
            validate_input(text)

    def test_empty_turn(self, router: QueryRouter) -> None:
        result = router.understand("", "s1")
        assert result.intent == "invalid_input"
        assert result.response == EMPTY_INPUT_MESSAGE

    def test_too_long(self, router: QueryRouter) -> None:
        result = router.understand("a" * 1001, "s1")
        assert result.intent == "invalid_input"
        assert "1000 characters" in result.response

    def test_exactly_max_length_accepted(self) -> None:
        assert validate_input("a" * 1000) == "a" * 1000

    @pytest.mark.parametrize(
        "text",
        ["<script>alert(1)</script>", "contract 1' OR 1=1", "x; DROP TABLE contracts", "bad\x00byte"],
    )
    def test_unsafe(self, router: QueryRouter, text: str) -> None:
        result = router.understand(text, "s1")
        assert result.intent == "invalid_input"
        assert result.response == UNSAFE_INPUT_MESSAGE


# ============================================================================
# Query Tests
# ============================================================================


class TestQueries:
    """Tests for classified lookups."""

    def test_find_contract(self, router: QueryRouter) -> None:
        result = router.understand("Find contract 123456", "s1")

        assert result.entities == {"contractNumber": "123456"}
        assert result.domain is Domain.CONTRACTS
        assert result.query_type is QueryType.SPECIFIC_CONTRACT
        assert result.band is ConfidenceBand.HIGH
        assert result.confidence == pytest.approx(0.98)
        assert result.next_prompt is None
        assert "Contract 123456 (active)" in result.response

    def test_typo_corrected_before_extraction(self, router: QueryRouter) -> None:
        result = router.understand("contarct 123456", "s1")

        assert result.original_text == "contarct 123456"
        assert result.corrected_text == "contract 123456"
        assert result.entities == {"contractNumber": "123456"}
        assert result.band is ConfidenceBand.HIGH
        assert result.confidence == pytest.approx(0.98 * (0.85 + 0.15 * (1 - 2 / 15)))
        assert [c.corrected for c in result.corrections] == ["contract"]

    def test_unknown_contract(self, router: QueryRouter) -> None:
        result = router.understand("show contract 654321", "s1")
        assert result.response == "No contract found with number 654321."

    def test_part_price(self, router: QueryRouter) -> None:
        result = router.understand("What's the price of part AE125?", "s1")

        assert result.domain is Domain.PARTS
        assert result.intent == "part_price"
        assert result.entities == {"partNumber": "AE125"}
        assert result.band is ConfidenceBand.HIGH
        assert "Part AE125" in result.response

    def test_contracts_by_customer(self, router: QueryRouter) -> None:
        result = router.understand("show contracts for Boeing", "s1")

        assert result.intent == "contracts_by_customer"
        assert result.entities["customerName"] == "Boeing"
        assert result.response.endswith("Found 1 contract(s) for Boeing.")

    def test_filters_reported(self, router: QueryRouter) -> None:
        result = router.understand("contracts created by vinod after 2024-01-01", "s1")

        assert result.intent == "contracts_by_user"
        assert {f.field for f in result.filters} == {"created_by", "created_date"}

    def test_ambiguous_asks_for_domain(self, router: QueryRouter) -> None:
        result = router.understand("tell me something nice", "s1")

        assert result.domain is Domain.AMBIGUOUS
        assert result.band is ConfidenceBand.LOW
        assert "contracts" in result.response
        assert "parts" in result.response

    def test_missing_entity_prompt(self, router: QueryRouter) -> None:
        result = router.understand("contract status", "s1")

        assert result.intent == "contract_status"
        assert result.band is ConfidenceBand.LOW
        assert "contract number" in result.response

    def test_result_to_dict(self, router: QueryRouter) -> None:
        data = router.understand("Find contract 123456", "s1").to_dict()
        assert data["domain"] == "contracts"
        assert data["band"] == "high"
        assert data["entities"] == {"contractNumber": "123456"}


# ============================================================================
# Command Tests
# ============================================================================


class TestCommands:
    """Tests for fixed commands."""

    def test_help(self, router: QueryRouter) -> None:
        result = router.understand("help", "s1")

        assert result.intent == "cmd.help"
        assert result.domain is Domain.SYSTEM
        assert result.band is ConfidenceBand.HIGH
        assert "Create contract" in result.response

    def test_greeting(self, router: QueryRouter) -> None:
        assert router.understand("hello", "s1").intent == "cmd.greeting"

    def test_status(self, router: QueryRouter) -> None:
        result = router.understand("system status", "s1")
        assert result.intent == "cmd.status"
        assert "Active creation sessions: 0" in result.response

    def test_clear_resets_session_and_conversation(self, router: QueryRouter) -> None:
        router.understand("create contract", "s1")
        router.sessions.cancel("s1")
        router.understand("hello", "s1")

        result = router.understand("clear", "s1")

        assert result.intent == "cmd.clear"
        messages = router.conversations.get("s1").messages
        assert [m.role for m in messages] == ["assistant"]

    def test_session_info(self, router: QueryRouter) -> None:
        router.understand("create contract", "s1")
        router.sessions.cancel("s1")
        assert "no creation in progress" in router.understand("session info", "s1").response

    def test_version_history_is_a_contract_query(self, router: QueryRouter) -> None:
        result = router.understand("show version history of contract 123456", "s1")

        assert result.intent == "contract_history"
        assert result.entities["contractNumber"] == "123456"

    @pytest.mark.parametrize("text", ["thanks, show contract 123456", "help me find contract 123456"])
    def test_polite_words_keep_lookup(self, router: QueryRouter, text: str) -> None:
        result = router.understand(text, "s1")

        assert not result.intent.startswith("cmd.")
        assert result.domain is Domain.CONTRACTS
        assert result.entities["contractNumber"] == "123456"


# ============================================================================
# Creation Flow Tests
# ============================================================================


class TestCreationFlows:
    """Tests for guided creation through the router."""

    def test_create_contract_starts_session(self, router: QueryRouter) -> None:
        result = router.understand("create contract", "s1")

        assert result.intent == "create_contract"
        assert result.session_step == 1
        assert "Account Number" in result.next_prompt
        assert router.sessions.has_session("s1")

    def test_account_prefill(self, router: QueryRouter) -> None:
        result = router.understand("create contract for account 123456789", "s1")

        assert result.session_step == 2
        assert result.entities == {"accountNumber": "123456789"}
        assert "Contract Name" in result.next_prompt

    def test_invalid_answer_reprompts(self, router: QueryRouter) -> None:
        router.understand("create contract", "s1")

        result = router.understand("12345", "s1")

        assert result.session_step == 1
        assert result.intent == "create_contract"
        assert "Account Number" in result.next_prompt

    def test_answers_bypass_spelling(self, router: QueryRouter) -> None:
        router.understand("create contract for account 123456789", "s1")

        result = router.understand("Boieng Sparse", "s1")

        assert result.corrected_text == "Boieng Sparse"
        assert router.sessions.get("s1").values["contract_name"] == "Boieng Sparse"

    def test_reset_cancels_session(self, router: QueryRouter) -> None:
        router.understand("create contract", "s1")

        result = router.understand("reset", "s1")

        assert result.intent == "cancel_creation"
        assert not router.sessions.has_session("s1")

    def test_full_contract_then_checklist(self, router: QueryRouter, handlers: InMemoryHandlers) -> None:
        router.understand("create contract for account 123456789", "s1")
        for answer in CONTRACT_ANSWERS:
            result = router.understand(answer, "s1")

        assert OFFER_MARKER in result.response
        assert result.metadata["contract_number"] == "100001"
        assert result.session_step is None
        assert "100001" in handlers.contracts

        result = router.understand("yes", "s1")
        assert result.intent == "create_checklist"
        assert result.session_step == 1
        assert "System Date" in result.next_prompt

        for answer in ["2025-01-15", "01/31/2025", "2026-01-31", "12/31/2025"]:
            result = router.understand(answer, "s1")

        assert "Checklist Created Successfully" in result.response
        assert handlers.checklists["CL000001"].contract_number == "100001"

    def test_decline_checklist_offer(self, router: QueryRouter) -> None:
        router.understand("create contract for account 123456789", "s1")
        for answer in CONTRACT_ANSWERS:
            router.understand(answer, "s1")

        result = router.understand("no", "s1")

        assert result.intent == "decline_checklist"
        assert not router.sessions.has_session("s1")

    def test_offer_only_answers_next_turn(self, router: QueryRouter) -> None:
        router.understand("create contract for account 123456789", "s1")
        for answer in CONTRACT_ANSWERS:
            router.understand(answer, "s1")
        router.understand("help", "s1")

        result = router.understand("yes", "s1")

        assert result.intent != "create_checklist"
        assert not router.sessions.has_session("s1")

    def test_offer_needs_a_bare_yes(self, router: QueryRouter) -> None:
        router.understand("create contract for account 123456789", "s1")
        for answer in CONTRACT_ANSWERS:
            router.understand(answer, "s1")

        result = router.understand("ok show contracts for Boeing", "s1")

        assert result.intent == "contracts_by_customer"
        assert not router.sessions.has_session("s1")

    @pytest.mark.parametrize("answer", ["Yes!", "ok", "sure."])
    def test_offer_accepts_yes_variants(self, router: QueryRouter, answer: str) -> None:
        router.understand("create contract for account 123456789", "s1")
        for reply in CONTRACT_ANSWERS:
            router.understand(reply, "s1")

        assert router.understand(answer, "s1").intent == "create_checklist"

    def test_yes_without_offer(self, router: QueryRouter) -> None:
        result = router.understand("yes", "s1")
        assert result.intent == "clarify_domain"

    def test_create_checklist_for_contract(self, router: QueryRouter) -> None:
        result = router.understand("create checklist for contract 123456", "s1")

        assert result.intent == "create_checklist"
        assert result.session_step == 1
        assert router.sessions.get("s1").contract_number == "123456"

    def test_create_checklist_needs_contract(self, router: QueryRouter) -> None:
        result = router.understand("create checklist", "s1")

        assert result.intent == "create_checklist"
        assert result.band is ConfidenceBand.MEDIUM
        assert "create checklist for contract 123456" in result.response
        assert not router.sessions.has_session("s1")

    def test_sessions_are_isolated(self, router: QueryRouter) -> None:
        router.understand("create contract", "alice")

        result = router.understand("Find contract 123456", "bob")

        assert result.intent == "search_contract"
        assert router.sessions.get("alice").step == 1


# ============================================================================
# Expiry and Failure Tests
# ============================================================================


class TestExpiryAndFailures:
    """Tests for session expiry and unhandled errors."""

    def test_expired_session_processed_normally(self, clocked_router: QueryRouter, clock: FakeClock) -> None:
        clocked_router.understand("create contract", "s1")
        clock.now += timedelta(minutes=31)

        result = clocked_router.understand("Find contract 123456", "s1")

        assert result.intent == "search_contract"
        assert result.response.startswith("Your previous creation session expired")
        assert not clocked_router.sessions.has_session("s1")

    def test_idle_conversations_are_swept(self, clocked_router: QueryRouter, clock: FakeClock) -> None:
        for i in range(20):
            clocked_router.understand("hello", f"visitor-{i}")
        assert len(clocked_router.conversations) == 20

        clock.now += timedelta(minutes=31)
        clocked_router.understand("system status", "admin")

        assert len(clocked_router.conversations) == 1

    def test_idle_conversation_forgets_offer(self, clocked_router: QueryRouter, clock: FakeClock) -> None:
        clocked_router.understand("create contract for account 123456789", "s1")
        for answer in CONTRACT_ANSWERS:
            clocked_router.understand(answer, "s1")
        clock.now += timedelta(minutes=31)

        result = clocked_router.understand("yes", "s1")

        assert result.intent != "create_checklist"
        assert not clocked_router.sessions.has_session("s1")

    def test_unhandled_error_becomes_apology(self, router: QueryRouter, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(router.classifier, "parse_query", broken)

        result = router.understand("Find contract 123456", "s1")

        assert result.intent == "error"
        assert result.response == GENERIC_ERROR_MESSAGE
        assert router.conversations.get("s1").last_assistant_message().content == GENERIC_ERROR_MESSAGE

    def test_failing_categorizer_does_not_break_turn(self, tmp_path: Path, handlers: InMemoryHandlers) -> None:
        class BrokenCategorizer:
            def categorize(self, domain, text):
                raise RuntimeError("model not loaded")

        router = create_router(AppConfig(project_path=tmp_path), handlers=handlers, categorizer=BrokenCategorizer())

        result = router.understand("what is the status of contract 123456", "s1")

        assert result.intent == "contract_status"
        assert result.band is ConfidenceBand.HIGH
