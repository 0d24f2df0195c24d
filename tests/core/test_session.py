"""Tests for guided creation sessions, handlers and the conversation log."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from contractbot.core.errors import (
    EntityValidationError,
    SessionExpiredOrMissing,
    UnhandledProcessingError,
)
from contractbot.core.handlers import ContractRecord, InMemoryHandlers, PartRecord
from contractbot.core.session import (
    CONTRACT_FIELDS,
    OFFER_MARKER,
    Conversation,
    ConversationStore,
    FlowKind,
    SessionManager,
    StepStatus,
    is_cancel,
    validate_yes_no,
)

# ============================================================================
# Fixtures
# ============================================================================


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 15, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def handlers() -> InMemoryHandlers:
    return InMemoryHandlers()


@pytest.fixture
def manager(handlers: InMemoryHandlers, clock: FakeClock) -> SessionManager:
    return SessionManager(handlers=handlers, timeout_minutes=30, clock=clock)


CONTRACT_ANSWERS = ["123456789", "Boeing Spares 2025", "Maintenance", "", "Annual spares agreement", "yes"]
CHECKLIST_ANSWERS = ["2025-01-15", "01/31/2025", "2026-01-31", "12/31/2025"]


# ============================================================================
# Field Rule Tests
# ============================================================================


class TestFieldRules:
    """Tests for field validators and prompts."""

    @pytest.mark.parametrize(("answer", "expected"), [("YES", "Yes"), ("y", "Yes"), ("No", "No"), (" n ", "No")])
    def test_yes_no(self, answer: str, expected: str) -> None:
        assert validate_yes_no(answer) == expected

    def test_yes_no_rejects_other(self) -> None:
        with pytest.raises(EntityValidationError):
            validate_yes_no("maybe")

    def test_prompt_format(self) -> None:
        assert CONTRACT_FIELDS[0].prompt(1) == "**Step 1:** Please provide the **Account Number** (9 digits):"
        assert CONTRACT_FIELDS[1].prompt(2) == "**Step 2:** Please provide the **Contract Name**:"

    def test_is_cancel(self) -> None:
        assert is_cancel("Cancel")
        assert is_cancel("no")
        assert not is_cancel("no", CONTRACT_FIELDS[-1])
        assert not is_cancel("Boeing")


# ============================================================================
# Contract Flow Tests
# ============================================================================


class TestContractFlow:
    """Tests for the contract creation session."""

    def test_start(self, manager: SessionManager) -> None:
        outcome = manager.start_contract("s1")

        assert outcome.status is StepStatus.STARTED
        assert outcome.step == 1
        assert "Account Number" in outcome.next_prompt
        assert manager.has_session("s1")

    def test_full_round_trip(self, manager: SessionManager, handlers: InMemoryHandlers) -> None:
        manager.start_contract("s1")

        for step, answer in enumerate(CONTRACT_ANSWERS[:-1], start=1):
            outcome = manager.advance("s1", answer)
            assert outcome.status is StepStatus.ADVANCED
            assert outcome.step == step + 1

        outcome = manager.advance("s1", CONTRACT_ANSWERS[-1])

        assert outcome.status is StepStatus.COMPLETED
        assert outcome.created_id == "100001"
        assert OFFER_MARKER in outcome.message
        assert outcome.metadata == {"contract_number": "100001", "offer": "checklist"}
        assert not manager.has_session("s1")

        record = handlers.find_contract_by_number("100001")
        assert record is not None
        assert record.status == "draft"
        assert record.fields["is_priced"] == "Yes"
        assert record.fields["comments"] == ""

    def test_invalid_answer_reprompts(self, manager: SessionManager) -> None:
        manager.start_contract("s1")

        outcome = manager.advance("s1", "12345")

        assert outcome.status is StepStatus.INVALID
        assert outcome.step == 1
        assert "9 digits" in outcome.message
        assert "Example: 123456789" in outcome.message
        assert manager.get("s1").values == {}

    def test_no_answers_priced_question(self, manager: SessionManager) -> None:
        manager.start_contract("s1")
        for answer in CONTRACT_ANSWERS[:-1]:
            manager.advance("s1", answer)

        outcome = manager.advance("s1", "no")

        assert outcome.status is StepStatus.COMPLETED
        assert outcome.session.values["is_priced"] == "No"

    @pytest.mark.parametrize("word", ["cancel", "Stop", "no", "quit"])
    def test_cancel_words(self, manager: SessionManager, word: str) -> None:
        manager.start_contract("s1")
        manager.advance("s1", "123456789")

        outcome = manager.advance("s1", word)

        assert outcome.status is StepStatus.CANCELLED
        assert outcome.message == "Contract creation cancelled. How else can I help you?"
        assert not manager.has_session("s1")

    def test_account_prefill_skips_first_step(self, manager: SessionManager) -> None:
        outcome = manager.start_contract("s1", account_number="123456789")

        assert outcome.step == 2
        assert "Contract Name" in outcome.next_prompt
        assert manager.get("s1").values == {"account_number": "123456789"}

    def test_invalid_prefill_is_ignored(self, manager: SessionManager) -> None:
        outcome = manager.start_contract("s1", account_number="123456")
        assert outcome.step == 1

    def test_restart_replaces_session(self, manager: SessionManager) -> None:
        manager.start_contract("s1", account_number="123456789")
        manager.start_contract("s1")
        assert manager.get("s1").step == 1
        assert len(manager) == 1

    def test_independent_sessions(self, manager: SessionManager) -> None:
        manager.start_contract("a")
        manager.start_contract("b")

        manager.advance("a", "123456789")

        assert manager.get("a").step == 2
        assert manager.get("b").step == 1

    def test_handler_failure_is_unhandled_error(self, clock: FakeClock) -> None:
        class FailingHandlers(InMemoryHandlers):
            def create_contract(self, fields):
                raise RuntimeError("database down")

        manager = SessionManager(handlers=FailingHandlers(), clock=clock)
        manager.start_contract("s1", account_number="123456789")
        for answer in CONTRACT_ANSWERS[1:-1]:
            manager.advance("s1", answer)

        with pytest.raises(UnhandledProcessingError):
            manager.advance("s1", "yes")

    def test_failed_commit_keeps_answers_for_retry(self, clock: FakeClock) -> None:
        class FlakyHandlers(InMemoryHandlers):
            failures = 1

            def create_contract(self, fields):
                if self.failures:
                    self.failures -= 1
                    raise RuntimeError("database down")
                return super().create_contract(fields)

        manager = SessionManager(handlers=FlakyHandlers(), clock=clock)
        manager.start_contract("s1", account_number="123456789")
        for answer in CONTRACT_ANSWERS[1:-1]:
            manager.advance("s1", answer)

        with pytest.raises(UnhandledProcessingError):
            manager.advance("s1", "yes")

        session = manager.get("s1")
        assert session is not None
        assert not session.completed
        assert session.step == len(CONTRACT_FIELDS)
        assert session.values["contract_name"] == "Boeing Spares 2025"

        outcome = manager.advance("s1", "yes")

        assert outcome.status is StepStatus.COMPLETED
        assert outcome.created_id == "100001"
        assert not manager.has_session("s1")


# ============================================================================
# Checklist Flow Tests
# ============================================================================


class TestChecklistFlow:
    """Tests for the checklist creation session."""

    def test_round_trip_normalizes_dates(self, manager: SessionManager, handlers: InMemoryHandlers) -> None:
        outcome = manager.start_checklist("s1", "123456")
        assert outcome.step == 1
        assert "System Date" in outcome.next_prompt

        for answer in CHECKLIST_ANSWERS:
            outcome = manager.advance("s1", answer)

        assert outcome.status is StepStatus.COMPLETED
        assert outcome.created_id == "CL000001"
        checklist = handlers.checklists["CL000001"]
        assert checklist.contract_number == "123456"
        assert checklist.fields == {
            "system_date": "2025-01-15",
            "effective_date": "2025-01-31",
            "expiration_date": "2026-01-31",
            "price_expiration_date": "2025-12-31",
        }
        assert OFFER_MARKER not in outcome.message

    def test_invalid_date(self, manager: SessionManager) -> None:
        manager.start_checklist("s1", "123456")

        outcome = manager.advance("s1", "02/30/2025")

        assert outcome.status is StepStatus.INVALID
        assert outcome.step == 1
        assert "not a valid date" in outcome.message

    def test_requires_contract_number(self, manager: SessionManager) -> None:
        with pytest.raises(EntityValidationError) as exc_info:
            manager.start_checklist("s1", None)

        assert exc_info.value.hint == "create checklist for contract 123456"
        assert not manager.has_session("s1")

    def test_flow_kind(self, manager: SessionManager) -> None:
        manager.start_checklist("s1", "123456")
        assert manager.get("s1").flow_kind is FlowKind.CHECKLIST


# ============================================================================
# Expiry Tests
# ============================================================================


class TestExpiry:
    """Tests for lazy expiry and sweep_expired."""

    def test_idle_session_expires_on_access(self, manager: SessionManager, clock: FakeClock) -> None:
        manager.start_contract("s1")
        clock.advance(minutes=31)

        with pytest.raises(SessionExpiredOrMissing) as exc_info:
            manager.advance("s1", "123456789")

        assert exc_info.value.expired
        assert len(manager) == 0

    def test_activity_extends_session(self, manager: SessionManager, clock: FakeClock) -> None:
        manager.start_contract("s1")
        clock.advance(minutes=20)
        manager.advance("s1", "bad")
        clock.advance(minutes=20)

        assert manager.has_session("s1")

    def test_missing_session(self, manager: SessionManager) -> None:
        with pytest.raises(SessionExpiredOrMissing) as exc_info:
            manager.require("nobody")
        assert not exc_info.value.expired

    def test_sweep_expired(self, manager: SessionManager, clock: FakeClock) -> None:
        manager.start_contract("old")
        clock.advance(minutes=45)
        manager.start_contract("new")

        assert manager.sweep_expired() == 1
        assert len(manager) == 1
        assert manager.has_session("new")

    def test_cancel(self, manager: SessionManager) -> None:
        manager.start_contract("s1")
        assert manager.cancel("s1")
        assert not manager.cancel("s1")


# ============================================================================
# Handler Tests
# ============================================================================


class TestInMemoryHandlers:
    """Tests for InMemoryHandlers lookups and allocation."""

    def test_lookups(self) -> None:
        handlers = InMemoryHandlers(
            contracts=[ContractRecord("123456", customer_name="Boeing Commercial")],
            parts=[PartRecord("AE125", price=12.5)],
        )

        assert handlers.find_contract_by_number("123456").customer_name == "Boeing Commercial"
        assert handlers.find_part_by_number("ae125").price == 12.5
        assert [c.contract_number for c in handlers.find_contracts_by_customer("boeing")] == ["123456"]
        assert handlers.find_contract_by_number("999999") is None

    def test_sequential_numbers_skip_existing(self) -> None:
        handlers = InMemoryHandlers(contracts=[ContractRecord("100001")])
        assert handlers.create_contract({}) == "100002"
        assert handlers.create_contract({}) == "100003"


# ============================================================================
# Conversation Tests
# ============================================================================


class TestConversation:
    """Tests for the per-session message log."""

    def test_bounded(self) -> None:
        conversation = Conversation(session_id="s1")
        for i in range(60):
            conversation.add_user_message(f"message {i}")

        assert len(conversation.messages) == 50
        assert conversation.messages[0].content == "message 10"

    def test_offers_checklist_only_for_latest_reply(self) -> None:
        conversation = Conversation(session_id="s1")
        conversation.add_assistant_message(f"Done.\n{OFFER_MARKER}")
        conversation.add_user_message("yes")
        assert conversation.offers_checklist()

        conversation.add_assistant_message("Here is some help.")
        assert not conversation.offers_checklist()

    def test_to_dict(self) -> None:
        conversation = Conversation(session_id="s1")
        conversation.add_assistant_message("hi", metadata={"intent": "cmd.greeting"})
        data = conversation.to_dict()
        assert data["session_id"] == "s1"
        assert data["messages"][0]["metadata"] == {"intent": "cmd.greeting"}

    def test_store(self) -> None:
        store = ConversationStore()
        first = store.get("s1")
        assert store.get("s1") is first
        store.clear("s1")
        assert store.get("s1") is not first

    def test_store_expires_idle_conversations(self, clock: FakeClock) -> None:
        store = ConversationStore(timeout_minutes=30, clock=clock)
        first = store.get("s1")
        first.add_user_message("hello")
        store.get("s2")

        clock.advance(minutes=20)
        second = store.get("s2")
        clock.advance(minutes=20)

        assert store.sweep_expired() == 1
        assert len(store) == 1

        clock.advance(minutes=31)
        assert store.get("s2") is not second
        assert len(store) == 1
