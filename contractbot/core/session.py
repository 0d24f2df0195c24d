"""Guided creation sessions for contractbot.

Collects the fields needed to create a contract or a checklist one turn at
a time. Each session is a step cursor over an ordered list of fields: a valid
answer is stored and the cursor advances; an invalid answer re-prompts the
same step.

Features:
- FieldSpec tables for the contract and checklist flows
- CreationSession state with 1-based step cursor
- SessionManager registry guarded by an RLock, with lazy expiry on access
  and an explicit sweep_expired()
- Message / Conversation log per session id, used to recognise the reply to
  the one-shot "create a checklist?" offer
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Literal

from .errors import EntityValidationError, SessionExpiredOrMissing, UnhandledProcessingError
from .intent.entities import DATE_EXAMPLE, normalize_date

if TYPE_CHECKING:
    from .handlers import DomainHandlers

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MINUTES = 30
MAX_CONVERSATION_MESSAGES = 50

# Phrase that makes the next yes/no reply an answer to the checklist offer
OFFER_MARKER = "Would you like to create a checklist for this contract?"

CANCEL_WORDS: frozenset[str] = frozenset({"cancel", "no", "stop", "quit", "exit", "reset", "clear"})


class FlowKind(str, Enum):
    """Kind of resource a creation session collects fields for."""

    CONTRACT = "contract"
    CHECKLIST = "checklist"


class StepStatus(str, Enum):
    """What happened to a session on one turn."""

    STARTED = "started"
    ADVANCED = "advanced"
    INVALID = "invalid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ----------------------------------------------------------------------
# Field rules
# ----------------------------------------------------------------------


def validate_account_number(value: str) -> str:
    value = value.strip()
    if not re.fullmatch(r"\d{9}", value):
        raise EntityValidationError(
            "Account number must be exactly 9 digits.", field="account_number", hint="123456789"
        )
    return value


def validate_contract_name(value: str) -> str:
    value = value.strip()
    if len(value) < 3:
        raise EntityValidationError(
            "Contract name must be at least 3 characters.", field="contract_name", hint="Boeing Spares 2025"
        )
    return value


def validate_project_type(value: str) -> str:
    value = value.strip()
    if len(value) < 2:
        raise EntityValidationError(
            "Project type must be at least 2 characters.", field="project_type", hint="Maintenance"
        )
    return value


def validate_comments(value: str) -> str:
    """Comments are free text and may be empty."""
    return value.strip()


def validate_description(value: str) -> str:
    value = value.strip()
    if not value:
        raise EntityValidationError(
            "Description cannot be empty.", field="description", hint="Annual spares agreement"
        )
    return value


def validate_yes_no(value: str) -> str:
    """Normalize yes/no/y/n (any case) to "Yes" / "No"."""
    answer = value.strip().lower()
    if answer in ("yes", "y"):
        return "Yes"
    if answer in ("no", "n"):
        return "No"
    raise EntityValidationError("Please answer Yes or No.", field="is_priced", hint="Yes")


def make_date_validator(field_name: str) -> Callable[[str], str]:
    """Build a validator that normalizes a date to YYYY-MM-DD."""

    def validate(value: str) -> str:
        normalized = normalize_date(value)
        if normalized is None:
            raise EntityValidationError(
                f"'{value.strip()}' is not a valid date.", field=field_name, hint=DATE_EXAMPLE
            )
        return normalized

    return validate


@dataclass(frozen=True)
class FieldSpec:
    """One field collected by a creation flow.

    Attributes:
        name: Key the value is stored under
        label: Human-readable field name used in prompts
        validate: Returns the normalized value or raises EntityValidationError
        hint: Format hint appended to the prompt
        question: Full prompt text, replacing the generic "provide the X" form
    """

    name: str
    label: str
    validate: Callable[[str], str]
    hint: str = ""
    question: str | None = None

    def prompt(self, step: int) -> str:
        if self.question:
            return f"**Step {step}:** {self.question}"
        suffix = f" ({self.hint})" if self.hint else ""
        return f"**Step {step}:** Please provide the **{self.label}**{suffix}:"

    @property
    def is_yes_no(self) -> bool:
        return self.validate is validate_yes_no


_DATE_HINT = "MM/DD/YYYY or YYYY-MM-DD"

CONTRACT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("account_number", "Account Number", validate_account_number, hint="9 digits"),
    FieldSpec("contract_name", "Contract Name", validate_contract_name),
    FieldSpec("project_type", "Project Type", validate_project_type),
    FieldSpec("comments", "Comments", validate_comments),
    FieldSpec("description", "Description", validate_description),
    FieldSpec(
        "is_priced",
        "Priced Contract",
        validate_yes_no,
        question="Is this a priced contract? Please answer **Yes** or **No**:",
    ),
)

CHECKLIST_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("system_date", "System Date", make_date_validator("system_date"), hint=_DATE_HINT),
    FieldSpec("effective_date", "Effective Date", make_date_validator("effective_date"), hint=_DATE_HINT),
    FieldSpec("expiration_date", "Expiration Date", make_date_validator("expiration_date"), hint=_DATE_HINT),
    FieldSpec(
        "price_expiration_date",
        "Price Expiration Date",
        make_date_validator("price_expiration_date"),
        hint=_DATE_HINT,
    ),
)

FLOW_FIELDS: dict[FlowKind, tuple[FieldSpec, ...]] = {
    FlowKind.CONTRACT: CONTRACT_FIELDS,
    FlowKind.CHECKLIST: CHECKLIST_FIELDS,
}


def is_cancel(answer: str, spec: FieldSpec | None = None) -> bool:
    """Whether an answer cancels the session.

    "no" answers a yes/no field instead of cancelling.
    """
    word = answer.strip().lower().rstrip(".!")
    if word not in CANCEL_WORDS:
        return False
    if spec is not None and spec.is_yes_no and word == "no":
        return False
    return True


# ----------------------------------------------------------------------
# Session state
# ----------------------------------------------------------------------


@dataclass
class CreationSession:
    """State of one guided creation flow.

    Attributes:
        session_id: Conversation the session belongs to
        flow_kind: Contract or checklist
        fields: Ordered fields to collect
        values: Collected, normalized values keyed by field name
        step: 1-based cursor into fields
        last_activity: Time of the last accepted or rejected answer
        completed: Whether every field has been collected
        contract_number: Contract a checklist is created for
    """

    session_id: str
    flow_kind: FlowKind
    fields: tuple[FieldSpec, ...]
    values: dict[str, str] = field(default_factory=dict)
    step: int = 1
    last_activity: datetime = field(default_factory=datetime.now)
    completed: bool = False
    contract_number: str | None = None

    @property
    def total_steps(self) -> int:
        return len(self.fields)

    @property
    def current_field(self) -> FieldSpec | None:
        if self.step > len(self.fields):
            return None
        return self.fields[self.step - 1]

    def current_prompt(self) -> str | None:
        spec = self.current_field
        return spec.prompt(self.step) if spec else None

    def is_expired(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.last_activity > timeout

    def accept(self, value: str, now: datetime) -> None:
        """Store the current field's value and advance the cursor."""
        spec = self.current_field
        if spec is None:
            return
        self.values[spec.name] = value
        self.step += 1
        self.last_activity = now
        self.completed = self.step > len(self.fields)

    def reopen(self) -> None:
        """Step back onto the last field so a failed commit can be retried."""
        self.step = len(self.fields)
        self.completed = False


@dataclass
class StepOutcome:
    """Result of starting or advancing a session.

    Attributes:
        status: What happened on this turn
        message: User-facing response
        step: Step cursor after the turn (None once the session is gone)
        next_prompt: Prompt for the next field, if input is still needed
        session: The session (also set when it was just removed)
        created_id: Contract number or checklist id after completion
    """

    status: StepStatus
    message: str
    step: int | None = None
    next_prompt: str | None = None
    session: CreationSession | None = None
    created_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------


class SessionManager:
    """Registry of creation sessions keyed by session id.

    At most one session per id. Sessions idle longer than the timeout are
    dropped lazily when next accessed, or in bulk by sweep_expired().

    Args:
        handlers: Collaborator that persists completed contracts/checklists
        timeout_minutes: Idle minutes before a session expires
        clock: Returns the current time
    """

    def __init__(
        self,
        handlers: "DomainHandlers | None" = None,
        timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.handlers = handlers
        self.timeout = timedelta(minutes=timeout_minutes)
        self._clock = clock
        self._sessions: dict[str, CreationSession] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> CreationSession | None:
        """Live session for the id, or None (expired sessions are removed)."""
        try:
            return self.require(session_id)
        except SessionExpiredOrMissing:
            return None

    def require(self, session_id: str) -> CreationSession:
        """Live session for the id.

        Raises:
            SessionExpiredOrMissing: No session, or it timed out (and was removed)
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionExpiredOrMissing(session_id)
            if session.is_expired(self._clock(), self.timeout):
                del self._sessions[session_id]
                logger.info(f"Session {session_id} expired at step {session.step}")
                raise SessionExpiredOrMissing(session_id, expired=True)
            return session

    def has_session(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_contract(self, session_id: str, account_number: str | None = None) -> StepOutcome:
        """Start a contract creation session.

        Args:
            session_id: Conversation id
            account_number: Pre-filled account number; a valid one skips step 1

        Returns:
            StepOutcome with the first unanswered prompt
        """
        session = self._start(session_id, FlowKind.CONTRACT)
        intro = "Let's create a new contract."

        if account_number:
            try:
                value = validate_account_number(account_number)
            except EntityValidationError:
                intro += f" {account_number} is not a 9-digit account number, so let's start there."
            else:
                with self._lock:
                    session.accept(value, self._clock())
                intro += f" Account Number {value} captured."

        prompt = session.current_prompt()
        return StepOutcome(
            status=StepStatus.STARTED,
            message=f"{intro}\n\n{prompt}",
            step=session.step,
            next_prompt=prompt,
            session=session,
        )

    def start_checklist(self, session_id: str, contract_number: str | None) -> StepOutcome:
        """Start a checklist creation session for a contract.

        Raises:
            EntityValidationError: If no contract number is given
        """
        if not contract_number:
            raise EntityValidationError(
                "A checklist needs a contract number.",
                field="contract_number",
                hint="create checklist for contract 123456",
            )

        session = self._start(session_id, FlowKind.CHECKLIST)
        session.contract_number = contract_number
        prompt = session.current_prompt()
        return StepOutcome(
            status=StepStatus.STARTED,
            message=f"Let's create a checklist for contract {contract_number}.\n\n{prompt}",
            step=session.step,
            next_prompt=prompt,
            session=session,
        )

    def _start(self, session_id: str, flow_kind: FlowKind) -> CreationSession:
        session = CreationSession(
            session_id=session_id,
            flow_kind=flow_kind,
            fields=FLOW_FIELDS[flow_kind],
            last_activity=self._clock(),
        )
        with self._lock:
            if session_id in self._sessions:
                logger.info(f"Replacing {self._sessions[session_id].flow_kind.value} session {session_id}")
            self._sessions[session_id] = session
        logger.info(f"Started {flow_kind.value} session {session_id}")
        return session

    def advance(self, session_id: str, answer: str) -> StepOutcome:
        """Apply one answer to the session's current step.

        Args:
            session_id: Conversation id
            answer: Raw user text

        Returns:
            StepOutcome: ADVANCED, INVALID, CANCELLED or COMPLETED

        Raises:
            SessionExpiredOrMissing: No live session for the id
        """
        with self._lock:
            session = self.require(session_id)
            spec = session.current_field

            if is_cancel(answer, spec):
                del self._sessions[session_id]
                logger.info(f"Cancelled {session.flow_kind.value} session {session_id} at step {session.step}")
                return StepOutcome(
                    status=StepStatus.CANCELLED,
                    message=f"{session.flow_kind.value.capitalize()} creation cancelled. How else can I help you?",
                    session=session,
                )

            try:
                value = spec.validate(answer)
            except EntityValidationError as e:
                session.last_activity = self._clock()
                prompt = session.current_prompt()
                hint = f" Example: {e.hint}" if e.hint else ""
                return StepOutcome(
                    status=StepStatus.INVALID,
                    message=f"{e}{hint}\n\n{prompt}",
                    step=session.step,
                    next_prompt=prompt,
                    session=session,
                )

            session.accept(value, self._clock())
            if not session.completed:
                prompt = session.current_prompt()
                shown = value if value else "(none)"
                return StepOutcome(
                    status=StepStatus.ADVANCED,
                    message=f"{spec.label} saved: {shown}\n\n{prompt}",
                    step=session.step,
                    next_prompt=prompt,
                    session=session,
                )

            try:
                outcome = self._commit(session)
            except UnhandledProcessingError:
                session.reopen()
                raise
            del self._sessions[session_id]

        return outcome

    def cancel(self, session_id: str) -> bool:
        """Remove the caller's session. Returns whether one existed."""
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info(f"Removed {removed.flow_kind.value} session {session_id}")
        return removed is not None

    def sweep_expired(self) -> int:
        """Remove every expired session. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now, self.timeout)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info(f"Swept {len(expired)} expired session(s)")
        return len(expired)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _commit(self, session: CreationSession) -> StepOutcome:
        if self.handlers is None:
            raise UnhandledProcessingError("No handlers configured to create records")

        values = dict(session.values)
        try:
            if session.flow_kind is FlowKind.CONTRACT:
                created_id = self.handlers.create_contract(values)
                message = format_contract_created(created_id, values)
                metadata = {"contract_number": created_id, "offer": "checklist"}
            else:
                created_id = self.handlers.create_checklist(session.contract_number, values)
                message = format_checklist_created(created_id, session.contract_number, values)
                metadata = {"checklist_id": created_id, "contract_number": session.contract_number}
        except Exception as e:
            raise UnhandledProcessingError(
                f"Failed to create {session.flow_kind.value} for session {session.session_id}"
            ) from e

        logger.info(f"Created {session.flow_kind.value} {created_id} from session {session.session_id}")
        return StepOutcome(
            status=StepStatus.COMPLETED,
            message=message,
            session=session,
            created_id=created_id,
            metadata=metadata,
        )


def format_contract_created(contract_number: str, values: dict[str, str]) -> str:
    lines = ["**Contract Created Successfully!**", "", f"**Contract Number:** {contract_number}"]
    for spec in CONTRACT_FIELDS:
        lines.append(f"**{spec.label}:** {values.get(spec.name) or '(none)'}")
    lines += ["", OFFER_MARKER, "Reply **Yes** to create a checklist or **No** to finish."]
    return "\n".join(lines)


def format_checklist_created(checklist_id: str, contract_number: str | None, values: dict[str, str]) -> str:
    lines = [
        "**Checklist Created Successfully!**",
        "",
        f"**Checklist ID:** {checklist_id}",
        f"**Contract Number:** {contract_number}",
    ]
    for spec in CHECKLIST_FIELDS:
        lines.append(f"**{spec.label}:** {values.get(spec.name)}")
    return "\n".join(lines)


# ----------------------------------------------------------------------
# Conversation log
# ----------------------------------------------------------------------


@dataclass
class Message:
    """A single message in a conversation.

    Attributes:
        role: Message role - user or assistant
        content: Text content of the message
        timestamp: When the message was created
        metadata: Additional information (e.g., contract_number of a created contract)
    """

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class Conversation:
    """Recent messages for one session id, oldest first.

    Only the last max_messages messages are kept.
    """

    session_id: str
    messages: list[Message] = field(default_factory=list)
    max_messages: int = MAX_CONVERSATION_MESSAGES
    last_activity: datetime = field(default_factory=datetime.now)

    def is_expired(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.last_activity > timeout

    def add_user_message(self, content: str) -> Message:
        return self._append(Message(role="user", content=content))

    def add_assistant_message(self, content: str, metadata: dict[str, Any] | None = None) -> Message:
        return self._append(Message(role="assistant", content=content, metadata=metadata or {}))

    def _append(self, msg: Message) -> Message:
        self.messages.append(msg)
        if len(self.messages) > self.max_messages:
            del self.messages[: len(self.messages) - self.max_messages]
        return msg

    def last_assistant_message(self) -> Message | None:
        for msg in reversed(self.messages):
            if msg.role == "assistant":
                return msg
        return None

    def offers_checklist(self) -> bool:
        """Whether the latest assistant message is the checklist offer."""
        last = self.last_assistant_message()
        return last is not None and OFFER_MARKER in last.content

    def clear(self) -> None:
        self.messages.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
        }


class ConversationStore:
    """Conversations keyed by session id.

    Conversations idle longer than the timeout are dropped, lazily when the
    id is next used or in bulk by sweep_expired().

    Args:
        max_messages: Messages kept per conversation
        timeout_minutes: Idle minutes before a conversation is forgotten
        clock: Returns the current time
    """

    def __init__(
        self,
        max_messages: int = MAX_CONVERSATION_MESSAGES,
        timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.max_messages = max_messages
        self.timeout = timedelta(minutes=timeout_minutes)
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)

    def get(self, session_id: str) -> Conversation:
        """Conversation for the id, created on first use or after expiry."""
        now = self._clock()
        with self._lock:
            conversation = self._conversations.get(session_id)
            if conversation is not None and conversation.is_expired(now, self.timeout):
                logger.debug(f"Conversation {session_id} expired")
                conversation = None
            if conversation is None:
                conversation = Conversation(session_id=session_id, max_messages=self.max_messages)
                self._conversations[session_id] = conversation
            conversation.last_activity = now
            return conversation

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._conversations.pop(session_id, None)

    def sweep_expired(self) -> int:
        """Remove every idle conversation. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, c in self._conversations.items() if c.is_expired(now, self.timeout)]
            for sid in expired:
                del self._conversations[sid]
        if expired:
            logger.info(f"Swept {len(expired)} idle conversation(s)")
        return len(expired)


__all__ = [
    "CANCEL_WORDS",
    "CHECKLIST_FIELDS",
    "CONTRACT_FIELDS",
    "OFFER_MARKER",
    "Conversation",
    "ConversationStore",
    "CreationSession",
    "FieldSpec",
    "FlowKind",
    "Message",
    "SessionManager",
    "StepOutcome",
    "StepStatus",
    "is_cancel",
]
