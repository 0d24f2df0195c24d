"""Domain handler collaborators for contractbot.

The router never touches a data store itself. Record lookups and record
creation go through a DomainHandlers implementation injected at
construction. InMemoryHandlers keeps everything in dicts and backs the
CLI and the tests.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass
class ContractRecord:
    """A stored contract."""

    contract_number: str
    fields: dict[str, str] = field(default_factory=dict)
    customer_name: str | None = None
    status: str = "active"
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_number": self.contract_number,
            "customer_name": self.customer_name,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            **self.fields,
        }


@dataclass
class PartRecord:
    """A stored part."""

    part_number: str
    description: str = ""
    price: float | None = None
    in_stock: int = 0
    contract_numbers: list[str] = field(default_factory=list)


@dataclass
class ChecklistRecord:
    """A stored checklist."""

    checklist_id: str
    contract_number: str
    fields: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class DomainHandlers(Protocol):
    """Operations the router and session manager call with extracted entities."""

    def find_contract_by_number(self, contract_number: str) -> ContractRecord | None:
        ...

    def find_part_by_number(self, part_number: str) -> PartRecord | None:
        ...

    def find_contracts_by_customer(self, customer_name: str) -> list[ContractRecord]:
        ...

    def create_contract(self, fields: dict[str, str]) -> str:
        """Persist a contract and return its contract number."""
        ...

    def create_checklist(self, contract_number: str, fields: dict[str, str]) -> str:
        """Persist a checklist for a contract and return its id."""
        ...


class InMemoryHandlers:
    """DomainHandlers backed by dicts.

    Contract numbers are 6 digits allocated sequentially from
    first_contract_number; checklist ids are "CL" followed by 6 digits.
    """

    def __init__(
        self,
        contracts: list[ContractRecord] | None = None,
        parts: list[PartRecord] | None = None,
        first_contract_number: int = 100001,
    ) -> None:
        self.contracts: dict[str, ContractRecord] = {c.contract_number: c for c in contracts or []}
        self.parts: dict[str, PartRecord] = {p.part_number.upper(): p for p in parts or []}
        self.checklists: dict[str, ChecklistRecord] = {}
        self._contract_numbers = itertools.count(first_contract_number)
        self._checklist_numbers = itertools.count(1)
        self._lock = threading.Lock()

    def find_contract_by_number(self, contract_number: str) -> ContractRecord | None:
        return self.contracts.get(contract_number)

    def find_part_by_number(self, part_number: str) -> PartRecord | None:
        return self.parts.get(part_number.upper())

    def find_contracts_by_customer(self, customer_name: str) -> list[ContractRecord]:
        wanted = customer_name.lower()
        return [
            c for c in self.contracts.values() if c.customer_name and wanted in c.customer_name.lower()
        ]

    def create_contract(self, fields: dict[str, str]) -> str:
        with self._lock:
            number = f"{next(self._contract_numbers) % 1_000_000:06d}"
            while number in self.contracts:
                number = f"{next(self._contract_numbers) % 1_000_000:06d}"
            self.contracts[number] = ContractRecord(
                contract_number=number,
                fields=dict(fields),
                customer_name=fields.get("contract_name"),
                status="draft",
            )
        logger.info(f"Created contract {number}")
        return number

    def create_checklist(self, contract_number: str, fields: dict[str, str]) -> str:
        with self._lock:
            checklist_id = f"CL{next(self._checklist_numbers):06d}"
            self.checklists[checklist_id] = ChecklistRecord(
                checklist_id=checklist_id,
                contract_number=contract_number,
                fields=dict(fields),
            )
        logger.info(f"Created checklist {checklist_id} for contract {contract_number}")
        return checklist_id


__all__ = [
    "ChecklistRecord",
    "ContractRecord",
    "DomainHandlers",
    "InMemoryHandlers",
    "PartRecord",
]
