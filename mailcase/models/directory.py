"""Firm-scoped case/client directory snapshot used as the scorer's candidate set."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CaseEntry(BaseModel):
    """Active case as seen by the scorer."""

    case_id: str
    case_number: str
    title: str = ""
    client_id: Optional[str] = None
    firm_id: str
    status: str = "active"
    participant_addresses: list[str] = Field(default_factory=list)  # team + actors + client contacts
    keywords: list[str] = Field(default_factory=list)
    reference_numbers: list[str] = Field(default_factory=list)
    last_activity_at: Optional[datetime] = None

    def address_set(self) -> set[str]:
        return {a.strip().lower() for a in self.participant_addresses if a and a.strip()}


class ClientEntry(BaseModel):
    client_id: str
    firm_id: str
    name: str = ""
    contact_addresses: list[str] = Field(default_factory=list)

    def address_set(self) -> set[str]:
        return {a.strip().lower() for a in self.contact_addresses if a and a.strip()}


class FirmDirectory(BaseModel):
    """Everything the scorer may match against for one firm.

    `known_case_ids` holds every case of the firm (closed ones included) so that thread
    affinity to a case closed after assignment still counts as same-firm; `case_clients`
    maps those cases to their client. `as_of` is when the snapshot was taken and serves
    as the scorer's clock for recent activity.
    """

    firm_id: str
    cases: list[CaseEntry] = Field(default_factory=list)
    clients: list[ClientEntry] = Field(default_factory=list)
    known_case_ids: frozenset[str] = frozenset()
    case_clients: dict[str, Optional[str]] = Field(default_factory=dict)
    as_of: Optional[datetime] = None

    def cases_for_client(self, client_id: str) -> list[CaseEntry]:
        return [c for c in self.cases if c.client_id == client_id]

    def owns_case(self, case_id: str) -> bool:
        return case_id in self.known_case_ids or any(c.case_id == case_id for c in self.cases)

    def client_of(self, case_id: str) -> Optional[str]:
        if case_id in self.case_clients:
            return self.case_clients[case_id]
        case = next((c for c in self.cases if c.case_id == case_id), None)
        return case.client_id if case else None

    def own_client_ids(self) -> set[str]:
        return {c.client_id for c in self.clients if c.firm_id == self.firm_id}
