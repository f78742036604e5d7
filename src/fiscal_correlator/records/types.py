"""Shared type definitions for fiscal document records."""

import datetime
from dataclasses import dataclass, field
from typing import Protocol, TypeAlias

AdjacencyMap: TypeAlias = dict[str, set[str]]
NfeIdentity: TypeAlias = tuple[str, int | None]

# Marker used by the source documents to flag a canceled document.
CANCELED_MARKER = "Sim"


@dataclass(frozen=True, slots=True, order=True)
class ValidityKey:
    """Primary key paired with its validity (True = active, False = canceled)."""

    primary_key: str
    is_valid: bool


class KeyedRecord(Protocol):
    """Shape the correlation engine needs from either document kind."""

    primary_key: str | None
    canceled: str | None

    @property
    def is_valid(self) -> bool: ...

    @property
    def value(self) -> float | None: ...


@dataclass(slots=True)
class CteRecord:
    """
    One transport document (CT-e).

    `linked_keys` references other CT-e documents (complementary, redispatch,
    subcontracting, substitution, linked); `peer_keys` references NF-e
    documents. The last three fields are written by the correlation engine.
    """

    primary_key: str | None = None
    canceled: str | None = None
    linked_keys: list[str] = field(default_factory=list)
    peer_keys: list[str] = field(default_factory=list)
    total_value: float | None = None
    payer_code: int | None = None
    payer_cnpj: str | None = None
    payer_cpf: str | None = None
    issuer_cnpj: str | None = None
    issuer_cpf: str | None = None
    issue_date: datetime.date | None = None

    nfe_keys: list[str] = field(default_factory=list)
    nfe_total: float | None = None
    ncm_breakdown: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.primary_key is not None and self.canceled is None

    @property
    def value(self) -> float | None:
        return self.total_value

    @property
    def identity(self) -> str | None:
        """A CT-e carries a single item, so the key alone identifies it."""
        return self.primary_key


@dataclass(slots=True)
class NfeRecord:
    """
    One line item of an invoice (NF-e).

    Several records share a primary key when the invoice has several items;
    `item_number` tells them apart.
    """

    primary_key: str | None = None
    canceled: str | None = None
    item_number: int | None = None
    product_value: float | None = None
    ncm: str | None = None
    description: str | None = None
    issuer_cnpj: str | None = None
    issuer_cpf: str | None = None
    issue_date: datetime.date | None = None

    cte_keys: list[str] = field(default_factory=list)
    cte_total: float | None = None
    payer_breakdown: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.primary_key is not None and self.canceled is None

    @property
    def value(self) -> float | None:
        return self.product_value

    @property
    def identity(self) -> NfeIdentity | None:
        if self.primary_key is None:
            return None
        return (self.primary_key, self.item_number)


@dataclass(slots=True)
class DocumentEvent:
    """
    An event registered against a document after its issue.

    Cancellation events and CT-e events that point to related transport
    documents share this shape.
    """

    primary_key: str | None = None
    canceled: bool = False
    linked_keys: list[str] = field(default_factory=list)


CteIndex: TypeAlias = dict[ValidityKey, list[CteRecord]]
NfeIndex: TypeAlias = dict[ValidityKey, list[NfeRecord]]
RecordIndex: TypeAlias = CteIndex | NfeIndex
