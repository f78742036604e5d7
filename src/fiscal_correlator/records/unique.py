"""Identity deduplication and ordering of parsed records."""

import datetime
from collections.abc import Hashable, Iterable
from typing import Protocol, TypeVar

from fiscal_correlator.records.types import CteRecord, NfeRecord


class Identified(Protocol):
    @property
    def identity(self) -> Hashable | None: ...


R = TypeVar("R", bound=Identified)


def unique_by_identity(records: Iterable[R]) -> list[R]:
    """
    Keep one record per identity, ordered by identity.

    CT-e identity is the key; NF-e identity is (key, item number). When an
    identity repeats, the last occurrence wins. Records without an identity
    cannot be told apart and are kept, in input order, after the keyed ones.
    """
    by_identity: dict = {}
    anonymous: list[R] = []

    for record in records:
        identity = record.identity
        if identity is None:
            anonymous.append(record)
        else:
            by_identity[identity] = record

    ordered = [by_identity[identity] for identity in sorted(by_identity, key=_identity_order)]
    return ordered + anonymous


def _identity_order(identity):
    # Item numbers may be missing; order them first within a key.
    if isinstance(identity, tuple):
        key, item = identity
        return (key, item is not None, item or 0)
    return identity


def _text(value: str | None) -> tuple[bool, str]:
    return (value is not None, value or "")


def _date(value: datetime.date | None) -> tuple[bool, datetime.date]:
    return (value is not None, value or datetime.date.min)


def cte_sort_key(record: CteRecord) -> tuple:
    """Issuer, issue date, then key; missing fields sort first."""
    return (
        _text(record.issuer_cnpj),
        _text(record.issuer_cpf),
        _date(record.issue_date),
        _text(record.primary_key),
    )


def nfe_sort_key(record: NfeRecord) -> tuple:
    """Issuer, issue date, key, then item number; missing fields sort first."""
    return (
        _text(record.issuer_cnpj),
        _text(record.issuer_cpf),
        _date(record.issue_date),
        _text(record.primary_key),
        (record.item_number is not None, record.item_number or 0),
    )


def sort_ctes(ctes: list[CteRecord]) -> None:
    ctes.sort(key=cte_sort_key)


def sort_nfes(nfes: list[NfeRecord]) -> None:
    nfes.sort(key=nfe_sort_key)
