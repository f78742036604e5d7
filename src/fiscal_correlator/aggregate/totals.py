"""Validated totals over correlated documents."""

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import TypeVar

from fiscal_correlator.records.types import KeyedRecord, ValidityKey

R = TypeVar("R", bound=KeyedRecord)

DECIMAL_PLACES = 2


def round_float(value: float, digits: int = DECIMAL_PLACES) -> float:
    """
    Round half away from zero to `digits` decimal places.

    Idempotent: rounding an already rounded value returns it unchanged.
    """
    factor = 10**digits
    scaled = abs(value) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, value) if rounded else 0.0


def to_cents(value: float) -> int:
    """Integer number of hundredths, used to order money values stably."""
    return int(round_float(value * 100, 0))


def is_usable_value(value: float | None) -> bool:
    """True for a finite number; None, NaN and infinities contribute nothing."""
    return value is not None and math.isfinite(value)


def resolved_records(
    keys: Iterable[str], index: Mapping[ValidityKey, Sequence[R]]
) -> list[R]:
    """
    Every record behind the valid entries of `keys`, in key order.

    Keys without a valid entry contribute nothing.
    """
    records: list[R] = []
    for key in sorted(keys):
        records.extend(index.get(ValidityKey(key, True), ()))
    return records


def total_value(
    keys: Iterable[str], index: Mapping[ValidityKey, Sequence[KeyedRecord]]
) -> float | None:
    """
    Sum the values of all line items of all valid documents in `keys`.

    Returns None when no record contributed a value, so "no data" stays
    distinct from "data summing to zero". Records without a finite value are
    skipped. The sum is rounded once, at the end.
    """
    values = [
        record.value
        for record in resolved_records(keys, index)
        if is_usable_value(record.value)
    ]
    if not values:
        return None
    return round_float(math.fsum(values))
