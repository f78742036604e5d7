"""Loading of already-flattened records from JSON lines."""

import datetime
import json
import logging
import math
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from fiscal_correlator.records.types import (
    CANCELED_MARKER,
    CteRecord,
    DocumentEvent,
    NfeRecord,
)

R = TypeVar("R")

logger = logging.getLogger(__name__)


@dataclass
class LoadStats:
    """Statistics from loading one JSON-lines file."""

    lines_read: int = 0
    empty_lines: int = 0
    malformed_lines: int = 0
    records_loaded: int = 0


def to_float(value: object) -> float | None:
    """
    Interpret a numeric field; None when it cannot be read.

    Strings may use a decimal comma ("12345,67"). NaN and infinities (a bare
    `NaN` literal, "inf", "1e400") count as unreadable.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip().replace(",", "."))
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def to_int(value: object) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


def to_canceled(value: object) -> str | None:
    """
    Normalize a cancellation flag to CANCELED_MARKER or None.

    `false`, `null` and blank strings mean "not canceled"; `true` and any
    other non-empty text mean canceled.
    """
    if value is None or value is False:
        return None
    if value is True:
        return CANCELED_MARKER
    return CANCELED_MARKER if to_key(value) is not None else None


def to_key(value: object) -> str | None:
    """Trimmed, non-empty string or None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_keys(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [key for key in (to_key(item) for item in value) if key is not None]


def to_date(value: object) -> datetime.date | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def cte_from_mapping(data: dict) -> CteRecord:
    return CteRecord(
        primary_key=to_key(data.get("primary_key")),
        canceled=to_canceled(data.get("canceled")),
        linked_keys=to_keys(data.get("linked_keys")),
        peer_keys=to_keys(data.get("peer_keys")),
        total_value=to_float(data.get("total_value")),
        payer_code=to_int(data.get("payer_code")),
        payer_cnpj=to_key(data.get("payer_cnpj")),
        payer_cpf=to_key(data.get("payer_cpf")),
        issuer_cnpj=to_key(data.get("issuer_cnpj")),
        issuer_cpf=to_key(data.get("issuer_cpf")),
        issue_date=to_date(data.get("issue_date")),
    )


def nfe_from_mapping(data: dict) -> NfeRecord:
    return NfeRecord(
        primary_key=to_key(data.get("primary_key")),
        canceled=to_canceled(data.get("canceled")),
        item_number=to_int(data.get("item_number")),
        product_value=to_float(data.get("product_value")),
        ncm=to_key(data.get("ncm")),
        description=to_key(data.get("description")),
        issuer_cnpj=to_key(data.get("issuer_cnpj")),
        issuer_cpf=to_key(data.get("issuer_cpf")),
        issue_date=to_date(data.get("issue_date")),
    )


def event_from_mapping(data: dict) -> DocumentEvent:
    return DocumentEvent(
        primary_key=to_key(data.get("primary_key")),
        canceled=to_canceled(data.get("canceled")) is not None,
        linked_keys=to_keys(data.get("linked_keys")),
    )


def parse_line(raw_line: str, build: Callable[[dict], R]) -> R | None:
    """
    Parse one JSON line into a record.

    Returns None for empty lines and for lines that are not JSON objects.
    """
    line = raw_line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict):
        return None
    return build(data)


def iter_records(
    lines: Iterable[str], build: Callable[[dict], R], stats: LoadStats | None = None
) -> Iterator[R]:
    """Yield parsed records from raw lines, skipping invalid ones."""
    stats = stats if stats is not None else LoadStats()

    for raw_line in lines:
        stats.lines_read += 1
        if not raw_line.strip():
            stats.empty_lines += 1
            continue

        record = parse_line(raw_line, build)
        if record is None:
            stats.malformed_lines += 1
            continue

        stats.records_loaded += 1
        yield record


def _read(path: str, build: Callable[[dict], R]) -> tuple[list[R], LoadStats]:
    stats = LoadStats()
    with open(path, encoding="utf-8") as handle:
        records = list(iter_records(handle, build, stats))

    if stats.malformed_lines > 0:
        logger.warning(
            "%s: %d malformed lines skipped (read=%d, loaded=%d)",
            path,
            stats.malformed_lines,
            stats.lines_read,
            stats.records_loaded,
        )
    return records, stats


def read_cte_records(path: str) -> tuple[list[CteRecord], LoadStats]:
    return _read(path, cte_from_mapping)


def read_nfe_records(path: str) -> tuple[list[NfeRecord], LoadStats]:
    return _read(path, nfe_from_mapping)


def read_events(path: str) -> tuple[list[DocumentEvent], LoadStats]:
    return _read(path, event_from_mapping)
