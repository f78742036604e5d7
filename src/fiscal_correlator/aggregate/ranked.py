"""Top-N ranked, percentage-weighted breakdowns of correlated documents."""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TypeAlias, TypeVar

from fiscal_correlator.aggregate.totals import (
    is_usable_value,
    resolved_records,
    round_float,
    to_cents,
    total_value,
)
from fiscal_correlator.grouping.group import group_by_key_sum
from fiscal_correlator.records.types import KeyedRecord, ValidityKey

R = TypeVar("R", bound=KeyedRecord)

CategoryPair: TypeAlias = tuple[str, str]
Extractor: TypeAlias = Callable[[R], tuple[CategoryPair, float] | None]

DEFAULT_LABELS = ("key1", "key2")


@dataclass(frozen=True, slots=True)
class RankedItem:
    """One category of a ranked breakdown, with rounded value and share."""

    category: CategoryPair
    valor: float
    pct: float

    def sort_key(self) -> tuple[int, str, str]:
        # Descending by cents, then ascending by category.
        return (-to_cents(self.valor), self.category[0], self.category[1])

    def render(self, labels: tuple[str, str] = DEFAULT_LABELS) -> str:
        first, second = labels
        return (
            f"({first}: {self.category[0]}, {second}: {self.category[1]}, "
            f"valor: {self.valor:.2f}, pct: {self.pct:.2f})"
        )


def ranked_items(
    keys: Iterable[str],
    index: Mapping[ValidityKey, Sequence[R]],
    extractor: Extractor[R],
    limit: int,
) -> list[RankedItem]:
    """
    Group the valid records behind `keys` by category and rank the groups.

    Records the extractor rejects, or with a non-finite value or one <= 0,
    are skipped. The
    denominator is total_value(keys, index); without a positive denominator
    the breakdown is empty. At most `limit` items are returned.
    """
    keys = set(keys)

    pairs: list[tuple[CategoryPair, float]] = []
    for record in resolved_records(keys, index):
        extracted = extractor(record)
        if extracted is None:
            continue
        category, value = extracted
        if is_usable_value(value) and value > 0:
            pairs.append((category, value))

    grand_total = total_value(keys, index)
    if grand_total is None or grand_total <= 0:
        return []

    items = [
        RankedItem(
            category=category,
            valor=round_float(value),
            pct=round_float(value / grand_total * 100),
        )
        for category, value in group_by_key_sum(pairs).items()
    ]
    items.sort(key=RankedItem.sort_key)
    return items[:limit]


def ranked_breakdown(
    keys: Iterable[str],
    index: Mapping[ValidityKey, Sequence[R]],
    extractor: Extractor[R],
    limit: int,
    labels: tuple[str, str] = DEFAULT_LABELS,
) -> list[str]:
    """Rendered form of ranked_items, one string per category."""
    return [item.render(labels) for item in ranked_items(keys, index, extractor, limit)]
