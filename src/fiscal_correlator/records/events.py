"""Merge post-issue events (cancellations, related documents) into records."""

from collections.abc import Sequence

from fiscal_correlator.grouping.group import group_by_key_list
from fiscal_correlator.records.types import (
    CANCELED_MARKER,
    CteRecord,
    DocumentEvent,
    NfeRecord,
)


def group_events(events: Sequence[DocumentEvent]) -> dict[str, list[DocumentEvent]]:
    """Group events by the key of the document they refer to."""
    return group_by_key_list(
        [(event.primary_key, event) for event in events if event.primary_key is not None]
    )


def apply_cte_events(ctes: Sequence[CteRecord], events: Sequence[DocumentEvent]) -> int:
    """
    Mark canceled transport documents and attach related CT-e keys from events.

    Returns the number of records marked canceled.
    """
    grouped = group_events(events)
    canceled = 0

    for cte in ctes:
        if cte.primary_key is None:
            continue
        for event in grouped.get(cte.primary_key, ()):
            for key in event.linked_keys:
                if key not in cte.linked_keys:
                    cte.linked_keys.append(key)
            if event.canceled and cte.canceled is None:
                cte.canceled = CANCELED_MARKER
                canceled += 1

    return canceled


def apply_nfe_events(nfes: Sequence[NfeRecord], events: Sequence[DocumentEvent]) -> int:
    """
    Mark every item of a canceled invoice as canceled.

    Returns the number of item records marked canceled.
    """
    grouped = group_events(events)
    canceled = 0

    for nfe in nfes:
        if nfe.primary_key is None or nfe.canceled is not None:
            continue
        if any(event.canceled for event in grouped.get(nfe.primary_key, ())):
            nfe.canceled = CANCELED_MARKER
            canceled += 1

    return canceled
