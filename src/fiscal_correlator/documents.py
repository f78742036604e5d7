"""Container routing parsed documents into the two correlated collections."""

import logging
from dataclasses import dataclass, field
from typing import TypeAlias

from fiscal_correlator.config import CorrelationOptions
from fiscal_correlator.records.events import apply_cte_events, apply_nfe_events
from fiscal_correlator.records.types import CteRecord, DocumentEvent, NfeRecord
from fiscal_correlator.records.unique import sort_ctes, sort_nfes, unique_by_identity
from fiscal_correlator.solver.correlate import Correlations, correlate
from fiscal_correlator.solver.report import print_cte_nfes, print_nfe_ctes, show_docs

logger = logging.getLogger(__name__)

Document: TypeAlias = CteRecord | NfeRecord | list[NfeRecord]


@dataclass
class FiscalDocuments:
    """
    Transport documents, invoice items and the events registered against them.

    Lifecycle: add -> apply_events -> unique -> sort -> get_correlations.
    """

    ctes: list[CteRecord] = field(default_factory=list)
    nfes: list[NfeRecord] = field(default_factory=list)
    cte_events: list[DocumentEvent] = field(default_factory=list)
    nfe_events: list[DocumentEvent] = field(default_factory=list)

    def add(self, document: Document) -> None:
        """Route one parsed document (an NF-e arrives as its list of items)."""
        if isinstance(document, CteRecord):
            self.ctes.append(document)
        elif isinstance(document, NfeRecord):
            self.nfes.append(document)
        elif isinstance(document, list):
            for item in document:
                if not isinstance(item, NfeRecord):
                    raise TypeError(f"unsupported invoice item: {type(item).__name__}")
            self.nfes.extend(document)
        else:
            raise TypeError(f"unsupported document: {type(document).__name__}")

    def add_event(self, event: DocumentEvent, kind: str) -> None:
        if kind == "cte":
            self.cte_events.append(event)
        elif kind == "nfe":
            self.nfe_events.append(event)
        else:
            raise ValueError(f"event kind must be 'cte' or 'nfe', got {kind!r}")

    def apply_events(self) -> None:
        canceled_ctes = apply_cte_events(self.ctes, self.cte_events)
        canceled_nfes = apply_nfe_events(self.nfes, self.nfe_events)
        logger.debug(
            "Events applied: %d CT-e and %d NF-e item records canceled",
            canceled_ctes,
            canceled_nfes,
        )

    def unique(self) -> None:
        before = len(self.ctes) + len(self.nfes)
        self.ctes = unique_by_identity(self.ctes)
        self.nfes = unique_by_identity(self.nfes)
        removed = before - len(self.ctes) - len(self.nfes)
        if removed:
            logger.info("Removed %d duplicated records", removed)

    def sort(self) -> None:
        sort_ctes(self.ctes)
        sort_nfes(self.nfes)

    def get_correlations(self, options: CorrelationOptions | None = None) -> Correlations:
        """Correlate and enrich the records in place, printing the requested reports."""
        options = options or CorrelationOptions()
        correlations = correlate(self.ctes, self.nfes, options)

        if options.show_missing:
            show_docs("CT-e", correlations.missing_ctes)
            show_docs("NF-e", correlations.missing_nfes)

        if options.show_correlations:
            print_cte_nfes(correlations, options.items)
            print_nfe_ctes(correlations, options.items)

        return correlations
