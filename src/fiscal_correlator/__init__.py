"""Fiscal Correlator - Correlate CT-e transport documents with NF-e invoices."""

from fiscal_correlator.config import CorrelationOptions
from fiscal_correlator.documents import FiscalDocuments
from fiscal_correlator.solver.correlate import Correlations, correlate

__all__ = ["CorrelationOptions", "Correlations", "FiscalDocuments", "correlate"]
