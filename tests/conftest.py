"""Shared fixtures for the test suite."""

import pytest

from fiscal_correlator.solver import execution


@pytest.fixture(autouse=True)
def thread_executor(monkeypatch):
    """Run partitioned stages on threads unless a test overrides the policy."""
    monkeypatch.setenv(execution.FC_EXECUTOR_ENV, "threads")
