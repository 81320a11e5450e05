"""Test helpers.

Helpers:
    FakeLedger: in-memory LedgerGateway with queued failures and gates
"""

from tests.helpers.fake_ledger import FakeLedger, Gate

__all__ = ["FakeLedger", "Gate"]
