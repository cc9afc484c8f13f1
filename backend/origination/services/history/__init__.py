"""
Loan cycle history ledger and new-cycle gating.
"""
from .history_ledger import HistoryLedger, CYCLE_APPLICATIONS

__all__ = ["HistoryLedger", "CYCLE_APPLICATIONS"]
