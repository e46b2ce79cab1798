"""
Cashbook - Source Package

The bookkeeping core of a chat-driven small-business cashbook:
staff record sales, receivables and expenses, approvers sign off
large entries, and recurring templates materialize on schedule.

DESIGN PRINCIPLES:
1. Ledger entries are never deleted, only approved or rejected
2. Fail early, fail visibly
3. No silent state transitions
4. Every step must be auditable
5. Storage and time are injected, never ambient
"""

__version__ = "1.0.0"
__author__ = "Cashbook Team"
