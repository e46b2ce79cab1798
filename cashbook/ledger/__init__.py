"""Ledger package: transaction creation, approval and lookup."""

from cashbook.ledger.ledger import LedgerCore
from cashbook.ledger.reference import generate_reference_code, is_reference_code

__all__ = [
    "LedgerCore",
    "generate_reference_code",
    "is_reference_code",
]
