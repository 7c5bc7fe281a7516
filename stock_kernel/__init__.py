"""
Stock Kernel - Inventory Audit & Stock Reconciliation Engine

A tenant-scoped stock ledger with:
- Atomic, movement-logged quantity adjustments
- Point-in-time audit campaigns with blind counts
- Verdict classification and optional ledger reconciliation on closure
- Signed, append-only audit log for every mutation
"""

__version__ = "0.1.0"
