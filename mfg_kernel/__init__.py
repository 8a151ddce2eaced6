"""
Manufacturing Dispatch Kernel

Transactional core of a manufacturing/ERP backend:
- Sequential human-readable identifiers (orders, dispatches, materials)
- Stock ledger with derived stock status and shortfall alerts
- Orders with line items and a guarded status lifecycle
- Two-phase order-to-dispatch workflow (atomic dispatch, best-effort stock)
- Production batches feeding finished-goods stock
"""

__version__ = "0.1.0"
