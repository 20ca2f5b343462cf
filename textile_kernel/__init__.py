"""
Textile Kernel - ledger and inventory reconciliation core

The consistency kernel of a textile trading business:
- Obligations (payables, receivables, bills, khata entries) settled by
  immutable transactions
- Cheque clearance, bounce reversal and replacement
- Locked inventory adjustments, each paired with one movement
- Dyeing production runs from raw thread to colored stock
"""

__version__ = "0.1.0"
