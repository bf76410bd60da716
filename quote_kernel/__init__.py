"""
Quotation Kernel

A quotation pricing-and-lifecycle engine with:
- Fixed-point, multi-currency pricing with a locked rate snapshot
- Table-driven lifecycle with optimistic concurrency
- All-or-nothing stock and VIN reservation
- Invoice and receipt snapshots that never re-price
"""

__version__ = "0.1.0"
