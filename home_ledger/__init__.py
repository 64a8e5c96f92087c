"""
Home Ledger - Source Package

Shared household expense tracking for a two-person household with an
optional administrator.

DESIGN PRINCIPLES:
1. One person records, the other person approves
2. Settlement is always recomputed, never cached
3. Recurring charges are materialized at most once per month
4. Every lifecycle transition is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Home Ledger Team"
