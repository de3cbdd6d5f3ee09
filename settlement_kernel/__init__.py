"""
Settlement Kernel

Record types, typed errors, structured logging and persistence for a
single-currency payment ledger:
- Strict debt / payment / allocation records
- Whole-unit Decimal rounding
- Atomic, stale-checked allocation writes
"""

__version__ = "0.1.0"
