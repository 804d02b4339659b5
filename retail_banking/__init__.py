"""
Retail Banking Core

Accounts, ledger entries, bill payments, currency exchange, beneficiaries,
scheduled payments and loans over a pluggable storage backend. All monetary
values use Decimal; every balance change runs in one atomic storage unit.
"""

__version__ = "1.0.0"
