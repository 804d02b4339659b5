"""
Transaction Records and History

Ledger entries are written by ``ledger.py`` and never modified afterwards.
This module defines the entry record and the read-side queries over it:
filtered history, lookups, spending breakdowns and search.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime, as_utc


class TransactionType(Enum):
    """Kinds of ledger entries"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    BILL_PAYMENT = "bill_payment"
    LOAN_PAYMENT = "loan_payment"
    INTEREST = "interest"
    FEE = "fee"


class TransactionStatus(Enum):
    """Status of a ledger entry"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Transaction(StorageRecord):
    """
    One ledger entry against one account.

    ``amount`` is signed: credits are positive, debits negative.
    ``balance_after`` is the account balance right after this entry.
    """
    reference_number: str
    transaction_type: TransactionType
    account_id: str
    amount: Money
    balance_after: Money
    description: str
    category: Optional[str] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    destination_account_id: Optional[str] = None
    beneficiary_id: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def is_debit(self) -> bool:
        return self.amount.is_negative()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['transaction_type'] = self.transaction_type.value
        result['status'] = self.status.value
        result['currency'] = self.amount.currency.code
        result['amount'] = str(self.amount.amount)
        result['balance_after'] = str(self.balance_after.amount)
        result['completed_at'] = format_datetime(self.completed_at)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            reference_number=data['reference_number'],
            transaction_type=TransactionType(data['transaction_type']),
            account_id=data['account_id'],
            amount=Money(Decimal(data['amount']), currency),
            balance_after=Money(Decimal(data['balance_after']), currency),
            description=data['description'],
            category=data.get('category'),
            status=TransactionStatus(data['status']),
            destination_account_id=data.get('destination_account_id'),
            beneficiary_id=data.get('beneficiary_id'),
            completed_at=parse_datetime(data.get('completed_at'))
        )


def _month_bounds(month: int, year: int):
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


class TransactionHistory:
    """Read-only queries over ledger entries"""

    def __init__(self, storage: StorageInterface, history_limit: int = 100, search_limit: int = 50):
        self.storage = storage
        self.transactions_table = "transactions"
        self.history_limit = history_limit
        self.search_limit = search_limit

    def _account_entries(self, account_id: str) -> List[Transaction]:
        entries = [
            Transaction.from_dict(data)
            for data in self.storage.find(self.transactions_table, {"account_id": account_id})
        ]
        entries.sort(key=lambda t: t.created_at, reverse=True)
        return entries

    def get_transactions(
        self,
        account_id: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        category: Optional[str] = None
    ) -> List[Transaction]:
        """
        Entries for an account, newest first, capped at ``history_limit``

        Args:
            account_id: Account to list
            from_date: Inclusive lower bound on creation time
            to_date: Inclusive upper bound on creation time
            category: Exact category match
        """
        entries = self._account_entries(account_id)
        from_date = as_utc(from_date)
        to_date = as_utc(to_date)

        if from_date:
            entries = [t for t in entries if t.created_at >= from_date]
        if to_date:
            entries = [t for t in entries if t.created_at <= to_date]
        if category:
            entries = [t for t in entries if t.category == category]

        return entries[:self.history_limit]

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get entry by ID"""
        data = self.storage.load(self.transactions_table, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def get_transaction_by_reference(self, reference_number: str) -> Optional[Transaction]:
        """Get entry by reference number"""
        found = self.storage.find(self.transactions_table, {"reference_number": reference_number})
        if found:
            return Transaction.from_dict(found[0])
        return None

    def get_total_spending_by_category(self, account_id: str, category: str,
                                       month: int, year: int) -> Decimal:
        """Total of debits in one category during a calendar month"""
        return self.get_spending_by_category(account_id, month, year).get(category, Decimal('0'))

    def get_spending_by_category(self, account_id: str, month: int, year: int) -> Dict[str, Decimal]:
        """Debits during a calendar month grouped by category (uncategorised entries skipped)"""
        start, end = _month_bounds(month, year)
        spending: Dict[str, Decimal] = {}

        for entry in self._account_entries(account_id):
            if not entry.is_debit or not entry.category:
                continue
            if not (start <= entry.created_at < end):
                continue
            spending[entry.category] = spending.get(entry.category, Decimal('0')) + abs(entry.amount.amount)

        return spending

    def search_transactions(self, account_id: str, search_term: str) -> List[Transaction]:
        """Substring search over description, reference number and category"""
        term = search_term.lower()
        matches = [
            t for t in self._account_entries(account_id)
            if term in (t.description or "").lower()
            or term in t.reference_number.lower()
            or term in (t.category or "").lower()
        ]
        return matches[:self.search_limit]
