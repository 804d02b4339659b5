"""
Tests for transaction history queries
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
import uuid

from retail_banking.storage import InMemoryStorage
from retail_banking.currency import Money, Currency
from retail_banking.transactions import (
    Transaction, TransactionHistory, TransactionType, TransactionStatus
)


def make_entry(account_id, amount, when, description="", category=None,
               transaction_type=TransactionType.WITHDRAWAL, reference=None):
    money = Money(Decimal(amount), Currency.USD)
    return Transaction(
        id=str(uuid.uuid4()),
        created_at=when,
        updated_at=when,
        reference_number=reference or f"TXN{uuid.uuid4().hex[:12]}",
        transaction_type=transaction_type,
        account_id=account_id,
        amount=money,
        balance_after=Money(Decimal('0'), Currency.USD),
        description=description,
        category=category,
        status=TransactionStatus.COMPLETED,
        completed_at=when
    )


class TestTransactionHistory:
    """Listing, filtering, search and spending summaries"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.history = TransactionHistory(self.storage, history_limit=5, search_limit=2)

    def _save(self, entry):
        self.storage.save("transactions", entry.id, entry.to_dict())
        return entry

    def test_newest_first_and_capped(self):
        """History is ordered newest first and limited"""
        for day in range(1, 8):
            self._save(make_entry("acc1", "-1.00", datetime(2024, 5, day, tzinfo=timezone.utc)))
        self._save(make_entry("acc2", "-1.00", datetime(2024, 5, 9, tzinfo=timezone.utc)))

        entries = self.history.get_transactions("acc1")
        assert len(entries) == 5
        assert entries[0].created_at.day == 7
        assert entries[-1].created_at.day == 3

    def test_date_and_category_filters(self):
        """Date bounds are inclusive and category must match exactly"""
        self._save(make_entry("acc1", "-5.00", datetime(2024, 4, 30, tzinfo=timezone.utc), category="Food"))
        self._save(make_entry("acc1", "-6.00", datetime(2024, 5, 1, tzinfo=timezone.utc), category="Food"))
        self._save(make_entry("acc1", "-7.00", datetime(2024, 5, 2, tzinfo=timezone.utc), category="Rent"))

        may = self.history.get_transactions(
            "acc1",
            from_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
            to_date=datetime(2024, 5, 31, tzinfo=timezone.utc)
        )
        assert len(may) == 2
        assert len(self.history.get_transactions("acc1", category="Food")) == 2

    def test_naive_date_bounds_are_utc(self):
        """Bounds without a timezone are read as UTC"""
        self._save(make_entry("acc1", "-5.00", datetime(2024, 4, 30, 23, 0, tzinfo=timezone.utc)))
        self._save(make_entry("acc1", "-6.00", datetime(2024, 5, 1, 0, 30, tzinfo=timezone.utc)))

        entries = self.history.get_transactions(
            "acc1", from_date=datetime(2024, 5, 1), to_date=datetime(2024, 5, 31)
        )
        assert [e.amount.amount for e in entries] == [Decimal('-6.00')]

    def test_month_out_of_range(self):
        """Months outside 1-12 are refused"""
        with pytest.raises(ValueError):
            self.history.get_spending_by_category("acc1", 13, 2024)
        with pytest.raises(ValueError):
            self.history.get_total_spending_by_category("acc1", "Food", 0, 2024)

    def test_lookup_by_id_and_reference(self):
        """Single entries can be fetched by ID or reference"""
        entry = self._save(make_entry("acc1", "10.00", datetime.now(timezone.utc), reference="TXNABC"))

        assert self.history.get_transaction(entry.id).reference_number == "TXNABC"
        assert self.history.get_transaction_by_reference("TXNABC").id == entry.id
        assert self.history.get_transaction("missing") is None
        assert self.history.get_transaction_by_reference("missing") is None

    def test_spending_by_category(self):
        """Only categorised debits inside the month are counted"""
        may = datetime(2024, 5, 10, tzinfo=timezone.utc)
        self._save(make_entry("acc1", "-20.00", may, category="Electricity"))
        self._save(make_entry("acc1", "-15.50", may, category="Electricity"))
        self._save(make_entry("acc1", "-40.00", may, category="Transfer"))
        self._save(make_entry("acc1", "-9.00", may))
        self._save(make_entry("acc1", "100.00", may, category="Income",
                              transaction_type=TransactionType.DEPOSIT))
        self._save(make_entry("acc1", "-99.00", datetime(2024, 6, 1, tzinfo=timezone.utc),
                              category="Electricity"))

        spending = self.history.get_spending_by_category("acc1", 5, 2024)
        assert spending == {"Electricity": Decimal('35.50'), "Transfer": Decimal('40.00')}
        assert self.history.get_total_spending_by_category("acc1", "Electricity", 5, 2024) == Decimal('35.50')
        assert self.history.get_total_spending_by_category("acc1", "Water", 5, 2024) == Decimal('0')

    def test_december_spending(self):
        """The month window rolls over the year end"""
        self._save(make_entry("acc1", "-12.00", datetime(2024, 12, 31, 23, 59, tzinfo=timezone.utc),
                              category="Gifts"))
        self._save(make_entry("acc1", "-30.00", datetime(2025, 1, 1, tzinfo=timezone.utc),
                              category="Gifts"))

        assert self.history.get_spending_by_category("acc1", 12, 2024) == {"Gifts": Decimal('12.00')}

    def test_search_is_case_insensitive_and_capped(self):
        """Search matches description, reference and category"""
        now = datetime.now(timezone.utc)
        self._save(make_entry("acc1", "-1.00", now, description="Coffee at Joe's"))
        self._save(make_entry("acc1", "-1.00", now, description="COFFEE beans"))
        self._save(make_entry("acc1", "-1.00", now, description="Iced coffee"))
        self._save(make_entry("acc1", "-1.00", now, description="Rent", reference="TXNRENT01"))

        assert len(self.history.search_transactions("acc1", "coffee")) == 2
        assert len(self.history.search_transactions("acc1", "txnrent")) == 1
        assert self.history.search_transactions("acc1", "salary") == []
