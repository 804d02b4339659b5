"""
Test suite for account management
"""

import pytest
from decimal import Decimal

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail, AuditEventType
from retail_banking.accounts import AccountManager, AccountType
from retail_banking.currency import Money, Currency


class TestAccountManager:
    """Test account opening, lookup and deactivation"""

    def setup_method(self):
        """Set up test environment"""
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit)

    def test_open_account(self):
        """New accounts start empty and active with a generated number"""
        account = self.account_manager.open_account("user1", AccountType.CHECKING, "Everyday")

        assert account.account_number.startswith("ACC")
        assert len(account.account_number) == len("ACC") + 8 + 6
        assert account.balance == Money.zero(Currency.USD)
        assert account.available_balance == Money.zero(Currency.USD)
        assert account.is_active
        assert account.can_transact()

        stored = self.account_manager.get_account(account.id)
        assert stored.account_number == account.account_number
        assert stored.account_type == AccountType.CHECKING

        events = self.audit.get_events_by_type(AuditEventType.ACCOUNT_OPENED)
        assert len(events) == 1
        assert events[0].entity_id == account.id

    def test_account_numbers_are_unique(self):
        """Generated account numbers never repeat"""
        numbers = {
            self.account_manager.open_account("user1", AccountType.SAVINGS, f"Pot {i}").account_number
            for i in range(20)
        }
        assert len(numbers) == 20

    def test_explicit_duplicate_number_rejected(self):
        """Requesting an existing account number fails"""
        self.account_manager.open_account("user1", AccountType.CHECKING, "A", account_number="ACC1")

        with pytest.raises(ValueError):
            self.account_manager.open_account("user2", AccountType.CHECKING, "B", account_number="ACC1")

        assert self.account_manager.get_account_by_number("ACC1").user_id == "user1"

    def test_currency_round_trip(self):
        """Non-USD accounts keep their currency in storage"""
        account = self.account_manager.open_account(
            "user1", AccountType.SAVINGS, "Euro", currency=Currency.EUR
        )
        stored = self.account_manager.get_account(account.id)
        assert stored.currency == Currency.EUR
        assert stored.balance.currency == Currency.EUR

    def test_user_accounts_are_active_and_ordered(self):
        """Listing skips inactive accounts and orders by type"""
        business = self.account_manager.open_account("user1", AccountType.BUSINESS, "Shop")
        savings = self.account_manager.open_account("user1", AccountType.SAVINGS, "Rainy day")
        checking = self.account_manager.open_account("user1", AccountType.CHECKING, "Everyday")
        closed = self.account_manager.open_account("user1", AccountType.CHECKING, "Old")
        self.account_manager.open_account("user2", AccountType.CHECKING, "Other user")

        assert self.account_manager.deactivate_account(closed.id, "customer request")

        accounts = self.account_manager.get_user_accounts("user1")
        assert [a.id for a in accounts] == [checking.id, savings.id, business.id]

    def test_total_balance(self):
        """Totals only include accounts in the requested currency"""
        usd = self.account_manager.open_account("user1", AccountType.CHECKING, "USD")
        eur = self.account_manager.open_account("user1", AccountType.SAVINGS, "EUR", currency=Currency.EUR)

        usd.balance = Money(Decimal('150.00'), Currency.USD)
        eur.balance = Money(Decimal('99.00'), Currency.EUR)
        self.account_manager.save_account(usd)
        self.account_manager.save_account(eur)

        assert self.account_manager.get_total_balance("user1").amount == Decimal('150.00')
        assert self.account_manager.get_total_balance("user1", Currency.EUR).amount == Decimal('99.00')

    def test_deactivate_account(self):
        """Deactivation is soft and only happens once"""
        account = self.account_manager.open_account("user1", AccountType.CHECKING, "Everyday")

        assert self.account_manager.deactivate_account(account.id, "fraud")
        assert not self.account_manager.deactivate_account(account.id, "again")
        assert not self.account_manager.deactivate_account("missing", "none")

        stored = self.account_manager.get_account(account.id)
        assert stored is not None
        assert not stored.can_transact()
