"""
Test suite for scheduled payments
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail
from retail_banking.accounts import AccountManager, AccountType
from retail_banking.beneficiaries import BeneficiaryManager, BeneficiaryType
from retail_banking.ledger import LedgerService
from retail_banking.transactions import TransactionHistory
from retail_banking.scheduled_payments import (
    ScheduledPaymentService, PaymentFrequency, ScheduledPaymentStatus,
    add_months, next_execution_date
)


UTC = timezone.utc


class TestScheduleArithmetic:
    """Date stepping for each frequency"""

    def test_add_months_clamps_to_month_end(self):
        """Jan 31 plus one month lands on the last day of February"""
        assert add_months(datetime(2025, 1, 31, tzinfo=UTC), 1) == datetime(2025, 2, 28, tzinfo=UTC)
        assert add_months(datetime(2024, 1, 31, tzinfo=UTC), 1) == datetime(2024, 2, 29, tzinfo=UTC)
        assert add_months(datetime(2024, 11, 30, tzinfo=UTC), 3) == datetime(2025, 2, 28, tzinfo=UTC)

    def test_next_execution_date(self):
        """Each frequency advances by its period"""
        start = datetime(2024, 1, 15, 8, 0, tzinfo=UTC)

        assert next_execution_date(PaymentFrequency.DAILY, start) == start + timedelta(days=1)
        assert next_execution_date(PaymentFrequency.WEEKLY, start) == start + timedelta(days=7)
        assert next_execution_date(PaymentFrequency.BI_WEEKLY, start) == start + timedelta(days=14)
        assert next_execution_date(PaymentFrequency.MONTHLY, start) == datetime(2024, 2, 15, 8, 0, tzinfo=UTC)
        assert next_execution_date(PaymentFrequency.QUARTERLY, start) == datetime(2024, 4, 15, 8, 0, tzinfo=UTC)
        assert next_execution_date(PaymentFrequency.YEARLY, start) == datetime(2025, 1, 15, 8, 0, tzinfo=UTC)
        assert next_execution_date(PaymentFrequency.ONE_TIME, start) == start


class TestScheduledPaymentService:
    """Creating, executing and sweeping scheduled payments"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit)
        self.beneficiary_manager = BeneficiaryManager(self.storage, self.audit)
        self.ledger = LedgerService(
            self.storage, self.account_manager, self.audit, self.beneficiary_manager
        )
        self.history = TransactionHistory(self.storage)
        self.service = ScheduledPaymentService(self.storage, self.ledger, self.audit)

        self.source = self.account_manager.open_account("user1", AccountType.CHECKING, "Main")
        self.savings = self.account_manager.open_account("user1", AccountType.SAVINGS, "Savings")
        self.ledger.deposit(self.source.id, Decimal('1000.00'))

        self.start = datetime(2024, 1, 31, 9, 0, tzinfo=UTC)

    def balance(self, account):
        return self.account_manager.get_account(account.id).balance.amount

    def _schedule(self, frequency=PaymentFrequency.MONTHLY, account=None, **kwargs):
        return self.service.create_scheduled_payment(
            (account or self.source).id, "Save", Decimal('100.00'), frequency, self.start,
            destination_account_id=kwargs.pop("destination_account_id", self.savings.id),
            **kwargs
        )

    def test_create_validation(self):
        """A destination is required and the amount must be positive"""
        with pytest.raises(ValueError):
            self.service.create_scheduled_payment(
                self.source.id, "Nowhere", "10", PaymentFrequency.MONTHLY, self.start
            )
        with pytest.raises(ValueError):
            self.service.create_scheduled_payment(
                "missing", "x", "10", PaymentFrequency.MONTHLY, self.start,
                destination_account_id=self.savings.id
            )
        with pytest.raises(ValueError):
            self.service.create_scheduled_payment(
                self.source.id, "x", "0", PaymentFrequency.MONTHLY, self.start,
                destination_account_id=self.savings.id
            )

    def test_first_execution_is_due_at_start(self):
        """Nothing is due before the start date"""
        payment = self._schedule()
        assert payment.next_execution_date == self.start
        assert self.service.get_due_payments(self.start - timedelta(seconds=1)) == []
        assert [p.id for p in self.service.get_due_payments(self.start)] == [payment.id]

    def test_execute_advances_from_execution_time(self):
        """Executing transfers money and clamps the next month-end date"""
        payment = self._schedule()

        assert self.service.execute_scheduled_payment(payment.id, as_of=self.start)

        stored = self.service.get_scheduled_payment(payment.id)
        assert stored.execution_count == 1
        assert stored.last_executed_at == self.start
        assert stored.next_execution_date == datetime(2024, 2, 29, 9, 0, tzinfo=UTC)
        assert stored.status == ScheduledPaymentStatus.ACTIVE
        assert self.balance(self.source) == Decimal('900.00')
        assert self.balance(self.savings) == Decimal('100.00')

    def test_max_executions_completes(self):
        """A payment completes after its last allowed execution"""
        payment = self._schedule(max_executions=2)

        assert self.service.execute_scheduled_payment(payment.id, as_of=self.start)
        assert self.service.execute_scheduled_payment(payment.id, as_of=add_months(self.start, 1))

        stored = self.service.get_scheduled_payment(payment.id)
        assert stored.status == ScheduledPaymentStatus.COMPLETED
        assert not self.service.execute_scheduled_payment(payment.id)
        assert self.balance(self.source) == Decimal('800.00')

    def test_one_time_and_end_date_complete(self):
        """One-time payments and payments past their end date complete"""
        once = self._schedule(frequency=PaymentFrequency.ONE_TIME)
        ending = self._schedule(end_date=self.start + timedelta(days=1))

        assert self.service.execute_scheduled_payment(once.id, as_of=self.start)
        assert self.service.execute_scheduled_payment(ending.id, as_of=self.start + timedelta(days=2))

        assert self.service.get_scheduled_payment(once.id).status == ScheduledPaymentStatus.COMPLETED
        assert self.service.get_scheduled_payment(ending.id).status == ScheduledPaymentStatus.COMPLETED

    def test_beneficiary_payment(self):
        """Payments to a beneficiary debit only the source"""
        beneficiary = self.beneficiary_manager.add_beneficiary(
            self.source.id, "Gym", BeneficiaryType.EXTERNAL, "GYM-42"
        )
        payment = self.service.create_scheduled_payment(
            self.source.id, "Membership", "30", PaymentFrequency.MONTHLY, self.start,
            beneficiary_id=beneficiary.id
        )

        assert self.service.execute_scheduled_payment(payment.id, as_of=self.start)
        assert self.balance(self.source) == Decimal('970.00')

    def test_failed_schedule_save_rolls_back_transfer(self, monkeypatch):
        """If the schedule cannot be advanced the transfer is undone"""
        payment = self._schedule()

        def broken_save(payment):
            raise RuntimeError("storage unavailable")

        monkeypatch.setattr(self.service, "_save", broken_save)

        assert not self.service.execute_scheduled_payment(payment.id, as_of=self.start)

        stored = self.service.get_scheduled_payment(payment.id)
        assert stored.execution_count == 0
        assert stored.next_execution_date == self.start
        assert self.balance(self.source) == Decimal('1000.00')
        assert self.balance(self.savings) == Decimal('0.00')
        assert self.history.get_transactions(self.savings.id) == []

    def test_sweep_continues_after_failure(self, monkeypatch):
        """Unfunded payments and storage errors do not stop the others"""
        empty = self.account_manager.open_account("user1", AccountType.CHECKING, "Empty")
        other = self.account_manager.open_account("user1", AccountType.BUSINESS, "Other")
        self.ledger.deposit(other.id, Decimal('500.00'))

        first = self._schedule()
        failing = self._schedule(account=empty)
        third = self._schedule(account=other)
        broken = self._schedule(account=other)

        save = self.service._save

        def save_unless_broken(payment):
            if payment.id == broken.id:
                raise RuntimeError("storage unavailable")
            save(payment)

        monkeypatch.setattr(self.service, "_save", save_unless_broken)

        assert self.service.process_due_payments(as_of=self.start) == 2

        assert self.service.get_scheduled_payment(first.id).execution_count == 1
        assert self.service.get_scheduled_payment(third.id).execution_count == 1
        stuck = self.service.get_scheduled_payment(failing.id)
        assert stuck.execution_count == 0
        assert stuck.next_execution_date == self.start
        assert stuck.status == ScheduledPaymentStatus.ACTIVE
        assert self.service.get_scheduled_payment(broken.id).execution_count == 0
        assert self.balance(empty) == Decimal('0.00')
        assert self.balance(other) == Decimal('400.00')

    def test_pause_resume_cancel(self):
        """Status transitions and rescheduling of missed dates on resume"""
        payment = self._schedule()

        assert self.service.pause_scheduled_payment(payment.id)
        assert not self.service.pause_scheduled_payment(payment.id)
        assert self.service.get_due_payments(self.start) == []
        assert not self.service.execute_scheduled_payment(payment.id, as_of=self.start)

        assert self.service.resume_scheduled_payment(payment.id)
        resumed = self.service.get_scheduled_payment(payment.id)
        assert resumed.status == ScheduledPaymentStatus.ACTIVE
        assert resumed.next_execution_date > datetime.now(UTC)

        assert self.service.cancel_scheduled_payment(payment.id)
        assert not self.service.resume_scheduled_payment(payment.id)
        assert not self.service.cancel_scheduled_payment("missing")

    def test_listing(self):
        """Payments of an account are listed soonest first"""
        later = self.service.create_scheduled_payment(
            self.source.id, "Later", "5", PaymentFrequency.WEEKLY, self.start + timedelta(days=3),
            destination_account_id=self.savings.id
        )
        sooner = self._schedule()

        assert [p.id for p in self.service.get_scheduled_payments(self.source.id)] == [sooner.id, later.id]
