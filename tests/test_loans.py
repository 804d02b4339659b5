"""
Test suite for the loan calculator and loan applications
"""

import pytest
from decimal import Decimal

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail, AuditEventType
from retail_banking.accounts import AccountManager, AccountType
from retail_banking.ledger import LedgerService
from retail_banking.transactions import TransactionHistory
from retail_banking.notifications import NotificationService
from retail_banking.loans import (
    LoanService, LoanType, LoanApplicationStatus, calculate_loan
)


class TestLoanCalculator:
    """Fixed monthly payment arithmetic"""

    def test_zero_rate(self):
        """Zero interest splits the principal evenly"""
        quote = calculate_loan(10000, 0, 36)
        assert quote.monthly_payment == Decimal('277.78')
        assert quote.total_interest == Decimal('0.00')
        assert quote.total_payment == Decimal('10000.00')

    def test_matches_annuity_formula(self):
        """The payment agrees with the textbook annuity formula"""
        quote = calculate_loan("25000", "5.99", 60)

        r = 0.0599 / 12
        expected = 25000 * r * (1 + r) ** 60 / ((1 + r) ** 60 - 1)
        assert abs(float(quote.monthly_payment) - expected) < 0.005
        assert quote.total_payment - quote.total_interest == Decimal('25000.00')

    def test_single_month(self):
        """A one-month loan repays principal plus one month of interest"""
        quote = calculate_loan(1200, 12, 1)
        assert quote.monthly_payment == Decimal('1212.00')
        assert quote.total_interest == Decimal('12.00')

    def test_invalid_input(self):
        """Non-positive principal or term and negative rates are refused"""
        with pytest.raises(ValueError):
            calculate_loan(0, 5, 12)
        with pytest.raises(ValueError):
            calculate_loan(1000, 5, 0)
        with pytest.raises(ValueError):
            calculate_loan(1000, -1, 12)


class TestLoanApplications:
    """Application lifecycle and disbursement"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit)
        self.ledger = LedgerService(self.storage, self.account_manager, self.audit)
        self.history = TransactionHistory(self.storage)
        self.notifications = NotificationService(self.storage)
        self.service = LoanService(self.storage, self.ledger, self.audit, self.notifications)

        self.account = self.account_manager.open_account("user1", AccountType.CHECKING, "Main")

    def _approved(self, amount="15000", rate="7.5"):
        application = self.service.create_application(
            "user1", LoanType.AUTO, amount, 48, "New car"
        )
        self.service.submit_application(application.id)
        assert self.service.approve_loan(application.id, amount, rate)
        return self.service.get_application(application.id)

    def test_create_application(self):
        """Applications start as drafts with an LA number"""
        application = self.service.create_application("user1", LoanType.PERSONAL, "5000", 24, "Wedding")

        assert application.status == LoanApplicationStatus.DRAFT
        assert application.application_number.startswith("LA")
        assert len(application.application_number) == len("LA") + 8 + 5
        assert application.requested_amount == Decimal('5000.00')

        with pytest.raises(ValueError):
            self.service.create_application("user1", LoanType.PERSONAL, "0", 24, "Nothing")
        with pytest.raises(ValueError):
            self.service.create_application("user1", LoanType.PERSONAL, "100", 0, "Nothing")

    def test_submit_only_drafts(self):
        """Submitting twice fails the second time"""
        application = self.service.create_application("user1", LoanType.HOME, "200000", 360, "House")

        submitted = self.service.submit_application(application.id)
        assert submitted.status == LoanApplicationStatus.SUBMITTED
        assert submitted.submitted_at is not None
        assert self.service.submit_application(application.id) is None
        assert self.service.submit_application("missing") is None

    def test_approve_sets_monthly_payment(self):
        """Approval fixes the monthly payment from the approved terms"""
        application = self._approved()

        assert application.status == LoanApplicationStatus.APPROVED
        assert application.approved_amount == Decimal('15000.00')
        assert application.monthly_payment == calculate_loan("15000", "7.5", 48).monthly_payment
        assert self.notifications.get_unread_count("user1") == 1

    def test_draft_cannot_be_approved(self):
        """Approval requires a submitted or under-review application"""
        application = self.service.create_application("user1", LoanType.AUTO, "1000", 12, "Scooter")
        assert not self.service.approve_loan(application.id, "1000", "5")

    def test_review_then_approve(self):
        """Applications under review can be approved"""
        application = self.service.create_application("user1", LoanType.EDUCATION, "8000", 36, "MSc")
        self.service.submit_application(application.id)

        assert self.service.start_review(application.id)
        assert not self.service.start_review(application.id)
        assert self.service.approve_loan(application.id, "7000", "4.25")
        assert self.service.get_application(application.id).approved_amount == Decimal('7000.00')

    def test_reject(self):
        """Rejection records the reason and cannot be repeated"""
        application = self.service.create_application("user1", LoanType.BUSINESS, "50000", 60, "Shop")
        self.service.submit_application(application.id)

        assert self.service.reject_loan(application.id, "Insufficient income")
        rejected = self.service.get_application(application.id)
        assert rejected.status == LoanApplicationStatus.REJECTED
        assert rejected.status_reason == "Insufficient income"
        assert not self.service.reject_loan(application.id, "again")

    def test_cancel(self):
        """Undecided applications can be withdrawn"""
        application = self.service.create_application("user1", LoanType.PERSONAL, "900", 6, "Laptop")
        assert self.service.cancel_application(application.id)
        assert not self.service.cancel_application(application.id)

    def test_disburse(self):
        """Disbursement credits the approved amount under a LOAN reference"""
        application = self._approved()

        assert self.service.disburse_loan(application.id, self.account.id)

        disbursed = self.service.get_application(application.id)
        assert disbursed.status == LoanApplicationStatus.DISBURSED
        assert disbursed.account_id == self.account.id
        assert self.account_manager.get_account(self.account.id).balance.amount == Decimal('15000.00')

        entry = self.history.get_transaction(disbursed.transaction_id)
        assert entry.reference_number == f"LOAN{application.application_number}"
        assert entry.category == "Loan"
        assert len(self.audit.get_events_by_type(AuditEventType.LOAN_DISBURSED)) == 1

        assert not self.service.disburse_loan(application.id, self.account.id)
        assert not self.service.reject_loan(application.id, "too late")

    def test_failed_status_save_rolls_back_disbursement(self, monkeypatch):
        """If the application cannot be saved the credit is undone"""
        application = self._approved()

        def broken_save(application):
            raise RuntimeError("storage unavailable")

        monkeypatch.setattr(self.service, "_save", broken_save)

        assert not self.service.disburse_loan(application.id, self.account.id)

        assert self.service.get_application(application.id).status == LoanApplicationStatus.APPROVED
        assert self.account_manager.get_account(self.account.id).balance.amount == Decimal('0.00')
        assert self.history.get_transactions(self.account.id) == []
        assert self.audit.get_events_by_type(AuditEventType.LOAN_DISBURSED) == []

    def test_disburse_to_foreign_account_refused(self):
        """The money can only go to an account of the applicant"""
        application = self._approved()
        stranger = self.account_manager.open_account("user2", AccountType.CHECKING, "Stranger")

        assert not self.service.disburse_loan(application.id, stranger.id)
        assert self.service.get_application(application.id).status == LoanApplicationStatus.APPROVED
        assert self.account_manager.get_account(stranger.id).balance.amount == Decimal('0.00')

    def test_user_applications_newest_first(self):
        """Listing returns a user's applications newest first"""
        first = self.service.create_application("user1", LoanType.PERSONAL, "100", 6, "A")
        second = self.service.create_application("user1", LoanType.PERSONAL, "200", 6, "B")
        self.service.create_application("user2", LoanType.PERSONAL, "300", 6, "C")

        applications = self.service.get_user_applications("user1")
        assert {a.id for a in applications} == {first.id, second.id}
        assert applications[0].created_at >= applications[1].created_at
