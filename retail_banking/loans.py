"""
Loans Module

Fixed-payment (EMI) loan calculator and the loan application lifecycle:

    draft -> submitted -> (under_review) -> approved -> disbursed

Applications can be rejected at any point before disbursement. Disbursement
credits the approved amount to one of the applicant's accounts in the same
storage unit that marks the application disbursed.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Union
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime
from .ledger import LedgerService, reports_failure
from .transactions import TransactionType
from .audit import AuditTrail, AuditEventType
from .notifications import NotificationService
from .references import ReferenceNumberGenerator
from .exceptions import NotFoundError, InvalidStateError, InvalidAmountError
from .logging_config import get_logger, log_action


TWO_PLACES = Decimal('0.01')

Number = Union[Decimal, int, str]


class LoanQuote(NamedTuple):
    """Result of the loan calculator"""
    monthly_payment: Decimal
    total_interest: Decimal
    total_payment: Decimal


def _round2(value: Decimal) -> Decimal:
    rounded = value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    # Avoid "-0.00" from tiny negative residues
    return rounded if rounded else abs(rounded)


def calculate_loan(principal: Number, annual_rate: Number, term_months: int) -> LoanQuote:
    """
    Fixed monthly payment for an amortising loan.

    Uses ``P * r * (1+r)^n / ((1+r)^n - 1)`` with ``r`` the monthly rate,
    or ``P / n`` when the rate is zero. ``total_payment`` is the unrounded
    monthly payment times ``n``; all three results are rounded to cents.

    Args:
        principal: Amount borrowed
        annual_rate: Annual interest rate in percent (5.99 means 5.99%)
        term_months: Number of monthly payments

    Raises:
        ValueError: If principal or term is not positive, or the rate is negative
    """
    principal = Decimal(str(principal))
    annual_rate = Decimal(str(annual_rate))
    if principal <= 0:
        raise ValueError("Principal must be positive")
    if term_months <= 0:
        raise ValueError("Term must be at least one month")
    if annual_rate < 0:
        raise ValueError("Interest rate cannot be negative")

    monthly_rate = annual_rate / Decimal('100') / Decimal('12')

    if monthly_rate == 0:
        monthly_payment = principal / Decimal(term_months)
    else:
        factor = (Decimal('1') + monthly_rate) ** term_months
        monthly_payment = principal * monthly_rate * factor / (factor - Decimal('1'))

    total_payment = monthly_payment * Decimal(term_months)
    total_interest = total_payment - principal

    return LoanQuote(
        monthly_payment=_round2(monthly_payment),
        total_interest=_round2(total_interest),
        total_payment=_round2(total_payment)
    )


class LoanType(Enum):
    PERSONAL = "personal"
    HOME = "home"
    AUTO = "auto"
    EDUCATION = "education"
    BUSINESS = "business"


class LoanApplicationStatus(Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    CANCELLED = "cancelled"


@dataclass
class LoanApplication(StorageRecord):
    """Loan application and its decision"""
    application_number: str
    user_id: str
    loan_type: LoanType
    requested_amount: Decimal
    term_months: int
    purpose: str
    status: LoanApplicationStatus = LoanApplicationStatus.DRAFT
    approved_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None   # Annual percent
    monthly_payment: Optional[Decimal] = None
    status_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None
    account_id: Optional[str] = None          # Disbursement account
    transaction_id: Optional[str] = None      # Disbursement entry

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['loan_type'] = self.loan_type.value
        result['status'] = self.status.value
        for key in ('submitted_at', 'reviewed_at', 'approved_at', 'disbursed_at'):
            result[key] = format_datetime(getattr(self, key))
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanApplication':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['loan_type'] = LoanType(data['loan_type'])
        data['status'] = LoanApplicationStatus(data['status'])
        data['requested_amount'] = Decimal(data['requested_amount'])
        for key in ('approved_amount', 'interest_rate', 'monthly_payment'):
            if data.get(key) is not None:
                data[key] = Decimal(data[key])
        for key in ('submitted_at', 'reviewed_at', 'approved_at', 'disbursed_at'):
            data[key] = parse_datetime(data.get(key))
        return cls(**data)


class LoanService:
    """Loan application lifecycle"""

    def __init__(
        self,
        storage: StorageInterface,
        ledger: LedgerService,
        audit_trail: AuditTrail,
        notification_service: Optional[NotificationService] = None,
        max_reference_attempts: int = 5
    ):
        self.storage = storage
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.notification_service = notification_service
        self.applications_table = "loan_applications"
        self.logger = get_logger("retail_banking.loans")
        self._numbers = ReferenceNumberGenerator(
            storage,
            table=self.applications_table,
            field="application_number",
            timestamp_format="%Y%m%d",
            suffix_digits=5,
            max_attempts=max_reference_attempts
        )

    def calculate_loan(self, principal: Number, annual_rate: Number, term_months: int) -> LoanQuote:
        return calculate_loan(principal, annual_rate, term_months)

    def create_application(
        self,
        user_id: str,
        loan_type: LoanType,
        amount: Number,
        term_months: int,
        purpose: str
    ) -> LoanApplication:
        """
        Start a draft application

        Raises:
            ValueError: If the amount or term is not positive
        """
        amount = _round2(Decimal(str(amount)))
        if amount <= 0:
            raise ValueError("Requested amount must be positive")
        if term_months <= 0:
            raise ValueError("Term must be at least one month")

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            application = LoanApplication(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                application_number=self._numbers.generate("LA"),
                user_id=user_id,
                loan_type=loan_type,
                requested_amount=amount,
                term_months=term_months,
                purpose=purpose
            )
            self._save(application)
            self._audit(AuditEventType.LOAN_APPLICATION_CREATED, application, {
                "loan_type": loan_type.value,
                "requested_amount": amount,
                "term_months": term_months
            })
        return application

    def get_application(self, application_id: str) -> Optional[LoanApplication]:
        data = self.storage.load(self.applications_table, application_id)
        if data:
            return LoanApplication.from_dict(data)
        return None

    def get_user_applications(self, user_id: str) -> List[LoanApplication]:
        """Applications of a user, newest first"""
        applications = [
            LoanApplication.from_dict(data)
            for data in self.storage.find(self.applications_table, {"user_id": user_id})
        ]
        applications.sort(key=lambda a: a.created_at, reverse=True)
        return applications

    @reports_failure(None)
    def submit_application(self, application_id: str) -> Optional[LoanApplication]:
        """Move a draft to submitted; None when missing or not a draft"""
        with self.storage.atomic():
            application = self._require(application_id, LoanApplicationStatus.DRAFT)
            application.status = LoanApplicationStatus.SUBMITTED
            application.submitted_at = datetime.now(timezone.utc)
            application.updated_at = application.submitted_at
            self._save(application)
            self._audit(AuditEventType.LOAN_APPLICATION_SUBMITTED, application)
        return application

    @reports_failure(False)
    def start_review(self, application_id: str) -> bool:
        with self.storage.atomic():
            application = self._require(application_id, LoanApplicationStatus.SUBMITTED)
            application.status = LoanApplicationStatus.UNDER_REVIEW
            application.reviewed_at = datetime.now(timezone.utc)
            application.updated_at = application.reviewed_at
            self._save(application)
        return True

    @reports_failure(False)
    def approve_loan(self, application_id: str, approved_amount: Number, interest_rate: Number) -> bool:
        """
        Approve a submitted or under-review application and fix its
        monthly payment from the approved amount, rate and term
        """
        approved_amount = _round2(Decimal(str(approved_amount)))
        interest_rate = Decimal(str(interest_rate))
        if approved_amount <= 0:
            raise InvalidAmountError("Approved amount must be positive")

        with self.storage.atomic():
            application = self._require(
                application_id, LoanApplicationStatus.SUBMITTED, LoanApplicationStatus.UNDER_REVIEW
            )
            quote = calculate_loan(approved_amount, interest_rate, application.term_months)

            now = datetime.now(timezone.utc)
            application.approved_amount = approved_amount
            application.interest_rate = interest_rate
            application.monthly_payment = quote.monthly_payment
            application.status = LoanApplicationStatus.APPROVED
            application.approved_at = now
            application.updated_at = now
            self._save(application)
            self._audit(AuditEventType.LOAN_APPROVED, application, {
                "approved_amount": approved_amount,
                "interest_rate": interest_rate,
                "monthly_payment": quote.monthly_payment
            })

        if self.notification_service:
            self.notification_service.notify_loan(
                application.user_id,
                "Loan Approved",
                f"Application {application.application_number} approved for {approved_amount}"
            )
        return True

    @reports_failure(False)
    def reject_loan(self, application_id: str, reason: str) -> bool:
        """Reject an application that is neither disbursed nor already rejected"""
        with self.storage.atomic():
            application = self._require(application_id)
            if application.status in (LoanApplicationStatus.DISBURSED, LoanApplicationStatus.REJECTED):
                raise InvalidStateError(
                    f"Application {application.application_number} is {application.status.value}"
                )

            application.status = LoanApplicationStatus.REJECTED
            application.status_reason = reason
            application.reviewed_at = datetime.now(timezone.utc)
            application.updated_at = application.reviewed_at
            self._save(application)
            self._audit(AuditEventType.LOAN_REJECTED, application, {"reason": reason})
        return True

    @reports_failure(False)
    def cancel_application(self, application_id: str) -> bool:
        """Withdraw an application that has not been decided yet"""
        with self.storage.atomic():
            application = self._require(
                application_id,
                LoanApplicationStatus.DRAFT,
                LoanApplicationStatus.SUBMITTED,
                LoanApplicationStatus.UNDER_REVIEW
            )
            application.status = LoanApplicationStatus.CANCELLED
            application.updated_at = datetime.now(timezone.utc)
            self._save(application)
        return True

    @reports_failure(False)
    def disburse_loan(self, application_id: str, account_id: str) -> bool:
        """
        Credit the approved amount to an account owned by the applicant.

        The deposit entry uses reference ``LOAN<application_number>``.
        """
        with self.storage.atomic():
            application = self._require(application_id, LoanApplicationStatus.APPROVED)
            account = self.ledger.require_active_account(account_id)
            if account.user_id != application.user_id:
                raise InvalidStateError(
                    f"Account {account.account_number} does not belong to the applicant"
                )

            entry = self.ledger.post_credit(
                account.id,
                application.approved_amount,
                f"Loan disbursement: {application.loan_type.value}",
                transaction_type=TransactionType.DEPOSIT,
                category="Loan",
                reference_number=f"LOAN{application.application_number}"
            )

            application.status = LoanApplicationStatus.DISBURSED
            application.disbursed_at = entry.completed_at
            application.account_id = account.id
            application.transaction_id = entry.id
            application.updated_at = entry.completed_at
            self._save(application)
            self._audit(AuditEventType.LOAN_DISBURSED, application, {
                "account_id": account.id,
                "transaction_id": entry.id,
                "amount": application.approved_amount
            })

        if self.notification_service:
            self.notification_service.notify_loan(
                application.user_id,
                "Loan Disbursed",
                f"{application.approved_amount} credited to account {account.account_number}"
            )
        log_action(
            self.logger, "info", "Loan disbursed",
            user_id=application.user_id, action="disburse_loan",
            resource=f"loan_application:{application.id}",
            extra={"reference_number": entry.reference_number, "amount": str(application.approved_amount)}
        )
        return True

    def _require(self, application_id: str, *allowed: LoanApplicationStatus) -> LoanApplication:
        application = self.get_application(application_id)
        if not application:
            raise NotFoundError(f"Loan application {application_id} not found")
        if allowed and application.status not in allowed:
            raise InvalidStateError(
                f"Application {application.application_number} is {application.status.value}"
            )
        return application

    def _audit(self, event_type: AuditEventType, application: LoanApplication,
               metadata: Optional[Dict[str, Any]] = None) -> None:
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="loan_application",
            entity_id=application.id,
            user_id=application.user_id,
            metadata=dict(metadata or {}, application_number=application.application_number)
        )

    def _save(self, application: LoanApplication) -> None:
        self.storage.save(self.applications_table, application.id, application.to_dict())
