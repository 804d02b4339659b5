"""
Bill Payment Module

Bills are created PENDING and paid from their account in one storage unit:
the bill moves PENDING -> PROCESSING -> PAID together with the debit entry.
If the unit fails the bill is marked FAILED afterwards; a bill that simply
cannot be covered yet stays PENDING.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .currency import Money, Currency, to_money
from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime, as_utc
from .accounts import AccountManager
from .ledger import LedgerService, reports_failure, Amount
from .transactions import TransactionType
from .audit import AuditTrail, AuditEventType
from .notifications import NotificationService
from .references import ReferenceNumberGenerator
from .exceptions import NotFoundError, InvalidStateError, InsufficientFundsError
from .logging_config import get_logger, log_action


class BillCategory(Enum):
    """Biller categories; values double as ledger entry categories"""
    ELECTRICITY = "Electricity"
    WATER = "Water"
    GAS = "Gas"
    INTERNET = "Internet"
    PHONE = "Phone"
    CABLE_TV = "CableTV"
    INSURANCE = "Insurance"
    CREDIT_CARD = "CreditCard"
    MORTGAGE = "Mortgage"
    RENT = "Rent"
    OTHER = "Other"


class BillPaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class BillPayment(StorageRecord):
    """A bill to be paid from one account"""
    reference_number: str
    account_id: str
    provider_name: str
    customer_account_number: str
    category: BillCategory
    amount: Money
    due_date: datetime
    service_fee: Optional[Money] = None
    status: BillPaymentStatus = BillPaymentStatus.PENDING
    paid_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @property
    def total_amount(self) -> Money:
        """Amount plus service fee"""
        if self.service_fee:
            return self.amount + self.service_fee
        return self.amount

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['category'] = self.category.value
        result['status'] = self.status.value
        result['currency'] = self.amount.currency.code
        result['amount'] = str(self.amount.amount)
        result['service_fee'] = str(self.service_fee.amount) if self.service_fee else None
        result['due_date'] = self.due_date.isoformat()
        result['paid_at'] = format_datetime(self.paid_at)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BillPayment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            reference_number=data['reference_number'],
            account_id=data['account_id'],
            provider_name=data['provider_name'],
            customer_account_number=data['customer_account_number'],
            category=BillCategory(data['category']),
            amount=Money(Decimal(data['amount']), currency),
            due_date=datetime.fromisoformat(data['due_date']),
            service_fee=Money(Decimal(data['service_fee']), currency) if data.get('service_fee') else None,
            status=BillPaymentStatus(data['status']),
            paid_at=parse_datetime(data.get('paid_at')),
            transaction_id=data.get('transaction_id')
        )


class BillPaymentService:
    """Creates, pays, lists and cancels bills"""

    def __init__(
        self,
        storage: StorageInterface,
        ledger: LedgerService,
        audit_trail: AuditTrail,
        notification_service: Optional[NotificationService] = None,
        upcoming_days: int = 30,
        max_reference_attempts: int = 5
    ):
        self.storage = storage
        self.ledger = ledger
        self.account_manager: AccountManager = ledger.account_manager
        self.audit_trail = audit_trail
        self.notification_service = notification_service
        self.upcoming_days = upcoming_days
        self.bills_table = "bill_payments"
        self.logger = get_logger("retail_banking.bill_payments")
        self._references = ReferenceNumberGenerator(
            storage, table=self.bills_table, max_attempts=max_reference_attempts
        )

    def create_bill_payment(
        self,
        account_id: str,
        provider_name: str,
        customer_account_number: str,
        category: BillCategory,
        amount: Amount,
        due_date: datetime,
        service_fee: Optional[Amount] = None
    ) -> BillPayment:
        """
        Register a pending bill

        Raises:
            ValueError: If the account does not exist or the amount is not positive
        """
        account = self.account_manager.get_account(account_id)
        if not account:
            raise ValueError(f"Account {account_id} not found")

        money = to_money(amount, account.currency)
        if not money.is_positive():
            raise ValueError("Bill amount must be positive")
        fee = to_money(service_fee, account.currency) if service_fee is not None else None
        if fee is not None and fee.is_negative():
            raise ValueError("Service fee cannot be negative")
        due_date = as_utc(due_date)

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            bill = BillPayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                reference_number=self._references.generate("BILL"),
                account_id=account_id,
                provider_name=provider_name,
                customer_account_number=customer_account_number,
                category=category,
                amount=money,
                due_date=due_date,
                service_fee=fee
            )
            self._save(bill)
            self.audit_trail.log_event(
                event_type=AuditEventType.BILL_CREATED,
                entity_type="bill_payment",
                entity_id=bill.id,
                user_id=account.user_id,
                metadata={
                    "reference_number": bill.reference_number,
                    "provider_name": provider_name,
                    "amount": money.amount,
                    "due_date": due_date
                }
            )
        return bill

    @reports_failure(False)
    def pay_bill(self, bill_payment_id: str) -> bool:
        """
        Pay a pending bill (amount plus service fee) from its account.

        Returns:
            True when the bill is PAID. False when it is missing, not
            pending, not yet covered by the available balance (stays
            PENDING), or the payment unit failed (marked FAILED).
        """
        bill = self.get_bill_payment(bill_payment_id)
        if not bill:
            raise NotFoundError(f"Bill payment {bill_payment_id} not found")
        if bill.status != BillPaymentStatus.PENDING:
            raise InvalidStateError(f"Bill {bill.reference_number} is {bill.status.value}")

        account = self.account_manager.get_account(bill.account_id)
        if not account:
            raise NotFoundError(f"Account {bill.account_id} not found")
        total = bill.total_amount
        if account.available_balance < total:
            raise InsufficientFundsError(
                f"Bill {bill.reference_number} needs {total.to_string()}, "
                f"available {account.available_balance.to_string()}"
            )

        try:
            with self.storage.atomic():
                bill.status = BillPaymentStatus.PROCESSING
                bill.updated_at = datetime.now(timezone.utc)
                self._save(bill)

                entry = self.ledger.post_debit(
                    bill.account_id,
                    total,
                    f"Bill payment: {bill.provider_name}",
                    transaction_type=TransactionType.BILL_PAYMENT,
                    category=bill.category.value,
                    reference_number=bill.reference_number
                )

                bill.status = BillPaymentStatus.PAID
                bill.paid_at = entry.completed_at
                bill.transaction_id = entry.id
                bill.updated_at = entry.completed_at
                self._save(bill)

                self.audit_trail.log_event(
                    event_type=AuditEventType.BILL_PAID,
                    entity_type="bill_payment",
                    entity_id=bill.id,
                    user_id=account.user_id,
                    metadata={
                        "reference_number": bill.reference_number,
                        "transaction_id": entry.id,
                        "amount": total.amount
                    }
                )
        except Exception:
            self._mark_failed(bill_payment_id, account.user_id)
            raise

        if self.notification_service:
            self.notification_service.notify_bill_payment(
                account.user_id, bill.provider_name, total.to_string(), paid=True
            )
        log_action(
            self.logger, "info", "Bill paid",
            user_id=account.user_id, action="pay_bill", resource=f"bill_payment:{bill.id}",
            extra={"reference_number": bill.reference_number, "amount": str(total.amount)}
        )
        return True

    def _mark_failed(self, bill_payment_id: str, user_id: str) -> None:
        # Runs after the payment unit rolled back, so the bill is PENDING again
        with self.storage.atomic():
            bill = self.get_bill_payment(bill_payment_id)
            bill.status = BillPaymentStatus.FAILED
            bill.updated_at = datetime.now(timezone.utc)
            self._save(bill)
            self.audit_trail.log_event(
                event_type=AuditEventType.BILL_FAILED,
                entity_type="bill_payment",
                entity_id=bill.id,
                user_id=user_id,
                metadata={"reference_number": bill.reference_number}
            )

        if self.notification_service:
            self.notification_service.notify_bill_payment(
                user_id, bill.provider_name, bill.total_amount.to_string(), paid=False
            )

    def get_bill_payment(self, bill_payment_id: str) -> Optional[BillPayment]:
        data = self.storage.load(self.bills_table, bill_payment_id)
        if data:
            return BillPayment.from_dict(data)
        return None

    def get_bill_payments(self, account_id: str,
                          status: Optional[BillPaymentStatus] = None) -> List[BillPayment]:
        """Bills of an account, latest due date first"""
        filters = {"account_id": account_id}
        if status:
            filters["status"] = status.value

        bills = [BillPayment.from_dict(data) for data in self.storage.find(self.bills_table, filters)]
        bills.sort(key=lambda b: b.due_date, reverse=True)
        return bills

    def get_upcoming_bills(self, account_id: str, days_ahead: Optional[int] = None) -> List[BillPayment]:
        """Pending bills due within ``days_ahead`` days, earliest first"""
        if days_ahead is None:
            days_ahead = self.upcoming_days
        cutoff = datetime.now(timezone.utc) + timedelta(days=days_ahead)

        bills = [
            bill for bill in self.get_bill_payments(account_id, BillPaymentStatus.PENDING)
            if bill.due_date <= cutoff
        ]
        bills.sort(key=lambda b: b.due_date)
        return bills

    def cancel_bill_payment(self, bill_payment_id: str) -> bool:
        """Cancel a pending bill"""
        with self.storage.atomic():
            bill = self.get_bill_payment(bill_payment_id)
            if not bill or bill.status != BillPaymentStatus.PENDING:
                return False

            bill.status = BillPaymentStatus.CANCELLED
            bill.updated_at = datetime.now(timezone.utc)
            self._save(bill)
            self.audit_trail.log_event(
                event_type=AuditEventType.BILL_CANCELLED,
                entity_type="bill_payment",
                entity_id=bill.id,
                metadata={"reference_number": bill.reference_number}
            )
        return True

    def _save(self, bill: BillPayment) -> None:
        self.storage.save(self.bills_table, bill.id, bill.to_dict())
