"""
Scheduled Payments Module

Recurring transfers to another account or to a beneficiary. Executing a
payment posts the transfer and advances the schedule in one storage unit.
``process_due_payments`` is the sweep an external scheduler (cron, CLI or
the HTTP endpoint) calls; there is no internal timer.
"""

import calendar
from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .currency import Money, Currency, to_money
from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime, as_utc
from .ledger import LedgerService, reports_failure, Amount
from .audit import AuditTrail, AuditEventType
from .exceptions import NotFoundError, InvalidStateError
from .logging_config import get_logger, log_action


class PaymentFrequency(Enum):
    ONE_TIME = "one_time"
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ScheduledPaymentStatus(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def add_months(start: datetime, months: int) -> datetime:
    """Add months to a datetime, clamping to the last day of shorter months"""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def next_execution_date(frequency: PaymentFrequency, start: datetime) -> datetime:
    """Date one period after ``start``; one-time payments do not advance"""
    if frequency == PaymentFrequency.DAILY:
        return start + timedelta(days=1)
    elif frequency == PaymentFrequency.WEEKLY:
        return start + timedelta(days=7)
    elif frequency == PaymentFrequency.BI_WEEKLY:
        return start + timedelta(days=14)
    elif frequency == PaymentFrequency.MONTHLY:
        return add_months(start, 1)
    elif frequency == PaymentFrequency.QUARTERLY:
        return add_months(start, 3)
    elif frequency == PaymentFrequency.YEARLY:
        return add_months(start, 12)
    return start


@dataclass
class ScheduledPayment(StorageRecord):
    """Recurring payment from one account"""
    account_id: str
    name: str
    amount: Money
    frequency: PaymentFrequency
    start_date: datetime
    next_execution_date: datetime
    beneficiary_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    end_date: Optional[datetime] = None
    max_executions: Optional[int] = None
    execution_count: int = 0
    last_executed_at: Optional[datetime] = None
    status: ScheduledPaymentStatus = ScheduledPaymentStatus.ACTIVE

    def is_due(self, as_of: datetime) -> bool:
        return self.status == ScheduledPaymentStatus.ACTIVE and self.next_execution_date <= as_of

    def is_finished(self, as_of: datetime) -> bool:
        """True once no further execution should happen"""
        return (
            self.frequency == PaymentFrequency.ONE_TIME
            or (self.max_executions is not None and self.execution_count >= self.max_executions)
            or (self.end_date is not None and as_of >= self.end_date)
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['currency'] = self.amount.currency.code
        result['amount'] = str(self.amount.amount)
        result['frequency'] = self.frequency.value
        result['status'] = self.status.value
        result['start_date'] = self.start_date.isoformat()
        result['next_execution_date'] = self.next_execution_date.isoformat()
        result['end_date'] = format_datetime(self.end_date)
        result['last_executed_at'] = format_datetime(self.last_executed_at)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduledPayment':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            name=data['name'],
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            frequency=PaymentFrequency(data['frequency']),
            start_date=datetime.fromisoformat(data['start_date']),
            next_execution_date=datetime.fromisoformat(data['next_execution_date']),
            beneficiary_id=data.get('beneficiary_id'),
            destination_account_id=data.get('destination_account_id'),
            end_date=parse_datetime(data.get('end_date')),
            max_executions=data.get('max_executions'),
            execution_count=data['execution_count'],
            last_executed_at=parse_datetime(data.get('last_executed_at')),
            status=ScheduledPaymentStatus(data['status'])
        )


class ScheduledPaymentService:
    """Creates, executes and manages recurring payments"""

    def __init__(self, storage: StorageInterface, ledger: LedgerService, audit_trail: AuditTrail):
        self.storage = storage
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.payments_table = "scheduled_payments"
        self.logger = get_logger("retail_banking.scheduled_payments")

    def create_scheduled_payment(
        self,
        account_id: str,
        name: str,
        amount: Amount,
        frequency: PaymentFrequency,
        start_date: datetime,
        beneficiary_id: Optional[str] = None,
        destination_account_id: Optional[str] = None,
        end_date: Optional[datetime] = None,
        max_executions: Optional[int] = None
    ) -> ScheduledPayment:
        """
        Schedule a payment; the first execution is due at ``start_date``

        Raises:
            ValueError: If neither a beneficiary nor a destination account is
                given, the account does not exist or the amount is not positive
        """
        if beneficiary_id is None and destination_account_id is None:
            raise ValueError("Either beneficiary or destination account must be specified")

        account = self.ledger.account_manager.get_account(account_id)
        if not account:
            raise ValueError(f"Account {account_id} not found")
        money = to_money(amount, account.currency)
        if not money.is_positive():
            raise ValueError("Scheduled amount must be positive")
        if max_executions is not None and max_executions < 1:
            raise ValueError("max_executions must be at least 1")

        start_date = as_utc(start_date)
        now = datetime.now(timezone.utc)
        payment = ScheduledPayment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            name=name,
            amount=money,
            frequency=frequency,
            start_date=start_date,
            next_execution_date=start_date,
            beneficiary_id=beneficiary_id,
            destination_account_id=destination_account_id,
            end_date=as_utc(end_date),
            max_executions=max_executions
        )

        with self.storage.atomic():
            self._save(payment)
            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULED_PAYMENT_CREATED,
                entity_type="scheduled_payment",
                entity_id=payment.id,
                user_id=account.user_id,
                metadata={
                    "name": name,
                    "amount": money.amount,
                    "frequency": frequency.value,
                    "start_date": start_date
                }
            )
        return payment

    def get_scheduled_payments(self, account_id: str) -> List[ScheduledPayment]:
        """All payments of an account, soonest first"""
        payments = [
            ScheduledPayment.from_dict(data)
            for data in self.storage.find(self.payments_table, {"account_id": account_id})
        ]
        payments.sort(key=lambda p: p.next_execution_date)
        return payments

    def get_scheduled_payment(self, payment_id: str) -> Optional[ScheduledPayment]:
        data = self.storage.load(self.payments_table, payment_id)
        if data:
            return ScheduledPayment.from_dict(data)
        return None

    def get_due_payments(self, as_of: Optional[datetime] = None) -> List[ScheduledPayment]:
        """Active payments whose next execution date has arrived"""
        as_of = as_utc(as_of) or datetime.now(timezone.utc)
        payments = [
            ScheduledPayment.from_dict(data)
            for data in self.storage.find(self.payments_table, {
                "status": ScheduledPaymentStatus.ACTIVE.value
            })
        ]
        due = [p for p in payments if p.is_due(as_of)]
        due.sort(key=lambda p: p.next_execution_date)
        return due

    def pause_scheduled_payment(self, payment_id: str) -> bool:
        return self._change_status(payment_id, ScheduledPaymentStatus.ACTIVE, ScheduledPaymentStatus.PAUSED)

    def resume_scheduled_payment(self, payment_id: str) -> bool:
        """Reactivate a paused payment; a missed date moves one period past now"""
        return self._change_status(payment_id, ScheduledPaymentStatus.PAUSED, ScheduledPaymentStatus.ACTIVE)

    def cancel_scheduled_payment(self, payment_id: str) -> bool:
        return self._change_status(payment_id, None, ScheduledPaymentStatus.CANCELLED)

    def _change_status(self, payment_id: str, required: Optional[ScheduledPaymentStatus],
                       new_status: ScheduledPaymentStatus) -> bool:
        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            payment = self.get_scheduled_payment(payment_id)
            if not payment:
                return False
            if required is not None and payment.status != required:
                return False

            old_status = payment.status
            payment.status = new_status
            if new_status == ScheduledPaymentStatus.ACTIVE and payment.next_execution_date < now:
                payment.next_execution_date = next_execution_date(payment.frequency, now)
            payment.updated_at = now
            self._save(payment)

            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULED_PAYMENT_STATUS_CHANGED,
                entity_type="scheduled_payment",
                entity_id=payment.id,
                metadata={"from": old_status.value, "to": new_status.value}
            )
        return True

    @reports_failure(False)
    def execute_scheduled_payment(self, payment_id: str, as_of: Optional[datetime] = None) -> bool:
        """
        Post one execution of an active payment and advance its schedule.

        Args:
            payment_id: Payment to execute
            as_of: Execution time (now when omitted); the next date is one
                period after it

        Returns:
            True when the transfer and the schedule update committed
        """
        as_of = as_utc(as_of) or datetime.now(timezone.utc)
        with self.storage.atomic():
            payment = self.get_scheduled_payment(payment_id)
            if not payment:
                raise NotFoundError(f"Scheduled payment {payment_id} not found")
            if payment.status != ScheduledPaymentStatus.ACTIVE:
                raise InvalidStateError(f"Scheduled payment {payment_id} is {payment.status.value}")

            description = f"Scheduled: {payment.name}"
            if payment.destination_account_id:
                entry, _ = self.ledger.post_transfer(
                    payment.account_id, payment.destination_account_id, payment.amount, description
                )
            else:
                entry = self.ledger.post_beneficiary_transfer(
                    payment.account_id, payment.beneficiary_id, payment.amount, description
                )

            payment.last_executed_at = as_of
            payment.execution_count += 1
            if payment.is_finished(as_of):
                payment.status = ScheduledPaymentStatus.COMPLETED
            else:
                payment.next_execution_date = next_execution_date(payment.frequency, as_of)
            payment.updated_at = datetime.now(timezone.utc)
            self._save(payment)

            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULED_PAYMENT_EXECUTED,
                entity_type="scheduled_payment",
                entity_id=payment.id,
                metadata={
                    "transaction_id": entry.id,
                    "reference_number": entry.reference_number,
                    "execution_count": payment.execution_count,
                    "status": payment.status.value
                }
            )

        log_action(
            self.logger, "info", "Scheduled payment executed",
            action="execute_scheduled_payment", resource=f"scheduled_payment:{payment.id}",
            extra={
                "reference_number": entry.reference_number,
                "execution_count": payment.execution_count,
                "status": payment.status.value
            }
        )
        return True

    def process_due_payments(self, as_of: Optional[datetime] = None) -> int:
        """
        Execute every due payment independently.

        A failing payment is logged and skipped; the sweep carries on.

        Returns:
            Number of payments executed successfully
        """
        as_of = as_utc(as_of) or datetime.now(timezone.utc)
        due = self.get_due_payments(as_of)
        processed = 0

        for payment in due:
            if self.execute_scheduled_payment(payment.id, as_of=as_of):
                processed += 1
            else:
                log_action(
                    self.logger, "warning", "Scheduled payment skipped",
                    action="process_due_payments", resource=f"scheduled_payment:{payment.id}"
                )

        log_action(
            self.logger, "info", "Due payment sweep finished",
            action="process_due_payments",
            extra={"due": len(due), "processed": processed}
        )
        return processed

    def _save(self, payment: ScheduledPayment) -> None:
        self.storage.save(self.payments_table, payment.id, payment.to_dict())
