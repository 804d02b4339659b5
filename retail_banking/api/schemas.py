"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from ..currency import Money
from ..accounts import Account
from ..transactions import Transaction
from ..bill_payments import BillPayment
from ..currency_exchange import CurrencyExchange, ExchangeRate
from ..scheduled_payments import ScheduledPayment
from ..beneficiaries import Beneficiary
from ..cards import Card
from ..loans import LoanApplication
from ..notifications import Notification


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (USD, EUR, etc.)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# Requests

class OpenAccountRequest(BaseModel):
    user_id: str
    account_type: str = Field(..., description="checking, savings or business")
    name: str
    currency: str = "USD"
    account_number: Optional[str] = None


class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class TransferRequest(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: str
    description: Optional[str] = None


class BeneficiaryTransferRequest(BaseModel):
    amount: str
    description: Optional[str] = None


class CreateBeneficiaryRequest(BaseModel):
    account_id: str
    name: str
    beneficiary_type: str = Field(..., description="internal, external or utility")
    account_number: str
    nickname: Optional[str] = None
    bank_name: Optional[str] = None


class UpdateBeneficiaryRequest(BaseModel):
    nickname: str


class IssueCardRequest(BaseModel):
    account_id: str
    card_type: str = Field(..., description="debit, credit or prepaid")
    cardholder_name: str


class BlockCardRequest(BaseModel):
    reason: str


class UpdateCardLimitsRequest(BaseModel):
    daily_withdrawal_limit: Optional[str] = None
    daily_transaction_limit: Optional[str] = None
    online_transaction_limit: Optional[str] = None


class PinRequest(BaseModel):
    pin: str = Field(..., min_length=4, max_length=6)


class ToggleRequest(BaseModel):
    enabled: bool


class CreateBillPaymentRequest(BaseModel):
    account_id: str
    provider_name: str
    customer_account_number: str
    category: str = Field(..., description="Bill category, e.g. Electricity")
    amount: str
    due_date: datetime
    service_fee: Optional[str] = None


class ExchangeRequest(BaseModel):
    user_id: str
    source_account_id: str
    from_currency: str
    to_currency: str
    amount: str
    destination_account_id: Optional[str] = None


class UpdateRateRequest(BaseModel):
    base_currency: str
    target_currency: str
    rate: str
    buy_spread: str = "0"
    sell_spread: str = "0"
    expiry_date: Optional[datetime] = None


class CreateScheduledPaymentRequest(BaseModel):
    account_id: str
    name: str
    amount: str
    frequency: str = Field(..., description="one_time, daily, weekly, bi_weekly, monthly, quarterly, yearly")
    start_date: datetime
    beneficiary_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    end_date: Optional[datetime] = None
    max_executions: Optional[int] = None


class ProcessDueRequest(BaseModel):
    as_of: Optional[datetime] = None


class LoanCalculationRequest(BaseModel):
    principal: str
    annual_rate: str = Field(..., description="Annual rate in percent, e.g. 5.99")
    term_months: int


class CreateLoanApplicationRequest(BaseModel):
    user_id: str
    loan_type: str
    amount: str
    term_months: int
    purpose: str


class ApproveLoanRequest(BaseModel):
    approved_amount: str
    interest_rate: str


class RejectLoanRequest(BaseModel):
    reason: str


class DisburseLoanRequest(BaseModel):
    account_id: str


# Response serialisers

def account_to_dict(account: Account) -> dict:
    return {
        "id": account.id,
        "account_number": account.account_number,
        "user_id": account.user_id,
        "account_type": account.account_type.value,
        "name": account.name,
        "currency": account.currency.code,
        "balance": MoneyModel.from_money(account.balance).model_dump(),
        "available_balance": MoneyModel.from_money(account.available_balance).model_dump(),
        "is_active": account.is_active,
        "last_transaction_date": _iso(account.last_transaction_date),
        "created_at": account.created_at.isoformat()
    }


def transaction_to_dict(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "reference_number": txn.reference_number,
        "transaction_type": txn.transaction_type.value,
        "amount": MoneyModel.from_money(txn.amount).model_dump(),
        "balance_after": MoneyModel.from_money(txn.balance_after).model_dump(),
        "description": txn.description,
        "category": txn.category,
        "status": txn.status.value,
        "destination_account_id": txn.destination_account_id,
        "beneficiary_id": txn.beneficiary_id,
        "created_at": txn.created_at.isoformat(),
        "completed_at": _iso(txn.completed_at)
    }


def bill_to_dict(bill: BillPayment) -> dict:
    return {
        "id": bill.id,
        "reference_number": bill.reference_number,
        "account_id": bill.account_id,
        "provider_name": bill.provider_name,
        "customer_account_number": bill.customer_account_number,
        "category": bill.category.value,
        "amount": MoneyModel.from_money(bill.amount).model_dump(),
        "service_fee": MoneyModel.from_money(bill.service_fee).model_dump() if bill.service_fee else None,
        "due_date": bill.due_date.isoformat(),
        "status": bill.status.value,
        "paid_at": _iso(bill.paid_at),
        "transaction_id": bill.transaction_id
    }


def exchange_to_dict(exchange: CurrencyExchange) -> dict:
    return {
        "id": exchange.id,
        "reference_number": exchange.reference_number,
        "user_id": exchange.user_id,
        "source_account_id": exchange.source_account_id,
        "destination_account_id": exchange.destination_account_id,
        "from_amount": MoneyModel.from_money(exchange.from_amount).model_dump(),
        "to_amount": MoneyModel.from_money(exchange.to_amount).model_dump(),
        "exchange_rate": str(exchange.exchange_rate),
        "fee": MoneyModel.from_money(exchange.fee).model_dump(),
        "total_cost": MoneyModel.from_money(exchange.total_cost).model_dump(),
        "status": exchange.status.value,
        "completed_at": _iso(exchange.completed_at)
    }


def rate_to_dict(rate: ExchangeRate) -> dict:
    return {
        "id": rate.id,
        "base_currency": rate.base_currency.code,
        "target_currency": rate.target_currency.code,
        "rate": str(rate.rate),
        "buy_spread": str(rate.buy_spread),
        "sell_spread": str(rate.sell_spread),
        "effective_date": _iso(rate.effective_date),
        "expiry_date": _iso(rate.expiry_date)
    }


def scheduled_payment_to_dict(payment: ScheduledPayment) -> dict:
    return {
        "id": payment.id,
        "account_id": payment.account_id,
        "name": payment.name,
        "amount": MoneyModel.from_money(payment.amount).model_dump(),
        "frequency": payment.frequency.value,
        "status": payment.status.value,
        "start_date": payment.start_date.isoformat(),
        "next_execution_date": payment.next_execution_date.isoformat(),
        "end_date": _iso(payment.end_date),
        "execution_count": payment.execution_count,
        "max_executions": payment.max_executions,
        "last_executed_at": _iso(payment.last_executed_at),
        "beneficiary_id": payment.beneficiary_id,
        "destination_account_id": payment.destination_account_id
    }


def beneficiary_to_dict(beneficiary: Beneficiary) -> dict:
    return {
        "id": beneficiary.id,
        "account_id": beneficiary.account_id,
        "name": beneficiary.name,
        "nickname": beneficiary.nickname,
        "beneficiary_type": beneficiary.beneficiary_type.value,
        "account_number": beneficiary.account_number,
        "bank_name": beneficiary.bank_name,
        "is_active": beneficiary.is_active,
        "last_used_at": _iso(beneficiary.last_used_at)
    }


def loan_application_to_dict(application: LoanApplication) -> dict:
    return {
        "id": application.id,
        "application_number": application.application_number,
        "user_id": application.user_id,
        "loan_type": application.loan_type.value,
        "requested_amount": str(application.requested_amount),
        "approved_amount": _str(application.approved_amount),
        "term_months": application.term_months,
        "interest_rate": _str(application.interest_rate),
        "monthly_payment": _str(application.monthly_payment),
        "purpose": application.purpose,
        "status": application.status.value,
        "status_reason": application.status_reason,
        "account_id": application.account_id,
        "submitted_at": _iso(application.submitted_at),
        "approved_at": _iso(application.approved_at),
        "disbursed_at": _iso(application.disbursed_at)
    }


def notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "notification_type": notification.notification_type.value,
        "priority": notification.priority.value,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat()
    }


def card_to_dict(card: Card) -> dict:
    """Card details without the full number or PIN data"""
    return {
        "id": card.id,
        "masked_number": card.masked_number,
        "cardholder_name": card.cardholder_name,
        "card_type": card.card_type.value,
        "account_id": card.account_id,
        "user_id": card.user_id,
        "status": card.status.value,
        "expiry_date": card.expiry_date.isoformat(),
        "daily_withdrawal_limit": MoneyModel.from_money(card.daily_withdrawal_limit).model_dump(),
        "daily_transaction_limit": MoneyModel.from_money(card.daily_transaction_limit).model_dump(),
        "online_transaction_limit": MoneyModel.from_money(card.online_transaction_limit).model_dump(),
        "credit_limit": MoneyModel.from_money(card.credit_limit).model_dump() if card.credit_limit else None,
        "available_credit": (
            MoneyModel.from_money(card.available_credit).model_dump() if card.available_credit else None
        ),
        "online_payments_enabled": card.online_payments_enabled,
        "international_payments_enabled": card.international_payments_enabled,
        "contactless_enabled": card.contactless_enabled,
        "block_reason": card.block_reason,
        "pin_set": card.pin_hash is not None
    }
