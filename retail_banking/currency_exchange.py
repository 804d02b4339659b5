"""
Currency Exchange Module

Maintains exchange rates and converts money between a user's accounts.
An exchange debits ``amount + fee`` from the source account (entry
``<REF>-DEBIT``) and, when a destination account is given, credits the
converted amount to it (entry ``<REF>-CREDIT``), all in one storage unit.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from enum import Enum
import uuid

from .currency import Money, Currency, quantize, to_money
from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime, as_utc
from .ledger import LedgerService, reports_failure, Amount
from .transactions import TransactionType
from .audit import AuditTrail, AuditEventType
from .notifications import NotificationService
from .references import ReferenceNumberGenerator
from .exceptions import (
    InvalidAmountError, CurrencyMismatchError, InvalidStateError, NotFoundError
)
from .logging_config import get_logger, log_action


CurrencyLike = Union[Currency, str]


def _currency(value: CurrencyLike) -> Currency:
    if isinstance(value, Currency):
        return value
    return Currency.from_code(value)


class ExchangeStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExchangeRate(StorageRecord):
    """Rate quoted as units of ``target_currency`` per unit of ``base_currency``"""
    base_currency: Currency
    target_currency: Currency
    rate: Decimal
    buy_spread: Decimal = Decimal('0')
    sell_spread: Decimal = Decimal('0')
    effective_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True

    def is_current(self, at: Optional[datetime] = None) -> bool:
        """Active and not yet expired"""
        at = as_utc(at) or datetime.now(timezone.utc)
        expiry = as_utc(self.expiry_date)
        return self.is_active and (expiry is None or expiry > at)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['base_currency'] = self.base_currency.code
        result['target_currency'] = self.target_currency.code
        result['effective_date'] = format_datetime(self.effective_date)
        result['expiry_date'] = format_datetime(self.expiry_date)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExchangeRate':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            base_currency=Currency[data['base_currency']],
            target_currency=Currency[data['target_currency']],
            rate=Decimal(data['rate']),
            buy_spread=Decimal(data['buy_spread']),
            sell_spread=Decimal(data['sell_spread']),
            effective_date=parse_datetime(data.get('effective_date')),
            expiry_date=parse_datetime(data.get('expiry_date')),
            is_active=data['is_active']
        )


@dataclass
class CurrencyExchange(StorageRecord):
    """One completed (or attempted) conversion"""
    reference_number: str
    user_id: str
    source_account_id: str
    from_amount: Money
    to_amount: Money
    exchange_rate: Decimal
    fee: Money
    total_cost: Money
    status: ExchangeStatus = ExchangeStatus.PENDING
    destination_account_id: Optional[str] = None
    debit_transaction_id: Optional[str] = None
    credit_transaction_id: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def from_currency(self) -> Currency:
        return self.from_amount.currency

    @property
    def to_currency(self) -> Currency:
        return self.to_amount.currency

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        result['from_currency'] = self.from_currency.code
        result['to_currency'] = self.to_currency.code
        result['exchange_rate'] = str(self.exchange_rate)
        for key in ('from_amount', 'to_amount', 'fee', 'total_cost'):
            result[key] = str(getattr(self, key).amount)
        result['completed_at'] = format_datetime(self.completed_at)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CurrencyExchange':
        source = Currency[data['from_currency']]
        target = Currency[data['to_currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            reference_number=data['reference_number'],
            user_id=data['user_id'],
            source_account_id=data['source_account_id'],
            from_amount=Money(Decimal(data['from_amount']), source),
            to_amount=Money(Decimal(data['to_amount']), target),
            exchange_rate=Decimal(data['exchange_rate']),
            fee=Money(Decimal(data['fee']), source),
            total_cost=Money(Decimal(data['total_cost']), source),
            status=ExchangeStatus(data['status']),
            destination_account_id=data.get('destination_account_id'),
            debit_transaction_id=data.get('debit_transaction_id'),
            credit_transaction_id=data.get('credit_transaction_id'),
            completed_at=parse_datetime(data.get('completed_at'))
        )


class CurrencyExchangeService:
    """
    Exchange rates and conversions between accounts

    Args:
        storage: Storage backend
        ledger: Ledger used for the debit and credit entries
        audit_trail: Audit trail
        notification_service: Optional in-app notifications
        fee_rate: Fee charged on the exchanged amount (0.01 is 1%)
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: LedgerService,
        audit_trail: AuditTrail,
        notification_service: Optional[NotificationService] = None,
        fee_rate: Union[Decimal, str] = Decimal('0.01'),
        max_reference_attempts: int = 5
    ):
        self.storage = storage
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.notification_service = notification_service
        self.fee_rate = Decimal(str(fee_rate))
        self.exchanges_table = "currency_exchanges"
        self.rates_table = "exchange_rates"
        self.logger = get_logger("retail_banking.currency_exchange")
        self._references = ReferenceNumberGenerator(
            storage, table=self.exchanges_table, max_attempts=max_reference_attempts
        )

    # Conversions

    @reports_failure(None)
    def exchange_currency(
        self,
        user_id: str,
        source_account_id: str,
        from_currency: CurrencyLike,
        to_currency: CurrencyLike,
        amount: Amount,
        destination_account_id: Optional[str] = None
    ) -> Optional[CurrencyExchange]:
        """
        Convert ``amount`` of ``from_currency`` held in the source account.

        The source account must belong to ``user_id`` and hold
        ``from_currency``; a destination account must hold ``to_currency``.

        Returns:
            The completed CurrencyExchange, or None when rejected or rolled back
        """
        from_currency = _currency(from_currency)
        to_currency = _currency(to_currency)

        with self.storage.atomic():
            source = self.ledger.require_active_account(source_account_id)
            if source.user_id != user_id:
                raise InvalidStateError(f"Account {source.account_number} does not belong to user {user_id}")
            if source.currency != from_currency:
                raise CurrencyMismatchError(
                    f"Account {source.account_number} holds {source.currency.code}, not {from_currency.code}"
                )

            destination = None
            if destination_account_id:
                destination = self.ledger.require_active_account(destination_account_id)
                if destination.currency != to_currency:
                    raise CurrencyMismatchError(
                        f"Account {destination.account_number} holds {destination.currency.code}, "
                        f"not {to_currency.code}"
                    )

            rate = self.get_exchange_rate(from_currency, to_currency)
            if not rate:
                raise NotFoundError(f"No exchange rate for {from_currency.code}/{to_currency.code}")

            try:
                from_amount = to_money(amount, from_currency)
            except ValueError as e:
                raise InvalidAmountError(str(e))
            if not from_amount.is_positive():
                raise InvalidAmountError(f"Amount must be positive, got {from_amount.amount}")

            fee = from_amount * self.fee_rate
            total_cost = from_amount + fee
            to_amount = Money(from_amount.amount * rate.rate, to_currency)

            now = datetime.now(timezone.utc)
            exchange = CurrencyExchange(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                reference_number=self._references.generate("EXC"),
                user_id=user_id,
                source_account_id=source.id,
                from_amount=from_amount,
                to_amount=to_amount,
                exchange_rate=rate.rate,
                fee=fee,
                total_cost=total_cost,
                destination_account_id=destination.id if destination else None
            )
            self._save(exchange)

            description = (
                f"Currency exchange: {from_amount.amount} {from_currency.code} to {to_currency.code}"
            )
            debit = self.ledger.post_debit(
                source.id, total_cost, description,
                transaction_type=TransactionType.FEE,
                category="Currency Exchange",
                reference_number=f"{exchange.reference_number}-DEBIT"
            )
            exchange.debit_transaction_id = debit.id

            if destination:
                credit = self.ledger.post_credit(
                    destination.id, to_amount, description,
                    transaction_type=TransactionType.DEPOSIT,
                    category="Currency Exchange",
                    reference_number=f"{exchange.reference_number}-CREDIT"
                )
                exchange.credit_transaction_id = credit.id

            exchange.status = ExchangeStatus.COMPLETED
            exchange.completed_at = datetime.now(timezone.utc)
            exchange.updated_at = exchange.completed_at
            self._save(exchange)

            self.audit_trail.log_event(
                event_type=AuditEventType.CURRENCY_EXCHANGE,
                entity_type="currency_exchange",
                entity_id=exchange.id,
                user_id=user_id,
                metadata={
                    "reference_number": exchange.reference_number,
                    "from": from_amount.to_string(),
                    "to": to_amount.to_string(),
                    "rate": rate.rate,
                    "fee": fee.amount
                }
            )

        if self.notification_service:
            self.notification_service.notify_exchange(
                user_id, from_amount.to_string(), to_amount.to_string()
            )
        log_action(
            self.logger, "info", "Currency exchange completed",
            user_id=user_id, action="exchange_currency",
            resource=f"currency_exchange:{exchange.id}",
            extra={
                "reference_number": exchange.reference_number,
                "from": from_amount.to_string(),
                "to": to_amount.to_string()
            }
        )
        return exchange

    def get_exchange(self, exchange_id: str) -> Optional[CurrencyExchange]:
        data = self.storage.load(self.exchanges_table, exchange_id)
        if data:
            return CurrencyExchange.from_dict(data)
        return None

    def get_user_exchanges(self, user_id: str) -> List[CurrencyExchange]:
        """Exchanges of a user, newest first"""
        exchanges = [
            CurrencyExchange.from_dict(data)
            for data in self.storage.find(self.exchanges_table, {"user_id": user_id})
        ]
        exchanges.sort(key=lambda e: e.created_at, reverse=True)
        return exchanges

    # Rates

    def get_exchange_rate(self, base_currency: CurrencyLike,
                          target_currency: CurrencyLike) -> Optional[ExchangeRate]:
        """Current (active, unexpired) rate for a currency pair"""
        base = _currency(base_currency)
        target = _currency(target_currency)
        for data in self.storage.find(self.rates_table, {
            "base_currency": base.code,
            "target_currency": target.code
        }):
            rate = ExchangeRate.from_dict(data)
            if rate.is_current():
                return rate
        return None

    def get_all_rates(self) -> List[ExchangeRate]:
        """Current rates ordered by base then target currency"""
        rates = [ExchangeRate.from_dict(data) for data in self.storage.load_all(self.rates_table)]
        rates = [rate for rate in rates if rate.is_current()]
        rates.sort(key=lambda r: (r.base_currency.code, r.target_currency.code))
        return rates

    def calculate_exchange_amount(self, from_currency: CurrencyLike, to_currency: CurrencyLike,
                                  amount: Union[Decimal, str]) -> Decimal:
        """Converted amount before fees; zero when no current rate exists"""
        target = _currency(to_currency)
        rate = self.get_exchange_rate(from_currency, target)
        if not rate:
            return Decimal('0')
        return quantize(Decimal(str(amount)) * rate.rate, target)

    def update_exchange_rate(
        self,
        base_currency: CurrencyLike,
        target_currency: CurrencyLike,
        rate: Union[Decimal, str],
        buy_spread: Union[Decimal, str] = Decimal('0'),
        sell_spread: Union[Decimal, str] = Decimal('0'),
        expiry_date: Optional[datetime] = None
    ) -> ExchangeRate:
        """
        Insert or update the active rate for a currency pair

        Raises:
            ValueError: If the rate is not positive
        """
        base = _currency(base_currency)
        target = _currency(target_currency)
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValueError("Exchange rate must be positive")
        expiry_date = as_utc(expiry_date)

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            existing = self.storage.find(self.rates_table, {
                "base_currency": base.code,
                "target_currency": target.code,
                "is_active": True
            })
            if existing:
                record = ExchangeRate.from_dict(existing[0])
                record.rate = rate
                record.buy_spread = Decimal(str(buy_spread))
                record.sell_spread = Decimal(str(sell_spread))
                record.expiry_date = expiry_date
                record.updated_at = now
            else:
                record = ExchangeRate(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    base_currency=base,
                    target_currency=target,
                    rate=rate,
                    buy_spread=Decimal(str(buy_spread)),
                    sell_spread=Decimal(str(sell_spread)),
                    effective_date=now,
                    expiry_date=expiry_date
                )
            self.storage.save(self.rates_table, record.id, record.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.EXCHANGE_RATE_UPDATED,
                entity_type="exchange_rate",
                entity_id=record.id,
                metadata={"pair": f"{base.code}/{target.code}", "rate": rate}
            )
        return record

    def _save(self, exchange: CurrencyExchange) -> None:
        self.storage.save(self.exchanges_table, exchange.id, exchange.to_dict())
