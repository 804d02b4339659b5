"""
Card Management Module

Debit, credit and prepaid cards linked to an account. Cards are never
deleted: blocking, freezing and cancelling only change their status, and
a cancelled card cannot be changed again. PINs are stored as salted
scrypt hashes; too many wrong PINs block the card.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import hashlib
import secrets
import uuid

from .currency import Money, Currency, to_money
from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime
from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .references import ReferenceNumberGenerator
from .ledger import Amount
from .logging_config import get_logger, log_action


class CardType(Enum):
    DEBIT = "debit"
    CREDIT = "credit"
    PREPAID = "prepaid"


class CardStatus(Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    FROZEN = "frozen"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


CARD_BIN = "4532"
CARD_VALIDITY_YEARS = 3

DEFAULT_DAILY_WITHDRAWAL_LIMIT = Decimal('5000')
DEFAULT_DAILY_TRANSACTION_LIMIT = Decimal('10000')
DEFAULT_ONLINE_TRANSACTION_LIMIT = Decimal('5000')
DEFAULT_CREDIT_LIMIT = Decimal('10000')

LIMIT_FIELDS = ('daily_withdrawal_limit', 'daily_transaction_limit', 'online_transaction_limit')


@dataclass
class Card(StorageRecord):
    """Payment card issued against an account"""
    card_number: str
    cardholder_name: str
    card_type: CardType
    account_id: str
    user_id: str
    currency: Currency
    expiry_date: datetime
    daily_withdrawal_limit: Money
    daily_transaction_limit: Money
    online_transaction_limit: Money
    status: CardStatus = CardStatus.ACTIVE
    credit_limit: Optional[Money] = None
    available_credit: Optional[Money] = None
    online_payments_enabled: bool = True
    international_payments_enabled: bool = False
    contactless_enabled: bool = True
    blocked_at: Optional[datetime] = None
    block_reason: Optional[str] = None
    pin_hash: Optional[str] = None
    pin_salt: Optional[str] = None
    pin_attempts: int = 0
    last_pin_attempt: Optional[datetime] = None

    @property
    def masked_number(self) -> str:
        return f"**** **** **** {self.card_number[-4:]}"

    def is_expired(self, at: Optional[datetime] = None) -> bool:
        return self.expiry_date <= (at or datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['card_type'] = self.card_type.value
        result['status'] = self.status.value
        result['currency'] = self.currency.code
        result['expiry_date'] = self.expiry_date.isoformat()
        for key in LIMIT_FIELDS + ('credit_limit', 'available_credit'):
            value = getattr(self, key)
            result[key] = str(value.amount) if value is not None else None
        result['blocked_at'] = format_datetime(self.blocked_at)
        result['last_pin_attempt'] = format_datetime(self.last_pin_attempt)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Card':
        data = dict(data)
        currency = Currency[data['currency']]
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['card_type'] = CardType(data['card_type'])
        data['status'] = CardStatus(data['status'])
        data['currency'] = currency
        data['expiry_date'] = datetime.fromisoformat(data['expiry_date'])
        for key in LIMIT_FIELDS + ('credit_limit', 'available_credit'):
            if data.get(key) is not None:
                data[key] = Money(Decimal(data[key]), currency)
        data['blocked_at'] = parse_datetime(data.get('blocked_at'))
        data['last_pin_attempt'] = parse_datetime(data.get('last_pin_attempt'))
        return cls(**data)


def _hash_pin(pin: str, salt: str) -> str:
    return hashlib.scrypt(pin.encode(), salt=salt.encode(), n=16384, r=8, p=1).hex()


class CardManager:
    """
    Issues cards and manages their status, limits, PIN and settings

    Args:
        storage: Storage backend
        account_manager: Used to check the linked account
        audit_trail: Audit trail
        max_pin_attempts: Wrong PINs allowed before the card is blocked
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        audit_trail: AuditTrail,
        max_pin_attempts: int = 3,
        max_reference_attempts: int = 5
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.max_pin_attempts = max_pin_attempts
        self.cards_table = "cards"
        self.logger = get_logger("retail_banking.cards")
        self._numbers = ReferenceNumberGenerator(
            storage,
            table=self.cards_table,
            field="card_number",
            timestamp_format="",
            suffix_digits=12,
            max_attempts=max_reference_attempts
        )

    def issue_card(self, account_id: str, card_type: CardType, cardholder_name: str) -> Card:
        """
        Issue a new active card for an account

        Credit cards start with the default credit limit fully available.

        Raises:
            ValueError: If the account does not exist or is inactive
        """
        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            account = self.account_manager.get_account(account_id)
            if not account or not account.is_active:
                raise ValueError(f"Account {account_id} not found or inactive")

            currency = account.currency
            card = Card(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                card_number=self._numbers.generate(CARD_BIN),
                cardholder_name=cardholder_name,
                card_type=card_type,
                account_id=account.id,
                user_id=account.user_id,
                currency=currency,
                expiry_date=now + timedelta(days=365 * CARD_VALIDITY_YEARS),
                daily_withdrawal_limit=Money(DEFAULT_DAILY_WITHDRAWAL_LIMIT, currency),
                daily_transaction_limit=Money(DEFAULT_DAILY_TRANSACTION_LIMIT, currency),
                online_transaction_limit=Money(DEFAULT_ONLINE_TRANSACTION_LIMIT, currency)
            )
            if card_type == CardType.CREDIT:
                card.credit_limit = Money(DEFAULT_CREDIT_LIMIT, currency)
                card.available_credit = card.credit_limit
            self.save_card(card)

            self.audit_trail.log_event(
                event_type=AuditEventType.CARD_ISSUED,
                entity_type="card",
                entity_id=card.id,
                user_id=card.user_id,
                metadata={
                    "account_number": account.account_number,
                    "card_type": card_type.value,
                    "last4": card.card_number[-4:]
                }
            )

        log_action(
            self.logger, "info", "Card issued",
            user_id=card.user_id, action="issue_card", resource=f"card:{card.id}",
            extra={"account_id": account.id, "card_type": card_type.value}
        )
        return card

    def get_card(self, card_id: str) -> Optional[Card]:
        data = self.storage.load(self.cards_table, card_id)
        if data:
            return Card.from_dict(data)
        return None

    def get_card_by_number(self, card_number: str) -> Optional[Card]:
        cards = self.storage.find(self.cards_table, {"card_number": card_number})
        if cards:
            return Card.from_dict(cards[0])
        return None

    def get_account_cards(self, account_id: str) -> List[Card]:
        """Cards of an account, newest first"""
        return self._newest_first(self.storage.find(self.cards_table, {"account_id": account_id}))

    def get_user_cards(self, user_id: str) -> List[Card]:
        """Cards over all of a user's accounts, newest first"""
        return self._newest_first(self.storage.find(self.cards_table, {"user_id": user_id}))

    # Status changes

    def block_card(self, card_id: str, reason: str) -> bool:
        return self._change_status(card_id, CardStatus.BLOCKED, reason=reason)

    def unblock_card(self, card_id: str) -> bool:
        return self._change_status(card_id, CardStatus.ACTIVE, required=CardStatus.BLOCKED)

    def freeze_card(self, card_id: str) -> bool:
        """Temporarily stop an active card"""
        return self._change_status(card_id, CardStatus.FROZEN, required=CardStatus.ACTIVE)

    def unfreeze_card(self, card_id: str) -> bool:
        return self._change_status(card_id, CardStatus.ACTIVE, required=CardStatus.FROZEN)

    def cancel_card(self, card_id: str) -> bool:
        """Cancel a card for good"""
        return self._change_status(card_id, CardStatus.CANCELLED)

    def _change_status(self, card_id: str, new_status: CardStatus,
                       required: Optional[CardStatus] = None, reason: Optional[str] = None) -> bool:
        with self.storage.atomic():
            card = self._modifiable(card_id)
            if not card or card.status == new_status:
                return False
            if required is not None and card.status != required:
                return False

            old_status = card.status
            now = datetime.now(timezone.utc)
            card.status = new_status
            if new_status == CardStatus.BLOCKED:
                card.blocked_at = now
                card.block_reason = reason
            elif old_status == CardStatus.BLOCKED:
                card.blocked_at = None
                card.block_reason = None
                card.pin_attempts = 0
            card.updated_at = now
            self.save_card(card)

            self._audit(AuditEventType.CARD_STATUS_CHANGED, card, {
                "from": old_status.value, "to": new_status.value, "reason": reason
            })

        log_action(
            self.logger, "info", f"Card {new_status.value}",
            user_id=card.user_id, action="change_card_status", resource=f"card:{card.id}",
            extra={"from": old_status.value, "to": new_status.value}
        )
        return True

    # Limits and settings

    def update_limits(
        self,
        card_id: str,
        daily_withdrawal_limit: Optional[Amount] = None,
        daily_transaction_limit: Optional[Amount] = None,
        online_transaction_limit: Optional[Amount] = None
    ) -> bool:
        """
        Change any of the card's limits; omitted limits are kept

        Raises:
            ValueError: If a limit is negative or not a number
        """
        requested = dict(zip(LIMIT_FIELDS, (
            daily_withdrawal_limit, daily_transaction_limit, online_transaction_limit
        )))

        with self.storage.atomic():
            card = self._modifiable(card_id)
            if not card:
                return False

            changes = {}
            for key, value in requested.items():
                if value is None:
                    continue
                limit = to_money(value, card.currency)
                if limit.is_negative():
                    raise ValueError(f"{key} cannot be negative")
                setattr(card, key, limit)
                changes[key] = limit.amount

            card.updated_at = datetime.now(timezone.utc)
            self.save_card(card)
            self._audit(AuditEventType.CARD_UPDATED, card, changes)
        return True

    def set_online_payments(self, card_id: str, enabled: bool) -> bool:
        return self._set_flag(card_id, "online_payments_enabled", enabled)

    def set_international_payments(self, card_id: str, enabled: bool) -> bool:
        return self._set_flag(card_id, "international_payments_enabled", enabled)

    def _set_flag(self, card_id: str, flag: str, enabled: bool) -> bool:
        with self.storage.atomic():
            card = self._modifiable(card_id)
            if not card:
                return False

            setattr(card, flag, enabled)
            card.updated_at = datetime.now(timezone.utc)
            self.save_card(card)
            self._audit(AuditEventType.CARD_UPDATED, card, {flag: enabled})
        return True

    # PIN

    def set_pin(self, card_id: str, pin: str) -> bool:
        """
        Set a new 4 to 6 digit PIN and reset the attempt counter

        Raises:
            ValueError: If the PIN is not 4 to 6 digits
        """
        if not pin.isdigit() or not 4 <= len(pin) <= 6:
            raise ValueError("PIN must be 4 to 6 digits")

        with self.storage.atomic():
            card = self._modifiable(card_id)
            if not card:
                return False

            card.pin_salt = secrets.token_hex(16)
            card.pin_hash = _hash_pin(pin, card.pin_salt)
            card.pin_attempts = 0
            card.last_pin_attempt = None
            card.updated_at = datetime.now(timezone.utc)
            self.save_card(card)
            self._audit(AuditEventType.CARD_PIN_CHANGED, card)
        return True

    def validate_pin(self, card_id: str, pin: str) -> bool:
        """
        Check a PIN against an active card

        Every wrong PIN is counted; reaching ``max_pin_attempts`` blocks
        the card. A correct PIN resets the counter.
        """
        with self.storage.atomic():
            card = self.get_card(card_id)
            if not card or card.status != CardStatus.ACTIVE or not card.pin_hash:
                return False

            now = datetime.now(timezone.utc)
            if card.is_expired(now):
                card.status = CardStatus.EXPIRED
                card.updated_at = now
                self.save_card(card)
                self._audit(AuditEventType.CARD_STATUS_CHANGED, card, {
                    "from": CardStatus.ACTIVE.value, "to": CardStatus.EXPIRED.value
                })
                return False

            card.last_pin_attempt = now
            valid =secrets.compare_digest(card.pin_hash, _hash_pin(pin, card.pin_salt))
            if valid:
                card.pin_attempts = 0
            else:
                card.pin_attempts += 1
                if card.pin_attempts >= self.max_pin_attempts:
                    card.status = CardStatus.BLOCKED
                    card.blocked_at = now
                    card.block_reason = "Too many incorrect PIN attempts"
                    self._audit(AuditEventType.CARD_STATUS_CHANGED, card, {
                        "from": CardStatus.ACTIVE.value,
                        "to": CardStatus.BLOCKED.value,
                        "reason": card.block_reason
                    })
            card.updated_at = now
            self.save_card(card)

        if not valid:
            log_action(
                self.logger, "warning", "Incorrect PIN entered",
                user_id=card.user_id, action="validate_pin", resource=f"card:{card.id}",
                extra={"attempts": card.pin_attempts, "status": card.status.value}
            )
        return valid

    def save_card(self, card: Card) -> None:
        self.storage.save(self.cards_table, card.id, card.to_dict())

    def _modifiable(self, card_id: str) -> Optional[Card]:
        card = self.get_card(card_id)
        if not card or card.status == CardStatus.CANCELLED:
            return None
        return card

    def _newest_first(self, records: List[Dict[str, Any]]) -> List[Card]:
        cards = [Card.from_dict(data) for data in records]
        cards.sort(key=lambda c: c.created_at, reverse=True)
        return cards

    def _audit(self, event_type: AuditEventType, card: Card,
               metadata: Optional[Dict[str, Any]] = None) -> None:
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="card",
            entity_id=card.id,
            user_id=card.user_id,
            metadata=dict(metadata or {}, last4=card.card_number[-4:])
        )
