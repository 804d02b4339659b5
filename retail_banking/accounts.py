"""
Account Management Module

Opens, looks up and deactivates customer accounts. Balances live on the
account record and are only ever changed by the ledger (see ``ledger.py``).
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime
from .audit import AuditTrail, AuditEventType
from .references import ReferenceNumberGenerator
from .logging_config import get_logger, log_action


class AccountType(Enum):
    """Retail account products"""
    CHECKING = "checking"
    SAVINGS = "savings"
    BUSINESS = "business"


@dataclass
class Account(StorageRecord):
    """
    Customer account.

    ``balance`` and ``available_balance`` move in lockstep in every ledger
    operation; there is no holds model, so ``available_balance <= balance``
    is not enforced separately.
    """
    account_number: str
    user_id: str
    account_type: AccountType
    currency: Currency
    name: str
    balance: Money = None
    available_balance: Money = None
    is_active: bool = True
    last_transaction_date: Optional[datetime] = None

    def __post_init__(self):
        if self.balance is None:
            self.balance = Money.zero(self.currency)
        if self.available_balance is None:
            self.available_balance = Money.zero(self.currency)

        if self.balance.currency != self.currency or self.available_balance.currency != self.currency:
            raise ValueError("Balance currency must match account currency")

    def can_transact(self) -> bool:
        """Check if account can process transactions"""
        return self.is_active

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['account_type'] = self.account_type.value
        result['currency'] = self.currency.code
        result['balance'] = str(self.balance.amount)
        result['available_balance'] = str(self.available_balance.amount)
        result['last_transaction_date'] = format_datetime(self.last_transaction_date)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_number=data['account_number'],
            user_id=data['user_id'],
            account_type=AccountType(data['account_type']),
            currency=currency,
            name=data['name'],
            balance=Money(Decimal(data['balance']), currency),
            available_balance=Money(Decimal(data['available_balance']), currency),
            is_active=data['is_active'],
            last_transaction_date=parse_datetime(data.get('last_transaction_date'))
        )


class AccountManager:
    """
    Manages account lifecycle and balance lookups
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        max_reference_attempts: int = 5
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts_table = "accounts"
        self.logger = get_logger("retail_banking.accounts")
        self._numbers = ReferenceNumberGenerator(
            storage,
            table=self.accounts_table,
            field="account_number",
            timestamp_format="%Y%m%d",
            suffix_digits=6,
            max_attempts=max_reference_attempts
        )

    def open_account(
        self,
        user_id: str,
        account_type: AccountType,
        name: str,
        currency: Currency = Currency.USD,
        account_number: Optional[str] = None
    ) -> Account:
        """
        Open a new account with zero balance

        Args:
            user_id: Owner of the account
            account_type: Checking, savings or business
            name: Display name
            currency: Account currency
            account_number: Specific account number (generated if not provided)

        Returns:
            Created Account

        Raises:
            ValueError: If the requested account number is already in use
        """
        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            if account_number:
                if self._numbers.is_taken(account_number):
                    raise ValueError(f"Account number {account_number} already exists")
            else:
                account_number = self._numbers.generate("ACC")

            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=account_number,
                user_id=user_id,
                account_type=account_type,
                currency=currency,
                name=name
            )
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_OPENED,
                entity_type="account",
                entity_id=account.id,
                user_id=user_id,
                metadata={
                    "account_number": account_number,
                    "account_type": account_type.value,
                    "currency": currency.code,
                    "name": name
                }
            )

        log_action(
            self.logger, "info", "Account opened",
            user_id=user_id, action="open_account", resource=f"account:{account.id}",
            extra={"account_number": account_number, "account_type": account_type.value}
        )
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.accounts_table, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        accounts = self.storage.find(self.accounts_table, {"account_number": account_number})
        if accounts:
            return Account.from_dict(accounts[0])
        return None

    def get_user_accounts(self, user_id: str) -> List[Account]:
        """Active accounts of a user, ordered by account type"""
        accounts = [
            Account.from_dict(data)
            for data in self.storage.find(self.accounts_table, {"user_id": user_id, "is_active": True})
        ]
        order = list(AccountType)
        accounts.sort(key=lambda a: order.index(a.account_type))
        return accounts

    def get_total_balance(self, user_id: str, currency: Currency = Currency.USD) -> Money:
        """Sum of balances over a user's active accounts in one currency"""
        total = Money.zero(currency)
        for account in self.get_user_accounts(user_id):
            if account.currency == currency:
                total = total + account.balance
        return total

    def deactivate_account(self, account_id: str, reason: str) -> bool:
        """Soft-deactivate an account; it is never deleted"""
        with self.storage.atomic():
            account = self.get_account(account_id)
            if not account or not account.is_active:
                return False

            account.is_active = False
            account.updated_at = datetime.now(timezone.utc)
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_DEACTIVATED,
                entity_type="account",
                entity_id=account.id,
                user_id=account.user_id,
                metadata={"reason": reason}
            )
        return True

    def save_account(self, account: Account) -> None:
        """Persist an account record"""
        self.storage.save(self.accounts_table, account.id, account.to_dict())
