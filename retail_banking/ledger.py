"""
Ledger Mutation Core

Every balance change in the system goes through this module. Each operation
runs as one storage unit:

    validate -> mutate balances -> write ledger entries -> commit

and any failure rolls the whole unit back. Internally operations raise
``BankingError`` subclasses; the public operations translate them into a
``False`` result through ``reports_failure``. Composite services (bill
payments, currency exchange, scheduled payments, loans) call the raising
``post_*`` helpers inside their own unit so their domain record and the
ledger entries commit together.
"""

import functools
from datetime import datetime, timezone
from typing import Optional, Tuple, Union
from decimal import Decimal
import uuid

from .currency import Money, to_money
from .storage import StorageInterface
from .accounts import Account, AccountManager
from .beneficiaries import Beneficiary, BeneficiaryManager
from .transactions import Transaction, TransactionType, TransactionStatus
from .audit import AuditTrail, AuditEventType
from .references import ReferenceNumberGenerator
from .exceptions import (
    BankingError, InvalidAmountError, AccountInactiveError, InsufficientFundsError,
    NotFoundError, CurrencyMismatchError, InvalidStateError, ReferenceCollisionError
)
from .logging_config import get_logger, log_action


Amount = Union[Money, Decimal, int, str]


def reports_failure(default=False):
    """
    Turn a raising operation into one that reports failure by value.

    Banking errors are logged at WARNING; anything else already rolled back
    by the storage unit is logged at ERROR with traceback. Either way the
    caller receives ``default``. The wrapped method's owner must expose a
    ``logger`` attribute.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except BankingError as e:
                log_action(
                    self.logger, "warning", f"{func.__name__} rejected: {e}",
                    action=func.__name__, extra={"error": type(e).__name__}
                )
                return default
            except Exception as e:
                log_action(
                    self.logger, "error", f"{func.__name__} failed and was rolled back",
                    action=func.__name__, extra={"error": type(e).__name__},
                    exc_info=True
                )
                return default
        return wrapper
    return decorator


class LedgerService:
    """
    Deposits, withdrawals and transfers over account balances.

    ``balance`` and ``available_balance`` always move by the same amount.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        audit_trail: AuditTrail,
        beneficiary_manager: Optional[BeneficiaryManager] = None,
        max_reference_attempts: int = 5
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.beneficiary_manager = beneficiary_manager or BeneficiaryManager(storage, audit_trail)
        self.transactions_table = "transactions"
        self.logger = get_logger("retail_banking.ledger")
        self.references = ReferenceNumberGenerator(
            storage,
            table=self.transactions_table,
            field="reference_number",
            max_attempts=max_reference_attempts
        )

    # Public operations

    @reports_failure(False)
    def deposit(self, account_id: str, amount: Amount, description: Optional[str] = None) -> bool:
        """
        Credit an account.

        Returns:
            True when the deposit committed, False otherwise
        """
        entry = self.post_credit(account_id, amount, description or "Deposit")
        self._log_entry("Deposit completed", "deposit", entry)
        return True

    @reports_failure(False)
    def withdraw(self, account_id: str, amount: Amount, description: Optional[str] = None) -> bool:
        """
        Debit an account; rejected when the available balance is short.

        Returns:
            True when the withdrawal committed, False otherwise
        """
        entry = self.post_debit(account_id, amount, description or "Withdrawal")
        self._log_entry("Withdrawal completed", "withdraw", entry)
        return True

    @reports_failure(False)
    def transfer(self, from_account_id: str, to_account_id: str, amount: Amount,
                 description: Optional[str] = None) -> bool:
        """
        Move money between two accounts of the same currency.

        Both balance changes and both entries commit together or not at all.
        """
        debit, credit = self.post_transfer(from_account_id, to_account_id, amount, description)
        self._log_entry("Transfer completed", "transfer", debit,
                        destination_account_id=credit.account_id)
        return True

    @reports_failure(False)
    def transfer_to_beneficiary(self, account_id: str, beneficiary_id: str, amount: Amount,
                                description: Optional[str] = None) -> bool:
        """Pay an active beneficiary owned by the account"""
        entry = self.post_beneficiary_transfer(account_id, beneficiary_id, amount, description)
        self._log_entry("Beneficiary transfer completed", "transfer_to_beneficiary", entry,
                        beneficiary_id=beneficiary_id)
        return True

    # Raising building blocks

    def post_credit(
        self,
        account_id: str,
        amount: Amount,
        description: str,
        transaction_type: TransactionType = TransactionType.DEPOSIT,
        category: Optional[str] = "Income",
        reference_number: Optional[str] = None,
        reference_prefix: str = "TXN"
    ) -> Transaction:
        """
        Credit an active account and write one positive entry.

        Raises:
            NotFoundError, AccountInactiveError, InvalidAmountError,
            CurrencyMismatchError, ReferenceCollisionError
        """
        with self.storage.atomic():
            account = self.require_active_account(account_id)
            money = self._positive_amount(account, amount)
            reference_number = reference_number or self.references.generate(reference_prefix)

            self._apply(account, money)
            entry = self._write_entry(
                account, money, transaction_type, description, category, reference_number
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.DEPOSIT,
                entity_type="account",
                entity_id=account.id,
                user_id=account.user_id,
                metadata=self._entry_metadata(entry)
            )
            return entry

    def post_debit(
        self,
        account_id: str,
        amount: Amount,
        description: str,
        transaction_type: TransactionType = TransactionType.WITHDRAWAL,
        category: Optional[str] = "Withdrawal",
        reference_number: Optional[str] = None,
        reference_prefix: str = "TXN"
    ) -> Transaction:
        """
        Debit an active account and write one negative entry.

        Raises:
            NotFoundError, AccountInactiveError, InvalidAmountError,
            CurrencyMismatchError, InsufficientFundsError,
            ReferenceCollisionError
        """
        with self.storage.atomic():
            account = self.require_active_account(account_id)
            money = self._positive_amount(account, amount)
            self._check_funds(account, money)
            reference_number = reference_number or self.references.generate(reference_prefix)

            self._apply(account, -money)
            entry = self._write_entry(
                account, -money, transaction_type, description, category, reference_number
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.WITHDRAWAL,
                entity_type="account",
                entity_id=account.id,
                user_id=account.user_id,
                metadata=self._entry_metadata(entry)
            )
            return entry

    def post_transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Amount,
        description: Optional[str] = None,
        category: Optional[str] = "Transfer"
    ) -> Tuple[Transaction, Transaction]:
        """
        Debit one account and credit another in one unit.

        The debit entry carries reference ``REF`` and the credit entry
        ``REF-R``.

        Returns:
            (debit entry, credit entry)
        """
        if from_account_id == to_account_id:
            raise BankingError("Cannot transfer to the same account")

        with self.storage.atomic():
            source = self.require_active_account(from_account_id)
            destination = self.require_active_account(to_account_id)
            if source.currency != destination.currency:
                raise CurrencyMismatchError(
                    f"Cannot transfer {source.currency.code} to a {destination.currency.code} account"
                )
            money = self._positive_amount(source, amount)
            self._check_funds(source, money)
            reference_number = self.references.generate("TXN", variants=("", "-R"))

            self._apply(source, -money)
            debit = self._write_entry(
                source, -money, TransactionType.TRANSFER,
                description or f"Transfer to {destination.account_number}",
                category, reference_number,
                destination_account_id=destination.id
            )

            self._apply(destination, money)
            credit = self._write_entry(
                destination, money, TransactionType.TRANSFER,
                description or f"Transfer from {source.account_number}",
                category, reference_number + "-R"
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER,
                entity_type="account",
                entity_id=source.id,
                user_id=source.user_id,
                metadata={
                    "reference_number": reference_number,
                    "from_account_id": source.id,
                    "to_account_id": destination.id,
                    "amount": money.amount,
                    "currency": money.currency.code
                }
            )
            return debit, credit

    def post_beneficiary_transfer(
        self,
        account_id: str,
        beneficiary_id: str,
        amount: Amount,
        description: Optional[str] = None,
        category: Optional[str] = "Transfer"
    ) -> Transaction:
        """Debit the owner account with one entry referencing the beneficiary"""
        with self.storage.atomic():
            account = self.require_active_account(account_id)
            beneficiary = self._load_beneficiary(account, beneficiary_id)
            money = self._positive_amount(account, amount)
            self._check_funds(account, money)
            reference_number = self.references.generate("BEN")

            self._apply(account, -money)
            entry = self._write_entry(
                account, -money, TransactionType.TRANSFER,
                description or f"Transfer to {beneficiary.name}",
                category, reference_number,
                beneficiary_id=beneficiary.id
            )

            beneficiary.last_used_at = entry.completed_at
            beneficiary.updated_at = entry.completed_at
            self.beneficiary_manager.save_beneficiary(beneficiary)

            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_TRANSFER,
                entity_type="account",
                entity_id=account.id,
                user_id=account.user_id,
                metadata=dict(self._entry_metadata(entry), beneficiary_id=beneficiary.id)
            )
            return entry

    # Helpers

    def require_active_account(self, account_id: str) -> Account:
        """Load an account that can transact, raising NotFoundError or AccountInactiveError"""
        account = self.account_manager.get_account(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        if not account.can_transact():
            raise AccountInactiveError(f"Account {account.account_number} is not active")
        return account

    def _load_beneficiary(self, account: Account, beneficiary_id: str) -> Beneficiary:
        beneficiary = self.beneficiary_manager.get_beneficiary(beneficiary_id)
        if not beneficiary:
            raise NotFoundError(f"Beneficiary {beneficiary_id} not found")
        if not beneficiary.is_active:
            raise AccountInactiveError(f"Beneficiary {beneficiary_id} is not active")
        if beneficiary.account_id != account.id:
            raise InvalidStateError(f"Beneficiary {beneficiary_id} does not belong to account {account.id}")
        return beneficiary

    def _positive_amount(self, account: Account, amount: Amount) -> Money:
        if isinstance(amount, Money) and amount.currency != account.currency:
            raise CurrencyMismatchError(
                f"Account {account.account_number} holds {account.currency.code}, "
                f"got {amount.currency.code}"
            )
        try:
            money = to_money(amount, account.currency)
        except ValueError as e:
            raise InvalidAmountError(str(e))
        if not money.is_positive():
            raise InvalidAmountError(f"Amount must be positive, got {money.amount}")
        return money

    def _check_funds(self, account: Account, amount: Money) -> None:
        if account.available_balance < amount:
            raise InsufficientFundsError(
                f"Available balance {account.available_balance.to_string()} "
                f"is less than {amount.to_string()}"
            )

    def _apply(self, account: Account, signed_amount: Money) -> None:
        now = datetime.now(timezone.utc)
        account.balance = account.balance + signed_amount
        account.available_balance = account.available_balance + signed_amount
        account.last_transaction_date = now
        account.updated_at = now
        self.account_manager.save_account(account)

    def _write_entry(
        self,
        account: Account,
        signed_amount: Money,
        transaction_type: TransactionType,
        description: str,
        category: Optional[str],
        reference_number: str,
        destination_account_id: Optional[str] = None,
        beneficiary_id: Optional[str] = None
    ) -> Transaction:
        if self.references.is_taken(reference_number):
            raise ReferenceCollisionError(f"Reference {reference_number} already exists")

        now = datetime.now(timezone.utc)
        entry = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            reference_number=reference_number,
            transaction_type=transaction_type,
            account_id=account.id,
            amount=signed_amount,
            balance_after=account.balance,
            description=description,
            category=category,
            status=TransactionStatus.COMPLETED,
            destination_account_id=destination_account_id,
            beneficiary_id=beneficiary_id,
            completed_at=now
        )
        self.storage.save(self.transactions_table, entry.id, entry.to_dict())
        return entry

    @staticmethod
    def _entry_metadata(entry: Transaction) -> dict:
        return {
            "transaction_id": entry.id,
            "reference_number": entry.reference_number,
            "transaction_type": entry.transaction_type.value,
            "amount": entry.amount.amount,
            "currency": entry.currency.code,
            "balance_after": entry.balance_after.amount
        }

    def _log_entry(self, message: str, action: str, entry: Transaction, **extra) -> None:
        account = self.account_manager.get_account(entry.account_id)
        log_action(
            self.logger, "info", message,
            user_id=account.user_id if account else None,
            action=action,
            resource=f"account:{entry.account_id}",
            extra=dict(
                reference_number=entry.reference_number,
                amount=str(abs(entry.amount.amount)),
                currency=entry.currency.code,
                **extra
            )
        )
