"""
Service wiring for the HTTP layer
"""

from typing import Optional

from ..storage import StorageInterface, InMemoryStorage, SQLiteStorage
from ..audit import AuditTrail
from ..accounts import AccountManager
from ..beneficiaries import BeneficiaryManager
from ..cards import CardManager
from ..transactions import TransactionHistory
from ..ledger import LedgerService
from ..notifications import NotificationService
from ..bill_payments import BillPaymentService
from ..currency_exchange import CurrencyExchangeService
from ..scheduled_payments import ScheduledPaymentService
from ..loans import LoanService
from ..config import BankConfig, get_config


class BankingSystem:
    """All banking services wired over one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None, config: Optional[BankConfig] = None):
        config = config or get_config()

        if storage is not None:
            self.storage = storage
        elif config.use_sqlite:
            self.storage = SQLiteStorage(config.database_path)
        else:
            self.storage = InMemoryStorage()

        attempts = config.reference_max_attempts

        self.audit_trail = AuditTrail(self.storage, enabled=config.enable_audit_logging)
        self.notification_service = NotificationService(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit_trail, attempts)
        self.beneficiary_manager = BeneficiaryManager(self.storage, self.audit_trail)
        self.card_manager = CardManager(
            self.storage, self.account_manager, self.audit_trail,
            max_pin_attempts=config.max_pin_attempts, max_reference_attempts=attempts
        )
        self.transaction_history = TransactionHistory(
            self.storage, config.history_limit, config.search_limit
        )
        self.ledger = LedgerService(
            self.storage, self.account_manager, self.audit_trail,
            self.beneficiary_manager, attempts
        )
        self.bill_payment_service = BillPaymentService(
            self.storage, self.ledger, self.audit_trail, self.notification_service,
            upcoming_days=config.upcoming_bills_days, max_reference_attempts=attempts
        )
        self.exchange_service = CurrencyExchangeService(
            self.storage, self.ledger, self.audit_trail, self.notification_service,
            fee_rate=config.exchange_fee_rate, max_reference_attempts=attempts
        )
        self.scheduled_payment_service = ScheduledPaymentService(
            self.storage, self.ledger, self.audit_trail
        )
        self.loan_service = LoanService(
            self.storage, self.ledger, self.audit_trail, self.notification_service,
            max_reference_attempts=attempts
        )


# Global banking system instance, created on first use
banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    global banking_system
    if banking_system is None:
        banking_system = BankingSystem()
    return banking_system
