"""
Banking Error Taxonomy

Every failure the money-movement core can report. Services raise these
internally; the public ledger operations translate them into a False/None
result at the boundary (see ``ledger.reports_failure``).
"""


class BankingError(Exception):
    """Base class for all banking domain errors"""
    pass


class InvalidAmountError(BankingError):
    """Amount is zero, negative or otherwise unusable"""
    pass


class AccountInactiveError(BankingError):
    """Account (or beneficiary) has been deactivated"""
    pass


class InsufficientFundsError(BankingError):
    """Available balance does not cover the requested debit"""
    pass


class NotFoundError(BankingError):
    """Referenced record does not exist"""
    pass


class CurrencyMismatchError(BankingError):
    """Amount currency does not match the account currency"""
    pass


class InvalidStateError(BankingError):
    """Record is not in a state that allows the requested transition"""
    pass


class PersistenceError(BankingError):
    """Storage unit failed and was rolled back"""
    pass


class ReferenceCollisionError(PersistenceError):
    """Could not obtain a unique reference number"""
    pass
