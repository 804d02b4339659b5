"""
Test suite for card management
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail, AuditEventType
from retail_banking.accounts import AccountManager, AccountType
from retail_banking.references import ReferenceNumberGenerator
from retail_banking.cards import CardManager, CardType, CardStatus


class TestCardIssuing:
    """Issuing and looking up cards"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit)
        self.cards = CardManager(self.storage, self.account_manager, self.audit)

        self.account = self.account_manager.open_account("user1", AccountType.CHECKING, "Main")

    def test_issue_debit_card(self):
        """New cards are active, 16 digits and carry the default limits"""
        card = self.cards.issue_card(self.account.id, CardType.DEBIT, "Jane Doe")

        assert card.status == CardStatus.ACTIVE
        assert card.card_number.startswith("4532")
        assert len(card.card_number) == 16 and card.card_number.isdigit()
        assert card.user_id == "user1"
        assert card.daily_withdrawal_limit.amount == Decimal('5000.00')
        assert card.online_transaction_limit.amount == Decimal('5000.00')
        assert card.credit_limit is None
        assert not card.international_payments_enabled
        assert card.masked_number.endswith(card.card_number[-4:])
        assert not card.is_expired()
        assert card.expiry_date > datetime.now(timezone.utc) + timedelta(days=365 * 2)

        events = self.audit.get_events_by_type(AuditEventType.CARD_ISSUED)
        assert len(events) == 1
        assert card.card_number not in str(events[0].metadata)

    def test_credit_card_has_credit_limit(self):
        """Credit cards start with their whole limit available"""
        card = self.cards.issue_card(self.account.id, CardType.CREDIT, "Jane Doe")

        assert card.credit_limit.amount == Decimal('10000.00')
        assert card.available_credit == card.credit_limit

    def test_inactive_or_missing_account_refused(self):
        """Cards need an active account"""
        with pytest.raises(ValueError):
            self.cards.issue_card("missing", CardType.DEBIT, "Nobody")

        self.account_manager.deactivate_account(self.account.id, "closed")
        with pytest.raises(ValueError):
            self.cards.issue_card(self.account.id, CardType.DEBIT, "Jane Doe")

    def test_card_numbers_skip_taken_values(self, monkeypatch):
        """A generated number already in use is not handed out again"""
        first = self.cards.issue_card(self.account.id, CardType.DEBIT, "Jane Doe")
        candidates = iter([first.card_number, "4532000000000042"])
        monkeypatch.setattr(ReferenceNumberGenerator, "_candidate", lambda self, prefix: next(candidates))

        second = self.cards.issue_card(self.account.id, CardType.PREPAID, "Jane Doe")
        assert second.card_number == "4532000000000042"

    def test_lookups(self):
        """Cards are found by id, number, account and user"""
        savings = self.account_manager.open_account("user1", AccountType.SAVINGS, "Savings")
        first = self.cards.issue_card(self.account.id, CardType.DEBIT, "Jane Doe")
        second = self.cards.issue_card(savings.id, CardType.CREDIT, "Jane Doe")
        other = self.account_manager.open_account("user2", AccountType.CHECKING, "Other")
        self.cards.issue_card(other.id, CardType.DEBIT, "John Roe")

        assert self.cards.get_card(first.id).card_number == first.card_number
        assert self.cards.get_card_by_number(second.card_number).id == second.id
        assert self.cards.get_card("missing") is None
        assert self.cards.get_card_by_number("0000") is None
        assert [c.id for c in self.cards.get_account_cards(self.account.id)] == [first.id]

        user_cards = self.cards.get_user_cards("user1")
        assert {c.id for c in user_cards} == {first.id, second.id}
        assert user_cards[0].created_at >= user_cards[1].created_at


class TestCardControls:
    """Status changes, limits, settings and PINs"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit)
        self.cards = CardManager(self.storage, self.account_manager, self.audit)

        account = self.account_manager.open_account("user1", AccountType.CHECKING, "Main")
        self.card = self.cards.issue_card(account.id, CardType.DEBIT, "Jane Doe")

    def status(self):
        return self.cards.get_card(self.card.id).status

    def test_block_and_unblock(self):
        """Blocking records the reason; unblocking clears it"""
        assert self.cards.block_card(self.card.id, "Lost")
        blocked = self.cards.get_card(self.card.id)
        assert blocked.status == CardStatus.BLOCKED
        assert blocked.block_reason == "Lost"
        assert blocked.blocked_at is not None
        assert not self.cards.block_card(self.card.id, "Again")
        assert not self.cards.freeze_card(self.card.id)

        assert self.cards.unblock_card(self.card.id)
        unblocked = self.cards.get_card(self.card.id)
        assert unblocked.status == CardStatus.ACTIVE
        assert unblocked.block_reason is None
        assert not self.cards.unblock_card(self.card.id)

    def test_freeze_and_unfreeze(self):
        """Only active cards freeze and only frozen cards unfreeze"""
        assert not self.cards.unfreeze_card(self.card.id)
        assert self.cards.freeze_card(self.card.id)
        assert self.status() == CardStatus.FROZEN
        assert self.cards.unfreeze_card(self.card.id)
        assert self.status() == CardStatus.ACTIVE

    def test_cancelled_card_is_final(self):
        """A cancelled card is kept but cannot be changed"""
        assert self.cards.cancel_card(self.card.id)
        assert self.status() == CardStatus.CANCELLED
        assert self.cards.get_card(self.card.id) is not None

        assert not self.cards.cancel_card(self.card.id)
        assert not self.cards.block_card(self.card.id, "Lost")
        assert not self.cards.unblock_card(self.card.id)
        assert not self.cards.update_limits(self.card.id, daily_withdrawal_limit="10")
        assert not self.cards.set_online_payments(self.card.id, False)
        assert not self.cards.set_pin(self.card.id, "1234")
        assert not self.cards.cancel_card("missing")

        changes = self.audit.get_events_by_type(AuditEventType.CARD_STATUS_CHANGED)
        assert len(changes) == 1

    def test_update_limits(self):
        """Only the given limits change and negatives are refused"""
        assert self.cards.update_limits(self.card.id, daily_withdrawal_limit="250", online_transaction_limit=0)

        card = self.cards.get_card(self.card.id)
        assert card.daily_withdrawal_limit.amount == Decimal('250.00')
        assert card.daily_transaction_limit.amount == Decimal('10000.00')
        assert card.online_transaction_limit.amount == Decimal('0.00')

        with pytest.raises(ValueError):
            self.cards.update_limits(self.card.id, daily_transaction_limit="-1")
        assert self.cards.get_card(self.card.id).daily_transaction_limit.amount == Decimal('10000.00')
        assert not self.cards.update_limits("missing", daily_withdrawal_limit="1")

    def test_payment_toggles(self):
        """Online and international payments can be switched"""
        assert self.cards.set_online_payments(self.card.id, False)
        assert self.cards.set_international_payments(self.card.id, True)

        card = self.cards.get_card(self.card.id)
        assert not card.online_payments_enabled
        assert card.international_payments_enabled

    def test_pin_is_hashed_and_validated(self):
        """The PIN is stored salted and hashed and validates"""
        assert self.cards.set_pin(self.card.id, "4821")

        stored = self.storage.load("cards", self.card.id)
        assert "4821" not in stored["pin_hash"]
        assert stored["pin_salt"]

        assert self.cards.validate_pin(self.card.id, "4821")
        assert not self.cards.validate_pin(self.card.id, "0000")
        assert self.cards.get_card(self.card.id).pin_attempts == 1
        assert self.cards.validate_pin(self.card.id, "4821")
        assert self.cards.get_card(self.card.id).pin_attempts == 0

    def test_pin_format(self):
        """PINs must be 4 to 6 digits"""
        for pin in ("123", "1234567", "12a4"):
            with pytest.raises(ValueError):
                self.cards.set_pin(self.card.id, pin)
        assert not self.cards.validate_pin(self.card.id, "1234")

    def test_wrong_pins_block_card(self):
        """The third wrong PIN blocks the card; unblocking resets the count"""
        self.cards.set_pin(self.card.id, "4821")

        for _ in range(3):
            assert not self.cards.validate_pin(self.card.id, "9999")

        blocked = self.cards.get_card(self.card.id)
        assert blocked.status == CardStatus.BLOCKED
        assert blocked.block_reason == "Too many incorrect PIN attempts"
        assert not self.cards.validate_pin(self.card.id, "4821")

        assert self.cards.unblock_card(self.card.id)
        assert self.cards.get_card(self.card.id).pin_attempts == 0
        assert self.cards.validate_pin(self.card.id, "4821")

    def test_expired_card_fails_validation(self):
        """Validating a PIN on an expired card marks it expired"""
        self.cards.set_pin(self.card.id, "4821")
        card = self.cards.get_card(self.card.id)
        card.expiry_date = datetime.now(timezone.utc) - timedelta(days=1)
        self.cards.save_card(card)

        assert not self.cards.validate_pin(self.card.id, "4821")
        assert self.status() == CardStatus.EXPIRED
