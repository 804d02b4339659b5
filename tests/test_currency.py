"""
Test suite for currency module

Tests Money arithmetic, currency precision and amount coercion.
All monetary calculations must use Decimal precision.
"""

import pytest
from decimal import Decimal

from retail_banking.currency import Money, Currency, to_money, quantize


class TestMoney:
    """Test Money class operations"""

    def test_money_creation(self):
        """Test Money object creation and rounding to currency precision"""
        money = Money(Decimal('100.50'), Currency.USD)
        assert money.amount == Decimal('100.50')
        assert money.currency == Currency.USD

        # Half-up rounding to 2 places
        assert Money(Decimal('100.555'), Currency.USD).amount == Decimal('100.56')
        assert Money(Decimal('0.125'), Currency.EUR).amount == Decimal('0.13')

        # JPY has no minor unit
        assert Money(Decimal('100.5'), Currency.JPY).amount == Decimal('101')

    def test_money_arithmetic(self):
        """Test Money arithmetic operations"""
        a = Money(Decimal('100.50'), Currency.USD)
        b = Money(Decimal('50.25'), Currency.USD)

        assert (a + b).amount == Decimal('150.75')
        assert (a - b).amount == Decimal('50.25')
        assert (a * Decimal('2')).amount == Decimal('201.00')
        assert (-a).amount == Decimal('-100.50')
        assert abs(-a) == a

    def test_signed_amounts(self):
        """Negative amounts are allowed for ledger debits"""
        debit = Money(Decimal('-20.00'), Currency.USD)
        assert debit.is_negative()
        assert not debit.is_positive()
        assert Money.zero(Currency.USD).is_zero()

    def test_mixed_currency_rejected(self):
        """Arithmetic and comparison across currencies fail"""
        usd = Money(Decimal('10'), Currency.USD)
        eur = Money(Decimal('10'), Currency.EUR)

        with pytest.raises(ValueError):
            usd + eur
        with pytest.raises(ValueError):
            usd < eur

    def test_to_string(self):
        """Display formatting"""
        assert Money(Decimal('1234.5'), Currency.USD).to_string() == "USD 1,234.50"


class TestAmountCoercion:
    """Test to_money and string parsing"""

    def test_accepts_decimal_int_and_str(self):
        """Decimal, int and str inputs become Money"""
        assert to_money(Decimal('10.10'), Currency.USD).amount == Decimal('10.10')
        assert to_money(10, Currency.USD).amount == Decimal('10.00')
        assert to_money("10.105", Currency.USD).amount == Decimal('10.11')

    def test_rejects_float(self):
        """Floats are never accepted for money"""
        with pytest.raises(ValueError):
            to_money(10.1, Currency.USD)

    def test_rejects_foreign_money_and_garbage(self):
        """Money in another currency and non-numbers are rejected"""
        with pytest.raises(ValueError):
            to_money(Money(Decimal('5'), Currency.EUR), Currency.USD)
        with pytest.raises(ValueError):
            to_money("ten", Currency.USD)

    def test_currency_from_code(self):
        """Lookup by ISO code is case-insensitive"""
        assert Currency.from_code("eur") is Currency.EUR
        with pytest.raises(ValueError):
            Currency.from_code("XXX")

    def test_quantize(self):
        """quantize uses the currency's minor unit"""
        assert quantize(Decimal('2.345'), Currency.USD) == Decimal('2.35')
        assert quantize(Decimal('2.5'), Currency.JPY) == Decimal('3')
