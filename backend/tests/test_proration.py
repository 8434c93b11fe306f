"""
Unit tests for proration and tax calculation.

Funzioni pure: nessun database richiesto.
"""

from datetime import date
from decimal import Decimal

import pytest

from rent_billing.core.exceptions import InvalidArgumentError
from rent_billing.schemas.invoice import ProrationMethod
from rent_billing.services.proration import (
    calculate_proration,
    calculate_tax,
    days_inclusive,
    overlap_days,
    round_money,
)

RENT = Decimal("10000.00")


# ============================================================
# Tests for day counting
# ============================================================


class TestDayCounting:
    """Tests for inclusive day counting helpers."""

    def test_days_inclusive_single_day(self):
        """Test un periodo di un solo giorno vale 1."""
        assert days_inclusive(date(2025, 1, 1), date(2025, 1, 1)) == 1

    def test_days_inclusive_month(self):
        """Test gennaio ha 31 giorni, febbraio 2024 ne ha 29."""
        assert days_inclusive(date(2025, 1, 1), date(2025, 1, 31)) == 31
        assert days_inclusive(date(2024, 2, 1), date(2024, 2, 29)) == 29

    def test_overlap_partial(self):
        """Test sovrapposizione parziale tra utilizzo e periodo."""
        assert overlap_days(date(2025, 1, 15), date(2025, 3, 31), date(2025, 1, 1), date(2025, 1, 31)) == 17

    def test_overlap_disjoint(self):
        """Test intervalli disgiunti danno zero giorni."""
        assert overlap_days(date(2025, 2, 1), date(2025, 2, 28), date(2025, 1, 1), date(2025, 1, 31)) == 0


# ============================================================
# Tests for actual-days proration
# ============================================================


class TestActualDaysProration:
    """Tests for proration on the actual length of the billing period."""

    def test_full_period_returns_full_amount(self):
        """Test copertura completa restituisce l'importo pieno."""
        result = calculate_proration(RENT, date(2024, 12, 1), date(2025, 6, 30), date(2025, 1, 1), date(2025, 1, 31))
        assert result == Decimal("10000.00")

    def test_move_in_mid_month(self):
        """Test ingresso il 15 gennaio: 17/31 del canone."""
        result = calculate_proration(RENT, date(2025, 1, 15), date(2025, 12, 31), date(2025, 1, 1), date(2025, 1, 31))
        assert result == Decimal("5483.87")

    def test_move_out_mid_month(self):
        """Test uscita il 15 gennaio: 15/31 del canone."""
        result = calculate_proration(RENT, date(2024, 1, 1), date(2025, 1, 15), date(2025, 1, 1), date(2025, 1, 31))
        assert result == Decimal("4838.71")

    def test_february_non_leap_year(self):
        """Test febbraio 2025 (28 giorni): metà mese vale metà canone."""
        result = calculate_proration(RENT, date(2025, 2, 15), date(2025, 12, 31), date(2025, 2, 1), date(2025, 2, 28))
        assert result == Decimal("5000.00")

    def test_february_leap_year(self):
        """Test febbraio 2024 (29 giorni): 15/29 del canone."""
        result = calculate_proration(RENT, date(2024, 2, 15), date(2024, 12, 31), date(2024, 2, 1), date(2024, 2, 29))
        assert result == Decimal("5172.41")

    def test_no_overlap_returns_zero(self):
        """Test nessuna sovrapposizione restituisce 0.00."""
        result = calculate_proration(RENT, date(2025, 3, 1), date(2025, 3, 31), date(2025, 1, 1), date(2025, 1, 31))
        assert result == Decimal("0.00")

    def test_zero_amount(self):
        """Test importo zero resta zero."""
        result = calculate_proration(Decimal("0"), date(2025, 1, 10), date(2025, 1, 20), date(2025, 1, 1), date(2025, 1, 31))
        assert result == Decimal("0.00")


# ============================================================
# Tests for thirty-day-month proration
# ============================================================


class TestThirtyDayProration:
    """Tests for the fixed 30-day commercial convention."""

    def test_january_partial(self):
        """Test 17 giorni di gennaio su base 30."""
        result = calculate_proration(
            RENT,
            date(2025, 1, 15),
            date(2025, 12, 31),
            date(2025, 1, 1),
            date(2025, 1, 31),
            ProrationMethod.THIRTY_DAY_MONTH,
        )
        assert result == Decimal("5666.67")

    def test_february_partial(self):
        """Test 14 giorni di febbraio su base 30."""
        result = calculate_proration(
            RENT,
            date(2025, 2, 15),
            date(2025, 12, 31),
            date(2025, 2, 1),
            date(2025, 2, 28),
            ProrationMethod.THIRTY_DAY_MONTH,
        )
        assert result == Decimal("4666.67")

    def test_full_month_is_full_amount(self):
        """Test mese intero di 31 giorni non supera l'importo pieno."""
        result = calculate_proration(
            RENT,
            date(2025, 1, 1),
            date(2025, 1, 31),
            date(2025, 1, 1),
            date(2025, 1, 31),
            ProrationMethod.THIRTY_DAY_MONTH,
        )
        assert result == Decimal("10000.00")

    def test_days_capped_at_thirty(self):
        """Test 30 giorni su 31 valgono l'importo pieno su base 30."""
        result = calculate_proration(
            RENT,
            date(2025, 1, 2),
            date(2025, 12, 31),
            date(2025, 1, 1),
            date(2025, 1, 31),
            ProrationMethod.THIRTY_DAY_MONTH,
        )
        assert result == Decimal("10000.00")


# ============================================================
# Tests for argument validation
# ============================================================


class TestProrationValidation:
    """Tests for invalid proration arguments."""

    def test_negative_amount(self):
        """Test importo negativo rifiutato."""
        with pytest.raises(InvalidArgumentError):
            calculate_proration(Decimal("-1"), date(2025, 1, 1), date(2025, 1, 31), date(2025, 1, 1), date(2025, 1, 31))

    def test_inverted_usage(self):
        """Test utilizzo con fine prima dell'inizio rifiutato."""
        with pytest.raises(InvalidArgumentError):
            calculate_proration(RENT, date(2025, 1, 31), date(2025, 1, 1), date(2025, 1, 1), date(2025, 1, 31))

    def test_inverted_period(self):
        """Test periodo di fatturazione invertito rifiutato."""
        with pytest.raises(InvalidArgumentError) as exc_info:
            calculate_proration(RENT, date(2025, 1, 1), date(2025, 1, 31), date(2025, 1, 31), date(2025, 1, 1))
        assert exc_info.value.error_code == "INVALID_ARGUMENT"


# ============================================================
# Tests for tax and rounding
# ============================================================


class TestTaxAndRounding:
    """Tests for tax calculation and money rounding."""

    def test_tax_standard_rate(self):
        """Test imposta al 18%."""
        assert calculate_tax(Decimal("500.00"), Decimal("18")) == Decimal("90.00")

    def test_tax_zero_or_missing_rate(self):
        """Test aliquota zero o assente."""
        assert calculate_tax(Decimal("500.00"), Decimal("0")) == Decimal("0.00")
        assert calculate_tax(Decimal("500.00"), None) == Decimal("0.00")

    def test_round_half_up(self):
        """Test arrotondamento commerciale al centesimo."""
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        assert round_money(Decimal("0.124")) == Decimal("0.12")
