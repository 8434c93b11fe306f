"""
Calcolo del riproporzionamento (proration)
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Funzioni pure: calcolano la quota di un importo pieno corrispondente
ai giorni di sovrapposizione tra periodo di utilizzo e periodo fatturato.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from rent_billing.core.exceptions import InvalidArgumentError
from rent_billing.schemas.invoice import ProrationMethod

CENT = Decimal("0.01")
THIRTY_DAY_BASE = 30


def round_money(value: Decimal) -> Decimal:
    """Arrotonda al centesimo (ROUND_HALF_UP)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def days_inclusive(start: date, end: date) -> int:
    """Numero di giorni tra start e end, estremi inclusi."""
    return (end - start).days + 1


def overlap_days(
    usage_start: date,
    usage_end: date,
    period_start: date,
    period_end: date,
) -> int:
    """Giorni interi di sovrapposizione tra due intervalli inclusivi (0 se disgiunti)."""
    start = max(usage_start, period_start)
    end = min(usage_end, period_end)
    if end < start:
        return 0
    return days_inclusive(start, end)


def calculate_proration(
    full_amount: Decimal,
    usage_start: date,
    usage_end: date,
    billing_period_start: date,
    billing_period_end: date,
    method: ProrationMethod = ProrationMethod.ACTUAL_DAYS,
) -> Decimal:
    """
    Calcola l'importo riproporzionato sui giorni di utilizzo.

    Con ACTUAL_DAYS il denominatore è il numero effettivo di giorni del
    periodo fatturato (28/29/30/31, anni bisestili compresi). Con
    THIRTY_DAY_MONTH il denominatore è fisso a 30 e i giorni di utilizzo
    sono limitati a 30.

    Se l'utilizzo copre l'intero periodo il risultato è l'importo pieno.

    Args:
        full_amount: Importo pieno per l'intero periodo
        usage_start: Inizio utilizzo (incluso)
        usage_end: Fine utilizzo (incluso)
        billing_period_start: Inizio periodo fatturato (incluso)
        billing_period_end: Fine periodo fatturato (incluso)
        method: Metodo di calcolo (default: giorni effettivi)

    Returns:
        Decimal: Importo arrotondato al centesimo (0.00 se non c'è sovrapposizione)

    Raises:
        InvalidArgumentError: Importo negativo o intervalli invertiti
    """
    if full_amount < 0:
        raise InvalidArgumentError(
            "L'importo da riproporzionare non può essere negativo",
            extra={"full_amount": str(full_amount)},
        )
    if usage_end < usage_start:
        raise InvalidArgumentError("La fine dell'utilizzo non può precedere l'inizio")
    if billing_period_end < billing_period_start:
        raise InvalidArgumentError(
            "La fine del periodo di fatturazione non può precedere l'inizio"
        )

    days = overlap_days(usage_start, usage_end, billing_period_start, billing_period_end)
    if days == 0:
        return Decimal("0.00")

    total_days = days_inclusive(billing_period_start, billing_period_end)
    if days == total_days:
        return round_money(full_amount)

    if method == ProrationMethod.THIRTY_DAY_MONTH:
        return round_money(full_amount * Decimal(min(days, THIRTY_DAY_BASE)) / Decimal(THIRTY_DAY_BASE))

    return round_money(full_amount * Decimal(days) / Decimal(total_days))


def calculate_tax(amount: Decimal, tax_rate: Optional[Decimal]) -> Decimal:
    """Imposta di riga: amount * tax_rate / 100, arrotondata al centesimo."""
    if not tax_rate:
        return Decimal("0.00")
    return round_money(amount * tax_rate / Decimal("100"))
