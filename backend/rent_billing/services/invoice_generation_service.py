"""
Service Layer per la generazione delle fatture
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Costruisce (o ricostruisce) la bozza di fattura di un contratto per un
periodo di fatturazione partendo dagli addebiti del contratto.

La generazione è idempotente: se esiste già una bozza per lo stesso
contratto e periodo, viene aggiornata sul posto (stesso id, stesso
numero) sostituendone tutte le righe.
"""

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.config import settings
from rent_billing.core.database import commit_or_raise
from rent_billing.core.exceptions import InvalidArgumentError, InvalidStateError
from rent_billing.models.invoice import Invoice, InvoiceLine
from rent_billing.schemas.invoice import InvoiceStatus, ProrationMethod
from rent_billing.schemas.lease import ChargeInput, LeaseBillingContext, LeaseStatus
from rent_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from rent_billing.services.lease_charge_provider import LeaseChargeProvider
from rent_billing.services.proration import calculate_proration, calculate_tax

logger = logging.getLogger(__name__)


class InvoiceGenerationService:
    """Service per la generazione idempotente delle bozze di fattura."""

    def __init__(
        self,
        lease_provider: LeaseChargeProvider,
        lifecycle_service: InvoiceLifecycleService,
        assign_number_on_generation: Optional[bool] = None,
        default_payment_term_days: Optional[int] = None,
    ):
        self.lease_provider = lease_provider
        self.lifecycle_service = lifecycle_service
        self.assign_number_on_generation = (
            assign_number_on_generation
            if assign_number_on_generation is not None
            else settings.billing_assign_number_on_generation
        )
        self.default_payment_term_days = (
            default_payment_term_days
            if default_payment_term_days is not None
            else settings.billing_default_payment_term_days
        )

    async def generate(
        self,
        db: AsyncSession,
        lease_id: uuid.UUID,
        period_start: date,
        period_end: date,
        proration_method: ProrationMethod = ProrationMethod.ACTUAL_DAYS,
    ) -> Invoice:
        """
        Genera o rigenera la bozza di fattura per contratto e periodo.

        Steps:
        1. Valida il periodo e lo stato del contratto
        2. Cerca fatture esistenti per lo stesso periodo
        3. Costruisce le righe dagli addebiti (riproporzionati se parziali)
        4. Ricalcola i totali e salva in un'unica transazione

        Args:
            db: Sessione database async
            lease_id: UUID contratto
            period_start: Inizio periodo (incluso)
            period_end: Fine periodo (incluso)
            proration_method: Metodo di riproporzionamento

        Returns:
            Invoice: Bozza creata o aggiornata

        Raises:
            InvalidArgumentError: Periodo invertito
            NotFoundError: Contratto inesistente
            InvalidStateError: Contratto non attivo o fattura non in bozza per il periodo
            ConcurrencyConflictError: Bozza creata in concorrenza per lo stesso periodo
        """
        # Step 1: Validazioni
        if period_end < period_start:
            raise InvalidArgumentError(
                "La fine del periodo di fatturazione non può precedere l'inizio",
                extra={"period_start": str(period_start), "period_end": str(period_end)},
            )

        context = await self.lease_provider.get_lease_context(db, lease_id)
        if context.status != LeaseStatus.ACTIVE:
            raise InvalidStateError(
                f"Il contratto non è attivo (stato: {context.status.value})",
                extra={"lease_id": str(lease_id), "status": context.status.value},
            )

        # Step 2: Fattura esistente per il periodo
        invoice = await self._find_invoice_for_period(db, lease_id, period_start, period_end)
        is_update = invoice is not None

        if invoice is None:
            invoice = Invoice(
                org_id=context.org_id,
                lease_id=lease_id,
                billing_period_start=period_start,
                billing_period_end=period_end,
                status=InvoiceStatus.DRAFT.value,
            )
            db.add(invoice)
        else:
            invoice.lines.clear()

        self._apply_dates(invoice, context, period_end)

        # Step 3: Righe
        charges = await self.lease_provider.get_charges(db, lease_id, period_start, period_end)
        invoice.lines.extend(self._build_lines(charges, period_start, period_end, proration_method))

        # Step 4: Totali
        self._recalculate_totals(invoice)

        if self.assign_number_on_generation:
            await self.lifecycle_service.assign_number(db, invoice)

        await commit_or_raise(db, "generate_invoice")
        await db.refresh(invoice)

        logger.info(
            "Bozza fattura %s %s per contratto %s (%s - %s): %d righe, totale %s",
            invoice.id,
            "rigenerata" if is_update else "creata",
            lease_id,
            period_start,
            period_end,
            len(invoice.lines),
            invoice.total_amount,
        )
        return invoice

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    async def _find_invoice_for_period(
        self,
        db: AsyncSession,
        lease_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> Optional[Invoice]:
        """
        Restituisce la bozza esistente per il periodo (bloccata), se presente.

        Raises:
            InvalidStateError: Esiste una fattura non in bozza per il periodo
        """
        result = await db.execute(
            select(Invoice)
            .where(
                Invoice.lease_id == lease_id,
                Invoice.billing_period_start == period_start,
                Invoice.billing_period_end == period_end,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        invoices = list(result.scalars().all())

        blocking = [inv for inv in invoices if inv.status != InvoiceStatus.DRAFT.value]
        if blocking:
            existing = blocking[0]
            raise InvalidStateError(
                f"Esiste già una fattura {existing.status} per il periodo "
                f"{period_start} - {period_end}",
                error_code="INVOICE_ALREADY_EXISTS",
                extra={"invoice_id": str(existing.id), "status": existing.status},
            )

        return invoices[0] if invoices else None

    def _apply_dates(self, invoice: Invoice, context: LeaseBillingContext, period_end: date) -> None:
        term_days = (
            context.payment_term_days
            if context.payment_term_days is not None
            else self.default_payment_term_days
        )
        invoice.invoice_date = period_end
        invoice.due_date = period_end + timedelta(days=term_days)
        if context.payment_instructions and context.payment_instructions.strip():
            invoice.payment_instructions = context.payment_instructions

    def _build_lines(
        self,
        charges: list[ChargeInput],
        period_start: date,
        period_end: date,
        proration_method: ProrationMethod,
    ) -> list[InvoiceLine]:
        lines: list[InvoiceLine] = []

        for charge in charges:
            usage_end = charge.effective_to or period_end
            if charge.effective_from > period_end or usage_end < period_start:
                continue

            amount = calculate_proration(
                charge.amount,
                charge.effective_from,
                usage_end,
                period_start,
                period_end,
                proration_method,
            )
            tax_amount = calculate_tax(amount, charge.tax_rate)

            lines.append(
                InvoiceLine(
                    charge_type_id=charge.charge_type_id,
                    line_number=len(lines) + 1,
                    description=charge.description,
                    quantity=Decimal("1"),
                    unit_price=amount,
                    amount=amount,
                    tax_rate=charge.tax_rate,
                    tax_amount=tax_amount,
                    total_amount=amount + tax_amount,
                )
            )

        return lines

    @staticmethod
    def _recalculate_totals(invoice: Invoice) -> None:
        invoice.subtotal = sum((line.amount for line in invoice.lines), Decimal("0.00"))
        invoice.tax_amount = sum((line.tax_amount for line in invoice.lines), Decimal("0.00"))
        invoice.total_amount = invoice.subtotal + invoice.tax_amount
        invoice.paid_amount = Decimal("0.00")
        invoice.balance_amount = invoice.total_amount
