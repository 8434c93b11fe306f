"""
Service Layer per il ciclo di vita delle fatture
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Gestisce la macchina a stati della fattura:

    draft -> issued -> partially_paid -> paid
    draft | issued (senza pagamenti) -> voided

apply_payment è l'unico punto che modifica i totali pagati della fattura.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.config import settings
from rent_billing.core.database import commit_or_raise
from rent_billing.core.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from rent_billing.models.invoice import Invoice
from rent_billing.models.payment import Payment
from rent_billing.schemas.invoice import InvoiceStatus, SequenceType
from rent_billing.services.lease_charge_provider import LeaseChargeProvider
from rent_billing.services.proration import round_money
from rent_billing.services.sequence_service import SequenceService, format_document_number

logger = logging.getLogger(__name__)


def ensure_version(entity, expected_version: Optional[int], label: str) -> None:
    """
    Verifica il token di concorrenza passato dal chiamante.

    Ogni modifica richiede la versione letta dal chiamante.

    Raises:
        InvalidArgumentError: Versione non fornita
        ConcurrencyConflictError: Versione diversa da quella corrente
    """
    if expected_version is None:
        raise InvalidArgumentError(
            f"{label} richiede la versione letta dal chiamante",
            error_code="VERSION_REQUIRED",
            extra={"id": str(entity.id)},
        )
    if entity.version != expected_version:
        raise ConcurrencyConflictError(
            f"{label} {entity.id} è stata modificata (versione {entity.version}, attesa {expected_version}). "
            "Ricaricare e riprovare.",
            extra={
                "id": str(entity.id),
                "expected_version": expected_version,
                "current_version": entity.version,
            },
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceLifecycleService:
    """Service per le transizioni di stato e i totali della fattura."""

    def __init__(
        self,
        lease_provider: LeaseChargeProvider,
        sequence_service: Optional[SequenceService] = None,
        default_prefix: Optional[str] = None,
    ):
        self.lease_provider = lease_provider
        self.sequence_service = sequence_service or SequenceService()
        self.default_prefix = default_prefix or settings.billing_default_invoice_prefix

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------

    async def get_invoice(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        for_update: bool = False,
    ) -> Invoice:
        """
        Carica una fattura con le righe.

        Con for_update=True la riga viene bloccata (SELECT ... FOR UPDATE)
        e gli attributi già presenti in sessione vengono sovrascritti con
        i valori correnti del database.

        Raises:
            NotFoundError: Se la fattura non esiste
        """
        stmt = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(
                f"Fattura {invoice_id} non trovata",
                extra={"invoice_id": str(invoice_id)},
            )
        return invoice

    async def completed_payments_total(self, db: AsyncSession, invoice_id: uuid.UUID) -> Decimal:
        """Somma dei pagamenti completati registrati sulla fattura."""
        result = await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.invoice_id == invoice_id,
                Payment.status == "completed",
            )
        )
        return round_money(Decimal(str(result.scalar_one())))

    async def current_balance(self, db: AsyncSession, invoice: Invoice) -> Decimal:
        """Saldo ricalcolato dal totale pagato effettivo."""
        paid = await self.completed_payments_total(db, invoice.id)
        return invoice.total_amount - paid

    # ------------------------------------------------------------
    # Numerazione
    # ------------------------------------------------------------

    async def assign_number(self, db: AsyncSession, invoice: Invoice) -> str:
        """
        Assegna il numero fattura se non ancora presente.

        Il prefisso viene dalle impostazioni del contratto, altrimenti
        dalla configurazione. Il numero è consumato nella transazione
        corrente.
        """
        if invoice.invoice_number:
            return invoice.invoice_number

        context = await self.lease_provider.get_lease_context(db, invoice.lease_id)
        prefix = (context.invoice_prefix or self.default_prefix).upper()
        sequence = await self.sequence_service.next_sequence_number(
            db, invoice.org_id, SequenceType.INVOICE
        )
        invoice.invoice_number = format_document_number(prefix, invoice.invoice_date, sequence)
        return invoice.invoice_number

    # ------------------------------------------------------------
    # Transizioni
    # ------------------------------------------------------------

    async def issue(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        expected_version: int,
    ) -> Invoice:
        """
        Emette una fattura in bozza.

        Args:
            db: Sessione database async
            invoice_id: UUID della fattura
            expected_version: Versione letta dal chiamante

        Returns:
            Invoice: Fattura emessa con numero assegnato

        Raises:
            InvalidArgumentError: Versione non fornita
            NotFoundError: Fattura inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Fattura non in bozza
            BusinessRuleViolationError: Fattura senza righe o con totale non positivo
        """
        invoice = await self.get_invoice(db, invoice_id, for_update=True)
        ensure_version(invoice, expected_version, "La fattura")

        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidStateError(
                f"Solo fatture in bozza possono essere emesse (stato attuale: {invoice.status})",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )
        if not invoice.lines:
            raise BusinessRuleViolationError(
                "Impossibile emettere una fattura senza righe",
                extra={"invoice_id": str(invoice.id)},
            )
        if invoice.total_amount <= 0:
            raise BusinessRuleViolationError(
                "Impossibile emettere una fattura con totale non positivo",
                extra={"invoice_id": str(invoice.id), "total_amount": str(invoice.total_amount)},
            )

        await self.assign_number(db, invoice)
        invoice.status = InvoiceStatus.ISSUED.value
        invoice.issued_at = utcnow()

        await commit_or_raise(db, "issue_invoice")
        logger.info("Fattura %s emessa (id=%s, totale=%s)", invoice.invoice_number, invoice.id, invoice.total_amount)
        return invoice

    async def void(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        expected_version: int,
        reason: str,
    ) -> Invoice:
        """
        Annulla una fattura in bozza o emessa senza pagamenti.

        Raises:
            InvalidArgumentError: Motivo vuoto o versione non fornita
            NotFoundError: Fattura inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Stato diverso da draft/issued
            BusinessRuleViolationError: Pagamenti già registrati
        """
        if not reason or not reason.strip():
            raise InvalidArgumentError("Il motivo dell'annullo è obbligatorio")

        invoice = await self.get_invoice(db, invoice_id, for_update=True)
        ensure_version(invoice, expected_version, "La fattura")

        if invoice.status not in (InvoiceStatus.DRAFT.value, InvoiceStatus.ISSUED.value):
            raise InvalidStateError(
                f"Solo fatture in bozza o emesse possono essere annullate (stato attuale: {invoice.status})",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )

        paid = await self.completed_payments_total(db, invoice.id)
        if invoice.paid_amount > 0 or paid > 0:
            raise BusinessRuleViolationError(
                "Impossibile annullare una fattura con pagamenti registrati",
                extra={"invoice_id": str(invoice.id), "paid_amount": str(max(paid, invoice.paid_amount))},
            )

        invoice.status = InvoiceStatus.VOIDED.value
        invoice.voided_at = utcnow()
        invoice.void_reason = reason.strip()

        await commit_or_raise(db, "void_invoice")
        logger.info("Fattura %s annullata: %s", invoice.id, invoice.void_reason)
        return invoice

    async def apply_payment(self, db: AsyncSession, invoice: Invoice, amount: Decimal) -> Invoice:
        """
        Applica un importo ai totali della fattura.

        Non esegue il commit: fa parte dell'unità di lavoro del chiamante,
        che deve aver riletto la fattura con get_invoice(for_update=True).
        L'importo non deve essere già conteggiato tra i pagamenti
        completati nel database.

        Args:
            db: Sessione database async
            invoice: Fattura bloccata
            amount: Importo da applicare

        Returns:
            Invoice: Fattura aggiornata (partially_paid o paid)

        Raises:
            InvalidStateError: Fattura non emessa o già chiusa
            InvalidArgumentError: Importo non positivo
            BusinessRuleViolationError: Importo superiore al saldo residuo
        """
        if not invoice.accepts_payments:
            raise InvalidStateError(
                f"La fattura non accetta pagamenti (stato attuale: {invoice.status})",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )
        if amount <= 0:
            raise InvalidArgumentError(
                "L'importo del pagamento deve essere positivo",
                extra={"amount": str(amount)},
            )

        paid = await self.completed_payments_total(db, invoice.id)
        if paid != invoice.paid_amount:
            logger.warning(
                "Totale pagato disallineato per fattura %s: memorizzato %s, pagamenti %s",
                invoice.id,
                invoice.paid_amount,
                paid,
            )

        balance = invoice.total_amount - paid
        if amount > balance:
            raise BusinessRuleViolationError(
                f"L'importo {amount} supera il saldo residuo {balance}",
                error_code="AMOUNT_EXCEEDS_BALANCE",
                extra={"invoice_id": str(invoice.id), "amount": str(amount), "balance": str(balance)},
            )

        invoice.paid_amount = paid + amount
        invoice.balance_amount = invoice.total_amount - invoice.paid_amount

        if invoice.balance_amount == 0:
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = utcnow()
        else:
            invoice.status = InvoiceStatus.PARTIALLY_PAID.value

        logger.info(
            "Pagamento di %s applicato a fattura %s: pagato %s, saldo %s (%s)",
            amount,
            invoice.id,
            invoice.paid_amount,
            invoice.balance_amount,
            invoice.status,
        )
        return invoice
