"""
Service Layer per le Note di credito
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Crea ed emette note di credito su fatture emesse, pagate o parzialmente
pagate. Ogni riga storna parte di una riga della fattura; il totale
stornato su una riga fattura (su tutte le note) non può superarne il
totale. Le note non modificano i totali della fattura.
"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.config import settings
from rent_billing.core.database import commit_or_raise
from rent_billing.core.exceptions import (
    BusinessRuleViolationError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from rent_billing.models.credit_note import CreditNote, CreditNoteLine
from rent_billing.models.invoice import InvoiceLine
from rent_billing.schemas.credit_note import CreditNoteCreate
from rent_billing.schemas.invoice import InvoiceStatus, SequenceType
from rent_billing.services.invoice_lifecycle_service import (
    InvoiceLifecycleService,
    ensure_version,
    utcnow,
)
from rent_billing.services.proration import round_money
from rent_billing.services.sequence_service import SequenceService, format_document_number

logger = logging.getLogger(__name__)

CREDITABLE_STATUSES = (
    InvoiceStatus.ISSUED.value,
    InvoiceStatus.PARTIALLY_PAID.value,
    InvoiceStatus.PAID.value,
)


class CreditNoteService:
    """Service per creazione ed emissione delle note di credito."""

    def __init__(
        self,
        lifecycle_service: InvoiceLifecycleService,
        sequence_service: Optional[SequenceService] = None,
        default_prefix: Optional[str] = None,
    ):
        self.lifecycle_service = lifecycle_service
        self.sequence_service = sequence_service or lifecycle_service.sequence_service
        self.default_prefix = default_prefix or settings.billing_default_credit_note_prefix

    async def create(
        self,
        db: AsyncSession,
        data: CreditNoteCreate,
        created_by: Optional[str] = None,
    ) -> CreditNote:
        """
        Crea una nota di credito numerata sulle righe indicate.

        Steps:
        1. Blocca la fattura e ne verifica lo stato
        2. Valida ogni riga contro il residuo stornabile della riga fattura
        3. Ripartisce imponibile e imposta in proporzione alla riga fattura
        4. Assegna il numero e salva in un'unica transazione

        Raises:
            NotFoundError: Fattura inesistente
            InvalidStateError: Fattura in bozza o annullata
            InvalidArgumentError: Importo non positivo o riga non della fattura
            BusinessRuleViolationError: Importo oltre il residuo della riga
        """
        # Step 1: Fattura
        invoice = await self.lifecycle_service.get_invoice(db, data.invoice_id, for_update=True)
        if invoice.status not in CREDITABLE_STATUSES:
            raise InvalidStateError(
                f"Note di credito ammesse solo su fatture emesse o pagate (stato attuale: {invoice.status})",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )

        invoice_lines = {line.id: line for line in invoice.lines}
        credit_note = CreditNote(
            org_id=invoice.org_id,
            invoice_id=invoice.id,
            credit_note_date=utcnow().date(),
            reason=data.reason.value,
            notes=data.notes,
            created_by=created_by,
            lines=[],
        )

        # Step 2-3: Righe
        requested: dict[uuid.UUID, Decimal] = {}
        for line_number, request in enumerate(data.lines, start=1):
            invoice_line = invoice_lines.get(request.invoice_line_id)
            if invoice_line is None:
                raise InvalidArgumentError(
                    f"La riga {request.invoice_line_id} non appartiene alla fattura {invoice.id}",
                    error_code="INVOICE_LINE_NOT_FOUND",
                    extra={"invoice_line_id": str(request.invoice_line_id)},
                )
            if request.amount <= 0:
                raise InvalidArgumentError(
                    "L'importo da stornare deve essere positivo",
                    extra={"invoice_line_id": str(invoice_line.id), "amount": str(request.amount)},
                )

            already = requested.get(invoice_line.id)
            if already is None:
                already = await self.credited_total(db, invoice_line.id)
            available = invoice_line.total_amount - already
            if request.amount > available:
                raise BusinessRuleViolationError(
                    f"L'importo {request.amount} supera il residuo stornabile {available} della riga",
                    error_code="CREDIT_EXCEEDS_LINE",
                    extra={
                        "invoice_line_id": str(invoice_line.id),
                        "amount": str(request.amount),
                        "available": str(available),
                    },
                )
            requested[invoice_line.id] = already + request.amount

            credit_note.lines.append(self._build_line(line_number, invoice_line, request.amount, request.notes))

        credit_note.total_amount = sum((line.total_amount for line in credit_note.lines), Decimal("0.00"))

        # Step 4: Numero e salvataggio
        sequence = await self.sequence_service.next_sequence_number(
            db, invoice.org_id, SequenceType.CREDIT_NOTE
        )
        credit_note.credit_note_number = format_document_number(
            self.default_prefix, credit_note.credit_note_date, sequence
        )
        db.add(credit_note)

        await commit_or_raise(db, "create_credit_note")
        await db.refresh(credit_note)

        logger.info(
            "Nota di credito %s creata su fattura %s: %s (%s)",
            credit_note.credit_note_number,
            invoice.id,
            credit_note.total_amount,
            credit_note.reason,
        )
        return credit_note

    async def issue(
        self,
        db: AsyncSession,
        credit_note_id: uuid.UUID,
        expected_version: int,
    ) -> CreditNote:
        """
        Emette la nota di credito, rendendola definitiva.

        Raises:
            InvalidArgumentError: Versione non fornita
            NotFoundError: Nota inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Nota già emessa
            BusinessRuleViolationError: Nota senza righe
        """
        credit_note = await self.get_by_id(db, credit_note_id, for_update=True)
        ensure_version(credit_note, expected_version, "La nota di credito")

        if credit_note.is_issued:
            raise InvalidStateError(
                "La nota di credito è già stata emessa",
                extra={"credit_note_id": str(credit_note.id)},
            )
        if not credit_note.lines:
            raise BusinessRuleViolationError(
                "Impossibile emettere una nota di credito senza righe",
                extra={"credit_note_id": str(credit_note.id)},
            )

        credit_note.issued_at = utcnow()

        await commit_or_raise(db, "issue_credit_note")
        logger.info("Nota di credito %s emessa", credit_note.credit_note_number)
        return credit_note

    async def get_by_id(
        self,
        db: AsyncSession,
        credit_note_id: uuid.UUID,
        for_update: bool = False,
    ) -> CreditNote:
        stmt = select(CreditNote).where(CreditNote.id == credit_note_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        credit_note = result.scalar_one_or_none()
        if credit_note is None:
            raise NotFoundError(
                f"Nota di credito {credit_note_id} non trovata",
                extra={"credit_note_id": str(credit_note_id)},
            )
        return credit_note

    async def get_by_invoice(self, db: AsyncSession, invoice_id: uuid.UUID) -> List[CreditNote]:
        """Note di credito di una fattura, in ordine di numero."""
        await self.lifecycle_service.get_invoice(db, invoice_id)
        result = await db.execute(
            select(CreditNote)
            .where(CreditNote.invoice_id == invoice_id)
            .order_by(CreditNote.credit_note_number)
        )
        return list(result.scalars().all())

    async def credited_total(self, db: AsyncSession, invoice_line_id: uuid.UUID) -> Decimal:
        """Importo già stornato su una riga fattura (positivo)."""
        result = await db.execute(
            select(func.coalesce(func.sum(CreditNoteLine.total_amount), 0)).where(
                CreditNoteLine.invoice_line_id == invoice_line_id
            )
        )
        return abs(round_money(Decimal(str(result.scalar_one()))))

    @staticmethod
    def _build_line(
        line_number: int,
        invoice_line: InvoiceLine,
        amount: Decimal,
        notes: Optional[str],
    ) -> CreditNoteLine:
        # Quota imposta nella stessa proporzione della riga fattura
        if invoice_line.total_amount > 0:
            tax = round_money(amount * invoice_line.tax_amount / invoice_line.total_amount)
        else:
            tax = Decimal("0.00")
        base = amount - tax

        return CreditNoteLine(
            invoice_line_id=invoice_line.id,
            line_number=line_number,
            description=f"Storno: {invoice_line.description}"[:500],
            quantity=Decimal("1.00"),
            unit_price=-base,
            amount=-base,
            tax_amount=-tax,
            total_amount=-amount,
            notes=notes,
        )
