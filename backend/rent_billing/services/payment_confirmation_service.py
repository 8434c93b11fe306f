"""
Service Layer per le Richieste di conferma pagamento
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

L'inquilino dichiara un pagamento (con prova); un revisore lo conferma
o lo rifiuta. La conferma crea un Payment in contanti completato e lo
applica alla fattura nella stessa transazione.

Più richieste in attesa sulla stessa fattura sono indipendenti: ognuna
viene riconvalidata sul saldo corrente al momento della conferma.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.database import commit_or_raise, flush_or_raise
from rent_billing.core.exceptions import (
    BusinessRuleViolationError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from rent_billing.models.invoice import Invoice
from rent_billing.models.payment import Payment, PaymentConfirmationRequest
from rent_billing.schemas.payment import (
    ConfirmationStatus,
    PaymentConfirmationRequestCreate,
    PaymentMode,
    PaymentStatus,
)
from rent_billing.services.invoice_lifecycle_service import (
    InvoiceLifecycleService,
    ensure_version,
    utcnow,
)

logger = logging.getLogger(__name__)


class PaymentConfirmationService:
    """Service per il flusso di revisione delle prove di pagamento."""

    def __init__(self, lifecycle_service: InvoiceLifecycleService):
        self.lifecycle_service = lifecycle_service

    async def create(
        self,
        db: AsyncSession,
        data: PaymentConfirmationRequestCreate,
        created_by: Optional[str] = None,
    ) -> PaymentConfirmationRequest:
        """
        Crea una richiesta di conferma in attesa.

        Raises:
            NotFoundError: Fattura inesistente
            InvalidStateError: Fattura in bozza, pagata o annullata
            BusinessRuleViolationError: Importo non positivo o superiore al saldo
        """
        invoice = await self.lifecycle_service.get_invoice(db, data.invoice_id)
        self._ensure_accepts_payments(invoice)

        if data.amount <= 0:
            raise BusinessRuleViolationError(
                "L'importo dichiarato deve essere positivo",
                extra={"amount": str(data.amount)},
            )

        balance = await self.lifecycle_service.current_balance(db, invoice)
        if data.amount > balance:
            raise BusinessRuleViolationError(
                f"L'importo {data.amount} supera il saldo residuo {balance}",
                error_code="AMOUNT_EXCEEDS_BALANCE",
                extra={"invoice_id": str(invoice.id), "amount": str(data.amount), "balance": str(balance)},
            )

        request = PaymentConfirmationRequest(
            org_id=invoice.org_id,
            invoice_id=invoice.id,
            lease_id=invoice.lease_id,
            amount=data.amount,
            payment_date=data.payment_date,
            receipt_number=data.receipt_number,
            notes=data.notes,
            proof_file_ref=data.proof_file_ref,
            status=ConfirmationStatus.PENDING.value,
            created_by=created_by,
        )
        db.add(request)

        await commit_or_raise(db, "create_payment_confirmation_request")
        await db.refresh(request)

        logger.info("Richiesta di conferma %s creata per fattura %s (%s)", request.id, invoice.id, request.amount)
        return request

    async def confirm(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        expected_version: int,
        reviewed_by: Optional[str],
        review_response: Optional[str] = None,
    ) -> tuple[PaymentConfirmationRequest, Payment, Invoice]:
        """
        Conferma una richiesta: crea il pagamento e accredita la fattura.

        Steps:
        1. Blocca la richiesta e ne verifica stato e versione
        2. Blocca la fattura e ricontrolla lo stato
        3. Applica l'importo (riconvalidato sul saldo corrente)
        4. Crea il Payment e chiude la richiesta in un'unica transazione

        Raises:
            InvalidArgumentError: Versione non fornita
            NotFoundError: Richiesta o fattura inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Richiesta non pending o fattura che non accetta pagamenti
            BusinessRuleViolationError: Importo superiore al saldo corrente
        """
        # Step 1: Richiesta
        request = await self._get_request(db, request_id, for_update=True)
        ensure_version(request, expected_version, "La richiesta")
        self._ensure_pending(request)

        # Step 2: Fattura
        invoice = await self.lifecycle_service.get_invoice(db, request.invoice_id, for_update=True)
        self._ensure_accepts_payments(invoice)

        # Step 3: Applicazione (il pagamento non è ancora in sessione)
        await self.lifecycle_service.apply_payment(db, invoice, request.amount)

        # Step 4: Pagamento e chiusura richiesta
        now = utcnow()
        payment = Payment(
            id=uuid.uuid4(),
            org_id=request.org_id,
            invoice_id=request.invoice_id,
            lease_id=request.lease_id,
            payment_mode=PaymentMode.CASH.value,
            status=PaymentStatus.COMPLETED.value,
            amount=request.amount,
            payment_date=request.payment_date,
            transaction_reference=request.receipt_number,
            notes=f"Confermato da richiesta di pagamento {request.id}",
            received_by=reviewed_by,
            completed_at=now,
        )
        db.add(payment)
        await flush_or_raise(db, "confirm_payment_request")

        request.status = ConfirmationStatus.CONFIRMED.value
        request.reviewed_at = now
        request.reviewed_by = reviewed_by
        request.review_response = (review_response or "").strip() or None
        request.payment_id = payment.id

        await commit_or_raise(db, "confirm_payment_request")
        await db.refresh(payment)

        logger.info(
            "Richiesta %s confermata da %s: pagamento %s, saldo fattura %s",
            request.id,
            reviewed_by,
            payment.id,
            invoice.balance_amount,
        )
        return request, payment, invoice

    async def reject(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        expected_version: int,
        reviewed_by: Optional[str],
        review_response: str,
    ) -> PaymentConfirmationRequest:
        """
        Rifiuta una richiesta. Nessun effetto finanziario.

        Raises:
            InvalidArgumentError: Motivazione vuota o versione non fornita
            NotFoundError: Richiesta inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Richiesta non pending
        """
        if not review_response or not review_response.strip():
            raise InvalidArgumentError("La motivazione del rifiuto è obbligatoria")

        request = await self._get_request(db, request_id, for_update=True)
        ensure_version(request, expected_version, "La richiesta")
        self._ensure_pending(request)

        request.status = ConfirmationStatus.REJECTED.value
        request.reviewed_at = utcnow()
        request.reviewed_by = reviewed_by
        request.review_response = review_response.strip()

        await commit_or_raise(db, "reject_payment_request")
        logger.info("Richiesta %s rifiutata da %s", request.id, reviewed_by)
        return request

    async def get_by_id(self, db: AsyncSession, request_id: uuid.UUID) -> PaymentConfirmationRequest:
        return await self._get_request(db, request_id)

    async def get_all(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        status: Optional[ConfirmationStatus] = None,
        invoice_id: Optional[uuid.UUID] = None,
    ) -> List[PaymentConfirmationRequest]:
        """Richieste dell'organizzazione, filtrabili per stato e fattura (più recenti prima)."""
        stmt = select(PaymentConfirmationRequest).where(PaymentConfirmationRequest.org_id == org_id)
        if status is not None:
            stmt = stmt.where(PaymentConfirmationRequest.status == status.value)
        if invoice_id is not None:
            stmt = stmt.where(PaymentConfirmationRequest.invoice_id == invoice_id)
        stmt = stmt.order_by(PaymentConfirmationRequest.created_at.desc(), PaymentConfirmationRequest.id)

        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    async def _get_request(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        for_update: bool = False,
    ) -> PaymentConfirmationRequest:
        stmt = select(PaymentConfirmationRequest).where(PaymentConfirmationRequest.id == request_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError(
                f"Richiesta di conferma {request_id} non trovata",
                extra={"request_id": str(request_id)},
            )
        return request

    @staticmethod
    def _ensure_pending(request: PaymentConfirmationRequest) -> None:
        if request.status != ConfirmationStatus.PENDING.value:
            raise InvalidStateError(
                f"La richiesta è già stata gestita (stato attuale: {request.status})",
                extra={"request_id": str(request.id), "status": request.status},
            )

    @staticmethod
    def _ensure_accepts_payments(invoice: Invoice) -> None:
        if not invoice.accepts_payments:
            raise InvalidStateError(
                f"La fattura non accetta pagamenti (stato attuale: {invoice.status})",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )
