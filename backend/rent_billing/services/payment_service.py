"""
Service Layer per la registrazione dei Pagamenti
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Registra pagamenti su una fattura emessa:
- contanti (e modalità manuali con riferimento): completati e applicati subito
- gateway (con gateway_transaction_id): in attesa del callback, senza
  effetto sui totali finché non vengono completati
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.database import commit_or_raise
from rent_billing.core.exceptions import (
    BusinessRuleViolationError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from rent_billing.models.invoice import Invoice
from rent_billing.models.payment import Payment
from rent_billing.schemas.payment import PaymentMode, PaymentRecord, PaymentStatus
from rent_billing.services.invoice_lifecycle_service import (
    InvoiceLifecycleService,
    ensure_version,
    utcnow,
)

logger = logging.getLogger(__name__)


class PaymentService:
    """Service per la registrazione e la finalizzazione dei pagamenti."""

    def __init__(self, lifecycle_service: InvoiceLifecycleService):
        self.lifecycle_service = lifecycle_service

    async def record_payment(
        self,
        db: AsyncSession,
        data: PaymentRecord,
        received_by: Optional[str] = None,
    ) -> tuple[Payment, Invoice]:
        """
        Registra un pagamento su una fattura.

        Steps:
        1. Valida importo e riferimento transazione
        2. Blocca la fattura e ne verifica lo stato
        3. Confronta l'importo con il saldo ricalcolato dai pagamenti completati
        4. Crea il pagamento (completed o pending) e, se completato, lo applica

        Args:
            db: Sessione database async
            data: Dati del pagamento
            received_by: Operatore che registra il pagamento

        Returns:
            tuple[Payment, Invoice]: Pagamento creato e fattura aggiornata

        Raises:
            InvalidArgumentError: Importo non positivo o riferimento mancante
            NotFoundError: Fattura inesistente
            InvalidStateError: Fattura in bozza, pagata o annullata
            BusinessRuleViolationError: Importo superiore al saldo residuo
        """
        # Step 1: Validazioni input
        if data.amount <= 0:
            raise InvalidArgumentError(
                "L'importo del pagamento deve essere positivo",
                extra={"amount": str(data.amount)},
            )
        if data.payment_mode != PaymentMode.CASH and not data.transaction_reference:
            raise InvalidArgumentError(
                f"Riferimento transazione obbligatorio per pagamenti {data.payment_mode.value}",
                error_code="TRANSACTION_REFERENCE_REQUIRED",
            )

        # Step 2: Fattura bloccata e stato
        invoice = await self.lifecycle_service.get_invoice(db, data.invoice_id, for_update=True)
        self._ensure_accepts_payments(invoice)

        # Step 3: Saldo aggiornato
        balance = await self.lifecycle_service.current_balance(db, invoice)
        if data.amount > balance:
            raise BusinessRuleViolationError(
                f"L'importo {data.amount} supera il saldo residuo {balance}",
                error_code="AMOUNT_EXCEEDS_BALANCE",
                extra={"invoice_id": str(invoice.id), "amount": str(data.amount), "balance": str(balance)},
            )

        # Step 4: Pagamento
        is_gateway = data.payment_mode != PaymentMode.CASH and data.gateway_transaction_id is not None
        payment = Payment(
            org_id=invoice.org_id,
            invoice_id=invoice.id,
            lease_id=invoice.lease_id,
            payment_mode=data.payment_mode.value,
            amount=data.amount,
            payment_date=data.payment_date,
            transaction_reference=data.transaction_reference,
            gateway_transaction_id=data.gateway_transaction_id,
            gateway_name=data.gateway_name,
            payer_name=data.payer_name,
            notes=data.notes,
            received_by=received_by,
        )

        if is_gateway:
            payment.status = PaymentStatus.PENDING.value
        else:
            # Applicato prima di aggiungere il pagamento alla sessione:
            # il totale pagato letto da apply_payment non lo include ancora
            await self.lifecycle_service.apply_payment(db, invoice, data.amount)
            payment.status = PaymentStatus.COMPLETED.value
            payment.completed_at = utcnow()

        db.add(payment)
        await commit_or_raise(db, "record_payment")
        await db.refresh(payment)

        logger.info(
            "Pagamento %s registrato su fattura %s: %s %s (%s)",
            payment.id,
            invoice.id,
            payment.amount,
            payment.payment_mode,
            payment.status,
        )
        return payment, invoice

    async def complete_pending_payment(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        expected_version: int,
    ) -> tuple[Payment, Invoice]:
        """
        Completa un pagamento in attesa (callback del gateway).

        Il saldo viene ricontrollato: se nel frattempo altri pagamenti lo
        hanno ridotto, il pagamento resta pending e viene sollevato
        BusinessRuleViolationError.

        Raises:
            InvalidArgumentError: Versione non fornita
            NotFoundError: Pagamento inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Pagamento non pending o fattura che non accetta pagamenti
            BusinessRuleViolationError: Importo superiore al saldo residuo
        """
        payment = await self._get_payment(db, payment_id, for_update=True)
        ensure_version(payment, expected_version, "Il pagamento")
        self._ensure_pending(payment)

        invoice = await self.lifecycle_service.get_invoice(db, payment.invoice_id, for_update=True)
        self._ensure_accepts_payments(invoice)

        await self.lifecycle_service.apply_payment(db, invoice, payment.amount)
        payment.status = PaymentStatus.COMPLETED.value
        payment.completed_at = utcnow()

        await commit_or_raise(db, "complete_pending_payment")
        logger.info("Pagamento %s completato dal gateway %s", payment.id, payment.gateway_name)
        return payment, invoice

    async def fail_pending_payment(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        expected_version: int,
        reason: str,
    ) -> Payment:
        """
        Segna come fallito un pagamento in attesa. Nessun effetto sulla fattura.

        Raises:
            InvalidArgumentError: Versione non fornita
            NotFoundError: Pagamento inesistente
            ConcurrencyConflictError: Versione obsoleta
            InvalidStateError: Pagamento non pending
        """
        payment = await self._get_payment(db, payment_id, for_update=True)
        ensure_version(payment, expected_version, "Il pagamento")
        self._ensure_pending(payment)

        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = (reason or "").strip() or None

        await commit_or_raise(db, "fail_pending_payment")
        logger.warning("Pagamento %s fallito: %s", payment.id, payment.failure_reason)
        return payment

    async def get_by_invoice(self, db: AsyncSession, invoice_id: uuid.UUID) -> List[Payment]:
        """Pagamenti di una fattura, dal più vecchio."""
        await self.lifecycle_service.get_invoice(db, invoice_id)
        result = await db.execute(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .order_by(Payment.payment_date, Payment.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    async def _get_payment(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        for_update: bool = False,
    ) -> Payment:
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(
                f"Pagamento {payment_id} non trovato",
                extra={"payment_id": str(payment_id)},
            )
        return payment

    @staticmethod
    def _ensure_pending(payment: Payment) -> None:
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidStateError(
                f"Il pagamento non è in attesa (stato attuale: {payment.status})",
                extra={"payment_id": str(payment.id), "status": payment.status},
            )

    @staticmethod
    def _ensure_accepts_payments(invoice: Invoice) -> None:
        if not invoice.accepts_payments:
            raise InvalidStateError(
                f"La fattura non accetta pagamenti (stato attuale: {invoice.status})",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )
