"""
BillingEngine - punto di ingresso del motore di fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Espone le operazioni del motore ai chiamanti (API, job schedulati, script).
Ogni operazione:
- apre una propria sessione (una unità di lavoro, un commit)
- è limitata dal timeout configurato (billing_operation_timeout_seconds);
  l'esecuzione batch lo applica a ogni singolo contratto
- restituisce un OperationResult: gli errori di dominio non vengono
  sollevati ma riportati con categoria e codice

Gli errori infrastrutturali (database non raggiungibile) si propagano
come ServiceUnavailableError; cancellazione e timeout si propagano dopo
il rollback.
"""

import asyncio
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rent_billing.core.config import Settings, settings as default_settings
from rent_billing.core.database import AsyncSessionLocal
from rent_billing.core.exceptions import (
    AppException,
    InvalidArgumentError,
    ServiceUnavailableError,
)
from rent_billing.core.result import OperationResult
from rent_billing.schemas.credit_note import CreditNoteCreate, CreditNoteRead
from rent_billing.schemas.invoice import (
    InvoiceGenerate,
    InvoiceList,
    InvoiceRead,
    InvoiceStatus,
    ProrationMethod,
)
from rent_billing.schemas.invoice_run import InvoiceRunRead
from rent_billing.schemas.payment import (
    ConfirmationStatus,
    PaymentConfirmationRequestCreate,
    PaymentConfirmationRequestRead,
    PaymentRead,
    PaymentRecord,
    PaymentRecordResult,
)
from rent_billing.services.credit_note_service import CreditNoteService
from rent_billing.services.invoice_generation_service import InvoiceGenerationService
from rent_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from rent_billing.services.invoice_query_service import InvoiceQueryService
from rent_billing.services.invoice_run_service import InvoiceRunService
from rent_billing.services.lease_charge_provider import LeaseChargeProvider, SqlLeaseChargeProvider
from rent_billing.services.payment_confirmation_service import PaymentConfirmationService
from rent_billing.services.payment_service import PaymentService
from rent_billing.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BillingEngine:
    """
    Facciata del motore di fatturazione.

    Usage:
        engine = BillingEngine(session_factory)
        result = await engine.generate_invoice(lease_id, date(2025, 1, 1), date(2025, 1, 31))
        if result.is_success:
            draft = result.value
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        lease_provider: Optional[LeaseChargeProvider] = None,
        config: Optional[Settings] = None,
    ):
        self.settings = config or default_settings
        self.session_factory = session_factory or AsyncSessionLocal
        self.lease_provider = lease_provider or SqlLeaseChargeProvider()

        self.sequence_service = SequenceService(max_value=self.settings.billing_sequence_max_value)
        self.lifecycle_service = InvoiceLifecycleService(
            self.lease_provider,
            self.sequence_service,
            default_prefix=self.settings.billing_default_invoice_prefix,
        )
        self.generation_service = InvoiceGenerationService(
            self.lease_provider,
            self.lifecycle_service,
            assign_number_on_generation=self.settings.billing_assign_number_on_generation,
            default_payment_term_days=self.settings.billing_default_payment_term_days,
        )
        self.query_service = InvoiceQueryService()
        self.payment_service = PaymentService(self.lifecycle_service)
        self.confirmation_service = PaymentConfirmationService(self.lifecycle_service)
        self.credit_note_service = CreditNoteService(
            self.lifecycle_service,
            self.sequence_service,
            default_prefix=self.settings.billing_default_credit_note_prefix,
        )
        self.run_service = InvoiceRunService(
            self.session_factory,
            self.lease_provider,
            self.generation_service,
            lease_timeout_seconds=self.settings.billing_operation_timeout_seconds,
        )

    # ------------------------------------------------------------
    # Esecuzione operazioni
    # ------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        func: Callable[[AsyncSession], Awaitable[T]],
        bounded: bool = True,
    ) -> OperationResult[T]:
        """
        Esegue `func` in una sessione dedicata e ne converte l'esito.

        Con bounded=False il timeout non si applica all'intera operazione:
        lo usa l'esecuzione batch, che limita ogni contratto separatamente.

        Raises:
            ServiceUnavailableError: Errore di connessione al database
            TimeoutError: Operazione oltre il timeout configurato
            asyncio.CancelledError: Operazione cancellata dal chiamante
        """
        timeout = self.settings.billing_operation_timeout_seconds if bounded else None
        async with self.session_factory() as db:
            try:
                async with asyncio.timeout(timeout):
                    value = await func(db)
            except ServiceUnavailableError:
                await db.rollback()
                raise
            except AppException as e:
                await db.rollback()
                logger.info("%s fallita: %s [%s] %s", operation, e.kind.value, e.error_code, e.detail)
                return OperationResult.fail(e)
            except ValidationError as e:
                await db.rollback()
                logger.info("%s: input non valido (%d errori)", operation, e.error_count())
                return OperationResult.fail(
                    InvalidArgumentError(
                        "Dati di input non validi",
                        error_code="VALIDATION_ERROR",
                        extra={"errors": e.errors(include_url=False, include_context=False)},
                    )
                )
            except (OperationalError, InterfaceError) as e:
                await db.rollback()
                logger.error("%s: database non disponibile: %s", operation, e)
                raise ServiceUnavailableError(extra={"operation": operation}) from e
            except TimeoutError:
                logger.warning(
                    "%s interrotta dopo %ss: rollback eseguito",
                    operation,
                    self.settings.billing_operation_timeout_seconds,
                )
                raise

        return OperationResult.ok(value)

    @staticmethod
    def _as_enum(enum_cls, value: Any, field: str):
        if value is None or isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError as e:
            raise InvalidArgumentError(
                f"Valore non valido per {field}: {value}",
                extra={"field": field, "allowed": [m.value for m in enum_cls]},
            ) from e

    # ------------------------------------------------------------
    # Generazione
    # ------------------------------------------------------------

    async def generate_invoice(
        self,
        lease_id: uuid.UUID,
        billing_period_start: date,
        billing_period_end: date,
        proration_method: Union[ProrationMethod, str] = ProrationMethod.ACTUAL_DAYS,
    ) -> OperationResult[InvoiceRead]:
        """Genera (o rigenera) la bozza di fattura per contratto e periodo."""

        async def op(db: AsyncSession) -> InvoiceRead:
            request = InvoiceGenerate(
                lease_id=lease_id,
                billing_period_start=billing_period_start,
                billing_period_end=billing_period_end,
                proration_method=self._as_enum(ProrationMethod, proration_method, "proration_method"),
            )
            invoice = await self.generation_service.generate(
                db,
                request.lease_id,
                request.billing_period_start,
                request.billing_period_end,
                request.proration_method,
            )
            return InvoiceRead.model_validate(invoice)

        return await self._run("generate_invoice", op)

    # La rigenerazione è la stessa operazione: aggiorna la bozza esistente
    regenerate_invoice = generate_invoice

    async def run_invoice_generation(
        self,
        org_id: uuid.UUID,
        billing_period_start: date,
        billing_period_end: date,
        proration_method: Union[ProrationMethod, str] = ProrationMethod.ACTUAL_DAYS,
    ) -> OperationResult[InvoiceRunRead]:
        """
        Generazione batch per tutti i contratti attivi dell'organizzazione.

        Il timeout configurato vale per ogni contratto; un contratto oltre
        il limite viene registrato come fallito e l'esecuzione prosegue.
        """

        async def op(db: AsyncSession) -> InvoiceRunRead:
            method = self._as_enum(ProrationMethod, proration_method, "proration_method")
            run = await self.run_service.execute(
                db, org_id, billing_period_start, billing_period_end, method
            )
            return InvoiceRunRead.model_validate(run)

        return await self._run("run_invoice_generation", op, bounded=False)

    async def get_invoice_run(self, run_id: uuid.UUID) -> OperationResult[InvoiceRunRead]:
        async def op(db: AsyncSession) -> InvoiceRunRead:
            return InvoiceRunRead.model_validate(await self.run_service.get_by_id(db, run_id))

        return await self._run("get_invoice_run", op)

    async def list_invoice_runs(
        self,
        org_id: uuid.UUID,
        limit: int = 20,
    ) -> OperationResult[list[InvoiceRunRead]]:
        """Ultime esecuzioni dell'organizzazione, dalla più recente."""

        async def op(db: AsyncSession) -> list[InvoiceRunRead]:
            runs = await self.run_service.get_latest(db, org_id, limit)
            return [InvoiceRunRead.model_validate(r) for r in runs]

        return await self._run("list_invoice_runs", op)

    # ------------------------------------------------------------
    # Ciclo di vita
    # ------------------------------------------------------------

    async def issue_invoice(self, invoice_id: uuid.UUID, expected_version: int) -> OperationResult[InvoiceRead]:
        """Emette una bozza (assegna il numero se mancante)."""

        async def op(db: AsyncSession) -> InvoiceRead:
            invoice = await self.lifecycle_service.issue(db, invoice_id, expected_version)
            return InvoiceRead.model_validate(invoice)

        return await self._run("issue_invoice", op)

    async def void_invoice(
        self,
        invoice_id: uuid.UUID,
        expected_version: int,
        reason: str,
    ) -> OperationResult[InvoiceRead]:
        """Annulla una fattura in bozza o emessa senza pagamenti."""

        async def op(db: AsyncSession) -> InvoiceRead:
            invoice = await self.lifecycle_service.void(db, invoice_id, expected_version, reason)
            return InvoiceRead.model_validate(invoice)

        return await self._run("void_invoice", op)

    # ------------------------------------------------------------
    # Pagamenti
    # ------------------------------------------------------------

    async def record_payment(
        self,
        data: Union[PaymentRecord, dict],
        received_by: Optional[str] = None,
    ) -> OperationResult[PaymentRecordResult]:
        """Registra un pagamento (contanti: completato; gateway: in attesa)."""

        async def op(db: AsyncSession) -> PaymentRecordResult:
            record = PaymentRecord.model_validate(data)
            payment, invoice = await self.payment_service.record_payment(db, record, received_by)
            return self._payment_result(payment, invoice)

        return await self._run("record_payment", op)

    async def complete_pending_payment(
        self,
        payment_id: uuid.UUID,
        expected_version: int,
    ) -> OperationResult[PaymentRecordResult]:
        """Callback gateway: completa un pagamento in attesa e lo applica."""

        async def op(db: AsyncSession) -> PaymentRecordResult:
            payment, invoice = await self.payment_service.complete_pending_payment(
                db, payment_id, expected_version
            )
            return self._payment_result(payment, invoice)

        return await self._run("complete_pending_payment", op)

    async def fail_pending_payment(
        self,
        payment_id: uuid.UUID,
        expected_version: int,
        reason: str,
    ) -> OperationResult[PaymentRead]:
        """Callback gateway: segna come fallito un pagamento in attesa."""

        async def op(db: AsyncSession) -> PaymentRead:
            payment = await self.payment_service.fail_pending_payment(db, payment_id, expected_version, reason)
            return PaymentRead.model_validate(payment)

        return await self._run("fail_pending_payment", op)

    # ------------------------------------------------------------
    # Richieste di conferma
    # ------------------------------------------------------------

    async def create_payment_confirmation_request(
        self,
        data: Union[PaymentConfirmationRequestCreate, dict],
        created_by: Optional[str] = None,
    ) -> OperationResult[PaymentConfirmationRequestRead]:
        """Registra la dichiarazione di pagamento dell'inquilino."""

        async def op(db: AsyncSession) -> PaymentConfirmationRequestRead:
            payload = PaymentConfirmationRequestCreate.model_validate(data)
            request = await self.confirmation_service.create(db, payload, created_by)
            return PaymentConfirmationRequestRead.model_validate(request)

        return await self._run("create_payment_confirmation_request", op)

    async def confirm_payment_request(
        self,
        request_id: uuid.UUID,
        expected_version: int,
        reviewed_by: Optional[str] = None,
        review_response: Optional[str] = None,
    ) -> OperationResult[PaymentConfirmationRequestRead]:
        """Conferma la richiesta: crea il pagamento e accredita la fattura."""

        async def op(db: AsyncSession) -> PaymentConfirmationRequestRead:
            request, _payment, _invoice = await self.confirmation_service.confirm(
                db, request_id, expected_version, reviewed_by, review_response
            )
            return PaymentConfirmationRequestRead.model_validate(request)

        return await self._run("confirm_payment_request", op)

    async def reject_payment_request(
        self,
        request_id: uuid.UUID,
        expected_version: int,
        review_response: str,
        reviewed_by: Optional[str] = None,
    ) -> OperationResult[PaymentConfirmationRequestRead]:
        """Rifiuta la richiesta (motivazione obbligatoria)."""

        async def op(db: AsyncSession) -> PaymentConfirmationRequestRead:
            request = await self.confirmation_service.reject(
                db, request_id, expected_version, reviewed_by, review_response
            )
            return PaymentConfirmationRequestRead.model_validate(request)

        return await self._run("reject_payment_request", op)

    # ------------------------------------------------------------
    # Note di credito
    # ------------------------------------------------------------

    async def create_credit_note(
        self,
        data: Union[CreditNoteCreate, dict],
        created_by: Optional[str] = None,
    ) -> OperationResult[CreditNoteRead]:
        """Crea una nota di credito numerata su una fattura emessa o pagata."""

        async def op(db: AsyncSession) -> CreditNoteRead:
            payload = CreditNoteCreate.model_validate(data)
            credit_note = await self.credit_note_service.create(db, payload, created_by)
            return CreditNoteRead.model_validate(credit_note)

        return await self._run("create_credit_note", op)

    async def issue_credit_note(
        self,
        credit_note_id: uuid.UUID,
        expected_version: int,
    ) -> OperationResult[CreditNoteRead]:
        async def op(db: AsyncSession) -> CreditNoteRead:
            credit_note = await self.credit_note_service.issue(db, credit_note_id, expected_version)
            return CreditNoteRead.model_validate(credit_note)

        return await self._run("issue_credit_note", op)

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------

    async def get_invoice(self, invoice_id: uuid.UUID) -> OperationResult[InvoiceRead]:
        async def op(db: AsyncSession) -> InvoiceRead:
            return InvoiceRead.model_validate(await self.lifecycle_service.get_invoice(db, invoice_id))

        return await self._run("get_invoice", op)

    async def list_invoices_by_org(
        self,
        org_id: uuid.UUID,
        status: Optional[Union[InvoiceStatus, str]] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> OperationResult[InvoiceList]:
        async def op(db: AsyncSession) -> InvoiceList:
            return await self.query_service.get_all(
                db,
                org_id=org_id,
                status=self._as_enum(InvoiceStatus, status, "status"),
                page=page,
                per_page=per_page,
            )

        return await self._run("list_invoices_by_org", op)

    async def list_invoices_by_lease(
        self,
        lease_id: uuid.UUID,
        page: int = 1,
        per_page: int = 50,
    ) -> OperationResult[InvoiceList]:
        async def op(db: AsyncSession) -> InvoiceList:
            return await self.query_service.get_all(db, lease_id=lease_id, page=page, per_page=per_page)

        return await self._run("list_invoices_by_lease", op)

    async def get_credit_note(self, credit_note_id: uuid.UUID) -> OperationResult[CreditNoteRead]:
        async def op(db: AsyncSession) -> CreditNoteRead:
            return CreditNoteRead.model_validate(await self.credit_note_service.get_by_id(db, credit_note_id))

        return await self._run("get_credit_note", op)

    async def list_credit_notes_by_invoice(self, invoice_id: uuid.UUID) -> OperationResult[list[CreditNoteRead]]:
        async def op(db: AsyncSession) -> list[CreditNoteRead]:
            credit_notes = await self.credit_note_service.get_by_invoice(db, invoice_id)
            return [CreditNoteRead.model_validate(c) for c in credit_notes]

        return await self._run("list_credit_notes_by_invoice", op)

    async def list_payments_by_invoice(self, invoice_id: uuid.UUID) -> OperationResult[list[PaymentRead]]:
        async def op(db: AsyncSession) -> list[PaymentRead]:
            payments = await self.payment_service.get_by_invoice(db, invoice_id)
            return [PaymentRead.model_validate(p) for p in payments]

        return await self._run("list_payments_by_invoice", op)

    async def get_payment_confirmation_request(
        self,
        request_id: uuid.UUID,
    ) -> OperationResult[PaymentConfirmationRequestRead]:
        async def op(db: AsyncSession) -> PaymentConfirmationRequestRead:
            request = await self.confirmation_service.get_by_id(db, request_id)
            return PaymentConfirmationRequestRead.model_validate(request)

        return await self._run("get_payment_confirmation_request", op)

    async def list_payment_confirmation_requests(
        self,
        org_id: uuid.UUID,
        status: Optional[Union[ConfirmationStatus, str]] = None,
        invoice_id: Optional[uuid.UUID] = None,
    ) -> OperationResult[list[PaymentConfirmationRequestRead]]:
        async def op(db: AsyncSession) -> list[PaymentConfirmationRequestRead]:
            requests = await self.confirmation_service.get_all(
                db,
                org_id,
                status=self._as_enum(ConfirmationStatus, status, "status"),
                invoice_id=invoice_id,
            )
            return [PaymentConfirmationRequestRead.model_validate(r) for r in requests]

        return await self._run("list_payment_confirmation_requests", op)

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    @staticmethod
    def _payment_result(payment, invoice) -> PaymentRecordResult:
        return PaymentRecordResult(
            payment=PaymentRead.model_validate(payment),
            invoice_status=invoice.status,
            invoice_balance=Decimal(invoice.balance_amount),
            invoice_version=invoice.version,
        )
