"""
Service Layer per le esecuzioni batch di fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Genera le bozze di fattura per tutti i contratti attivi di
un'organizzazione. Ogni contratto è una unità di lavoro separata,
limitata dal proprio timeout: l'errore su un contratto non annulla le
bozze già generate.
Invocato da uno scheduler esterno (vedi main.py).
"""

import asyncio
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rent_billing.core.database import commit_or_raise
from rent_billing.core.exceptions import AppException, InvalidArgumentError, NotFoundError
from rent_billing.models.invoice_run import InvoiceRun, InvoiceRunItem
from rent_billing.schemas.invoice import ProrationMethod
from rent_billing.schemas.invoice_run import InvoiceRunStatus
from rent_billing.services.invoice_generation_service import InvoiceGenerationService
from rent_billing.services.lease_charge_provider import LeaseChargeProvider

logger = logging.getLogger(__name__)

# Numero massimo di errori riportati nel riepilogo dell'esecuzione
MAX_REPORTED_ERRORS = 10


def generate_run_number(period_start: date) -> str:
    """RUN-YYYYMM-XXXXXXXX"""
    return f"RUN-{period_start:%Y%m}-{uuid.uuid4().hex[:8].upper()}"


class InvoiceRunService:
    """Service per la generazione batch delle fatture di un'organizzazione."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lease_provider: LeaseChargeProvider,
        generation_service: InvoiceGenerationService,
        lease_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self.lease_provider = lease_provider
        self.generation_service = generation_service
        self.lease_timeout_seconds = lease_timeout_seconds
        self.clock = clock

    async def execute(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        period_start: date,
        period_end: date,
        proration_method: ProrationMethod = ProrationMethod.ACTUAL_DAYS,
    ) -> InvoiceRun:
        """
        Esegue la generazione per tutti i contratti attivi.

        `db` è usata per l'esecuzione stessa (InvoiceRun e relativi item);
        ogni contratto è generato in una sessione dedicata.

        L'esecuzione viene salvata subito come in_progress. Se viene
        cancellata o si interrompe per un errore non di dominio, viene
        salvata come interrupted con gli esiti raccolti fino a quel
        momento e l'eccezione viene propagata.

        Returns:
            InvoiceRun: Riepilogo con esito per contratto

        Raises:
            InvalidArgumentError: Periodo invertito
        """
        if period_end < period_start:
            raise InvalidArgumentError("La fine del periodo di fatturazione non può precedere l'inizio")

        run = InvoiceRun(
            org_id=org_id,
            run_number=generate_run_number(period_start),
            billing_period_start=period_start,
            billing_period_end=period_end,
            proration_method=proration_method.value,
            status=InvoiceRunStatus.IN_PROGRESS.value,
            started_at=self.clock(),
            items=[],
        )

        lease_ids = await self.lease_provider.list_active_lease_ids(db, org_id)
        run.total_leases = len(lease_ids)
        db.add(run)
        await commit_or_raise(db, "invoice_run")
        logger.info("Esecuzione %s: %d contratti attivi per org %s", run.run_number, len(lease_ids), org_id)

        errors: list[str] = []
        try:
            for lease_id in lease_ids:
                item = await self._process_lease(run, lease_id, period_start, period_end, proration_method)
                if not item.is_success:
                    errors.append(f"Contratto {lease_id}: {item.error_message}")
                run.items.append(item)
        except (Exception, asyncio.CancelledError):
            await asyncio.shield(self._save_interrupted(db, run))
            raise

        self._count_items(run)
        run.completed_at = self.clock()

        if not lease_ids:
            run.status = InvoiceRunStatus.COMPLETED.value
            run.notes = "Nessun contratto attivo"
        elif run.failure_count == 0:
            run.status = InvoiceRunStatus.COMPLETED.value
        elif run.success_count > 0:
            run.status = InvoiceRunStatus.COMPLETED_WITH_ERRORS.value
            run.error_message = "; ".join(errors[:MAX_REPORTED_ERRORS])
        else:
            run.status = InvoiceRunStatus.FAILED.value
            run.error_message = "; ".join(errors[:MAX_REPORTED_ERRORS])

        await commit_or_raise(db, "invoice_run")

        logger.info(
            "Esecuzione %s terminata: %s (%d ok, %d errori)",
            run.run_number,
            run.status,
            run.success_count,
            run.failure_count,
        )
        return run

    async def _process_lease(
        self,
        run: InvoiceRun,
        lease_id: uuid.UUID,
        period_start: date,
        period_end: date,
        proration_method: ProrationMethod,
    ) -> InvoiceRunItem:
        """Genera la bozza di un contratto nella propria sessione, entro il timeout."""
        item = InvoiceRunItem(lease_id=lease_id, processed_at=self.clock())
        try:
            async with asyncio.timeout(self.lease_timeout_seconds):
                async with self.session_factory() as lease_db:
                    invoice = await self.generation_service.generate(
                        lease_db, lease_id, period_start, period_end, proration_method
                    )
            item.is_success = True
            item.invoice_id = invoice.id
        except AppException as e:
            item.is_success = False
            item.error_code = e.error_code
            item.error_message = e.detail
            logger.warning("Esecuzione %s: contratto %s saltato (%s)", run.run_number, lease_id, e.detail)
        except TimeoutError:
            item.is_success = False
            item.error_code = "LEASE_TIMEOUT"
            item.error_message = f"Generazione oltre il limite di {self.lease_timeout_seconds}s"
            logger.warning(
                "Esecuzione %s: contratto %s oltre il timeout di %ss, rollback eseguito",
                run.run_number,
                lease_id,
                self.lease_timeout_seconds,
            )
        return item

    async def _save_interrupted(self, db: AsyncSession, run: InvoiceRun) -> None:
        self._count_items(run)
        run.completed_at = self.clock()
        run.status = InvoiceRunStatus.INTERRUPTED.value
        run.error_message = f"Esecuzione interrotta dopo {len(run.items)} contratti su {run.total_leases}"
        try:
            await commit_or_raise(db, "invoice_run")
        except Exception:
            logger.exception("Esecuzione %s: impossibile salvare lo stato interrotto", run.run_number)
        else:
            logger.warning("Esecuzione %s interrotta: %s", run.run_number, run.error_message)

    @staticmethod
    def _count_items(run: InvoiceRun) -> None:
        run.success_count = sum(1 for i in run.items if i.is_success)
        run.failure_count = len(run.items) - run.success_count

    async def get_by_id(self, db: AsyncSession, run_id: uuid.UUID) -> InvoiceRun:
        result = await db.execute(select(InvoiceRun).where(InvoiceRun.id == run_id))
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFoundError(f"Esecuzione {run_id} non trovata", extra={"run_id": str(run_id)})
        return run

    async def get_latest(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        limit: int = 20,
    ) -> list[InvoiceRun]:
        result = await db.execute(
            select(InvoiceRun)
            .where(InvoiceRun.org_id == org_id)
            .order_by(InvoiceRun.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
