"""
Service Layer per le interrogazioni sulle fatture
Progetto: Rent Billing (Motore di Fatturazione Locazioni)
"""

import uuid
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.models.invoice import Invoice
from rent_billing.schemas.invoice import InvoiceList, InvoiceStatus, InvoiceSummary


class InvoiceQueryService:
    """Letture paginate delle fatture per organizzazione o contratto."""

    async def get_all(
        self,
        db: AsyncSession,
        org_id: Optional[uuid.UUID] = None,
        lease_id: Optional[uuid.UUID] = None,
        status: Optional[InvoiceStatus] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> InvoiceList:
        """
        Recupera la lista paginata delle fatture con filtri.

        Args:
            db: Sessione database
            org_id: Filtro per organizzazione
            lease_id: Filtro per contratto
            status: Filtro per stato
            page: Numero pagina (da 1)
            per_page: Elementi per pagina

        Returns:
            InvoiceList: Lista paginata, periodi più recenti prima
        """
        conditions = []
        if org_id is not None:
            conditions.append(Invoice.org_id == org_id)
        if lease_id is not None:
            conditions.append(Invoice.lease_id == lease_id)
        if status is not None:
            conditions.append(Invoice.status == status.value)

        count_stmt = select(func.count()).select_from(Invoice)
        stmt = select(Invoice)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            stmt = stmt.where(and_(*conditions))

        total = (await db.execute(count_stmt)).scalar_one()

        page = max(page, 1)
        per_page = max(per_page, 1)
        stmt = (
            stmt.order_by(Invoice.billing_period_start.desc(), Invoice.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)

        return InvoiceList(
            items=[InvoiceSummary.model_validate(inv) for inv in result.scalars().all()],
            total=total,
            page=page,
            per_page=per_page,
        )
