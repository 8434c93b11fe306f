"""
Lettura dei dati contrattuali per la fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Il motore riceve contratto e addebiti tramite il protocollo
LeaseChargeProvider. SqlLeaseChargeProvider è l'implementazione
predefinita basata sulle tabelle leases / lease_terms /
lease_recurring_charges / lease_billing_settings.
"""

import logging
import uuid
from datetime import date
from typing import Optional, Protocol

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rent_billing.core.exceptions import BusinessRuleViolationError, NotFoundError
from rent_billing.models.lease import ChargeType, Lease, LeaseRecurringCharge, LeaseTerm
from rent_billing.schemas.lease import ChargeInput, LeaseBillingContext

logger = logging.getLogger(__name__)

RENT_CHARGE_CODE = "RENT"


class LeaseChargeProvider(Protocol):
    """Interfaccia verso i dati contrattuali."""

    async def get_lease_context(
        self,
        db: AsyncSession,
        lease_id: uuid.UUID,
    ) -> LeaseBillingContext:
        """Contratto e impostazioni di fatturazione. NotFoundError se assente."""
        ...

    async def get_charges(
        self,
        db: AsyncSession,
        lease_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> list[ChargeInput]:
        """Addebiti la cui validità interseca il periodo (canoni per primi)."""
        ...

    async def list_active_lease_ids(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """Contratti attivi dell'organizzazione (per le esecuzioni batch)."""
        ...


class SqlLeaseChargeProvider:
    """Implementazione SQLAlchemy del LeaseChargeProvider."""

    async def get_lease_context(
        self,
        db: AsyncSession,
        lease_id: uuid.UUID,
    ) -> LeaseBillingContext:
        lease = await self._get_lease(db, lease_id)
        setting = lease.billing_setting

        return LeaseBillingContext(
            lease_id=lease.id,
            org_id=lease.org_id,
            lease_number=lease.lease_number,
            status=lease.status,
            payment_term_days=setting.payment_term_days if setting else None,
            invoice_prefix=setting.invoice_prefix if setting else None,
            payment_instructions=setting.payment_instructions if setting else None,
        )

    async def get_charges(
        self,
        db: AsyncSession,
        lease_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> list[ChargeInput]:
        lease = await self._get_lease(db, lease_id)
        charges: list[ChargeInput] = []

        # 1. Canoni
        terms_result = await db.execute(
            select(LeaseTerm)
            .where(
                LeaseTerm.lease_id == lease_id,
                LeaseTerm.effective_from <= period_end,
                or_(LeaseTerm.effective_to.is_(None), LeaseTerm.effective_to >= period_start),
            )
            .order_by(LeaseTerm.effective_from)
        )
        terms = list(terms_result.scalars().all())

        if terms:
            rent_type = await self._get_rent_charge_type(db, lease.org_id)
            for term in terms:
                charges.append(
                    ChargeInput(
                        charge_type_id=rent_type.id,
                        description=self._rent_description(term, period_start, period_end),
                        amount=term.monthly_rent,
                        effective_from=term.effective_from,
                        effective_to=term.effective_to,
                        is_rent=True,
                    )
                )

        # 2. Addebiti ricorrenti mensili attivi
        charges_result = await db.execute(
            select(LeaseRecurringCharge)
            .where(
                LeaseRecurringCharge.lease_id == lease_id,
                LeaseRecurringCharge.is_active.is_(True),
                LeaseRecurringCharge.frequency == "monthly",
                LeaseRecurringCharge.start_date <= period_end,
                or_(
                    LeaseRecurringCharge.end_date.is_(None),
                    LeaseRecurringCharge.end_date >= period_start,
                ),
            )
            .order_by(LeaseRecurringCharge.start_date, LeaseRecurringCharge.description)
        )
        for charge in charges_result.scalars().all():
            charges.append(
                ChargeInput(
                    charge_type_id=charge.charge_type_id,
                    description=charge.description,
                    amount=charge.amount,
                    tax_rate=charge.tax_rate,
                    effective_from=charge.start_date,
                    effective_to=charge.end_date,
                )
            )

        return charges

    async def list_active_lease_ids(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(Lease.id)
            .where(Lease.org_id == org_id, Lease.status == "active")
            .order_by(Lease.created_at, Lease.id)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    async def _get_lease(self, db: AsyncSession, lease_id: uuid.UUID) -> Lease:
        lease = await db.get(Lease, lease_id)
        if lease is None:
            raise NotFoundError(f"Contratto {lease_id} non trovato", extra={"lease_id": str(lease_id)})
        return lease

    async def _get_rent_charge_type(self, db: AsyncSession, org_id: uuid.UUID) -> ChargeType:
        """Tipo RENT dell'organizzazione, altrimenti quello di sistema."""
        result = await db.execute(
            select(ChargeType)
            .where(
                ChargeType.code == RENT_CHARGE_CODE,
                or_(ChargeType.org_id == org_id, ChargeType.org_id.is_(None)),
            )
            .order_by(ChargeType.org_id.is_(None))
        )
        rent_type: Optional[ChargeType] = result.scalars().first()
        if rent_type is None:
            logger.error("Tipo addebito %s mancante per org %s", RENT_CHARGE_CODE, org_id)
            raise BusinessRuleViolationError(
                f"Tipo addebito {RENT_CHARGE_CODE} non configurato",
                error_code="CHARGE_TYPE_MISSING",
                extra={"org_id": str(org_id)},
            )
        return rent_type

    @staticmethod
    def _rent_description(term: LeaseTerm, period_start: date, period_end: date) -> str:
        start = max(term.effective_from, period_start)
        end = min(term.effective_to, period_end) if term.effective_to else period_end
        if start == period_start and end == period_end:
            return f"Canone {period_start:%m/%Y}"
        return f"Canone dal {start:%d/%m} al {end:%d/%m/%Y} (pro rata)"
