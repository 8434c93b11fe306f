"""
Main Entry Point - Esecuzione batch della fatturazione
Progetto: Rent Billing (Motore di Fatturazione Locazioni)

Punto di ingresso per lo scheduler esterno: genera le bozze del periodo
per tutti i contratti attivi di un'organizzazione.

Usage:
    rent-billing-run <org_id> --period 2025-01
    rent-billing-run <org_id> --start 2025-01-01 --end 2025-01-31 --method thirty_day_month
"""

import argparse
import asyncio
import calendar
import logging
import sys
import uuid
from datetime import date
from typing import Optional, Sequence

from rent_billing.core.config import settings
from rent_billing.core.database import AsyncSessionLocal, close_db, init_db
from rent_billing.core.exceptions import ServiceUnavailableError
from rent_billing.engine import BillingEngine
from rent_billing.schemas.invoice import ProrationMethod

# ------------------------------------------------------------
# Configurazione Logging
# ------------------------------------------------------------
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def month_bounds(period: str) -> tuple[date, date]:
    """'YYYY-MM' -> (primo giorno, ultimo giorno) del mese."""
    year, month = (int(part) for part in period.split("-", 1))
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rent-billing-run",
        description=f"{settings.app_name} v{settings.app_version}: generazione batch delle fatture",
    )
    parser.add_argument("org_id", type=uuid.UUID, help="UUID dell'organizzazione")
    parser.add_argument("--period", help="Mese di fatturazione (YYYY-MM)")
    parser.add_argument("--start", type=date.fromisoformat, help="Inizio periodo (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="Fine periodo (YYYY-MM-DD)")
    parser.add_argument(
        "--method",
        choices=[m.value for m in ProrationMethod],
        default=ProrationMethod.ACTUAL_DAYS.value,
        help="Metodo di riproporzionamento",
    )
    return parser


async def run(org_id: uuid.UUID, start: date, end: date, method: ProrationMethod) -> int:
    """Esegue la generazione e restituisce il codice di uscita del processo."""
    logger.info("Avvio %s v%s (%s)", settings.app_name, settings.app_version, settings.app_env)
    await init_db()
    try:
        engine = BillingEngine(AsyncSessionLocal)
        result = await engine.run_invoice_generation(org_id, start, end, method)
    except ServiceUnavailableError as e:
        logger.error("Database non disponibile: %s", e.detail)
        return 3
    finally:
        await close_db()

    if not result.is_success:
        logger.error("Esecuzione rifiutata: [%s] %s", result.error_code, result.detail)
        return 2

    summary = result.value
    logger.info(
        "Esecuzione %s: %s (%d/%d contratti fatturati)",
        summary.run_number,
        summary.status.value,
        summary.success_count,
        summary.total_leases,
    )
    for item in summary.items:
        if not item.is_success:
            logger.warning("Contratto %s: [%s] %s", item.lease_id, item.error_code, item.error_message)
    return 0 if summary.failure_count == 0 else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.period:
        try:
            start, end = month_bounds(args.period)
        except ValueError:
            parser.error(f"Periodo non valido: {args.period} (atteso YYYY-MM)")
    elif args.start and args.end:
        start, end = args.start, args.end
    else:
        parser.error("Indicare --period oppure --start e --end")

    return asyncio.run(run(args.org_id, start, end, ProrationMethod(args.method)))


if __name__ == "__main__":
    sys.exit(main())
