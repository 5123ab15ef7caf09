from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from backoffice.core.config import settings
from backoffice.core.errors import ValidationError
from backoffice.db.tenant_store import TenantStore
from backoffice.models.invoice_counter import InvoiceCounter
from backoffice.services.stock_engine import consistency_failure


def _increment_counter(store: TenantStore, year: int) -> int | None:
    result = store.execute(
        store.update(InvoiceCounter)
        .where(InvoiceCounter.year == year)
        .values(last_number=InvoiceCounter.last_number + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return int(
        store.execute(
            store.select_columns(InvoiceCounter, InvoiceCounter.last_number).where(InvoiceCounter.year == year)
        ).scalar_one()
    )


def format_invoice(prefix: str, year: int, number: int) -> str:
    return f"{prefix}-{year}-{str(number).zfill(settings.invoice_number_width)}"


def next_invoice(store: TenantStore, *, now: datetime | None = None) -> str:
    """Mint the next ``<PREFIX>-<year>-<number>`` for the store's tenant.

    Must run in the transaction that creates the numbered document: a rollback
    gives the number back as a gap, never as a duplicate.
    """
    prefix = (store.tenant().invoice_prefix or "").strip()
    if not prefix:
        raise ValidationError("Invoice prefix not configured", field="invoice_prefix")

    year = (now or datetime.now(timezone.utc)).year
    number = _increment_counter(store, year)
    if number is None:
        try:
            with store.session.begin_nested():
                store.add(InvoiceCounter(year=year, last_number=1))
            number = 1
        except IntegrityError:
            # Another transaction created this year's counter first.
            number = _increment_counter(store, year)
            if number is None:
                raise consistency_failure(
                    store,
                    "Invoice counter vanished after a create conflict",
                    year=year,
                ) from None
    return format_invoice(prefix, year, number)
