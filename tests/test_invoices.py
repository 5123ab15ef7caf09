from datetime import datetime, timezone

import pytest

from backoffice.core.errors import ValidationError
from backoffice.core.id_utils import invoice_prefix_from_name
from backoffice.models.invoice_counter import InvoiceCounter
from backoffice.services.invoice_service import format_invoice, next_invoice


def test_format_pads_number_to_configured_width():
    assert format_invoice("MONI", 2026, 42) == "MONI-2026-000042"
    assert format_invoice("MONI", 2026, 1234567) == "MONI-2026-1234567"


def test_prefix_is_derived_from_tenant_name():
    assert invoice_prefix_from_name("Monita Mart") == "MONI"
    assert invoice_prefix_from_name("a.b c") == "ABC"
    assert invoice_prefix_from_name("!!!") == "INV"


def test_numbers_increase_per_tenant_and_year(store, seed_store):
    may = datetime(2026, 5, 1, tzinfo=timezone.utc)
    assert next_invoice(store, now=may) == "MONI-2026-000001"
    assert next_invoice(store, now=may) == "MONI-2026-000002"
    assert next_invoice(store, now=datetime(2027, 1, 2, tzinfo=timezone.utc)) == "MONI-2027-000001"

    other = seed_store(name="Toko Lain", prefix="LAIN")
    assert next_invoice(other, now=may) == "LAIN-2026-000001"

    counters = store.scalars(store.select(InvoiceCounter).order_by(InvoiceCounter.year))
    assert [(counter.year, counter.last_number) for counter in counters] == [(2026, 2), (2027, 1)]


def test_rollback_leaves_a_gap_not_a_duplicate(store):
    may = datetime(2026, 5, 1, tzinfo=timezone.utc)
    assert next_invoice(store, now=may) == "MONI-2026-000001"
    store.session.commit()

    assert next_invoice(store, now=may) == "MONI-2026-000002"
    store.session.rollback()

    assert next_invoice(store, now=may) == "MONI-2026-000002"


def test_tenant_without_prefix_cannot_mint(store):
    tenant = store.tenant()
    tenant.invoice_prefix = ""
    store.flush()

    with pytest.raises(ValidationError):
        next_invoice(store)
